# =============================================================================
# PROPOSAL RELAY - SHARED ENUMS
# =============================================================================
#
# Shared vocabulary across collector, notifications and the orchestrator.
#
# =============================================================================

from enum import Enum


class ProposalSource(Enum):
    """
    Origin of a proposal.

    ONCHAIN:  ProposalCreated event emitted by the governor contract.
              Ids are decimal strings of the uint256 proposal id.
    OFFCHAIN: Signed-vote proposal indexed by Snapshot.
              Ids are content hashes ("0x...").
    """
    ONCHAIN = "OnChain"
    OFFCHAIN = "OffChain"


class ItemFailurePolicy(Enum):
    """
    What a tick does when dispatching one proposal fails.

    ISOLATE:    Log, leave the item unrecorded, continue with the next item.
    ABORT_TICK: Re-raise and skip every remaining item of the tick.
    """
    ISOLATE = "isolate"
    ABORT_TICK = "abort_tick"


class SourceFailurePolicy(Enum):
    """
    What a tick does when one source cannot be fetched.

    ABORT_TICK: Nothing is dispatched or recorded, the next tick retries.
    ISOLATE:    Continue with the items fetched from the other sources.
    """
    ABORT_TICK = "abort_tick"
    ISOLATE = "isolate"


class TickState(Enum):
    """Outcome of a single tick."""
    OK = "OK"
    DEGRADED = "DEGRADED"
