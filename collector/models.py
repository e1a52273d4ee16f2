# =============================================================================
# PROPOSAL RELAY
# Module: collector/models.py
# Purpose: Source-independent proposal record
# =============================================================================
#
# FIELDS:
# {
#     "id": string,                 raw id, never reformatted (dedup key)
#     "source": "OnChain" | "OffChain",
#     "proposer": string,           0x-prefixed 20-byte address
#     "title": string | null,       indexer-provided title only
#     "body": string,               description / markdown body
#     "transaction_hash": string | null,
#     "block_number": int | null,
#     "state": string | null,
# }
#
# A ProposalEvent is rebuilt every tick from source data. It is never
# persisted; only its id reaches the idempotency store.
#
# =============================================================================

from dataclasses import dataclass
from typing import Optional

from shared.enums import ProposalSource


@dataclass(frozen=True)
class ProposalEvent:
    """
    Normalized governance proposal.

    On-chain ids are decimal strings and off-chain ids are content hashes,
    so both live in one dedup key-space without colliding.
    """
    id: str
    source: ProposalSource
    proposer: str
    body: str
    title: Optional[str] = None
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None
    state: Optional[str] = None

    @property
    def is_onchain(self) -> bool:
        return self.source == ProposalSource.ONCHAIN

    @property
    def short_id(self) -> str:
        """Id shortened for log lines."""
        if len(self.id) <= 14:
            return self.id
        return f"{self.id[:8]}...{self.id[-4:]}"
