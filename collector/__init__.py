# =============================================================================
# PROPOSAL RELAY - COLLECTOR
# Module: collector/__init__.py
# Purpose: Proposal discovery and the idempotency ledger
# =============================================================================
#
# STRICT SEPARATION:
# This package ONLY discovers proposals and remembers which ones were sent.
# It does NOT format, notify or publish anything.
#
# DESIGN PRINCIPLES:
# - Bounded: every source reads a small recent window
# - Loud: a failed fetch raises, it never looks like "nothing new"
# - Raw ids: the dedup key is the id exactly as the source returns it
#
# =============================================================================

from .models import ProposalEvent
from .base import SourceAdapter
from .chain import ChainClient, ChainSource
from .snapshot import SnapshotClient, IndexerSource
from .storage import IdempotencyStore, JsonFileStore, MemoryStore

__all__ = [
    "ProposalEvent",
    "SourceAdapter",
    "ChainClient",
    "ChainSource",
    "SnapshotClient",
    "IndexerSource",
    "IdempotencyStore",
    "JsonFileStore",
    "MemoryStore",
]
