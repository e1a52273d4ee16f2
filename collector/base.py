# =============================================================================
# PROPOSAL RELAY
# Module: collector/base.py
# Purpose: Interface shared by every proposal source
# =============================================================================

from abc import ABC, abstractmethod
from typing import List

from .models import ProposalEvent


class SourceAdapter(ABC):
    """
    Pluggable proposal source.

    fetch_recent() returns a bounded window of recent proposals. An empty
    origin yields an empty list; an unreachable or malformed origin raises
    SourceFetchError. Deduplication is the orchestrator's job.
    """

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Identifier used in logs and errors (e.g. 'chain', 'snapshot')."""
        ...

    @abstractmethod
    def fetch_recent(self) -> List[ProposalEvent]:
        """Fetch the recent window and normalize it."""
        ...
