# =============================================================================
# PROPOSAL RELAY - IDENTITY RESOLVER
# =============================================================================
#
# Turns a proposer address into something a human recognizes: its primary
# ENS name, or a truncated address. Resolution never fails the pipeline.
#
# =============================================================================

import logging
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class NameLookup(Protocol):
    def ens_name(self, address: str) -> Optional[str]:
        ...


def truncate_address(address: str) -> str:
    """0xAbCdEf1234...0001 -> 0xAbCdEf...0001 (prefix + 6 hex chars, last 4)."""
    if len(address) <= 14:
        return address
    return f"{address[:8]}...{address[-4:]}"


class IdentityResolver:
    """Reverse name resolution with a deterministic fallback."""

    def __init__(self, lookup: Optional[NameLookup] = None):
        self.lookup = lookup

    def resolve(self, address: str) -> str:
        if self.lookup is not None:
            try:
                name = self.lookup.ens_name(address)
                if name:
                    return name
            except Exception as e:
                logger.warning(f"Name resolution failed for {address}: {e}")
        return truncate_address(address)
