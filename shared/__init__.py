# =============================================================================
# PROPOSAL RELAY - SHARED MODULE
# =============================================================================
#
# Shared utilities used by collector, notifications and app. No pipeline
# logic lives here.
#
# CONTENTS:
# - Enums (shared type definitions)
# - Exceptions (error taxonomy)
# - Configuration loading (.env + relay.yaml)
# - Logging + dispatch audit log
#
# =============================================================================

from .enums import ProposalSource, ItemFailurePolicy, SourceFailurePolicy, TickState
from .exceptions import (
    RelayError,
    ConfigurationError,
    StoreError,
    SourceFetchError,
    DispatchError,
    ChatDeliveryError,
    DocPublishError,
    GitHubApiError,
)
from .logging_config import setup_logging, AuditLogger

__all__ = [
    "ProposalSource",
    "ItemFailurePolicy",
    "SourceFailurePolicy",
    "TickState",
    "RelayError",
    "ConfigurationError",
    "StoreError",
    "SourceFetchError",
    "DispatchError",
    "ChatDeliveryError",
    "DocPublishError",
    "GitHubApiError",
    "setup_logging",
    "AuditLogger",
]
