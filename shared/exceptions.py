# =============================================================================
# PROPOSAL RELAY - EXCEPTIONS
# =============================================================================
#
# EXCEPTION HIERARCHY:
#
# RelayError (base)
# ├── ConfigurationError     - missing/invalid settings, fatal at startup
# ├── StoreError             - idempotency ledger unreadable/unwritable
# ├── SourceFetchError       - a source could not be fetched this tick
# └── DispatchError          - a sink rejected a proposal
#     ├── ChatDeliveryError
#     └── DocPublishError
#         └── GitHubApiError
#
# Name resolution failures are NOT represented here: they degrade to the
# truncated address and never leave the resolver.
#
# =============================================================================

from typing import Optional


class RelayError(Exception):
    """
    Base class for all relay errors.

    Allows catching every relay failure in a single except block.
    """

    def __init__(self, message: str, proposal_id: Optional[str] = None):
        """
        Initialize relay error.

        Args:
            message: Error description
            proposal_id: Optional proposal ID for context
        """
        self.message = message
        self.proposal_id = proposal_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.proposal_id:
            return f"[{self.proposal_id}] {self.message}"
        return self.message


class ConfigurationError(RelayError):
    """A required setting is missing or invalid. The relay never starts."""

    def __init__(self, message: str, missing: Optional[list] = None):
        super().__init__(message)
        self.missing = list(missing or [])


class StoreError(RelayError):
    """The idempotency ledger could not be read or written."""


class SourceFetchError(RelayError):
    """
    A source could not deliver its recent window.

    Distinct from an empty result: the caller must be able to tell
    "no new proposals" from "fetch failed".
    """

    def __init__(self, message: str, source: str):
        super().__init__(message)
        self.source = source

    def __str__(self) -> str:
        return f"{self.source}: {self.message}"


class DispatchError(RelayError):
    """A sink failed to deliver a proposal."""

    def __init__(
        self,
        message: str,
        proposal_id: Optional[str] = None,
        sink: Optional[str] = None,
    ):
        super().__init__(message, proposal_id)
        self.sink = sink


class ChatDeliveryError(DispatchError):
    """The chat message was not accepted."""

    def __init__(self, message: str, proposal_id: Optional[str] = None):
        super().__init__(message, proposal_id, sink="chat")


class DocPublishError(DispatchError):
    """The documentation pull request could not be produced."""

    def __init__(self, message: str, proposal_id: Optional[str] = None):
        super().__init__(message, proposal_id, sink="docs")


class GitHubApiError(DocPublishError):
    """Non-2xx answer from the GitHub REST API."""

    def __init__(
        self,
        message: str,
        status_code: int,
        proposal_id: Optional[str] = None,
    ):
        super().__init__(message, proposal_id)
        self.status_code = status_code

    @property
    def is_reference_exists(self) -> bool:
        """True for the 422 GitHub returns when a branch already exists."""
        return self.status_code == 422 and "reference already exists" in self.message.lower()

    @property
    def is_pull_request_exists(self) -> bool:
        """True for the 422 GitHub returns when the head already has an open PR."""
        return self.status_code == 422 and "pull request already exists" in self.message.lower()
