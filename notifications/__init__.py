# =============================================================================
# PROPOSAL RELAY - NOTIFICATIONS
# =============================================================================
#
# Everything downstream of discovery: who proposed it, what the message and
# the document look like, and where they are delivered.
#
# =============================================================================

from .identity import IdentityResolver, truncate_address
from .composer import MessageComposer, extract_title, effective_title
from .telegram import TelegramChatSink
from .github import GitHubDocSink, PublishResult, format_document

__all__ = [
    "IdentityResolver",
    "truncate_address",
    "MessageComposer",
    "extract_title",
    "effective_title",
    "TelegramChatSink",
    "GitHubDocSink",
    "PublishResult",
    "format_document",
]
