# =============================================================================
# SHARED FIXTURES
# =============================================================================

import sys
from pathlib import Path
from unittest.mock import Mock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from collector.storage import MemoryStore
from notifications.composer import MessageComposer
from notifications.identity import IdentityResolver
from tests.fakes import RecordingChatSink, RecordingDocSink


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def resolver():
    """Resolver whose lookup never finds a name."""
    lookup = Mock()
    lookup.ens_name.return_value = None
    return IdentityResolver(lookup)


@pytest.fixture
def composer():
    return MessageComposer()


@pytest.fixture
def chat_sink():
    return RecordingChatSink()


@pytest.fixture
def doc_sink():
    return RecordingDocSink()
