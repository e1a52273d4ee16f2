# =============================================================================
# UNIT TESTS - GitHub Documentation Sink
# =============================================================================

import base64
import sys
from datetime import date
from pathlib import Path
from unittest.mock import Mock

import pytest
import requests

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from notifications.github import (
    DOCS_PATH,
    GitHubDocSink,
    encode_content,
    format_document,
)
from shared.exceptions import DocPublishError, GitHubApiError
from tests.fakes import FakeGitHubApi, fake_response, github_sink, make_event

DOCUMENT = (
    "---\nauthors:\n- nick.eth\nproposal:\n  type: executable\n---\n\n"
    "# Fund the WG\n\n::authors\n\nDetails\n"
)


class FakeGitHub:
    """Routes session.request(method, url) to canned responses."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        for (m, suffix), response in self.routes.items():
            if m == method and url.endswith(suffix):
                return response
        raise AssertionError(f"Unexpected request: {method} {url}")

    def find(self, method, suffix):
        return [c for c in self.calls if c[0] == method and c[1].endswith(suffix)]


def _listing(*names):
    return fake_response(200, [{"name": n, "type": "file"} for n in names])


def _routes(listing=None, create_ref=None, existing_file=None):
    return {
        ("GET", f"/repos/ensdomains/docs/contents/{DOCS_PATH}"): listing or _listing(),
        ("GET", f"/repos/relay-bot/docs/contents/{DOCS_PATH}"): listing or _listing(),
        ("GET", "/git/ref/heads/master"): fake_response(200, {"object": {"sha": "base-sha"}}),
        ("POST", "/git/refs"): create_ref or fake_response(201, {"ref": "refs/heads/prop/42"}),
        ("GET", ".md"): existing_file or fake_response(404, {"message": "Not Found"}),
        ("PUT", ".md"): fake_response(201, {"content": {}}),
        ("POST", "/pulls"): fake_response(
            201, {"html_url": "https://github.com/ensdomains/docs/pull/9", "number": 9}
        ),
    }


def _sink(routes=None, dev_mode=False, today=date(2025, 3, 1)):
    fake = FakeGitHub(routes or _routes())
    session = Mock()
    session.headers = {}
    session.request.side_effect = fake
    sink = GitHubDocSink(
        token="ghp_test",
        owner="relay-bot",
        repo="docs",
        upstream_owner="ensdomains",
        upstream_repo="docs",
        dev_mode=dev_mode,
        session=session,
        today=lambda: today,
    )
    return sink, fake


# =============================================================================
# HELPERS
# =============================================================================

class TestHelpers:

    def test_encode_content_utf8(self):
        assert base64.b64decode(encode_content("ünïcode")).decode("utf-8") == "ünïcode"

    def test_format_keeps_front_matter(self):
        formatted = format_document(DOCUMENT)
        assert formatted.startswith(
            "---\nauthors:\n- nick.eth\nproposal:\n  type: executable\n---\n\n"
        )
        assert "# Fund the WG" in formatted
        assert "::authors" in formatted
        assert formatted.endswith("Details\n")

    def test_format_normalizes_body(self):
        formatted = format_document("---\na: 1\n---\n\nTitle\n=====\n\n* one\n* two\n")
        assert "# Title" in formatted
        assert "- one" in formatted

    def test_format_without_front_matter(self):
        assert format_document("# Title\n\n\n\nBody") == "# Title\n\nBody\n"


# =============================================================================
# NUMBERING
# =============================================================================

class TestNumbering:

    def test_term_for_year(self):
        sink, _ = _sink()
        assert sink.term_for_year(2025) == 6
        assert sink.term_for_year(2026) == 7

    def test_next_after_existing(self):
        sink, _ = _sink(_routes(listing=_listing("6.1.md", "6.2.md", "6.3.md")))
        assert sink.next_document_number() == "6.4"

    def test_only_current_term_counts(self):
        routes = _routes(listing=_listing("5.1.md", "5.2.md", "6.1.md", "README.md"))
        sink, _ = _sink(routes)
        assert sink.next_document_number() == "6.2"

    def test_new_year_restarts(self):
        routes = _routes(listing=_listing("6.1.md", "6.2.md"))
        sink, _ = _sink(routes, today=date(2026, 1, 5))
        assert sink.next_document_number() == "7.1"

    def test_missing_directory_numbers_from_one(self):
        routes = _routes(listing=fake_response(404, {"message": "Not Found"}))
        sink, _ = _sink(routes)
        assert sink.next_document_number() == "6.1"

    def test_listing_reads_target_base_branch(self):
        sink, fake = _sink()
        sink.list_documents()
        method, url, kwargs = fake.calls[0]
        assert url.endswith(f"/repos/ensdomains/docs/contents/{DOCS_PATH}")
        assert kwargs["params"] == {"ref": "master"}


# =============================================================================
# PUBLISH
# =============================================================================

class TestPublish:

    def test_full_protocol(self):
        sink, fake = _sink(_routes(listing=_listing("6.1.md", "6.2.md", "6.3.md")))
        result = sink.publish(make_event("42"), DOCUMENT, "nick.eth", "Fund the WG")

        assert result.number == "6.4"
        assert result.branch == "prop/42"
        assert result.path == f"{DOCS_PATH}/6.4.md"
        assert result.pull_request_url == "https://github.com/ensdomains/docs/pull/9"
        assert result.branch_existed is False

        (_, url, kwargs), = fake.find("POST", "/git/refs")
        assert "/repos/relay-bot/docs/" in url
        assert kwargs["json"] == {"ref": "refs/heads/prop/42", "sha": "base-sha"}

        (_, url, kwargs), = fake.find("PUT", ".md")
        assert url.endswith(f"/repos/relay-bot/docs/contents/{DOCS_PATH}/6.4.md")
        assert kwargs["json"]["message"] == "Add EP 6.4"
        assert kwargs["json"]["branch"] == "prop/42"
        assert "sha" not in kwargs["json"]
        content = base64.b64decode(kwargs["json"]["content"]).decode("utf-8")
        assert content.startswith("---\nauthors:\n- nick.eth\n")

        (_, url, kwargs), = fake.find("POST", "/pulls")
        assert "/repos/ensdomains/docs/pulls" in url
        assert kwargs["json"]["title"] == "Add EP 6.4"
        assert kwargs["json"]["head"] == "relay-bot:prop/42"
        assert kwargs["json"]["base"] == "master"

    def test_dev_mode_targets_fork(self):
        sink, fake = _sink(dev_mode=True)
        sink.publish(make_event("42"), DOCUMENT, "nick.eth", None)

        (_, url, kwargs), = fake.find("POST", "/pulls")
        assert "/repos/relay-bot/docs/pulls" in url
        assert kwargs["json"]["head"] == "prop/42"
        assert not sink.is_fork_workflow

    def test_existing_branch_is_resumed(self):
        routes = _routes(
            create_ref=fake_response(422, {"message": "Reference already exists"}),
            existing_file=fake_response(200, {"sha": "file-sha"}),
        )
        sink, fake = _sink(routes)
        result = sink.publish(make_event("42"), DOCUMENT, "nick.eth", "T")

        assert result.branch_existed is True
        (_, _, kwargs), = fake.find("PUT", ".md")
        assert kwargs["json"]["sha"] == "file-sha"

    def test_other_branch_error_fails(self):
        routes = _routes(create_ref=fake_response(403, {"message": "Resource not accessible"}))
        sink, fake = _sink(routes)
        with pytest.raises(GitHubApiError) as exc:
            sink.publish(make_event("42"), DOCUMENT, "nick.eth", "T")
        assert exc.value.status_code == 403
        assert exc.value.proposal_id == "42"
        assert not fake.find("POST", "/pulls")

    def test_open_pull_request_is_reused(self):
        routes = _routes()
        routes[("POST", "/pulls")] = fake_response(422, {
            "message": "Validation Failed",
            "errors": [{"message": "A pull request already exists for relay-bot:prop/42."}],
        })
        routes[("GET", "/pulls")] = fake_response(
            200, [{"html_url": "https://github.com/ensdomains/docs/pull/7", "number": 7}]
        )
        sink, fake = _sink(routes)
        result = sink.publish(make_event("42"), DOCUMENT, "nick.eth", "T")

        assert result.pull_request_url == "https://github.com/ensdomains/docs/pull/7"
        (_, url, kwargs), = fake.find("GET", "/pulls")
        assert "/repos/ensdomains/docs/pulls" in url
        assert kwargs["params"] == {"head": "relay-bot:prop/42", "state": "open"}

    def test_existing_pull_request_not_found(self):
        routes = _routes()
        routes[("POST", "/pulls")] = fake_response(422, {
            "message": "Validation Failed",
            "errors": [{"message": "A pull request already exists for relay-bot:prop/42."}],
        })
        routes[("GET", "/pulls")] = fake_response(200, [])
        sink, _ = _sink(routes)
        with pytest.raises(DocPublishError, match="not found") as exc:
            sink.publish(make_event("42"), DOCUMENT, "nick.eth", "T")
        assert exc.value.proposal_id == "42"

    def test_pull_request_failure(self):
        routes = _routes()
        routes[("POST", "/pulls")] = fake_response(500, {"message": "Server Error"})
        sink, fake = _sink(routes)
        with pytest.raises(DocPublishError) as exc:
            sink.publish(make_event("42"), DOCUMENT, "nick.eth", "T")
        assert exc.value.sink == "docs"
        assert "500" in str(exc.value)
        assert not fake.find("GET", "/pulls")

    def test_non_json_success_body(self):
        routes = _routes()
        broken = fake_response(200)
        broken.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
        routes[("PUT", ".md")] = broken
        sink, _ = _sink(routes)
        with pytest.raises(DocPublishError, match="non-JSON") as exc:
            sink.publish(make_event("42"), DOCUMENT, "nick.eth", "T")
        assert exc.value.proposal_id == "42"

    def test_unexpected_ref_response(self):
        routes = _routes()
        routes[("GET", "/git/ref/heads/master")] = fake_response(200, {"message": "moved"})
        sink, fake = _sink(routes)
        with pytest.raises(DocPublishError, match="Unexpected ref response"):
            sink.publish(make_event("42"), DOCUMENT, "nick.eth", "T")
        assert not fake.find("POST", "/git/refs")

    def test_transport_error(self):
        session = Mock()
        session.headers = {}
        session.request.side_effect = requests.ConnectionError("dns failure")
        sink = GitHubDocSink("t", "relay-bot", "docs", session=session)
        with pytest.raises(DocPublishError, match="dns failure") as exc:
            sink.publish(make_event("42"), DOCUMENT, "nick.eth", "T")
        assert exc.value.proposal_id == "42"

    def test_auth_headers(self):
        sink, _ = _sink()
        assert sink.session.headers["Authorization"] == "Bearer ghp_test"
        assert sink.session.headers["Accept"] == "application/vnd.github+json"


# =============================================================================
# RETRY AFTER PARTIAL FAILURE
# =============================================================================

class TestRetry:

    EXISTING = ["6.1.md", "6.2.md", "6.3.md"]

    def _api(self, **kwargs):
        return FakeGitHubApi(
            {("ensdomains", "docs"): self.EXISTING, ("relay-bot", "docs"): self.EXISTING},
            **kwargs,
        )

    def test_number_on_fresh_branch_is_none(self):
        api = self._api()
        sink = github_sink(api)
        api.trees[("relay-bot", "docs", "prop/42")] = dict(api.trees[("relay-bot", "docs", "master")])
        assert sink.number_on_branch("prop/42") is None

    def test_number_on_branch_ignores_other_files(self):
        api = self._api()
        sink = github_sink(api)
        api.trees[("relay-bot", "docs", "prop/42")] = dict(api.trees[("relay-bot", "docs", "master")])
        api.add_document("relay-bot", "docs", "README.md", branch="prop/42")
        api.add_document("relay-bot", "docs", "6.4.md", branch="prop/42")
        assert sink.number_on_branch("prop/42") == "6.4"

    def test_retry_reuses_number_on_branch(self):
        api = self._api(pull_failures=1)
        sink = github_sink(api)

        with pytest.raises(GitHubApiError):
            sink.publish(make_event("42"), DOCUMENT, "nick.eth", "T")
        assert "6.4.md" in api.documents("relay-bot", "docs", "prop/42")

        # Upstream takes 6.4 for another proposal before the retry
        api.add_document("ensdomains", "docs", "6.4.md")
        result = sink.publish(make_event("42"), DOCUMENT, "nick.eth", "T")

        assert result.number == "6.4"
        assert result.branch_existed is True
        assert api.documents("relay-bot", "docs", "prop/42") == self.EXISTING + ["6.4.md"]
        (_, _, kwargs) = api.find("PUT", "/6.4.md")[-1]
        assert kwargs["json"]["sha"] == "sha-6.4.md-1"

    def test_retry_reuses_open_pull_request(self):
        api = self._api()
        sink = github_sink(api)

        first = sink.publish(make_event("42"), DOCUMENT, "nick.eth", "T")
        second = sink.publish(make_event("42"), DOCUMENT, "nick.eth", "T")

        assert len(api.pulls) == 1
        assert second.pull_request_url == first.pull_request_url
        assert second.number == first.number == "6.4"

    def test_retry_in_dev_mode(self):
        api = self._api()
        sink = github_sink(api, dev_mode=True)

        first = sink.publish(make_event("42"), DOCUMENT, "nick.eth", "T")
        second = sink.publish(make_event("42"), DOCUMENT, "nick.eth", "T")

        assert list(api.pulls) == [("relay-bot", "docs", "relay-bot:prop/42")]
        assert second.pull_request_url == first.pull_request_url
