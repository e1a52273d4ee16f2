# =============================================================================
# PROPOSAL RELAY - DOCUMENTATION SINK (GitHub)
# =============================================================================
#
# PUBLISH PROTOCOL:
# 1. Branch:  prop/<proposal id> in the branch repository, from its base head.
#             "Reference already exists" means an earlier attempt got this far.
# 2. Number:  on a fresh branch
#               term = (year - epoch_year) + epoch_term_offset
#               sequence = 1 + count(docs named "<term>.*" on the target branch)
#             on an existing branch, the number of the document it already
#             carries (so a retry never adds a second file).
# 3. File:    src/pages/dao/proposals/<term>.<sequence>.md (base64, UTF-8).
# 4. PR:      into the target repository. "A pull request already exists"
#             means an earlier attempt opened it: look it up and reuse it.
#
# Every step is safe to repeat, so a proposal left unrecorded after a
# partial failure is simply published again on the next tick.
#
# FORK WORKFLOW:
# Branches and files live in owner/repo (the fork). The pull request targets
# upstream_owner/upstream_repo, or owner/repo itself in development mode.
#
# RACES:
# Two publishers counting at the same time can pick the same number. Nothing
# here coordinates them; collisions are resolved by hand on the PR.
#
# =============================================================================

import base64
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import mdformat
import requests

from collector.models import ProposalEvent
from shared.exceptions import DocPublishError, GitHubApiError

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
DOCS_PATH = "src/pages/dao/proposals"
DEFAULT_TIMEOUT = 30

DOCUMENT_NAME = re.compile(r"^\d+\.\d+\.md$")

PR_BODY = (
    "This is an automated pull request to add a new DAO proposal to the ENS docs."
)


@dataclass
class PublishResult:
    """Where a proposal document ended up."""
    number: str
    branch: str
    path: str
    pull_request_url: Optional[str]
    branch_existed: bool = False


def format_document(document: str) -> str:
    """
    Pretty-print a proposal document.

    The YAML front matter is kept verbatim; only the markdown body goes
    through mdformat.
    """
    front_matter = ""
    body = document
    if document.startswith("---\n"):
        end = document.find("\n---\n", 4)
        if end != -1:
            front_matter = document[: end + len("\n---\n")]
            body = document[end + len("\n---\n"):]

    formatted = mdformat.text(body.strip() + "\n")
    if front_matter:
        return f"{front_matter}\n{formatted}"
    return formatted


def encode_content(text: str) -> str:
    """Base64 of the UTF-8 bytes; survives any non-ASCII in proposals."""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _error_message(payload: Any, text: str) -> str:
    """GitHub's "message", plus the per-field "errors" a 422 carries."""
    if not isinstance(payload, dict):
        return text[:200]
    message = str(payload.get("message") or text[:200])
    details = [
        str(err["message"])
        for err in payload.get("errors") or []
        if isinstance(err, dict) and err.get("message")
    ]
    if details:
        message = f"{message}: {'; '.join(details)}"
    return message


class GitHubDocSink:
    """Publishes proposal documents as pull requests on the docs repository."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        upstream_owner: Optional[str] = None,
        upstream_repo: Optional[str] = None,
        base_branch: str = "master",
        epoch_year: int = 2025,
        epoch_term_offset: int = 6,
        dev_mode: bool = False,
        timeout: int = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
        today: Callable[[], date] = date.today,
    ):
        """
        Initialize the sink.

        Args:
            token: GitHub token with contents + pull request scope on owner/repo
            owner, repo: Repository that holds the proposal branches
            upstream_owner, upstream_repo: Pull request target (defaults to owner/repo)
            base_branch: Canonical branch of both repositories
            epoch_year, epoch_term_offset: Term numbering anchor
            dev_mode: Open pull requests against owner/repo instead of upstream
            session: Pre-built requests session (tests)
            today: Clock used for the term number
        """
        self.owner = owner
        self.repo = repo
        self.dev_mode = dev_mode
        if dev_mode or not (upstream_owner and upstream_repo):
            self.target_owner, self.target_repo = owner, repo
        else:
            self.target_owner, self.target_repo = upstream_owner, upstream_repo
        self.base_branch = base_branch
        self.epoch_year = epoch_year
        self.epoch_term_offset = epoch_term_offset
        self.timeout = timeout
        self._today = today

        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        })

    @property
    def is_fork_workflow(self) -> bool:
        return (self.target_owner, self.target_repo) != (self.owner, self.repo)

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        allow_not_found: bool = False,
        **kwargs: Any,
    ) -> Optional[Any]:
        url = f"{GITHUB_API_BASE}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise DocPublishError(f"GitHub {method} {path} failed: {e}")

        if allow_not_found and resp.status_code == 404:
            return None

        if not resp.ok:
            try:
                payload = resp.json()
            except ValueError:
                payload = None
            raise GitHubApiError(
                f"GitHub {method} {path}: {resp.status_code} {_error_message(payload, resp.text)}",
                status_code=resp.status_code,
            )

        if resp.status_code == 204 or not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            raise GitHubApiError(
                f"GitHub {method} {path}: {resp.status_code} with a non-JSON body",
                status_code=resp.status_code,
            )

    # -------------------------------------------------------------------------
    # NUMBERING
    # -------------------------------------------------------------------------

    def term_for_year(self, year: int) -> int:
        return (year - self.epoch_year) + self.epoch_term_offset

    def list_documents(
        self,
        owner: Optional[str] = None,
        repo: Optional[str] = None,
        ref: Optional[str] = None,
    ) -> List[str]:
        """Names of proposal documents at ref (default: target base branch)."""
        owner = owner or self.target_owner
        repo = repo or self.target_repo
        ref = ref or self.base_branch
        listing = self._request(
            "GET",
            f"/repos/{owner}/{repo}/contents/{DOCS_PATH}",
            allow_not_found=True,
            params={"ref": ref},
        )
        if listing is None:
            logger.warning(f"{DOCS_PATH} not found in {owner}/{repo}@{ref}")
            return []
        if not isinstance(listing, list):
            raise DocPublishError(f"{DOCS_PATH} in {owner}/{repo}@{ref} is not a directory")
        return [entry["name"] for entry in listing if isinstance(entry, dict) and "name" in entry]

    def next_document_number(self) -> str:
        """
        Assign "<term>.<sequence>" from the documents that already exist.

        Example: epoch 2025/6 in 2025 with 6.1, 6.2, 6.3 present -> "6.4".
        """
        term = self.term_for_year(self._today().year)
        prefix = f"{term}."
        existing = sum(1 for name in self.list_documents() if name.startswith(prefix))
        return f"{term}.{existing + 1}"

    def number_on_branch(self, branch: str) -> Optional[str]:
        """
        Number of the document an earlier attempt already wrote to branch.

        The branch was cut from the base branch of owner/repo, so any
        document on it that the base lacks was written by this sink.
        """
        on_branch = set(self.list_documents(self.owner, self.repo, branch))
        on_base = set(self.list_documents(self.owner, self.repo, self.base_branch))
        added = sorted(n for n in on_branch - on_base if DOCUMENT_NAME.match(n))
        if not added:
            return None
        if len(added) > 1:
            logger.warning(f"Several documents on {branch}: {added}, reusing {added[0]}")
        return added[0][: -len(".md")]

    # -------------------------------------------------------------------------
    # PUBLISH STEPS
    # -------------------------------------------------------------------------

    def _create_branch(self, branch: str) -> bool:
        """Create the branch. Returns False if it already existed."""
        base = self._request(
            "GET", f"/repos/{self.owner}/{self.repo}/git/ref/heads/{self.base_branch}"
        )
        try:
            sha = base["object"]["sha"]
        except (KeyError, TypeError):
            raise DocPublishError(
                f"Unexpected ref response for {self.owner}/{self.repo}@{self.base_branch}"
            )

        try:
            self._request(
                "POST",
                f"/repos/{self.owner}/{self.repo}/git/refs",
                json={"ref": f"refs/heads/{branch}", "sha": sha},
            )
        except GitHubApiError as e:
            if e.is_reference_exists:
                logger.info(f"Branch {branch} already exists, resuming publish")
                return False
            raise
        logger.info(f"Created branch {branch}")
        return True

    def _put_file(self, branch: str, path: str, content: str, number: str) -> None:
        existing = self._request(
            "GET",
            f"/repos/{self.owner}/{self.repo}/contents/{path}",
            allow_not_found=True,
            params={"ref": branch},
        )
        body: Dict[str, Any] = {
            "message": f"Add EP {number}",
            "content": encode_content(content),
            "branch": branch,
        }
        if isinstance(existing, dict) and existing.get("sha"):
            body["sha"] = existing["sha"]

        self._request("PUT", f"/repos/{self.owner}/{self.repo}/contents/{path}", json=body)
        logger.info(f"Wrote {path} on {branch}")

    def _open_pull_request(self, branch: str, number: str) -> Dict[str, Any]:
        pulls_path = f"/repos/{self.target_owner}/{self.target_repo}/pulls"
        head = f"{self.owner}:{branch}" if self.is_fork_workflow else branch
        try:
            pull = self._request(
                "POST",
                pulls_path,
                json={
                    "title": f"Add EP {number}",
                    "body": PR_BODY,
                    "head": head,
                    "base": self.base_branch,
                },
            )
        except GitHubApiError as e:
            if not e.is_pull_request_exists:
                raise
            logger.info(f"Pull request for {branch} already open, resuming publish")
            open_pulls = self._request(
                "GET",
                pulls_path,
                params={"head": f"{self.owner}:{branch}", "state": "open"},
            )
            if not isinstance(open_pulls, list) or not open_pulls:
                raise DocPublishError(f"Open pull request for {branch} not found")
            pull = open_pulls[0]
        return pull if isinstance(pull, dict) else {}

    def publish(
        self,
        event: ProposalEvent,
        document: str,
        author: str,
        title: Optional[str] = None,
    ) -> PublishResult:
        """
        Publish a composed document as a pull request.

        Safe to call again after a partial failure: an existing branch keeps
        its document number and an already open pull request is reused.

        Args:
            event: Proposal being published (its id names the branch)
            document: Output of MessageComposer.compose_document
            author: Display author, used in logs
            title: Detected title, used in logs

        Raises:
            DocPublishError: On any failure except the resumable ones above
        """
        branch = f"prop/{event.id}"
        try:
            created = self._create_branch(branch)
            number = None if created else self.number_on_branch(branch)
            if number:
                logger.info(f"Reusing EP {number} already on {branch}")
            else:
                number = self.next_document_number()
            path = f"{DOCS_PATH}/{number}.md"
            logger.info(
                f"Publishing EP {number} for {event.short_id} "
                f"({title or 'untitled'} by {author})"
            )

            self._put_file(branch, path, format_document(document), number)
            pull = self._open_pull_request(branch, number)
        except DocPublishError as e:
            e.proposal_id = e.proposal_id or event.id
            raise

        url = pull.get("html_url")
        logger.info(f"Pull request: {url}")
        return PublishResult(
            number=number,
            branch=branch,
            path=path,
            pull_request_url=url,
            branch_existed=not created,
        )
