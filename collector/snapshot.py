# =============================================================================
# PROPOSAL RELAY
# Module: collector/snapshot.py
# Purpose: Off-chain proposal source (Snapshot GraphQL hub)
# =============================================================================
#
# DESIGN:
# - One fixed query, templated only by page size, offset and space
# - Active proposals only, newest first
# - Exponential backoff on transport errors, 5xx and 429
# - Client errors (4xx) and GraphQL "errors" fail immediately
#
# API REFERENCE:
# Endpoint: https://hub.snapshot.org/graphql
# Response: {"data": {"proposals": [{id, title, author, state, body}]}}
#
# =============================================================================

import logging
import time
from typing import Any, Dict, List, Optional

import requests

from shared.enums import ProposalSource
from shared.exceptions import SourceFetchError

from .base import SourceAdapter
from .models import ProposalEvent

logger = logging.getLogger(__name__)

PROPOSALS_QUERY = """
query Proposals($first: Int!, $skip: Int!, $space: String!) {
  proposals(
    first: $first,
    skip: $skip,
    where: { space: $space, state: "active" },
    orderBy: "created",
    orderDirection: desc
  ) {
    id
    title
    author
    state
    body
  }
}
"""


class SnapshotClient:
    """HTTP client for the Snapshot GraphQL hub with retries and timeouts."""

    DEFAULT_ENDPOINT = "https://hub.snapshot.org/graphql"
    DEFAULT_TIMEOUT = 30  # seconds
    MAX_RETRIES = 3
    INITIAL_BACKOFF = 1.0  # seconds
    MAX_BACKOFF = 30.0  # seconds

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        session: Optional[requests.Session] = None,
        sleep=time.sleep,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = session or requests.Session()
        self._sleep = sleep

    def query(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run a GraphQL query with retry logic.

        Returns:
            The "data" object of the response

        Raises:
            RuntimeError: If all retry attempts fail or the hub rejects the query
        """
        backoff = self.INITIAL_BACKOFF
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                logger.debug(f"GraphQL attempt {attempt + 1}: {self.endpoint}")
                response = self.session.post(
                    self.endpoint,
                    json={"query": query, "variables": variables},
                    headers={"Accept": "application/json"},
                    timeout=self.timeout,
                )

                # Don't retry client errors (4xx) except 429 (rate limit)
                if 400 <= response.status_code < 500 and response.status_code != 429:
                    raise RuntimeError(
                        f"Client error: {response.status_code} {response.text[:200]}"
                    )
                response.raise_for_status()

                payload = response.json()
                if payload.get("errors"):
                    messages = "; ".join(
                        str(err.get("message", err)) for err in payload["errors"]
                    )
                    raise RuntimeError(f"GraphQL errors: {messages}")

                data = payload.get("data")
                if not isinstance(data, dict):
                    raise RuntimeError("Response has no 'data' object")
                return data

            except RuntimeError:
                raise

            except (requests.RequestException, ValueError) as e:
                last_error = e
                logger.warning(f"Snapshot request failed on attempt {attempt + 1}: {e}")

            if attempt < self.max_retries - 1:
                sleep_time = min(backoff, self.MAX_BACKOFF)
                logger.info(f"Retrying in {sleep_time:.1f}s...")
                self._sleep(sleep_time)
                backoff *= 2

        raise RuntimeError(
            f"All {self.max_retries} retry attempts failed. Last error: {last_error}"
        )


class IndexerSource(SourceAdapter):
    """Most recent active Snapshot proposals of one space."""

    DEFAULT_SPACE = "ens.eth"
    DEFAULT_PAGE_SIZE = 10

    def __init__(
        self,
        client: SnapshotClient,
        space: str = DEFAULT_SPACE,
        page_size: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ):
        self.client = client
        self.space = space
        self.page_size = page_size
        self.offset = offset

    @property
    def source_name(self) -> str:
        return "snapshot"

    def fetch_recent(self) -> List[ProposalEvent]:
        """
        Fetch one page of active proposals.

        Raises:
            SourceFetchError: On transport failure or malformed response
        """
        variables = {"first": self.page_size, "skip": self.offset, "space": self.space}
        try:
            data = self.client.query(PROPOSALS_QUERY, variables)
        except RuntimeError as e:
            raise SourceFetchError(str(e), self.source_name) from e

        rows = data.get("proposals")
        if not isinstance(rows, list):
            raise SourceFetchError("Response has no 'proposals' list", self.source_name)

        events = []
        for row in rows:
            try:
                events.append(self._normalize(row))
            except (KeyError, TypeError) as e:
                raise SourceFetchError(
                    f"Malformed proposal row: {e}", self.source_name
                ) from e

        logger.info(f"Snapshot: {len(events)} active proposals in {self.space}")
        return events

    @staticmethod
    def _normalize(row: Dict[str, Any]) -> ProposalEvent:
        return ProposalEvent(
            id=row["id"],
            source=ProposalSource.OFFCHAIN,
            proposer=row["author"],
            body=row.get("body") or "",
            title=row.get("title") or None,
            state=row.get("state"),
        )
