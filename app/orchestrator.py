# =============================================================================
# PROPOSAL RELAY - PIPELINE ORCHESTRATOR
# =============================================================================
#
# One tick:
# 1. Fetching:    all sources, chain first, then indexer (batch)
# 2. Filtering:   skip ids already in the idempotency store
# 3. Enriching:   display author + title
# 4. Dispatching: chat message, then document publish (both attempted)
# 5. Recording:   mark the id seen, only after every sink succeeded
#
# Items are processed strictly one after another. A crash between
# dispatching and recording re-sends the item on the next tick
# (at-least-once, not exactly-once).
#
# FAILURE POLICIES:
# - Source failure:   ABORT_TICK (default) or ISOLATE
# - Dispatch failure: ISOLATE (default, skip only the failed item) or
#                     ABORT_TICK (skip the rest of the tick)
#
# =============================================================================

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from collector.base import SourceAdapter
from collector.chain import ChainClient, ChainSource
from collector.models import ProposalEvent
from collector.snapshot import IndexerSource, SnapshotClient
from collector.storage import IdempotencyStore, JsonFileStore
from notifications.composer import MessageComposer, effective_title
from notifications.github import GitHubDocSink
from notifications.identity import IdentityResolver
from notifications.telegram import TelegramChatSink
from shared.config import RelaySettings
from shared.enums import ItemFailurePolicy, SourceFailurePolicy, TickState
from shared.exceptions import (
    ChatDeliveryError,
    DispatchError,
    DocPublishError,
    SourceFetchError,
)
from shared.logging_config import AuditLogger

logger = logging.getLogger(__name__)

OUTCOME_SKIPPED = "SKIPPED"
OUTCOME_DISPATCHED = "DISPATCHED"
OUTCOME_FAILED = "FAILED"
OUTCOME_DRY_RUN = "DRY_RUN"


@dataclass
class ItemResult:
    """What happened to one proposal during a tick."""
    proposal_id: str
    source: str
    outcome: str
    display_author: Optional[str] = None
    title: Optional[str] = None
    document_number: Optional[str] = None
    pull_request_url: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposal_id": self.proposal_id,
            "source": self.source,
            "outcome": self.outcome,
            "display_author": self.display_author,
            "title": self.title,
            "document_number": self.document_number,
            "pull_request_url": self.pull_request_url,
            "errors": list(self.errors),
        }


@dataclass
class TickReport:
    """Result of a full tick."""
    run_id: str
    started_at: str
    state: TickState = TickState.OK
    fetched: int = 0
    skipped: int = 0
    dispatched: int = 0
    failed: int = 0
    source_errors: List[str] = field(default_factory=list)
    items: List[ItemResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    def add_item(self, item: ItemResult) -> None:
        self.items.append(item)
        if item.outcome == OUTCOME_SKIPPED:
            self.skipped += 1
        elif item.outcome == OUTCOME_DISPATCHED:
            self.dispatched += 1
        elif item.outcome == OUTCOME_FAILED:
            self.failed += 1
            self.state = TickState.DEGRADED

    def add_source_error(self, error: SourceFetchError) -> None:
        self.source_errors.append(str(error))
        self.state = TickState.DEGRADED

    @property
    def summary(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "state": self.state.value,
            "fetched": self.fetched,
            "skipped": self.skipped,
            "dispatched": self.dispatched,
            "failed": self.failed,
            "source_errors": list(self.source_errors),
            "duration_seconds": self.duration_seconds,
        }


class Orchestrator:
    """
    Proposal relay pipeline.

    Owns the per-tick loop. Every collaborator is passed in; nothing is a
    module-level singleton, so tests can substitute any of them.
    """

    def __init__(
        self,
        sources: Sequence[SourceAdapter],
        store: IdempotencyStore,
        resolver: IdentityResolver,
        composer: MessageComposer,
        chat_sink: TelegramChatSink,
        doc_sink: Optional[GitHubDocSink] = None,
        item_failure_policy: ItemFailurePolicy = ItemFailurePolicy.ISOLATE,
        source_failure_policy: SourceFailurePolicy = SourceFailurePolicy.ABORT_TICK,
        audit: Optional[AuditLogger] = None,
        dry_run: bool = False,
    ):
        self.sources = list(sources)
        self.store = store
        self.resolver = resolver
        self.composer = composer
        self.chat_sink = chat_sink
        self.doc_sink = doc_sink
        self.item_failure_policy = item_failure_policy
        self.source_failure_policy = source_failure_policy
        self.audit = audit
        self.dry_run = dry_run

    @classmethod
    def from_settings(
        cls,
        settings: RelaySettings,
        dry_run: bool = False,
        audit: Optional[AuditLogger] = None,
    ) -> "Orchestrator":
        """Construct every collaborator from validated settings."""
        chain_client = ChainClient(
            rpc_url=settings.chain.rpc_url,
            governor_address=settings.chain.governor_address,
        )
        sources = [
            ChainSource(chain_client, window_blocks=settings.chain.window_blocks),
            IndexerSource(
                SnapshotClient(endpoint=settings.snapshot.endpoint),
                space=settings.snapshot.space,
                page_size=settings.snapshot.page_size,
            ),
        ]
        docs = settings.docs
        return cls(
            sources=sources,
            store=JsonFileStore(settings.state_path),
            resolver=IdentityResolver(chain_client),
            composer=MessageComposer(
                tally_slug=settings.tally_slug,
                snapshot_space=settings.snapshot.space,
            ),
            chat_sink=TelegramChatSink(
                token=settings.telegram.bot_token,
                channel_id=settings.telegram.channel_id,
            ),
            doc_sink=GitHubDocSink(
                token=docs.token,
                owner=docs.owner,
                repo=docs.repo,
                upstream_owner=docs.upstream_owner,
                upstream_repo=docs.upstream_repo,
                base_branch=docs.base_branch,
                epoch_year=docs.epoch_year,
                epoch_term_offset=docs.epoch_term_offset,
                dev_mode=docs.dev_mode,
            ),
            item_failure_policy=settings.item_failure_policy,
            source_failure_policy=settings.source_failure_policy,
            audit=audit,
            dry_run=dry_run,
        )

    # -------------------------------------------------------------------------
    # TICK
    # -------------------------------------------------------------------------

    def run_tick(self) -> TickReport:
        """
        Execute one tick.

        Returns:
            TickReport with per-item outcomes

        Raises:
            SourceFetchError: A source failed under SourceFailurePolicy.ABORT_TICK
            DispatchError: An item failed under ItemFailurePolicy.ABORT_TICK
            StoreError: The idempotency ledger is unusable
        """
        tick_start = time.perf_counter()
        run_id = f"TICK-{datetime.now().strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:6]}"
        report = TickReport(
            run_id=run_id,
            started_at=datetime.now(timezone.utc).isoformat(),
        )
        logger.info(f"=== Tick START === run_id={run_id} dry_run={self.dry_run}")

        events = self._fetch_all(report)
        report.fetched = len(events)

        seen_this_tick = set()
        for event in events:
            if event.id in seen_this_tick or self.store.is_seen(event.id):
                logger.debug(f"Already notified: {event.short_id}")
                report.add_item(ItemResult(event.id, event.source.value, OUTCOME_SKIPPED))
                continue
            seen_this_tick.add(event.id)

            item, errors = self._dispatch(event)

            if errors:
                item.outcome = OUTCOME_FAILED
                item.errors = [str(e) for e in errors]
                report.add_item(item)
                self._audit(item)

                error = errors[0] if len(errors) == 1 else DispatchError(
                    "; ".join(item.errors),
                    proposal_id=event.id,
                    sink="+".join(e.sink or "?" for e in errors),
                )
                if self.item_failure_policy == ItemFailurePolicy.ABORT_TICK:
                    logger.error(f"Dispatch failed, aborting tick: {error}")
                    self._finish(report, tick_start)
                    raise error
                logger.error(f"Dispatch failed, item left for next tick: {error}")
                continue

            if self.dry_run:
                report.add_item(item)
                continue

            # Recording: only after every sink accepted the proposal
            self.store.mark_seen(event.id)
            item.outcome = OUTCOME_DISPATCHED
            report.add_item(item)
            self._audit(item)

        self._finish(report, tick_start)
        return report

    def _fetch_all(self, report: TickReport) -> List[ProposalEvent]:
        events: List[ProposalEvent] = []
        for source in self.sources:
            try:
                fetched = source.fetch_recent()
            except SourceFetchError as e:
                if self.source_failure_policy == SourceFailurePolicy.ABORT_TICK:
                    logger.error(f"Source fetch failed, aborting tick: {e}")
                    raise
                logger.error(f"Source fetch failed, continuing without it: {e}")
                report.add_source_error(e)
                continue
            logger.info(f"Fetched {len(fetched)} proposals from {source.source_name}")
            events.extend(fetched)
        return events

    def _dispatch(self, event: ProposalEvent):
        """Enrich, compose and send one proposal. Returns (item, errors)."""
        author = self.resolver.resolve(event.proposer)
        title = effective_title(event)
        item = ItemResult(
            proposal_id=event.id,
            source=event.source.value,
            outcome=OUTCOME_DRY_RUN,
            display_author=author,
            title=title,
        )

        message = self.composer.compose_notification(event, author, title)

        if self.dry_run:
            logger.info(f"[DRY RUN] {event.source.value} {event.short_id}:\n{message}")
            return item, []

        errors: List[DispatchError] = []
        logger.info(f"New proposal {event.short_id} ({event.source.value}) by {author}")

        try:
            self.chat_sink.send(message, proposal_id=event.id)
        except DispatchError as e:
            errors.append(e)
        except Exception as e:
            logger.exception(f"Chat sink crashed on {event.short_id}: {e}")
            errors.append(ChatDeliveryError(f"Unexpected error: {e!r}", event.id))

        if self.doc_sink is not None:
            try:
                document = self.composer.compose_document(event, author, title)
                result = self.doc_sink.publish(event, document, author, title)
                item.document_number = result.number
                item.pull_request_url = result.pull_request_url
            except DispatchError as e:
                errors.append(e)
            except Exception as e:
                logger.exception(f"Doc sink crashed on {event.short_id}: {e}")
                errors.append(DocPublishError(f"Unexpected error: {e!r}", event.id))

        return item, errors

    def _audit(self, item: ItemResult) -> None:
        if self.audit is None:
            return
        self.audit.log_dispatch(
            proposal_id=item.proposal_id,
            source=item.source,
            outcome=item.outcome,
            details=item.to_dict(),
        )

    def _finish(self, report: TickReport, tick_start: float) -> None:
        report.duration_seconds = round(time.perf_counter() - tick_start, 2)
        logger.info(
            f"=== Tick END === run_id={report.run_id} state={report.state.value} "
            f"fetched={report.fetched} dispatched={report.dispatched} "
            f"skipped={report.skipped} failed={report.failed}"
        )
