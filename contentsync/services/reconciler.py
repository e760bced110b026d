import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime

from contentsync.db import SessionLocal
from contentsync.errors import ConfigurationError, ContentSyncError, DeviceApiError, HashComputeError
from contentsync.models.content_item import ContentItem
from contentsync.models.screen import Screen
from contentsync.services.classifier import CATEGORY_UNCLASSIFIED, Classification, ContentClassifier
from contentsync.services.device_api import ContentTree, MediaDetail
from contentsync.services.phash import Fingerprint, compute_fingerprint

logger = logging.getLogger(__name__)

SYNC_WORKERS = int(os.getenv("SIGNAGE_SYNC_WORKERS", "5"))
SCREEN_TIMEOUT_SEC = float(os.getenv("SIGNAGE_SYNC_SCREEN_TIMEOUT_SEC", "60"))

FETCHING = "fetching"
DIFFING = "diffing"
PERSISTING = "persisting"
DONE = "done"
ERRORED = "errored"
SKIPPED = "skipped"


@dataclass(frozen=True)
class ScreenRef:
    id: str
    name: str
    external_player_id: str | None


@dataclass
class ScreenObservation:
    screen_id: str
    screen_name: str
    player_id: str
    status: str
    last_checked_in: datetime | None
    tree: ContentTree
    observed_at: datetime


@dataclass
class ScreenOutcome:
    screen_id: str
    state: str = FETCHING
    has_content: bool = False
    reason: str | None = None
    created: int = 0
    touched: int = 0
    reactivated: int = 0
    deactivated: int = 0


@dataclass
class RunSummary:
    screens_total: int = 0
    with_content: int = 0
    empty: int = 0
    errored: int = 0
    skipped: int = 0
    ran_at: datetime | None = None
    duration_ms: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)


@dataclass
class ContentDiff:
    to_create: list[MediaDetail] = field(default_factory=list)
    to_touch: list[str] = field(default_factory=list)
    to_reactivate: list[str] = field(default_factory=list)
    to_deactivate: list[str] = field(default_factory=list)


def diff_content(stored: dict[str, bool], fetched: list[MediaDetail]) -> ContentDiff:
    """
    Compare stored rows (media id -> is_active) with what the player shows now.

    New ids are created, ids seen before are touched (or re-activated when
    they had been deactivated) and active ids that disappeared are
    deactivated. Inactive ids that stay absent are left alone.
    """
    diff = ContentDiff()
    fetched_ids: set[str] = set()
    for item in fetched:
        if item.id in fetched_ids:
            continue
        fetched_ids.add(item.id)
        if item.id not in stored:
            diff.to_create.append(item)
        elif stored[item.id]:
            diff.to_touch.append(item.id)
        else:
            diff.to_reactivate.append(item.id)
    diff.to_deactivate = sorted(
        media_id for media_id, is_active in stored.items() if is_active and media_id not in fetched_ids
    )
    return diff


def summarize(outcomes: list[ScreenOutcome], ran_at: datetime, duration_ms: int) -> RunSummary:
    summary = RunSummary(screens_total=len(outcomes), ran_at=ran_at, duration_ms=duration_ms)
    for outcome in outcomes:
        if outcome.state == DONE:
            if outcome.has_content:
                summary.with_content += 1
            else:
                summary.empty += 1
        elif outcome.state == SKIPPED:
            summary.skipped += 1
        else:
            summary.errored += 1
            summary.errors.append({"screen_id": outcome.screen_id, "reason": outcome.reason or "unknown"})
    return summary


class ReconciliationJob:
    """
    One tick of screen content reconciliation.

    Each screen walks FETCHING -> DIFFING -> PERSISTING -> DONE, or ends in
    ERRORED with a reason. A failing screen never aborts the batch; only a
    missing device API configuration stops the tick, before any screen is
    touched.
    """

    def __init__(
        self,
        client,
        classifier: ContentClassifier,
        session_factory=SessionLocal,
        workers: int = SYNC_WORKERS,
        screen_timeout_sec: float = SCREEN_TIMEOUT_SEC,
        clock=datetime.utcnow,
    ) -> None:
        self._client = client
        self._classifier = classifier
        self._session_factory = session_factory
        self._workers = max(1, workers)
        self._screen_timeout_sec = screen_timeout_sec
        self._clock = clock
        self._observations: dict[str, ScreenObservation] = {}
        self._last_summary: RunSummary | None = None

    @property
    def last_summary(self) -> RunSummary | None:
        return self._last_summary

    def is_configured(self) -> bool:
        return self._client.is_configured()

    def observations(self) -> list[ScreenObservation]:
        return sorted(self._observations.values(), key=lambda item: (item.screen_name, item.screen_id))

    def _load_screens(self) -> list[ScreenRef]:
        db = self._session_factory()
        try:
            rows = db.query(Screen).order_by(Screen.name.asc(), Screen.id.asc()).all()
            return [ScreenRef(id=row.id, name=row.name, external_player_id=row.external_player_id) for row in rows]
        finally:
            db.close()

    async def run(self, stop_event: asyncio.Event | None = None) -> RunSummary:
        if not self._client.is_configured():
            raise ConfigurationError("Device API credentials are not configured")

        started = time.monotonic()
        ran_at = self._clock()
        screens = self._load_screens()
        self._classifier.matcher.refresh()
        known_ids = {screen.id for screen in screens}
        for screen_id in list(self._observations):
            if screen_id not in known_ids:
                self._observations.pop(screen_id, None)

        semaphore = asyncio.Semaphore(self._workers)
        outcomes = await asyncio.gather(*(self._guarded(screen, semaphore, stop_event) for screen in screens))

        summary = summarize(list(outcomes), ran_at, int((time.monotonic() - started) * 1000))
        self._last_summary = summary
        logger.info(
            "Reconciliation finished: %d screens (%d with content, %d empty, %d errors, %d skipped) in %dms",
            summary.screens_total,
            summary.with_content,
            summary.empty,
            summary.errored,
            summary.skipped,
            summary.duration_ms,
        )
        return summary

    async def _guarded(self, screen: ScreenRef, semaphore: asyncio.Semaphore, stop_event: asyncio.Event | None) -> ScreenOutcome:
        async with semaphore:
            if stop_event is not None and stop_event.is_set():
                return ScreenOutcome(screen_id=screen.id, state=SKIPPED, reason="shutdown")
            try:
                return await asyncio.wait_for(self.reconcile_screen(screen), timeout=self._screen_timeout_sec)
            except asyncio.TimeoutError:
                logger.warning("Screen %s (%s) timed out after %.0fs", screen.id, screen.name, self._screen_timeout_sec)
                return ScreenOutcome(screen_id=screen.id, state=ERRORED, reason="timeout")

    async def reconcile_screen(self, screen: ScreenRef) -> ScreenOutcome:
        outcome = ScreenOutcome(screen_id=screen.id)
        if not screen.external_player_id:
            logger.warning("Screen %s (%s) is not linked to a player", screen.id, screen.name)
            outcome.state = ERRORED
            outcome.reason = "unlinked"
            return outcome
        try:
            status = await self._client.get_player_status(screen.external_player_id)
            tree = await self._client.get_screen_content(screen.external_player_id)

            outcome.state = DIFFING
            fetched = tree.media_items()
            diff = diff_content(self._stored_activity(screen.id), fetched)
            classifications: dict[str, Classification] = {}
            for item in diff.to_create:
                classifications[item.id] = await self._classify_new(item)

            outcome.state = PERSISTING
            self._persist(screen.id, fetched, classifications, outcome)

            outcome.state = DONE
            outcome.has_content = bool(tree.media_ids) or tree.widget_count > 0
            self._observations[screen.id] = ScreenObservation(
                screen_id=screen.id,
                screen_name=screen.name,
                player_id=screen.external_player_id,
                status=status.status,
                last_checked_in=status.last_checked_in,
                tree=tree,
                observed_at=self._clock(),
            )
        except Exception as exc:
            failed_in = outcome.state
            outcome.state = ERRORED
            outcome.reason = f"{failed_in}: {type(exc).__name__}: {exc}"
            if isinstance(exc, ContentSyncError):
                logger.warning("Screen %s (%s) failed while %s: %s", screen.id, screen.name, failed_in, exc)
            else:
                logger.exception("Screen %s (%s) failed unexpectedly while %s", screen.id, screen.name, failed_in)
        return outcome

    def _stored_activity(self, screen_id: str) -> dict[str, bool]:
        db = self._session_factory()
        try:
            rows = (
                db.query(ContentItem.external_media_id, ContentItem.is_active)
                .filter(ContentItem.screen_id == screen_id)
                .all()
            )
            return {media_id: bool(is_active) for media_id, is_active in rows}
        finally:
            db.close()

    async def _classify_new(self, item: MediaDetail) -> Classification:
        if self._classifier.matches_taxonomy(item):
            return self._classifier.classify(item)
        fingerprint = await self._fingerprint(item)
        return self._classifier.classify(item, fingerprint)

    async def _fingerprint(self, item: MediaDetail) -> Fingerprint | None:
        if not item.thumbnail_url:
            return None
        try:
            image = await self._client.fetch_image(item.thumbnail_url)
            return await asyncio.to_thread(compute_fingerprint, image)
        except (DeviceApiError, HashComputeError) as exc:
            logger.info("No fingerprint for media %s (%s): %s", item.id, item.name, exc)
            return None

    def _persist(
        self,
        screen_id: str,
        fetched: list[MediaDetail],
        classifications: dict[str, Classification],
        outcome: ScreenOutcome,
    ) -> None:
        now = self._clock()
        db = self._session_factory()
        try:
            rows = {row.external_media_id: row for row in db.query(ContentItem).filter(ContentItem.screen_id == screen_id).all()}
            diff = diff_content({media_id: bool(row.is_active) for media_id, row in rows.items()}, fetched)
            by_id = {item.id: item for item in fetched}

            for item in diff.to_create:
                result = classifications.get(item.id) or Classification(category=CATEGORY_UNCLASSIFIED, reason="not_classified")
                db.add(
                    ContentItem(
                        screen_id=screen_id,
                        external_media_id=item.id,
                        name=item.name,
                        media_type=item.type,
                        category=result.category,
                        category_source="auto",
                        is_active=True,
                        linked_advertiser_id=result.advertiser_id,
                        linked_placement_id=result.placement_id,
                        matched_creative_id=result.creative_id,
                        match_similarity=result.similarity,
                        first_seen_at=now,
                        last_seen_at=now,
                    )
                )
            for media_id in diff.to_touch + diff.to_reactivate:
                row = rows[media_id]
                row.is_active = True
                row.last_seen_at = now
                row.name = by_id[media_id].name
                row.media_type = by_id[media_id].type
            for media_id in diff.to_deactivate:
                rows[media_id].is_active = False
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        outcome.created = len(diff.to_create)
        outcome.touched = len(diff.to_touch)
        outcome.reactivated = len(diff.to_reactivate)
        outcome.deactivated = len(diff.to_deactivate)
        logger.debug(
            "Screen %s: %d new, %d seen, %d reactivated, %d deactivated",
            screen_id,
            outcome.created,
            outcome.touched,
            outcome.reactivated,
            outcome.deactivated,
        )
