import asyncio
from typing import Any

from contentsync.db import SessionLocal
from contentsync.models.content_item import ContentItem
from contentsync.models.screen import Screen
from contentsync.services.cache import ResponseCache
from contentsync.services.classifier import AD_MATCH_THRESHOLD, ContentClassifier
from contentsync.services.credentials import EnvCredentialProvider
from contentsync.services.device_api import DeviceApiClient
from contentsync.services.inventory import InventoryAggregator
from contentsync.services.matcher import CreativeMatch, CreativeMatcher, SqlCreativeCatalog
from contentsync.services.phash import Fingerprint, compute_fingerprint
from contentsync.services.reconciler import ReconciliationJob, RunSummary
from contentsync.services.scheduler import SyncScheduler


class ContentService:
    """Entry point used by the HTTP layer: content reads, inventory, sync control."""

    def __init__(
        self,
        client: DeviceApiClient,
        catalog,
        job: ReconciliationJob,
        scheduler: SyncScheduler,
        inventory: InventoryAggregator,
        session_factory=SessionLocal,
    ) -> None:
        self.client = client
        self.catalog = catalog
        self.job = job
        self.scheduler = scheduler
        self.inventory = inventory
        self._session_factory = session_factory

    def get_screen_content(self, screen_id: str, include_inactive: bool = True) -> list[ContentItem] | None:
        db = self._session_factory()
        try:
            if db.get(Screen, screen_id) is None:
                return None
            query = db.query(ContentItem).filter(ContentItem.screen_id == screen_id)
            if not include_inactive:
                query = query.filter(ContentItem.is_active.is_(True))
            return query.order_by(
                ContentItem.is_active.desc(),
                ContentItem.first_seen_at.asc(),
                ContentItem.external_media_id.asc(),
            ).all()
        finally:
            db.close()

    def get_fleet_inventory(self) -> dict[str, Any]:
        return self.inventory.get_inventory()

    def trigger_sync(self, force: bool = False) -> str:
        return self.scheduler.trigger(force=force)

    def get_last_run_summary(self) -> RunSummary | None:
        return self.job.last_summary

    async def list_external_screens(self, force: bool = False) -> list[dict]:
        return await self.client.get_screens(force=force)

    async def fingerprint_image(self, image_bytes: bytes) -> Fingerprint:
        return await asyncio.to_thread(compute_fingerprint, image_bytes)

    def match_fingerprint(self, fingerprint: Fingerprint, threshold: float = AD_MATCH_THRESHOLD) -> CreativeMatch | None:
        # Fresh matcher so diagnostics never swap the snapshot a running tick uses.
        matcher = CreativeMatcher(self.catalog)
        return matcher.find(fingerprint.hash, threshold=threshold)

    def health(self) -> dict[str, Any]:
        summary = self.job.last_summary
        return {
            "device_api_configured": self.client.is_configured(),
            "scheduler_started": self.scheduler.is_started,
            "sync_running": self.scheduler.is_running,
            "last_run_at": summary.ran_at.isoformat() if summary and summary.ran_at else None,
            "last_error": self.scheduler.last_error,
            "cache": self.client.cache.stats(),
        }

    async def start(self) -> None:
        await self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.client.aclose()


def build_content_service(session_factory=SessionLocal, credentials=None, transport=None, **scheduler_options) -> ContentService:
    cache = ResponseCache()
    client = DeviceApiClient(credentials or EnvCredentialProvider(), cache, transport=transport)
    catalog = SqlCreativeCatalog(session_factory)
    classifier = ContentClassifier(CreativeMatcher(catalog))
    job = ReconciliationJob(client, classifier, session_factory=session_factory)
    scheduler = SyncScheduler(job, cache=cache, **scheduler_options)
    return ContentService(
        client=client,
        catalog=catalog,
        job=job,
        scheduler=scheduler,
        inventory=InventoryAggregator(job),
        session_factory=session_factory,
    )


_content_service: ContentService | None = None


def get_content_service() -> ContentService:
    global _content_service
    if _content_service is None:
        _content_service = build_content_service()
    return _content_service
