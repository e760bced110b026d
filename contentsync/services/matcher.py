import logging
from dataclasses import dataclass

from contentsync.db import SessionLocal
from contentsync.models.creative import CreativeFingerprint
from contentsync.services.phash import DEFAULT_BEST_MATCH_THRESHOLD, find_best_match

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogCreative:
    creative_id: str
    advertiser_id: str
    placement_id: str | None
    hash: str


@dataclass(frozen=True)
class CreativeMatch:
    creative: CatalogCreative
    similarity: float
    distance: int


class SqlCreativeCatalog:
    """Active creative fingerprints from the `creative_fingerprint` table, ordered by creative id."""

    def __init__(self, session_factory=SessionLocal) -> None:
        self._session_factory = session_factory

    def list_active_creative_fingerprints(self) -> list[CatalogCreative]:
        db = self._session_factory()
        try:
            rows = (
                db.query(CreativeFingerprint)
                .filter(CreativeFingerprint.is_active.is_(True), CreativeFingerprint.phash.isnot(None))
                .order_by(CreativeFingerprint.creative_id.asc())
                .all()
            )
            return [
                CatalogCreative(
                    creative_id=row.creative_id,
                    advertiser_id=row.advertiser_id,
                    placement_id=row.placement_id,
                    hash=row.phash,
                )
                for row in rows
            ]
        finally:
            db.close()


class CreativeMatcher:
    """
    Finds the known creative closest to an unidentified fingerprint.

    The catalog is loaded once and reused until refresh() is called, so a
    whole reconciliation tick matches against one consistent snapshot.
    """

    def __init__(self, catalog, threshold: float = DEFAULT_BEST_MATCH_THRESHOLD) -> None:
        self._catalog = catalog
        self._threshold = threshold
        self._candidates: list[CatalogCreative] | None = None

    @property
    def threshold(self) -> float:
        return self._threshold

    def refresh(self) -> int:
        self._candidates = list(self._catalog.list_active_creative_fingerprints())
        logger.debug("Creative matcher loaded %d fingerprints", len(self._candidates))
        return len(self._candidates)

    def candidates(self) -> list[CatalogCreative]:
        if self._candidates is None:
            self.refresh()
        return self._candidates or []

    def find(self, query_hash: str, threshold: float | None = None) -> CreativeMatch | None:
        effective = self._threshold if threshold is None else threshold
        best = find_best_match(query_hash, self.candidates(), effective)
        if best is None:
            return None
        return CreativeMatch(creative=best.candidate, similarity=best.similarity, distance=best.distance)
