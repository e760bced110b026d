import logging
import os
import re
from dataclasses import dataclass
from typing import Callable, Iterable

from contentsync.services.phash import DEFAULT_MATCH_THRESHOLD, Fingerprint

logger = logging.getLogger(__name__)

CATEGORY_AD = "ad"
CATEGORY_NON_AD = "non_ad"
CATEGORY_UNCLASSIFIED = "unclassified"

AD_MATCH_THRESHOLD = float(os.getenv("SIGNAGE_AD_MATCH_THRESHOLD", str(DEFAULT_MATCH_THRESHOLD)))


def _csv_env(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default) or ""
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


NON_AD_FOLDERS = _csv_env("SIGNAGE_NON_AD_FOLDERS", "house-content")
NON_AD_TAGS = _csv_env("SIGNAGE_NON_AD_TAGS", "non-ad,house,info")

# Informational filler vocabulary (Dutch and English), matched per word.
NON_AD_NAME_TOKENS = (
    "nos", "nieuws", "news", "weer", "weather", "buienradar", "radar", "forecast",
    "clock", "klok", "tijd", "rss", "feed", "sport", "widget", "temperature",
    "date", "time", "countdown", "kalender", "calendar", "agenda", "menu",
    "openingstijden", "logo", "branding",
)
NON_AD_NAME_PHRASES = ("tv guide", "opening hours")
NON_AD_MEDIA_TYPES = ("clock", "rss", "weather", "text", "ticker")

TaxonomyPredicate = Callable[[object], bool]


@dataclass(frozen=True)
class Classification:
    category: str
    reason: str
    advertiser_id: str | None = None
    placement_id: str | None = None
    creative_id: str | None = None
    similarity: float | None = None


def _name_tokens(name: str) -> list[str]:
    return [token for token in re.split(r"[^0-9a-z]+", (name or "").lower()) if token]


def folder_in(folders: Iterable[str]) -> TaxonomyPredicate:
    wanted = {folder.strip().lower() for folder in folders if folder.strip()}

    def predicate(item) -> bool:
        folder = (getattr(item, "folder", None) or "").strip().lower()
        return bool(folder) and folder in wanted

    return predicate


def tag_in(tags: Iterable[str]) -> TaxonomyPredicate:
    wanted = {tag.strip().lower() for tag in tags if tag.strip()}

    def predicate(item) -> bool:
        return any(str(tag).strip().lower() in wanted for tag in getattr(item, "tags", None) or ())

    return predicate


def name_has_token(tokens: Iterable[str], phrases: Iterable[str] = ()) -> TaxonomyPredicate:
    wanted = {token.lower() for token in tokens}
    wanted_phrases = tuple(f" {phrase.lower()} " for phrase in phrases)

    def predicate(item) -> bool:
        words = _name_tokens(getattr(item, "name", "") or "")
        if any(word in wanted for word in words):
            return True
        joined = f" {' '.join(words)} "
        return any(phrase in joined for phrase in wanted_phrases)

    return predicate


def media_type_in(media_types: Iterable[str]) -> TaxonomyPredicate:
    wanted = {media_type.lower() for media_type in media_types}

    def predicate(item) -> bool:
        return (getattr(item, "type", None) or "").strip().lower() in wanted

    return predicate


def any_of(*predicates: TaxonomyPredicate) -> TaxonomyPredicate:
    def predicate(item) -> bool:
        return any(check(item) for check in predicates)

    return predicate


def default_non_ad_taxonomy() -> TaxonomyPredicate:
    return any_of(
        folder_in(NON_AD_FOLDERS),
        tag_in(NON_AD_TAGS),
        name_has_token(NON_AD_NAME_TOKENS, NON_AD_NAME_PHRASES),
        media_type_in(NON_AD_MEDIA_TYPES),
    )


class ContentClassifier:
    """
    Labels observed media as ad, non_ad or unclassified.

    Priority: the non-ad taxonomy wins outright, then a fingerprint match
    against the creative catalog makes the item an ad linked to that
    creative's advertiser and placement, otherwise the item is left for
    manual review.
    """

    def __init__(
        self,
        matcher,
        taxonomy: TaxonomyPredicate | None = None,
        ad_match_threshold: float = AD_MATCH_THRESHOLD,
    ) -> None:
        self._matcher = matcher
        self._taxonomy = taxonomy or default_non_ad_taxonomy()
        self._threshold = ad_match_threshold

    @property
    def matcher(self):
        return self._matcher

    def matches_taxonomy(self, item) -> bool:
        return self._taxonomy(item)

    def classify(self, item, fingerprint: Fingerprint | None = None) -> Classification:
        if self.matches_taxonomy(item):
            return Classification(category=CATEGORY_NON_AD, reason="taxonomy")
        if fingerprint is None:
            return Classification(category=CATEGORY_UNCLASSIFIED, reason="no_fingerprint")
        if fingerprint.is_likely_blank:
            return Classification(category=CATEGORY_UNCLASSIFIED, reason="blank_image")

        match = self._matcher.find(fingerprint.hash, threshold=self._threshold)
        if match is None:
            return Classification(category=CATEGORY_UNCLASSIFIED, reason="no_match")
        logger.debug(
            "Item %r matched creative %s (similarity %.3f)",
            getattr(item, "name", None),
            match.creative.creative_id,
            match.similarity,
        )
        return Classification(
            category=CATEGORY_AD,
            reason="fingerprint",
            advertiser_id=match.creative.advertiser_id,
            placement_id=match.creative.placement_id,
            creative_id=match.creative.creative_id,
            similarity=match.similarity,
        )
