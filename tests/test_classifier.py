from datetime import datetime
from types import SimpleNamespace

import pytest

from contentsync.models.creative import CreativeFingerprint
from contentsync.services.classifier import (
    CATEGORY_AD,
    CATEGORY_NON_AD,
    CATEGORY_UNCLASSIFIED,
    ContentClassifier,
    any_of,
    default_non_ad_taxonomy,
    folder_in,
    name_has_token,
)
from contentsync.services.device_api import MediaDetail
from contentsync.services.matcher import CatalogCreative, CreativeMatcher, SqlCreativeCatalog
from contentsync.services.phash import Fingerprint

AD_HASH = "0" * 64
NEAR_AD_HASH = "f" + "0" * 63
OTHER_HASH = "f" * 40 + "0" * 24


class FakeCatalog:
    def __init__(self, creatives):
        self.creatives = list(creatives)
        self.loads = 0

    def list_active_creative_fingerprints(self):
        self.loads += 1
        return list(self.creatives)


def creative(creative_id="cr-1", hash_value=AD_HASH, advertiser_id="adv-1", placement_id="pl-1"):
    return CatalogCreative(creative_id=creative_id, advertiser_id=advertiser_id, placement_id=placement_id, hash=hash_value)


def item(name="Summer Sale", folder=None, tags=(), media_type="image"):
    return MediaDetail(id="1", name=name, type=media_type, folder=folder, tags=tuple(tags))


def fingerprint(hash_value, blank=False):
    return Fingerprint(hash=hash_value, is_likely_blank=blank, width=1920, height=1080)


@pytest.fixture
def classifier():
    return ContentClassifier(CreativeMatcher(FakeCatalog([creative()])))


@pytest.mark.parametrize(
    "media",
    [
        item(name="NOS Nieuws"),
        item(name="weather_forecast_v2"),
        item(name="Opening Hours Winter"),
        item(name="TV-Guide tonight"),
        item(name="Store Logo"),
        item(name="Promo", folder="House-Content"),
        item(name="Promo", tags=["seasonal", "INFO"]),
        item(name="Promo", media_type="clock"),
    ],
)
def test_taxonomy_marks_informational_content(classifier, media):
    result = classifier.classify(media, fingerprint(AD_HASH))
    assert result.category == CATEGORY_NON_AD
    assert result.reason == "taxonomy"
    assert result.advertiser_id is None


@pytest.mark.parametrize("name", ["Timeless Jewelry", "Snoscar Promo", "Newsweek Subscription"])
def test_taxonomy_matches_whole_words_only(classifier, name):
    assert classifier.matches_taxonomy(item(name=name)) is False


def test_fingerprint_match_links_advertiser(classifier):
    result = classifier.classify(item(), fingerprint(NEAR_AD_HASH))

    assert result.category == CATEGORY_AD
    assert result.reason == "fingerprint"
    assert result.creative_id == "cr-1"
    assert result.advertiser_id == "adv-1"
    assert result.placement_id == "pl-1"
    assert result.similarity == pytest.approx(1 - 4 / 256)


def test_taxonomy_wins_over_fingerprint(classifier):
    result = classifier.classify(item(name="Clock Widget"), fingerprint(AD_HASH))
    assert result.category == CATEGORY_NON_AD


def test_no_match_stays_unclassified(classifier):
    result = classifier.classify(item(), fingerprint(OTHER_HASH))
    assert result.category == CATEGORY_UNCLASSIFIED
    assert result.reason == "no_match"


def test_missing_fingerprint_stays_unclassified(classifier):
    result = classifier.classify(item())
    assert result.category == CATEGORY_UNCLASSIFIED
    assert result.reason == "no_fingerprint"


def test_blank_fingerprint_is_never_an_ad(classifier):
    result = classifier.classify(item(), fingerprint(AD_HASH, blank=True))
    assert result.category == CATEGORY_UNCLASSIFIED
    assert result.reason == "blank_image"


def test_ad_threshold_is_applied():
    # 40 differing bits -> 0.84375, below the default ad threshold but above 0.8
    hash_value = "f" * 10 + "0" * 54
    strict = ContentClassifier(CreativeMatcher(FakeCatalog([creative()])))
    lenient = ContentClassifier(CreativeMatcher(FakeCatalog([creative()])), ad_match_threshold=0.8)

    assert strict.classify(item(), fingerprint(hash_value)).category == CATEGORY_UNCLASSIFIED
    assert lenient.classify(item(), fingerprint(hash_value)).category == CATEGORY_AD


def test_custom_taxonomy_replaces_default():
    taxonomy = any_of(folder_in(["Lobby"]), name_has_token(["menu"]))
    classifier = ContentClassifier(CreativeMatcher(FakeCatalog([])), taxonomy=taxonomy)

    assert classifier.matches_taxonomy(item(name="x", folder="lobby"))
    assert classifier.matches_taxonomy(item(name="Lunch Menu"))
    assert not classifier.matches_taxonomy(item(name="NOS Nieuws"))


def test_default_taxonomy_accepts_duck_typed_items():
    taxonomy = default_non_ad_taxonomy()
    assert taxonomy(SimpleNamespace(name="Buienradar", folder=None, tags=None, type=None))
    assert not taxonomy(SimpleNamespace(name="Sneaker Drop"))


def test_matcher_keeps_snapshot_until_refresh():
    catalog = FakeCatalog([creative()])
    matcher = CreativeMatcher(catalog)

    assert matcher.find(AD_HASH).creative.creative_id == "cr-1"
    catalog.creatives = [creative("cr-2")]
    assert matcher.find(AD_HASH).creative.creative_id == "cr-1"
    matcher.refresh()
    assert matcher.find(AD_HASH).creative.creative_id == "cr-2"
    assert catalog.loads == 2


def test_matcher_prefers_closest_creative():
    matcher = CreativeMatcher(FakeCatalog([creative("far", "f" * 8 + "0" * 56), creative("near", NEAR_AD_HASH)]))
    match = matcher.find(AD_HASH)
    assert match.creative.creative_id == "near"
    assert match.distance == 4


def test_sql_catalog_lists_active_hashed_creatives(session_factory):
    db = session_factory()
    db.add_all(
        [
            CreativeFingerprint(creative_id="b", advertiser_id="adv-b", phash=AD_HASH, phash_updated_at=datetime.utcnow()),
            CreativeFingerprint(creative_id="a", advertiser_id="adv-a", placement_id="pl-a", phash=OTHER_HASH),
            CreativeFingerprint(creative_id="c", advertiser_id="adv-c", phash=None),
            CreativeFingerprint(creative_id="d", advertiser_id="adv-d", phash=AD_HASH, is_active=False),
        ]
    )
    db.commit()
    db.close()

    creatives = SqlCreativeCatalog(session_factory).list_active_creative_fingerprints()

    assert [row.creative_id for row in creatives] == ["a", "b"]
    assert creatives[0].placement_id == "pl-a"
    assert creatives[1].hash == AD_HASH


def test_distance_twelve_scenario_links_advertiser(classifier):
    result = classifier.classify(item(name="Autumn Campaign"), fingerprint("fff" + "0" * 61))

    assert result.category == CATEGORY_AD
    assert (result.advertiser_id, result.placement_id) == ("adv-1", "pl-1")
    assert result.similarity == pytest.approx(0.953, abs=0.001)


def test_house_content_widget_is_non_ad_regardless_of_fingerprint(classifier):
    media = item(name="Weather_Widget.mp4", folder="house-content", media_type="video")
    assert classifier.classify(media, fingerprint(AD_HASH)).category == CATEGORY_NON_AD
