from datetime import datetime

from contentsync.services.device_api import ContentTree, MediaDetail
from contentsync.services.inventory import InventoryAggregator, media_id_sort_key
from contentsync.services.reconciler import ScreenObservation


class FakeSource:
    def __init__(self, observations):
        self._observations = observations

    def observations(self):
        return list(self._observations)


def observation(screen_id, name, media, widgets=0, total=None):
    details = {item.id: item for item in media}
    tree = ContentTree(
        player_id=f"p-{screen_id}",
        source_type="playlist",
        source_id="10",
        source_name="Main loop",
        total_playlist_items=total if total is not None else len(media) + widgets,
        widget_count=widgets,
        media_ids=[item.id for item in media],
        media=details,
    )
    return ScreenObservation(
        screen_id=screen_id,
        screen_name=name,
        player_id=f"p-{screen_id}",
        status="online",
        last_checked_in=None,
        tree=tree,
        observed_at=datetime(2026, 10, 1, 9, 0),
    )


PROMO = MediaDetail(id="10", name="Spring Promo", type="image", file_extension="png", folder="Ads", tags=("spring",))
CLIP = MediaDetail(id="9", name="Store Tour", type="video")
JINGLE = MediaDetail(id="200", name="Jingle", type="audio")
PAGE = MediaDetail(id="abc", name="Web Page", type="other")


def test_empty_fleet():
    inventory = InventoryAggregator(FakeSource([])).get_inventory()

    assert inventory["screens"] == []
    assert inventory["totals"] == {
        "screens": 0,
        "total_items_all_screens": 0,
        "total_media_all_screens": 0,
        "unique_media_across_all_screens": 0,
        "top_media_by_screens": [],
    }


def test_per_screen_counts_and_breakdown():
    source = FakeSource([observation("s1", "Entrance", [PROMO, CLIP, PROMO, JINGLE, PAGE], widgets=2)])

    screen = InventoryAggregator(source).get_inventory()["screens"][0]

    assert screen["counts"] == {
        "total_playlist_items": 7,
        "media_items_total": 5,
        "unique_media_ids": 4,
        "widget_items_total": 2,
    }
    assert screen["media_breakdown"] == {"video": 1, "image": 1, "audio": 1, "other": 1}
    assert screen["source"] == {"source_type": "playlist", "source_id": "10", "source_name": "Main loop"}
    assert screen["media"][0] == {
        "id": "10",
        "name": "Spring Promo",
        "type": "image",
        "file_extension": "png",
        "folder": "Ads",
        "tags": ["spring"],
    }


def test_fleet_totals_and_top_media_ordering():
    source = FakeSource(
        [
            observation("s1", "Entrance", [PROMO, CLIP, JINGLE]),
            observation("s2", "Checkout", [CLIP, PROMO]),
            observation("s3", "Lobby", [PAGE, PROMO]),
        ]
    )

    totals = InventoryAggregator(source, top_limit=3).get_inventory()["totals"]

    assert totals["screens"] == 3
    assert totals["total_items_all_screens"] == 7
    assert totals["total_media_all_screens"] == 7
    assert totals["unique_media_across_all_screens"] == 4
    assert totals["top_media_by_screens"] == [
        {"media_id": "10", "name": "Spring Promo", "screen_count": 3},
        {"media_id": "9", "name": "Store Tour", "screen_count": 2},
        {"media_id": "200", "name": "Jingle", "screen_count": 1},
    ]


def test_media_id_sort_key_orders_numbers_numerically():
    assert sorted(["10", "abc", "9", "100"], key=media_id_sort_key) == ["9", "10", "100", "abc"]
