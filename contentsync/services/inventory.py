from datetime import datetime, timezone
from typing import Any

TOP_MEDIA_LIMIT = 10
MEDIA_TYPES = ("video", "image", "audio", "other")


def media_id_sort_key(media_id: str) -> tuple[int, int, str]:
    # Numeric ids compare numerically so "9" sorts before "10".
    if media_id.isdigit():
        return (0, int(media_id), "")
    return (1, 0, media_id)


class InventoryAggregator:
    """Read-only rollup of the reconciliation job's last observed content."""

    def __init__(self, source, top_limit: int = TOP_MEDIA_LIMIT) -> None:
        self._source = source
        self._top_limit = top_limit

    def get_inventory(self) -> dict[str, Any]:
        screens: list[dict[str, Any]] = []
        fleet_media: set[str] = set()
        screen_counts: dict[str, int] = {}
        media_names: dict[str, str] = {}

        for observation in self._source.observations():
            tree = observation.tree
            unique_ids = tree.unique_media_ids
            breakdown = {media_type: 0 for media_type in MEDIA_TYPES}
            media: list[dict[str, Any]] = []
            for detail in tree.media_items():
                media_type = detail.type if detail.type in breakdown else "other"
                breakdown[media_type] += 1
                media_names[detail.id] = detail.name
                media.append(
                    {
                        "id": detail.id,
                        "name": detail.name,
                        "type": media_type,
                        "file_extension": detail.file_extension,
                        "folder": detail.folder,
                        "tags": list(detail.tags),
                    }
                )
            for media_id in unique_ids:
                fleet_media.add(media_id)
                screen_counts[media_id] = screen_counts.get(media_id, 0) + 1

            screens.append(
                {
                    "screen_id": observation.screen_id,
                    "name": observation.screen_name,
                    "player_id": observation.player_id,
                    "status": observation.status,
                    "observed_at": observation.observed_at,
                    "source": {
                        "source_type": tree.source_type,
                        "source_id": tree.source_id,
                        "source_name": tree.source_name,
                    },
                    "counts": {
                        "total_playlist_items": tree.total_playlist_items,
                        "media_items_total": len(tree.media_ids),
                        "unique_media_ids": len(unique_ids),
                        "widget_items_total": tree.widget_count,
                    },
                    "media_breakdown": breakdown,
                    "media": media,
                }
            )

        ranked = sorted(screen_counts.items(), key=lambda pair: (-pair[1], media_id_sort_key(pair[0])))
        top_media = [
            {"media_id": media_id, "name": media_names.get(media_id, f"Media {media_id}"), "screen_count": count}
            for media_id, count in ranked[: self._top_limit]
        ]
        return {
            "generated_at": datetime.now(timezone.utc),
            "screens": screens,
            "totals": {
                "screens": len(screens),
                "total_items_all_screens": sum(item["counts"]["total_playlist_items"] for item in screens),
                "total_media_all_screens": sum(item["counts"]["media_items_total"] for item in screens),
                "unique_media_across_all_screens": len(fleet_media),
                "top_media_by_screens": top_media,
            },
        }
