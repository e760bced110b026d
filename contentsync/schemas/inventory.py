from pydantic import BaseModel
from datetime import datetime

class InventorySourceOut(BaseModel):
    source_type: str | None = None
    source_id: str | None = None
    source_name: str | None = None

class InventoryCountsOut(BaseModel):
    total_playlist_items: int
    media_items_total: int
    unique_media_ids: int
    widget_items_total: int

class InventoryMediaOut(BaseModel):
    id: str
    name: str
    type: str
    file_extension: str | None = None
    folder: str | None = None
    tags: list[str] = []

class ScreenInventoryOut(BaseModel):
    screen_id: str
    name: str
    player_id: str
    status: str
    observed_at: datetime
    source: InventorySourceOut
    counts: InventoryCountsOut
    media_breakdown: dict[str, int]
    media: list[InventoryMediaOut]

class TopMediaOut(BaseModel):
    media_id: str
    name: str
    screen_count: int

class InventoryTotalsOut(BaseModel):
    screens: int
    total_items_all_screens: int
    total_media_all_screens: int
    unique_media_across_all_screens: int
    top_media_by_screens: list[TopMediaOut]

class InventoryOut(BaseModel):
    generated_at: datetime
    screens: list[ScreenInventoryOut]
    totals: InventoryTotalsOut
