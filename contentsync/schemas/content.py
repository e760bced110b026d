from pydantic import BaseModel, Field
from datetime import datetime
from typing import Literal

class ContentItemOut(BaseModel):
    id: str
    screen_id: str
    external_media_id: str
    name: str
    media_type: str
    category: str
    category_source: str
    is_active: bool
    linked_advertiser_id: str | None = None
    linked_placement_id: str | None = None
    matched_creative_id: str | None = None
    match_similarity: float | None = None
    first_seen_at: datetime
    last_seen_at: datetime

    class Config:
        from_attributes = True

class ContentItemUpdateIn(BaseModel):
    category: Literal["ad", "non_ad", "unclassified"] | None = None
    linked_advertiser_id: str | None = None
    linked_placement_id: str | None = None

class SyncTriggerOut(BaseModel):
    status: Literal["accepted", "already_running", "rejected"]

class ScreenErrorOut(BaseModel):
    screen_id: str
    reason: str

class RunSummaryOut(BaseModel):
    screens_total: int
    with_content: int
    empty: int
    errored: int
    skipped: int = 0
    ran_at: datetime | None = None
    duration_ms: int = 0
    errors: list[ScreenErrorOut] = Field(default_factory=list)

    class Config:
        from_attributes = True

class LastRunOut(BaseModel):
    summary: RunSummaryOut | None = None
    running: bool
    last_error: str | None = None
    last_error_at: datetime | None = None
