from pydantic import BaseModel
from datetime import datetime

class CreativeFingerprintOut(BaseModel):
    creative_id: str
    advertiser_id: str
    placement_id: str | None = None
    phash: str | None = None
    phash_updated_at: datetime | None = None
    is_active: bool

    class Config:
        from_attributes = True

class FingerprintOut(BaseModel):
    hash: str
    is_likely_blank: bool
    width: int
    height: int

    class Config:
        from_attributes = True

class FingerprintMatchOut(BaseModel):
    hash: str
    is_likely_blank: bool
    threshold: float
    matched: bool
    creative_id: str | None = None
    advertiser_id: str | None = None
    placement_id: str | None = None
    similarity: float | None = None
    distance: int | None = None
