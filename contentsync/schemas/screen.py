from pydantic import BaseModel
from datetime import datetime

class ScreenOut(BaseModel):
    id: str
    name: str
    external_player_id: str | None = None
    display_status: str | None = None
    last_seen_at: datetime | None = None

    class Config:
        from_attributes = True

class ExternalScreenOut(BaseModel):
    id: str
    name: str
    online: bool | None = None
    last_seen: str | None = None
