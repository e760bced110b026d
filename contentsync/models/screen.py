import uuid
from sqlalchemy import Column, DateTime, String
from contentsync.db import Base


class Screen(Base):
    __tablename__ = "screen"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    external_player_id = Column(String(64), nullable=True)  # weak ref into the device platform
    display_status = Column(String(16), default="unknown")  # online / offline / unknown
    last_seen_at = Column(DateTime, nullable=True)
