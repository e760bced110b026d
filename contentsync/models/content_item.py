import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, String, UniqueConstraint

from contentsync.db import Base


class ContentItem(Base):
    __tablename__ = "content_item"
    __table_args__ = (
        UniqueConstraint("screen_id", "external_media_id", name="ux_content_item_screen_media"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    screen_id = Column(String(36), ForeignKey("screen.id"), nullable=False, index=True)
    external_media_id = Column(String(64), nullable=False)
    name = Column(String, nullable=False)
    media_type = Column(String(16), nullable=False, default="other")  # video / image / audio / other
    category = Column(String(16), nullable=False, default="unclassified")  # ad / non_ad / unclassified
    category_source = Column(String(16), nullable=False, default="auto")  # auto / manual
    is_active = Column(Boolean, nullable=False, default=True)
    # Weak references: identifiers only, never cascaded.
    linked_advertiser_id = Column(String(64), nullable=True)
    linked_placement_id = Column(String(64), nullable=True)
    matched_creative_id = Column(String(64), nullable=True)
    match_similarity = Column(Float, nullable=True)
    first_seen_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_seen_at = Column(DateTime, nullable=False, default=datetime.utcnow)
