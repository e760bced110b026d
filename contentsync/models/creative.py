from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String

from contentsync.db import Base


class CreativeFingerprint(Base):
    """Reference creative with its fingerprint; reconciliation only reads these rows."""

    __tablename__ = "creative_fingerprint"

    creative_id = Column(String(64), primary_key=True)
    advertiser_id = Column(String(64), nullable=False)
    placement_id = Column(String(64), nullable=True)
    phash = Column(String(128), nullable=True)
    phash_updated_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
