import io
import os
from datetime import datetime
from PIL import Image, ImageDraw
from sqlalchemy.orm import Session
from contentsync.db import SessionLocal, Base, engine, ensure_sqlite_schema
from contentsync.models.content_item import ContentItem  # noqa: F401
from contentsync.models.creative import CreativeFingerprint
from contentsync.models.screen import Screen
from contentsync.services.phash import compute_fingerprint


def _placeholder_creative(color: tuple[int, int, int], label: str) -> bytes:
    image = Image.new("RGB", (320, 180), (250, 250, 250))
    draw = ImageDraw.Draw(image)
    draw.rectangle((20, 20, 300, 160), fill=color)
    draw.text((40, 80), label, fill=(255, 255, 255))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def seed() -> None:
    Base.metadata.create_all(bind=engine)
    ensure_sqlite_schema()
    db: Session = SessionLocal()
    try:
        player_ids = [part.strip() for part in os.getenv("SIGNAGE_SEED_PLAYER_IDS", "").split(",") if part.strip()]
        screens = [
            Screen(name="Entrance", external_player_id=player_ids[0] if len(player_ids) > 0 else None),
            Screen(name="Checkout", external_player_id=player_ids[1] if len(player_ids) > 1 else None),
        ]
        for item in screens:
            db.add(item)
        db.commit()

        now = datetime.utcnow()
        for creative_id, advertiser_id, placement_id, color in [
            ("creative-demo-1", "advertiser-demo-1", "placement-demo-1", (200, 30, 30)),
            ("creative-demo-2", "advertiser-demo-2", None, (30, 60, 200)),
        ]:
            fingerprint = compute_fingerprint(_placeholder_creative(color, creative_id))
            db.add(
                CreativeFingerprint(
                    creative_id=creative_id,
                    advertiser_id=advertiser_id,
                    placement_id=placement_id,
                    phash=fingerprint.hash,
                    phash_updated_at=now,
                    is_active=True,
                )
            )
        db.commit()
    finally:
        db.close()


if __name__ == "__main__":
    seed()
