from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy import text
import os

DATABASE_URL = os.getenv("SIGNAGE_DATABASE_URL", "sqlite:///./signage.db")

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


def _column_names(conn, table: str) -> set[str]:
    cols = conn.execute(text(f"PRAGMA table_info({table})")).fetchall()
    return {row[1] for row in cols}  # (cid, name, type, notnull, dflt_value, pk)


def ensure_sqlite_schema(bind=None):
    """
    Lightweight runtime schema patching for SQLite.

    `Base.metadata.create_all()` won't add new columns to existing tables.
    This keeps local/dev installs working without requiring Alembic.
    """
    target = bind or engine
    if not str(target.url).startswith("sqlite"):
        return

    with target.begin() as conn:
        screen_col_names = _column_names(conn, "screen")
        if screen_col_names:
            if "external_player_id" not in screen_col_names:
                conn.execute(text("ALTER TABLE screen ADD COLUMN external_player_id VARCHAR(64)"))
            if "display_status" not in screen_col_names:
                conn.execute(text("ALTER TABLE screen ADD COLUMN display_status VARCHAR(16) DEFAULT 'unknown'"))
            if "last_seen_at" not in screen_col_names:
                conn.execute(text("ALTER TABLE screen ADD COLUMN last_seen_at DATETIME"))
            conn.execute(
                text(
                    "UPDATE screen SET display_status='unknown' "
                    "WHERE display_status IS NULL OR trim(display_status)=''"
                )
            )

        item_col_names = _column_names(conn, "content_item")
        if item_col_names:
            if "category_source" not in item_col_names:
                conn.execute(text("ALTER TABLE content_item ADD COLUMN category_source VARCHAR(16) DEFAULT 'auto'"))
            if "matched_creative_id" not in item_col_names:
                conn.execute(text("ALTER TABLE content_item ADD COLUMN matched_creative_id VARCHAR(64)"))
            if "match_similarity" not in item_col_names:
                conn.execute(text("ALTER TABLE content_item ADD COLUMN match_similarity FLOAT"))
            conn.execute(
                text(
                    "UPDATE content_item SET category='unclassified' "
                    "WHERE category IS NULL OR category NOT IN ('ad', 'non_ad', 'unclassified')"
                )
            )
            conn.execute(
                text(
                    "UPDATE content_item SET category_source='auto' "
                    "WHERE category_source IS NULL OR trim(category_source)=''"
                )
            )

        creative_col_names = _column_names(conn, "creative_fingerprint")
        if creative_col_names:
            if "phash_updated_at" not in creative_col_names:
                conn.execute(text("ALTER TABLE creative_fingerprint ADD COLUMN phash_updated_at DATETIME"))
            if "is_active" not in creative_col_names:
                conn.execute(text("ALTER TABLE creative_fingerprint ADD COLUMN is_active INTEGER DEFAULT 1"))
