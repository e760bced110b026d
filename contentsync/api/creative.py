import os
import logging
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session
from contentsync.db import SessionLocal
from contentsync.errors import HashComputeError
from contentsync.models.creative import CreativeFingerprint
from contentsync.schemas.creative import CreativeFingerprintOut, FingerprintMatchOut, FingerprintOut
from contentsync.services.classifier import AD_MATCH_THRESHOLD
from contentsync.services.content_service import ContentService, get_content_service
from contentsync.services.device_api import MAX_IMAGE_BYTES

logger = logging.getLogger(__name__)

router = APIRouter(tags=["creatives"])

ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp"}


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _read_image(file: UploadFile) -> bytes:
    filename = os.path.basename((file.filename or "").strip())
    _, ext = os.path.splitext(filename.lower())
    if ext and ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise ValueError("Unsupported image format. Use JPG/PNG/WEBP/GIF/BMP.")
    content = file.file.read()
    if not content:
        raise ValueError("Uploaded file is empty.")
    if len(content) > MAX_IMAGE_BYTES:
        raise ValueError(f"Image exceeds the {MAX_IMAGE_BYTES // (1024 * 1024)} MB limit.")
    return content


async def _fingerprint_upload(file: UploadFile, service: ContentService):
    try:
        return await service.fingerprint_image(_read_image(file))
    except (ValueError, HashComputeError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/creatives", response_model=list[CreativeFingerprintOut])
def list_creatives(active_only: bool = True, db: Session = Depends(get_db)):
    query = db.query(CreativeFingerprint)
    if active_only:
        query = query.filter(CreativeFingerprint.is_active.is_(True))
    return query.order_by(CreativeFingerprint.creative_id.asc()).all()


@router.post("/fingerprints", response_model=FingerprintOut)
async def fingerprint_upload(
    file: UploadFile = File(...),
    service: ContentService = Depends(get_content_service),
):
    # Hash only; the creative catalog stores it on its side.
    fingerprint = await _fingerprint_upload(file, service)
    logger.info("Fingerprinted upload %s (%dx%d)", file.filename, fingerprint.width, fingerprint.height)
    return fingerprint


@router.post("/fingerprints/compare", response_model=FingerprintMatchOut)
async def compare_fingerprint(
    file: UploadFile = File(...),
    threshold: float = AD_MATCH_THRESHOLD,
    service: ContentService = Depends(get_content_service),
):
    if not 0.0 <= threshold <= 1.0:
        raise HTTPException(status_code=400, detail="threshold must be between 0 and 1")
    fingerprint = await _fingerprint_upload(file, service)
    result = {
        "hash": fingerprint.hash,
        "is_likely_blank": fingerprint.is_likely_blank,
        "threshold": threshold,
        "matched": False,
    }
    if fingerprint.is_likely_blank:
        return result
    match = service.match_fingerprint(fingerprint, threshold=threshold)
    if match is None:
        return result
    result.update(
        matched=True,
        creative_id=match.creative.creative_id,
        advertiser_id=match.creative.advertiser_id,
        placement_id=match.creative.placement_id,
        similarity=match.similarity,
        distance=int(match.distance),
    )
    return result
