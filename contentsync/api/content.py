import dataclasses
import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from contentsync.db import SessionLocal
from contentsync.models.content_item import ContentItem
from contentsync.schemas.content import ContentItemOut, ContentItemUpdateIn, LastRunOut, SyncTriggerOut
from contentsync.schemas.inventory import InventoryOut
from contentsync.services.classifier import CATEGORY_AD
from contentsync.services.content_service import ContentService, get_content_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["content"])


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@router.get("/inventory", response_model=InventoryOut)
def get_inventory(service: ContentService = Depends(get_content_service)):
    return service.get_fleet_inventory()


@router.post("/sync", response_model=SyncTriggerOut)
async def trigger_sync(force: bool = False, service: ContentService = Depends(get_content_service)):
    return {"status": service.trigger_sync(force=force)}


@router.get("/sync/last-run", response_model=LastRunOut)
def get_last_run(service: ContentService = Depends(get_content_service)):
    summary = service.get_last_run_summary()
    return {
        "summary": dataclasses.asdict(summary) if summary is not None else None,
        "running": service.scheduler.is_running,
        "last_error": service.scheduler.last_error,
        "last_error_at": service.scheduler.last_error_at,
    }


@router.patch("/content-items/{item_id}", response_model=ContentItemOut)
def update_content_item(item_id: str, payload: ContentItemUpdateIn, db: Session = Depends(get_db)):
    item = db.get(ContentItem, item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Content item not found")

    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")
    category = changes.get("category") or item.category
    has_linkage = "linked_advertiser_id" in changes or "linked_placement_id" in changes
    if has_linkage and category != CATEGORY_AD:
        raise HTTPException(status_code=400, detail="Advertiser linkage is only allowed on ad items")

    if "category" in changes and changes["category"] is not None:
        item.category = changes["category"]
        if item.category != CATEGORY_AD:
            item.linked_advertiser_id = None
            item.linked_placement_id = None
            item.matched_creative_id = None
            item.match_similarity = None
    if "linked_advertiser_id" in changes:
        item.linked_advertiser_id = changes["linked_advertiser_id"] or None
    if "linked_placement_id" in changes:
        item.linked_placement_id = changes["linked_placement_id"] or None
    item.category_source = "manual"
    db.commit()
    db.refresh(item)
    logger.info("Content item %s overridden manually: category=%s", item.id, item.category)
    return item
