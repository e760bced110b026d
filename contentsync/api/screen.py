from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from contentsync.db import SessionLocal
from contentsync.errors import ConfigurationError, DeviceApiError
from contentsync.models.screen import Screen
from contentsync.schemas.content import ContentItemOut
from contentsync.schemas.screen import ExternalScreenOut, ScreenOut
from contentsync.services.content_service import ContentService, get_content_service

router = APIRouter(prefix="/screens", tags=["screens"])


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _external_screen(raw: dict) -> ExternalScreenOut:
    state = raw.get("state") or {}
    online = state.get("online")
    return ExternalScreenOut(
        id=str(raw.get("id")),
        name=str(raw.get("name") or f"Screen {raw.get('id')}"),
        online=online if isinstance(online, bool) else None,
        last_seen=state.get("last_seen") or None,
    )


@router.get("", response_model=list[ScreenOut])
def list_screens(linked_only: bool = False, db: Session = Depends(get_db)):
    query = db.query(Screen)
    if linked_only:
        query = query.filter(Screen.external_player_id.isnot(None), Screen.external_player_id != "")
    return query.order_by(Screen.name.asc(), Screen.id.asc()).all()


@router.get("/external", response_model=list[ExternalScreenOut])
async def list_external_screens(force: bool = False, service: ContentService = Depends(get_content_service)):
    try:
        screens = await service.list_external_screens(force=force)
    except ConfigurationError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except DeviceApiError as exc:
        raise HTTPException(status_code=502, detail=f"Device API request failed: {exc}")
    return [_external_screen(item) for item in screens]


@router.get("/{screen_id}", response_model=ScreenOut)
def get_screen(screen_id: str, db: Session = Depends(get_db)):
    screen = db.get(Screen, screen_id)
    if not screen:
        raise HTTPException(status_code=404, detail="Screen not found")
    return screen


@router.get("/{screen_id}/content", response_model=list[ContentItemOut])
def get_screen_content(
    screen_id: str,
    include_inactive: bool = True,
    service: ContentService = Depends(get_content_service),
):
    items = service.get_screen_content(screen_id, include_inactive=include_inactive)
    if items is None:
        raise HTTPException(status_code=404, detail="Screen not found")
    return items
