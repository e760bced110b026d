import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from contentsync.errors import ApiError, ConfigurationError, MalformedResponseError, TransportError
from contentsync.services.cache import ResponseCache

logger = logging.getLogger(__name__)

DEVICE_API_URL = (os.getenv("SIGNAGE_DEVICE_API_URL", "https://app.yodeck.com/api/v2") or "").strip().rstrip("/")
DEVICE_API_TIMEOUT_SEC = float(os.getenv("SIGNAGE_DEVICE_API_TIMEOUT_SEC", "15"))
DEVICE_API_MAX_CONCURRENT = int(os.getenv("SIGNAGE_DEVICE_API_MAX_CONCURRENT", "5"))
MAX_IMAGE_BYTES = int(os.getenv("SIGNAGE_MAX_IMAGE_BYTES", str(15 * 1024 * 1024)))
PAGE_LIMIT = 100
KNOWN_MEDIA_TYPES = {"image", "video", "audio"}


@dataclass(frozen=True)
class PlayerStatus:
    status: str
    last_checked_in: datetime | None


@dataclass(frozen=True)
class MediaDetail:
    id: str
    name: str
    type: str
    file_extension: str | None = None
    folder: str | None = None
    tags: tuple[str, ...] = ()
    thumbnail_url: str | None = None


@dataclass
class ContentTree:
    """Flattened view of everything a player's assigned source resolves to."""

    player_id: str
    source_type: str | None = None
    source_id: str | None = None
    source_name: str | None = None
    total_playlist_items: int = 0
    widget_count: int = 0
    # Play-order media ids; a media placed twice appears twice.
    media_ids: list[str] = field(default_factory=list)
    media: dict[str, MediaDetail] = field(default_factory=dict)

    @property
    def unique_media_ids(self) -> list[str]:
        return list(dict.fromkeys(self.media_ids))

    def media_items(self) -> list[MediaDetail]:
        return [self.media[media_id] for media_id in self.unique_media_ids if media_id in self.media]


@dataclass
class _Visited:
    playlists: set[str] = field(default_factory=set)
    layouts: set[str] = field(default_factory=set)


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def _normalized_tags(raw: Any) -> tuple[str, ...]:
    output: list[str] = []
    for tag in raw or []:
        name = tag.get("name") if isinstance(tag, dict) else tag
        value = str(name or "").strip()
        if value:
            output.append(value)
    return tuple(output)


def media_detail_from_payload(raw: dict) -> MediaDetail:
    origin = raw.get("media_origin") or {}
    media_type = str(origin.get("type") or "").strip().lower()
    folder = raw.get("parent_folder") or {}
    return MediaDetail(
        id=str(raw.get("id")),
        name=str(raw.get("name") or f"Media {raw.get('id')}"),
        type=media_type if media_type in KNOWN_MEDIA_TYPES else "other",
        file_extension=raw.get("file_extension") or None,
        folder=folder.get("name") if isinstance(folder, dict) else None,
        tags=_normalized_tags(raw.get("tags")),
        thumbnail_url=raw.get("thumbnail_url") or None,
    )


class DeviceApiClient:
    """
    Read-only client for the external device-management API.

    Every call is bounded by the client timeout and by a shared concurrency
    limit. Failures surface as TransportError, ApiError or
    MalformedResponseError; a missing token raises ConfigurationError before
    any request is made. Screen, playlist, layout, schedule and media lookups
    go through the injected ResponseCache.
    """

    def __init__(
        self,
        credentials,
        cache: ResponseCache,
        base_url: str = DEVICE_API_URL,
        timeout_sec: float = DEVICE_API_TIMEOUT_SEC,
        max_concurrent: int = DEVICE_API_MAX_CONCURRENT,
        transport: httpx.AsyncBaseTransport | None = None,
        max_image_bytes: int = MAX_IMAGE_BYTES,
    ) -> None:
        self._credentials = credentials
        self._cache = cache
        self._max_image_bytes = max_image_bytes
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent))
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_sec),
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    def is_configured(self) -> bool:
        return self._credentials.is_configured()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _token(self) -> str:
        token = self._credentials.get_credentials()
        if not token:
            raise ConfigurationError("Device API token is not configured")
        return token

    async def _send(self, url: str, headers: dict[str, str], params: dict[str, Any] | None = None) -> httpx.Response:
        async with self._semaphore:
            try:
                response = await self._http.get(url, headers=headers, params=params)
            except httpx.TimeoutException as exc:
                raise TransportError(f"Timeout calling {url}", url) from exc
            except httpx.TransportError as exc:
                raise TransportError(f"{type(exc).__name__} calling {url}: {exc}", url) from exc
        if not response.is_success:
            snippet = response.text[:100] if response.text else ""
            raise ApiError(f"HTTP {response.status_code} from {url} {snippet}".strip(), url, response.status_code)
        return response

    async def _request_json(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        token = self._token()
        logger.debug("GET %s %s", endpoint, params or "")
        response = await self._send(endpoint, {"Authorization": f"Token {token}"}, params)
        try:
            return response.json()
        except ValueError as exc:
            content_type = response.headers.get("content-type", "unknown")
            raise MalformedResponseError(
                f"Non-JSON response from {endpoint} (content-type: {content_type})",
                endpoint,
                response.status_code,
            ) from exc

    async def _request_object(self, endpoint: str) -> dict:
        data = await self._request_json(endpoint)
        if not isinstance(data, dict):
            raise MalformedResponseError(f"Expected a JSON object from {endpoint}", endpoint)
        return data

    async def _cached_object(self, key: str, endpoint: str) -> dict:
        return await self._cache.get(key, lambda: self._request_object(endpoint))

    async def _list_all(self, endpoint: str) -> list[dict]:
        results: list[dict] = []
        offset = 0
        while True:
            page = await self._request_json(endpoint, {"limit": PAGE_LIMIT, "offset": offset})
            if not isinstance(page, dict) or not isinstance(page.get("results"), list):
                raise MalformedResponseError(f"Expected a paginated list from {endpoint}", endpoint)
            results.extend(page["results"])
            if not page.get("next") or not page["results"]:
                break
            offset += PAGE_LIMIT
        return results

    async def get_screens(self, force: bool = False) -> list[dict]:
        screens = await self._cache.get("screens", lambda: self._list_all("/screens"), force=force)
        logger.info("Device API returned %d screens", len(screens))
        return screens

    async def _screen_detail(self, player_id: str) -> dict:
        return await self._cached_object(f"screen:{player_id}", f"/screens/{player_id}")

    async def get_player_status(self, player_id: str) -> PlayerStatus:
        detail = await self._screen_detail(player_id)
        state = detail.get("state") or {}
        online = state.get("online")
        if online is True:
            status = "online"
        elif online is False:
            status = "offline"
        else:
            status = "unknown"
        return PlayerStatus(status=status, last_checked_in=_parse_timestamp(state.get("last_seen")))

    async def get_media(self, media_id: str) -> MediaDetail:
        async def fetch() -> MediaDetail:
            return media_detail_from_payload(await self._request_object(f"/media/{media_id}"))

        return await self._cache.get(f"media:{media_id}", fetch)

    async def get_screen_content(self, player_id: str) -> ContentTree:
        detail = await self._screen_detail(player_id)
        content = detail.get("screen_content") or {}
        source_type = str(content.get("source_type") or "").strip().lower() or None
        source_id = content.get("source_id")
        tree = ContentTree(
            player_id=str(player_id),
            source_type=source_type,
            source_id=str(source_id) if source_id else None,
            source_name=content.get("source_name"),
        )
        if source_type and source_id:
            visited = _Visited()
            if source_type == "playlist":
                await self._resolve_playlist(tree, str(source_id), visited)
            elif source_type == "layout":
                await self._resolve_layout(tree, str(source_id), visited)
            elif source_type == "schedule":
                await self._resolve_schedule(tree, str(source_id), visited)
            else:
                logger.info("Player %s has unsupported source type %r", player_id, source_type)

        for media_id in tree.unique_media_ids:
            tree.media[media_id] = await self.get_media(media_id)
        return tree

    async def _resolve_playlist(self, tree: ContentTree, playlist_id: str, visited: _Visited) -> None:
        if playlist_id in visited.playlists:
            logger.debug("Skipping visited playlist %s", playlist_id)
            return
        visited.playlists.add(playlist_id)

        playlist = await self._cached_object(f"playlist:{playlist_id}", f"/playlists/{playlist_id}")
        items = playlist.get("items") or []
        tree.total_playlist_items += len(items)
        for item in items:
            await self._resolve_reference(tree, item, visited, f"playlist {playlist_id}")

    async def _resolve_layout(self, tree: ContentTree, layout_id: str, visited: _Visited) -> None:
        if layout_id in visited.layouts:
            logger.debug("Skipping visited layout %s", layout_id)
            return
        visited.layouts.add(layout_id)

        layout = await self._cached_object(f"layout:{layout_id}", f"/layouts/{layout_id}")
        for region in layout.get("regions") or []:
            item = region.get("item")
            if item:
                await self._resolve_reference(tree, item, visited, f"layout {layout_id}")
        background = (layout.get("background_audio") or {}).get("item")
        if background:
            await self._resolve_reference(tree, background, visited, f"layout {layout_id} audio")

    async def _resolve_schedule(self, tree: ContentTree, schedule_id: str, visited: _Visited) -> None:
        schedule = await self._cached_object(f"schedule:{schedule_id}", f"/schedules/{schedule_id}")
        sources = [event.get("source") for event in schedule.get("events") or []]
        sources.append(schedule.get("filler_content"))
        for source in sources:
            if not source:
                continue
            source_type = str(source.get("source_type") or "").lower()
            source_id = source.get("source_id")
            if not source_id:
                continue
            if source_type == "playlist":
                await self._resolve_playlist(tree, str(source_id), visited)
            elif source_type == "layout":
                await self._resolve_layout(tree, str(source_id), visited)

    async def _resolve_reference(self, tree: ContentTree, item: dict, visited: _Visited, parent: str) -> None:
        item_type = str(item.get("type") or "").lower()
        item_id = item.get("id")
        if item_type == "widget":
            tree.widget_count += 1
        elif not item_id:
            return
        elif item_type == "media":
            tree.media_ids.append(str(item_id))
        elif item_type == "playlist":
            await self._resolve_playlist(tree, str(item_id), visited)
        elif item_type == "layout":
            await self._resolve_layout(tree, str(item_id), visited)
        else:
            logger.info("Unknown item type %r in %s", item_type, parent)

    async def fetch_image(self, url: str) -> bytes:
        """Download a thumbnail, giving up as soon as the body passes the size limit."""
        limit = self._max_image_bytes
        async with self._semaphore:
            try:
                async with self._http.stream("GET", url, headers={"Accept": "image/*"}) as response:
                    if not response.is_success:
                        raise ApiError(f"HTTP {response.status_code} from {url}", url, response.status_code)
                    declared = response.headers.get("content-length", "")
                    if declared.isdigit() and int(declared) > limit:
                        raise ApiError(f"Image at {url} exceeds {limit} bytes", url, response.status_code)
                    chunks: list[bytes] = []
                    received = 0
                    async for chunk in response.aiter_bytes():
                        received += len(chunk)
                        if received > limit:
                            raise ApiError(f"Image at {url} exceeds {limit} bytes", url, response.status_code)
                        chunks.append(chunk)
            except httpx.TimeoutException as exc:
                raise TransportError(f"Timeout calling {url}", url) from exc
            except httpx.TransportError as exc:
                raise TransportError(f"{type(exc).__name__} calling {url}: {exc}", url) from exc
        return b"".join(chunks)
