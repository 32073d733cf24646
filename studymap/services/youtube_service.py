import re
import asyncio
import logging
from typing import Any, Dict, List, Optional

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from studymap.core.config import settings
from studymap.core.exceptions import ProviderError
from studymap.schemas.mindmap import VideoCandidate

logger = logging.getLogger(__name__)

youtube_client = None
if settings.YOUTUBE_API_KEY:
    youtube_client = build("youtube", "v3", developerKey=settings.YOUTUBE_API_KEY, cache_discovery=False)
    logger.info("[INIT] ✓ YouTube client initialized")
else:
    logger.warning("[INIT] ✗ YouTube API key missing")


_DURATION_RE = re.compile(r"^P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")


def format_duration(iso_duration: Optional[str]) -> str:
    """'PT1H2M3S' → '1:02:03', 'PT4M5S' → '4:05'."""
    match = _DURATION_RE.match(iso_duration or "")
    if not match or not any(match.groups()):
        return "Unknown"
    days, hours, minutes, seconds = (int(g or 0) for g in match.groups())
    hours += days * 24
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def format_count(raw: Any) -> str:
    """'1234567' → '1.2M'. Missing counts (hidden likes) → 'N/A'."""
    if raw is None or raw == "":
        return "N/A"
    try:
        n = int(raw)
    except (TypeError, ValueError):
        return "N/A"
    for threshold, suffix in ((1_000_000_000, "B"), (1_000_000, "M"), (1_000, "K")):
        if n >= threshold:
            value = f"{n / threshold:.1f}".rstrip("0").rstrip(".")
            return f"{value}{suffix}"
    return str(n)


def _search_sync(query: str, max_results: int) -> List[VideoCandidate]:
    search_response = youtube_client.search().list(
        q=query,
        part="snippet",
        maxResults=max_results,
        type="video",
    ).execute()

    hits: List[Dict[str, Any]] = []
    for item in search_response.get("items", []):
        video_id = item.get("id", {}).get("videoId")
        if video_id:
            hits.append({"id": video_id, "title": item.get("snippet", {}).get("title", "")})
    if not hits:
        return []

    details = youtube_client.videos().list(
        part="statistics,contentDetails",
        id=",".join(hit["id"] for hit in hits),
    ).execute()
    by_id = {item["id"]: item for item in details.get("items", [])}

    videos = []
    for hit in hits:
        info = by_id.get(hit["id"], {})
        stats = info.get("statistics", {}) or {}
        videos.append(VideoCandidate(
            title=hit["title"],
            url=f"https://www.youtube.com/watch?v={hit['id']}",
            length=format_duration(info.get("contentDetails", {}).get("duration")),
            views=format_count(stats.get("viewCount")),
            likes=format_count(stats.get("likeCount")),
        ))
    return videos


async def search_videos(query: str, max_results: int = 5) -> List[VideoCandidate]:
    """Ranked videos for `query`, in YouTube's relevance order."""
    if youtube_client is None:
        raise ProviderError("YouTube API key missing")

    logger.info(f"[YOUTUBE] Searching: {query!r} (max {max_results})")
    try:
        videos = await asyncio.wait_for(
            asyncio.to_thread(_search_sync, query, max_results),
            timeout=settings.VIDEO_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        raise ProviderError(f"YouTube search timed out after {settings.VIDEO_TIMEOUT_SECONDS}s")
    except HttpError as e:
        raise ProviderError(f"YouTube API error {e.resp.status}: {e}") from e
    except Exception as e:
        raise ProviderError(f"YouTube search failed: {e}") from e

    logger.info(f"[YOUTUBE] ✓ {query!r}: {len(videos)} videos")
    return videos
