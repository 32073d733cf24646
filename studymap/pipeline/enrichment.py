import asyncio
import logging
from typing import Awaitable, Callable, List

from studymap.schemas.mindmap import EnrichedTopic, VideoCandidate

logger = logging.getLogger(__name__)

SearchFn = Callable[[str, int], Awaitable[List[VideoCandidate]]]

MAX_VIDEOS_PER_TOPIC = 5


def placeholder_video(title: str) -> VideoCandidate:
    """Stand-in when a topic has no usable video. The url is never a link."""
    return VideoCandidate(title=title, url="#", length="00:00", views="0", likes="0")


class VideoEnricher:
    """Attach up to `max_results` candidate videos to each topic."""

    def __init__(self, search: SearchFn, max_results: int = MAX_VIDEOS_PER_TOPIC):
        self.search = search
        self.max_results = max_results

    async def enrich(self, topics: List[str]) -> List[EnrichedTopic]:
        logger.info(f"[ENRICH] Fetching videos for {len(topics)} topics...")
        results = await asyncio.gather(*(self._enrich_topic(topic) for topic in topics))
        logger.info("[ENRICH] ✓ Done")
        return list(results)

    async def _enrich_topic(self, topic: str) -> EnrichedTopic:
        try:
            videos = await self.search(topic, self.max_results)
        except Exception as e:
            logger.warning(f"[ENRICH] Video lookup failed for {topic!r}: {e}")
            return EnrichedTopic(title=topic, videos=[placeholder_video(f'Error fetching videos for "{topic}"')])

        videos = list(videos or [])[:self.max_results]
        if not videos:
            logger.info(f"[ENRICH] No videos for {topic!r}")
            videos = [placeholder_video(f'No video found for "{topic}"')]
        return EnrichedTopic(title=topic, videos=videos)
