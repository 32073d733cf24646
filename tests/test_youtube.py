import pytest

from studymap.core.exceptions import ProviderError
from studymap.services import youtube_service
from studymap.services.youtube_service import format_count, format_duration


@pytest.mark.parametrize("raw,expected", [
    ("PT4M5S", "4:05"),
    ("PT1H2M3S", "1:02:03"),
    ("PT45S", "0:45"),
    ("P1DT1M", "24:01:00"),
    ("", "Unknown"),
    (None, "Unknown"),
    ("garbage", "Unknown"),
])
def test_format_duration(raw, expected):
    assert format_duration(raw) == expected


@pytest.mark.parametrize("raw,expected", [
    ("999", "999"),
    ("1234", "1.2K"),
    ("1000000", "1M"),
    (1234567, "1.2M"),
    ("2500000000", "2.5B"),
    (None, "N/A"),
    ("hidden", "N/A"),
])
def test_format_count(raw, expected):
    assert format_count(raw) == expected


@pytest.mark.asyncio
async def test_search_without_key_is_provider_error(monkeypatch):
    monkeypatch.setattr(youtube_service, "youtube_client", None)
    with pytest.raises(ProviderError):
        await youtube_service.search_videos("Newton's Laws")


@pytest.mark.asyncio
async def test_search_maps_results(monkeypatch):
    class Request:
        def __init__(self, payload):
            self.payload = payload

        def execute(self):
            return self.payload

    class Search:
        def list(self, **kwargs):
            assert kwargs["maxResults"] == 2
            return Request({"items": [
                {"id": {"videoId": "abc"}, "snippet": {"title": "Newton's Laws in 5 minutes"}},
                {"id": {"channelId": "skip-me"}, "snippet": {"title": "A channel"}},
            ]})

    class Videos:
        def list(self, **kwargs):
            assert kwargs["id"] == "abc"
            return Request({"items": [
                {"id": "abc", "contentDetails": {"duration": "PT5M2S"}, "statistics": {"viewCount": "15400"}},
            ]})

    class Client:
        def search(self):
            return Search()

        def videos(self):
            return Videos()

    monkeypatch.setattr(youtube_service, "youtube_client", Client())
    videos = await youtube_service.search_videos("Newton's Laws", max_results=2)

    assert len(videos) == 1
    assert videos[0].url == "https://www.youtube.com/watch?v=abc"
    assert (videos[0].length, videos[0].views, videos[0].likes) == ("5:02", "15.4K", "N/A")
