from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from yt_dlp.extractor.youtube import YoutubeIE

from video_digest.services.errors import InvalidInputError

WATCH_URL_TEMPLATE = "https://www.youtube.com/watch?v={video_id}"
_PLAYLIST_QUERY_KEYS = frozenset({"list", "index"})


def is_valid_video_url(url: object) -> bool:
    if not isinstance(url, str) or not url.strip():
        return False
    candidate = url.strip()
    # YoutubeIE also accepts naked 11-character ids; only full URLs are valid input here.
    if urlparse(candidate).scheme not in {"http", "https"}:
        return False
    return bool(YoutubeIE.suitable(_without_playlist(candidate)))


def parse_video_id(url: object) -> str:
    if not is_valid_video_url(url):
        raise InvalidInputError("Invalid YouTube URL")
    assert isinstance(url, str)
    video_id = YoutubeIE.get_temp_id(_without_playlist(url.strip()))
    if not video_id:
        raise InvalidInputError("Invalid YouTube URL")
    return video_id


def canonical_watch_url(video_id: str) -> str:
    return WATCH_URL_TEMPLATE.format(video_id=video_id)


def _without_playlist(url: str) -> str:
    """Drop playlist parameters; YoutubeIE declines watch URLs that carry them."""
    parsed = urlparse(url)
    query = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key not in _PLAYLIST_QUERY_KEYS
    ]
    return urlunparse(parsed._replace(query=urlencode(query)))
