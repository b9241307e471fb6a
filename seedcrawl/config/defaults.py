"""Built-in source definitions shipped with seedcrawl."""

from __future__ import annotations

from typing import Any

YTS_TRACKERS = [
    "udp://open.demonii.com:1337/announce",
    "udp://tracker.openbittorrent.com:80",
    "udp://tracker.coppersurfer.tk:6969",
    "udp://glotorrents.pw:6969/announce",
    "udp://tracker.opentrackr.org:1337/announce",
    "udp://torrent.gresille.org:80/announce",
    "udp://p4p.arenabg.com:1337",
    "udp://tracker.leechers-paradise.org:6969",
]

BUILTIN_SOURCES: dict[str, dict[str, Any]] = {
    "yts": {
        "source_name": "yts",
        "adapter": "yts",
        "base_url": "https://yts.mx",
        "api_url": "https://yts.mx/api/v2",
        "min_delay": 2.0,
        "max_pages": 5,
        "headers": {"Referer": "https://yts.mx/", "Origin": "https://yts.mx"},
        "trackers": YTS_TRACKERS,
    },
    "1337x": {
        "source_name": "1337x",
        "adapter": "1337x",
        "base_url": "https://1337x.to",
        "min_delay": 3.0,
        "max_pages": 3,
        "headers": {
            "Referer": "https://1337x.to/",
            "Origin": "https://1337x.to",
            "Accept-Language": "en-US,en;q=0.9",
        },
        "search_path": "/search/{query}/{page}/",
        "categories": [
            {"name": "Movies", "path": "/movies/"},
            {"name": "TV", "path": "/tv/"},
            {"name": "Games", "path": "/games/"},
            {"name": "Applications", "path": "/apps/"},
            {"name": "Music", "path": "/music/"},
            {"name": "Documentaries", "path": "/documentaries/"},
            {"name": "Anime", "path": "/anime/"},
            {"name": "Other", "path": "/other/"},
        ],
    },
}

__all__ = ["BUILTIN_SOURCES", "YTS_TRACKERS"]
