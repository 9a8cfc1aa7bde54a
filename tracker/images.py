from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from tracker.config import TrackerSettings, resolve_settings


TOKEN_SPLIT = re.compile(r"[,\s]+")
DRIVE_HOST = "drive.google.com"
DRIVE_ID_PATTERNS = (
    re.compile(r"/d/(.+?)/(?:view|edit|usp)"),
    re.compile(r"id=(.+?)(?:&|$)"),
)


@dataclass(frozen=True)
class ImageLink:
    original: str
    display: str


def is_image_column(header: Any, settings: Optional[TrackerSettings] = None) -> bool:
    settings = resolve_settings(settings)
    lowered = str(header or "").lower()
    return any(k in lowered for k in settings.image_keywords)


def is_web_link(token: str) -> bool:
    try:
        parsed = urlparse(token)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def thumbnail_url(url: str, settings: Optional[TrackerSettings] = None) -> str:
    """Rewrite Google Drive share links to the direct thumbnail endpoint."""
    settings = resolve_settings(settings)
    if DRIVE_HOST not in url:
        return url
    for pattern in DRIVE_ID_PATTERNS:
        match = pattern.search(url)
        if match and match.group(1):
            return f"https://{DRIVE_HOST}/thumbnail?id={match.group(1)}&sz={settings.thumbnail_size}"
    return url


def extract_image_links(text: Any, settings: Optional[TrackerSettings] = None) -> List[ImageLink]:
    tokens = [t.strip() for t in TOKEN_SPLIT.split(str(text or "").strip())]
    links: List[ImageLink] = []
    for token in tokens:
        # anything this short cannot be a usable link
        if len(token) <= 5 or not is_web_link(token):
            continue
        links.append(ImageLink(original=token, display=thumbnail_url(token, settings)))
    return links


def lightbox_url(link: ImageLink, settings: Optional[TrackerSettings] = None) -> str:
    settings = resolve_settings(settings)
    if "thumbnail" in link.display:
        return link.display.replace(settings.thumbnail_size, settings.lightbox_size)
    return link.original


def step_index(current: int, delta: int, count: int) -> int:
    if count <= 0:
        return 0
    return (current + delta) % count


def render_cell(value: Any, header: Any, settings: Optional[TrackerSettings] = None) -> Dict[str, Any]:
    text = "" if value is None else str(value)
    if not is_image_column(header, settings):
        return {"kind": "text", "text": text}
    links = extract_image_links(text, settings)
    if not links:
        return {"kind": "text", "text": text.strip()}
    return {
        "kind": "images",
        "images": [
            {"original": link.original, "display": link.display, "full": lightbox_url(link, settings)}
            for link in links
        ],
    }
