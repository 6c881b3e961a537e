"""Utility functions for place photos and their contributor attributions."""

import logging
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlencode

from bs4 import BeautifulSoup

from tripplaces.places.models import PhotoRef

logger = logging.getLogger(__name__)

LEGACY_PHOTO_URL = "https://maps.googleapis.com/maps/api/place/photo"
CURRENT_PHOTO_URL = "https://places.googleapis.com/v1/{name}/media"


def parse_contributor_name(html_attribution: Optional[str]) -> Optional[str]:
    """Pull the contributor name out of an attribution such as ``<a href="...">Jane</a>``."""
    if not html_attribution:
        return None
    soup = BeautifulSoup(html_attribution, "html.parser")
    anchor = soup.find("a")
    text = anchor.get_text() if anchor is not None else soup.get_text()
    return text.strip() or None


def build_photo_url(photo: PhotoRef, api_key: str, max_width: int = 1600, max_height: int = 1200) -> str:
    if not photo.reference:
        return ""
    if photo.source == "current":
        query = urlencode({"maxWidthPx": max_width, "maxHeightPx": max_height, "key": api_key})
        return f"{CURRENT_PHOTO_URL.format(name=photo.reference)}?{query}"
    query = urlencode(
        {"maxwidth": max_width, "maxheight": max_height, "photo_reference": photo.reference, "key": api_key}
    )
    return f"{LEGACY_PHOTO_URL}?{query}"


def map_photos_to_contributors(photos: Iterable[PhotoRef], api_key: str) -> Dict[str, List[str]]:
    """Group photo URLs by contributor name."""
    contributor_photos: Dict[str, List[str]] = {}
    for photo in photos:
        url = build_photo_url(photo, api_key)
        if not url:
            continue
        for contributor in photo.contributors:
            contributor_photos.setdefault(contributor, []).append(url)
    return contributor_photos


def photos_for_reviewer(reviewer_name: str, contributor_photos: Dict[str, List[str]]) -> List[str]:
    if reviewer_name in contributor_photos:
        return contributor_photos[reviewer_name]

    lowered = reviewer_name.lower()
    for contributor, urls in contributor_photos.items():
        if contributor.lower() == lowered:
            return urls
    return []
