"""
Utilities for extracting preview metadata from OpenGraph blocks.
"""
from __future__ import annotations

from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup


def extract_og_image(html: str, base_url: Optional[str] = None) -> Optional[str]:
    soup = BeautifulSoup(html, "lxml")
    og_image = soup.select_one('meta[property="og:image"]')
    if not og_image or not og_image.has_attr("content"):
        return None
    image = og_image["content"].strip()
    if not image:
        return None
    return urljoin(base_url, image) if base_url else image
