#!/usr/bin/env python3
"""
Page Sources for Slack Thread Harvester
Abstract view of the rendered page: a parsed snapshot, element geometry and the
scroll controls used for pagination.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Dict, Any
import logging
import random
import re
import time

import requests
from bs4 import BeautifulSoup
from bs4.element import Tag

from harvesters.common_harvester import PageLoadError, is_element

logger = logging.getLogger(__name__)

RECT_ATTRIBUTE = 'data-harvest-rect'

@dataclass(frozen=True)
class Rect:
    """Rendered box of an element in viewport coordinates"""
    left: float = 0.0
    top: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def has_area(self) -> bool:
        return self.width > 0 and self.height > 0

@dataclass(frozen=True)
class ScrollState:
    """Scroll metrics of the thread's scroll container"""
    scroll_top: float
    scroll_height: float
    client_height: float

    @property
    def max_scroll_top(self) -> float:
        return max(0.0, self.scroll_height - self.client_height)

    @property
    def progress(self) -> float:
        if self.max_scroll_top <= 0:
            return 0.0
        return min(self.scroll_top / self.max_scroll_top, 1.0)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["ScrollState"]:
        if not data:
            return None
        return cls(
            scroll_top=float(data.get('scrollTop', 0)),
            scroll_height=float(data.get('scrollHeight', 0)),
            client_height=float(data.get('clientHeight', 0))
        )

class PageSource(ABC):
    """Abstract page the harvester reads from and paginates"""

    viewport_width: float = 1440

    @property
    @abstractmethod
    def document(self) -> BeautifulSoup:
        """Most recent parsed snapshot of the page"""
        pass

    @abstractmethod
    async def refresh(self) -> None:
        """Re-read the page so that `document` reflects its current state"""
        pass

    @abstractmethod
    def rect(self, element: Tag) -> Rect:
        """Rendered box of an element from the current snapshot"""
        pass

    @abstractmethod
    async def scroll_state(self) -> Optional[ScrollState]:
        """Scroll metrics of the thread scroll container, or None if not scrollable"""
        pass

    @abstractmethod
    async def scroll_to(self, top: float) -> Optional[ScrollState]:
        """Move the thread scroll container; must not change page content"""
        pass

def parse_rect_stamp(value: str) -> Optional[Rect]:
    """Parse a 'left,top,width,height' geometry stamp"""
    try:
        left, top, width, height = (float(part) for part in value.split(','))
    except (ValueError, AttributeError):
        return None
    return Rect(left, top, width, height)

_HIDDEN_STYLE = re.compile(r'(display\s*:\s*none|visibility\s*:\s*hidden)', re.IGNORECASE)

def _is_hidden(element: Tag) -> bool:
    if element.has_attr('hidden'):
        return True
    style = element.get('style')
    return bool(style and _HIDDEN_STYLE.search(style))

class StaticPage(PageSource):
    """
    Page backed by a fixed HTML snapshot

    Geometry comes from `data-harvest-rect` stamps written by a live browser
    snapshot. Unstamped elements count as laid out unless they or an ancestor
    are hidden. A static page has no scroll container.
    """

    DEFAULT_RECT = Rect(0, 0, 1, 1)

    def __init__(self, html, viewport_width: float = 1440):
        if isinstance(html, BeautifulSoup):
            self._document = html
        else:
            self._document = BeautifulSoup(html or '', 'html.parser')
        self.viewport_width = viewport_width

    @property
    def document(self) -> BeautifulSoup:
        return self._document

    async def refresh(self) -> None:
        return None

    def rect(self, element: Tag) -> Rect:
        stamp = element.get(RECT_ATTRIBUTE)
        if stamp:
            parsed = parse_rect_stamp(stamp)
            if parsed is not None:
                return parsed

        for node in [element] + [parent for parent in element.parents if is_element(parent)]:
            if _is_hidden(node):
                return Rect()
        return self.DEFAULT_RECT

    async def scroll_state(self) -> Optional[ScrollState]:
        return None

    async def scroll_to(self, top: float) -> Optional[ScrollState]:
        return None

def load_static_page(source: str, config: Optional[Dict[str, Any]] = None) -> StaticPage:
    """
    Load a saved thread page from a file path or URL

    Args:
        source: Path to an HTML file, or an http(s) URL
        config: Configuration dictionary (uses 'fetch' and 'browser' sections)

    Returns:
        StaticPage wrapping the parsed HTML

    Raises:
        PageLoadError: If the source cannot be read or fetched
    """
    config = config or {}
    viewport_width = config.get('browser', {}).get('viewport_width', 1440)

    if source.startswith(('http://', 'https://')):
        html = _fetch_html(source, config)
    else:
        path = Path(source).expanduser()
        try:
            html = path.read_text(encoding='utf-8')
        except OSError as e:
            raise PageLoadError(f"Could not read {path}: {e}") from e
        logger.debug(f"Read {len(html)} characters from {path}")

    return StaticPage(html, viewport_width=viewport_width)

def _fetch_html(url: str, config: Dict[str, Any]) -> str:
    """Fetch HTML content from URL with retries"""
    max_retries = config.get('fetch', {}).get('max_retries', 3)
    timeout = config.get('fetch', {}).get('timeout', 30)

    session = requests.Session()
    session.headers.update({
        'User-Agent': 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
        'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
        'Accept-Language': 'en-US,en;q=0.9',
    })

    last_error = None
    for attempt in range(max_retries):
        try:
            logger.debug(f"Fetching HTML (attempt {attempt + 1}/{max_retries})")
            response = session.get(url, timeout=timeout, allow_redirects=True)
            response.raise_for_status()
            logger.debug(f"Successfully fetched HTML ({len(response.text)} characters)")
            return response.text

        except requests.RequestException as e:
            last_error = e
            logger.warning(f"Attempt {attempt + 1} failed: {e}")
            if attempt < max_retries - 1:
                wait_time = (2 ** attempt) + random.uniform(0.5, 1.5)
                logger.debug(f"Waiting {wait_time:.1f} seconds before retry...")
                time.sleep(wait_time)

    raise PageLoadError(f"Failed to fetch {url} after {max_retries} attempts: {last_error}")
