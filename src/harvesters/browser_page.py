#!/usr/bin/env python3
"""
Browser Page for Slack Thread Harvester
Live Slack tab driven through Playwright over the Chrome DevTools Protocol.
"""

import logging
from typing import Optional, Dict, Any

from bs4 import BeautifulSoup
from bs4.element import Tag

from harvesters.common_harvester import PageLoadError
from harvesters.element_classifier import THREAD_SELECTORS
from harvesters.page_source import PageSource, Rect, ScrollState, RECT_ATTRIBUTE, parse_rect_stamp

logger = logging.getLogger(__name__)

SCROLL_CONTAINER_SELECTORS = [
    '.c-virtual_list__scroll_container[role="list"]',
    '.c-virtual_list__scroll_container',
    '.c-scrollbar__hider',
    '[data-qa="slack_kit_scrollbar"]',
    '.c-virtual_list.c-scrollbar',
    '.p-thread_view__messages',
    '.p-threads_flexpane__content'
]

# Clones the document and stamps every element of the clone with the
# bounding box of its live counterpart. The live DOM is left untouched.
SNAPSHOT_SCRIPT = """
(rectAttribute) => {
    const root = document.documentElement;
    const clone = root.cloneNode(true);
    const live = [root, ...root.querySelectorAll('*')];
    const copies = [clone, ...clone.querySelectorAll('*')];
    const count = Math.min(live.length, copies.length);
    for (let i = 0; i < count; i++) {
        const r = live[i].getBoundingClientRect();
        const box = [r.left, r.top, r.width, r.height].map(v => Math.round(v * 100) / 100);
        copies[i].setAttribute(rectAttribute, box.join(','));
    }
    return { html: clone.outerHTML, viewportWidth: window.innerWidth };
}
"""

# Finds the thread's scroll container and optionally moves it.
# Returns null when the thread has no scrollable container.
SCROLL_SCRIPT = """
({ threadSelectors, scrollSelectors, top }) => {
    const isScrollable = (el) => {
        if (!el) return false;
        const style = window.getComputedStyle(el);
        const scrollableStyle = ['auto', 'scroll'].includes(style.overflowY) ||
                                ['auto', 'scroll'].includes(style.overflow);
        return el.scrollHeight > el.clientHeight && scrollableStyle;
    };

    let thread = null;
    for (const selector of threadSelectors) {
        const candidate = document.querySelector(selector);
        if (candidate) {
            const r = candidate.getBoundingClientRect();
            if (r.width > 0 && r.height > 0) {
                thread = candidate;
                break;
            }
        }
    }
    if (!thread) return null;

    let container = null;
    for (const selector of scrollSelectors) {
        const candidate = thread.querySelector(selector);
        if (isScrollable(candidate)) {
            container = candidate;
            break;
        }
    }
    if (!container) {
        const virtualList = thread.querySelector('.c-virtual_list');
        if (isScrollable(virtualList)) {
            container = virtualList;
        } else if (virtualList && isScrollable(virtualList.parentElement)) {
            container = virtualList.parentElement;
        } else if (isScrollable(thread)) {
            container = thread;
        }
    }
    if (!container) return null;

    if (top !== null) {
        container.scrollTop = top;
    }
    return {
        scrollTop: container.scrollTop,
        scrollHeight: container.scrollHeight,
        clientHeight: container.clientHeight
    };
}
"""

class PlaywrightPage(PageSource):
    """PageSource over a live Playwright page"""

    def __init__(self, page):
        self.page = page
        self._document = BeautifulSoup('', 'html.parser')

    @property
    def document(self) -> BeautifulSoup:
        return self._document

    @property
    def url(self) -> str:
        return self.page.url

    async def refresh(self) -> None:
        snapshot = await self.page.evaluate(SNAPSHOT_SCRIPT, RECT_ATTRIBUTE)
        self._document = BeautifulSoup(snapshot['html'], 'html.parser')
        self.viewport_width = snapshot.get('viewportWidth') or self.viewport_width

    def rect(self, element: Tag) -> Rect:
        stamp = element.get(RECT_ATTRIBUTE)
        parsed = parse_rect_stamp(stamp) if stamp else None
        return parsed or Rect()

    async def scroll_state(self) -> Optional[ScrollState]:
        return ScrollState.from_dict(await self._scroll(None))

    async def scroll_to(self, top: float) -> Optional[ScrollState]:
        return ScrollState.from_dict(await self._scroll(top))

    async def _scroll(self, top: Optional[float]) -> Optional[Dict[str, Any]]:
        return await self.page.evaluate(SCROLL_SCRIPT, {
            'threadSelectors': THREAD_SELECTORS,
            'scrollSelectors': SCROLL_CONTAINER_SELECTORS,
            'top': top
        })

async def connect_to_slack_tab(playwright, cdp_url: str, url_match: str = 'app.slack.com') -> PlaywrightPage:
    """
    Attach to a running Chrome and pick the open Slack tab

    Args:
        playwright: Started async Playwright instance
        cdp_url: DevTools endpoint, e.g. http://localhost:9222
        url_match: Substring identifying the Slack tab's URL

    Returns:
        PlaywrightPage for the first matching tab

    Raises:
        PageLoadError: If Chrome is unreachable or no tab matches
    """
    try:
        browser = await playwright.chromium.connect_over_cdp(cdp_url)
    except Exception as e:
        raise PageLoadError(f"Could not connect to Chrome at {cdp_url}: {e}. "
                            f"Start Chrome with --remote-debugging-port") from e

    logger.info(f"Connected to Chrome at {cdp_url}")

    for context in browser.contexts:
        for page in context.pages:
            if url_match in page.url:
                logger.info(f"Using tab: {page.url}")
                return PlaywrightPage(page)

    raise PageLoadError(f"No open tab matches {url_match!r}")
