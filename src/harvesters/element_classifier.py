#!/usr/bin/env python3
"""
Element Classifier for Slack Thread Harvester
Finds the thread panel in the page and decides which elements inside it are messages.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, List

from bs4.element import Tag

from harvesters.common_harvester import (
    class_string, closest, contains, data_qa, element_children, has_class,
    is_message_input_element, node_text, select_first, unique_elements
)
from harvesters.page_source import PageSource
from harvesters.text_normalizer import TextNormalizer

logger = logging.getLogger(__name__)

THREAD_SELECTORS = [
    '[data-qa="threads_flexpane"]',
    '.p-threads_flexpane',
    '.p-thread_view',
    '.p-threads_view',
    '[data-qa="thread_view"]',
    '.p-flexpane--iap1'
]

CHANNEL_SELECTORS = [
    '.p-message_pane',
    '.p-channel_sidebar',
    '.p-workspace__primary_view',
    '.p-message_pane__foreground'
]

THREAD_MESSAGE_SELECTORS = [
    '[data-qa="threads_flexpane"] [data-qa="virtual-list-item"]',
    '[data-qa="threads_flexpane"] .c-virtual_list__item',
    '[data-qa="threads_flexpane"] .c-message_kit__message',
    '.p-threads_flexpane [data-qa="virtual-list-item"]',
    '.p-threads_flexpane .c-virtual_list__item',
    '.p-threads_flexpane .c-message_kit__message',
    '.p-thread_view [data-qa="virtual-list-item"]',
    '.p-thread_view .c-message_kit__message',
    '.p-threads_view [data-qa="virtual-list-item"]',
    '.p-threads_view .c-message_kit__message'
]

CONTAINER_MESSAGE_SELECTORS = [
    '[data-qa="virtual-list-item"]',
    '.c-virtual_list__item',
    '.c-message_kit__message',
    '.c-message',
    '[data-qa="message"]',
    '[class*="message"]'
]

CONTAINER_FALLBACK_SELECTORS = [
    '[role="listitem"]',
    '[data-qa*="message"]',
    '[class*="message"]',
    '.p-rich_text_section',
    '[data-qa="message_content"]',
    '.c-message_kit__message_container',
    'div[data-qa]',
    '.c-virtual_list__scroll_container > div',
    '[data-qa="flexpane_body"] > div > div'
]

GENERAL_MESSAGE_SELECTORS = [
    '[data-qa="virtual-list-item"]:has(.c-message_kit__message)',
    '.c-virtual_list__item:has(.c-message_kit__message)',
    '.c-message_kit__message',
    '.c-virtual_list__item',
    '.c-message',
    '[data-qa="message"]',
    '.c-message_kit__message_container',
    '.p-rich_text_section',
    '[data-qa="message_content"]',
    '[class*="message"]'
]

GENERAL_FALLBACK_SELECTORS = [
    '[data-qa="message"]',
    '.c-message',
    '.c-message_list__item',
    '[class*="message"]',
    '.p-rich_text_section'
]

THREAD_TITLE_SELECTORS = [
    '.p-flexpane__title_container',
    '[data-qa="thread_header"]',
    '.p-thread_view__header'
]

THREAD_LIST_SELECTORS = [
    '.c-virtual_list__scroll_container[role="list"]',
    '[data-qa="virtual-list-item"]',
    '.c-virtual_list__item'
]

THREAD_HEADER_SELECTORS = [
    '[data-qa="thread_header"]',
    '.p-thread_view__header',
    '.p-threads_flexpane__header',
    '.p-flexpane_header',
    '.c-message_kit__thread_message--root',
    '.c-message_kit__message--first'
]

THREAD_ANCESTOR_SELECTOR = '[data-qa="threads_flexpane"], .p-threads_flexpane, .p-thread_view'
MAIN_MESSAGE_AREA_SELECTOR = '.p-message_pane__foreground, .c-message_list'

MAIN_CHANNEL_WIDTH_RATIO = 0.6

# Aggressive fallback scoring. Weights are empirical and not known to be optimal;
# recalibrate against recorded page fixtures before changing them.
AUTHOR_MARKER_WEIGHT = 3
TIMESTAMP_MARKER_WEIGHT = 2
SUBSTANTIAL_TEXT_WEIGHT = 1
DEEP_NESTING_PENALTY = -2
MANAGEABLE_CHILDREN_WEIGHT = 1
DATA_QA_WEIGHT = 1
MIN_FALLBACK_SCORE = 2
MAX_FALLBACK_DEPTH = 10

TIME_PATTERN = re.compile(r'\d{1,2}:\d{2}')

@dataclass
class ClassificationScore:
    """Signals gathered for one aggressive-fallback candidate"""
    has_author_marker: bool = False
    has_timestamp_marker: bool = False
    has_substantial_text: bool = False
    nested_too_deep: bool = False
    manageable_child_count: bool = False
    has_data_qa: bool = False

    @property
    def score(self) -> int:
        score = 0
        if self.has_author_marker:
            score += AUTHOR_MARKER_WEIGHT
        if self.has_timestamp_marker:
            score += TIMESTAMP_MARKER_WEIGHT
        if self.has_substantial_text:
            score += SUBSTANTIAL_TEXT_WEIGHT
        if self.nested_too_deep:
            score += DEEP_NESTING_PENALTY
        if self.manageable_child_count:
            score += MANAGEABLE_CHILDREN_WEIGHT
        if self.has_data_qa:
            score += DATA_QA_WEIGHT
        return score

class ElementClassifier:
    """Locates the thread panel and its message elements in a page snapshot"""

    def __init__(self, page: PageSource):
        self.page = page

    def find_thread_container(self) -> Optional[Tag]:
        """
        Find the visible thread panel

        Returns:
            The thread container element or None
        """
        document = self.page.document
        for selector in THREAD_SELECTORS:
            element = document.select_one(selector)
            if element is not None and self.is_visible_thread_container(element):
                logger.debug(f"Found thread container with selector: {selector}")
                return element

        logger.debug("No thread container found with any selector")
        return None

    def is_visible_thread_container(self, element: Tag) -> bool:
        """Check rendered size plus co-occurring thread structure"""
        if not self.page.rect(element).has_area:
            logger.debug("Thread container has no rendered area")
            return False

        has_thread_title = select_first(element, THREAD_TITLE_SELECTORS) is not None
        has_thread_content = select_first(element, THREAD_LIST_SELECTORS) is not None

        qa = data_qa(element)
        has_thread_identifiers = (
            has_class(element, 'p-threads_flexpane') or
            has_class(element, 'p-thread_view') or
            bool(qa and 'thread' in qa)
        )

        has_flexpane_body = (
            element.select_one('[data-qa="flexpane_body"]') is not None or
            has_class(element, 'p-flexpane__body')
        )

        is_valid = has_thread_title or has_flexpane_body or (has_thread_content and has_thread_identifiers)

        logger.debug(
            f"Thread container validation: title={has_thread_title}, content={has_thread_content}, "
            f"identifiers={has_thread_identifiers}, flexpane_body={has_flexpane_body}, valid={is_valid}"
        )
        return is_valid

    def find_message_elements(self, verbose: bool = True) -> List[Tag]:
        """
        Find all message elements of the thread

        Args:
            verbose: Log tier decisions at info level instead of debug

        Returns:
            Message elements in document order (score order for the aggressive tier)
        """
        log = logger.info if verbose else logger.debug
        container = self.find_thread_container()

        if container is None:
            log("No thread container found, falling back to general message search")
            return self.find_general_message_elements(verbose)

        document = self.page.document
        elements: List[Tag] = []
        used_selector = ''

        for selector in THREAD_MESSAGE_SELECTORS:
            try:
                elements = document.select(selector)
            except Exception as e:
                log(f"Error with thread selector {selector}: {e}")
                continue
            if elements:
                log(f"Found {len(elements)} thread messages with selector: {selector}")
                used_selector = selector
                break

        if not elements:
            log("No messages found with thread-specific selectors, searching within thread container...")
            elements = self.find_messages_in_container(container, verbose)
            used_selector = 'container-scoped'

        if not elements:
            log("No messages found with container search, trying aggressive fallback...")
            elements = self.find_messages_aggressive_fallback(container, verbose)
            used_selector = 'aggressive-fallback'

        filtered = self.filter_thread_messages(elements, container, verbose)
        log(f"Processing {len(filtered)} thread message elements using selector: {used_selector}")
        return filtered

    def find_general_message_elements(self, verbose: bool = True) -> List[Tag]:
        """Page-wide message search used when no thread panel is visible"""
        log = logger.info if verbose else logger.debug
        document = self.page.document

        for selector in GENERAL_MESSAGE_SELECTORS:
            try:
                elements = document.select(selector)
            except Exception as e:
                log(f"Error with selector {selector}: {e}")
                continue
            if elements:
                log(f"Found {len(elements)} messages with selector: {selector}")
                return list(elements)

        log("No messages found with any selector, trying fallback approach...")
        collected = []
        for selector in GENERAL_FALLBACK_SELECTORS:
            found = document.select(selector)
            if found:
                logger.debug(f"Fallback selector {selector} found {len(found)} elements")
            collected.extend(found)
        return unique_elements(collected)

    def find_messages_in_container(self, container: Tag, verbose: bool = True) -> List[Tag]:
        """Search message selectors scoped to the thread container"""
        log = logger.info if verbose else logger.debug

        for selector in CONTAINER_MESSAGE_SELECTORS:
            elements = container.select(selector)
            if elements:
                log(f"Found {len(elements)} messages in container with selector: {selector}")
                return list(elements)

        for selector in CONTAINER_FALLBACK_SELECTORS:
            elements = container.select(selector)
            candidates = [element for element in elements if self._looks_like_message(element)]
            if candidates:
                log(f"Found {len(candidates)} messages in container with fallback selector: {selector}")
                return candidates

        return []

    def _looks_like_message(self, element: Tag) -> bool:
        text = node_text(element)
        has_reasonable_length = 10 < len(text) < 10000
        qa = data_qa(element)
        has_message_structure = (
            element.select_one('.c-message_kit__message') is not None or
            element.select_one('[data-qa="message_content"]') is not None or
            has_class(element, 'c-message') or
            bool(qa and 'message' in qa)
        )
        return has_reasonable_length or has_message_structure

    def find_messages_aggressive_fallback(self, container: Tag, verbose: bool = True) -> List[Tag]:
        """
        Score every div in the container by message-like signals

        Args:
            container: Thread container to search
            verbose: Log the top candidates at info level

        Returns:
            Elements scoring at least MIN_FALLBACK_SCORE, highest score first
        """
        log = logger.info if verbose else logger.debug
        candidates = []

        for div in container.find_all('div'):
            text = node_text(div)
            if len(text) < 10 or len(text) > 5000:
                continue
            if is_message_input_element(div):
                continue

            signals = self.score_candidate(div, container, text)
            if signals.score >= MIN_FALLBACK_SCORE:
                candidates.append((signals.score, div, text))

        candidates.sort(key=lambda candidate: candidate[0], reverse=True)

        if candidates:
            preview = [(score, text[:100]) for score, _, text in candidates[:5]]
            log(f"Found {len(candidates)} potential messages with aggressive fallback: {preview}")

        return [div for _, div, _ in candidates]

    def score_candidate(self, div: Tag, container: Tag, text: Optional[str] = None) -> ClassificationScore:
        """Collect the classification signals for one candidate div"""
        if text is None:
            text = node_text(div)

        has_author_marker = (
            div.select_one('[data-qa*="user"]') is not None or
            div.select_one('[class*="user"]') is not None
        )
        has_timestamp_marker = (
            div.select_one('[data-qa*="timestamp"]') is not None or
            div.select_one('[class*="timestamp"]') is not None or
            div.select_one('time') is not None or
            TIME_PATTERN.search(text) is not None
        )
        has_substantial_text = (
            div.select_one('.p-rich_text_section') is not None or
            div.select_one('[data-qa="message_content"]') is not None or
            len(text) > 20
        )
        child_count = len(element_children(div))

        return ClassificationScore(
            has_author_marker=has_author_marker,
            has_timestamp_marker=has_timestamp_marker,
            has_substantial_text=has_substantial_text,
            nested_too_deep=self.get_element_depth(div, container) > MAX_FALLBACK_DEPTH,
            manageable_child_count=0 < child_count < 10,
            has_data_qa=bool(div.get('data-qa'))
        )

    def get_element_depth(self, element: Tag, container: Tag) -> int:
        """Number of ancestors between element and container"""
        depth = 0
        current = element
        while current is not None and current is not container and current.name not in ('body', '[document]'):
            depth += 1
            current = current.parent
        return depth

    def filter_thread_messages(self, elements: List[Tag], container: Optional[Tag], verbose: bool = True) -> List[Tag]:
        """
        Keep only genuine thread messages

        Args:
            elements: Candidate elements from any tier
            container: The thread container
            verbose: Log filtering summary at info level

        Returns:
            Elements inside the container, rendered, not composer controls,
            not in the main channel, and carrying message structure
        """
        if container is None:
            return list(elements)

        filtered = []
        for element in elements:
            if not contains(container, element):
                continue
            if not self.page.rect(element).has_area:
                continue
            if self.is_in_main_channel(element):
                continue
            if is_message_input_element(element):
                logger.debug(f"Filtering out message input element: {element.name} ({class_string(element)})")
                continue
            if not self._has_message_structure(element):
                continue
            filtered.append(element)

        log = logger.info if verbose else logger.debug
        log(f"Filtered {len(elements)} messages down to {len(filtered)} thread messages")
        return filtered

    def _has_message_structure(self, element: Tag) -> bool:
        qa = data_qa(element)
        return (
            element.select_one('.c-message_kit__message') is not None or
            element.select_one('.c-message__content') is not None or
            element.select_one('[data-qa="message_content"]') is not None or
            has_class(element, 'c-message_kit__message') or
            has_class(element, 'c-virtual_list__item') or
            bool(qa and 'message' in qa)
        )

    def is_in_main_channel(self, element: Tag) -> bool:
        """Check if an element belongs to the main channel view rather than the thread"""
        document = self.page.document
        in_thread = closest(element, THREAD_ANCESTOR_SELECTOR) is not None

        for selector in CHANNEL_SELECTORS:
            channel_container = document.select_one(selector)
            if channel_container is not None and contains(channel_container, element) and not in_thread:
                return True

        is_in_left_area = self.page.rect(element).left < self.page.viewport_width * MAIN_CHANNEL_WIDTH_RATIO
        is_in_main_message_area = closest(element, MAIN_MESSAGE_AREA_SELECTOR) is not None
        return is_in_left_area and is_in_main_message_area and not in_thread

    def find_thread_header(self, container: Optional[Tag]) -> Optional[Tag]:
        """Find the header element of the thread panel"""
        if container is None:
            return None

        document = self.page.document
        flexpane_header = document.select_one('.p-flexpane_header')
        if flexpane_header is not None:
            title = flexpane_header.select_one('.p-flexpane_header__primary_content .p-flexpane__title_container')
            if title is not None and 'Thread' in title.get_text():
                logger.debug("Found flexpane header with Thread title")
                return flexpane_header

        header = select_first(container, THREAD_HEADER_SELECTORS)
        if header is not None:
            return header

        if flexpane_header is not None:
            logger.debug("Using page-level flexpane header")
            return flexpane_header

        first_message = container.select_one('.c-virtual_list__item, .c-message_kit__message')
        if first_message is not None:
            logger.debug("Using first message as thread header")
        return first_message

    def find_thread_title(self, container: Optional[Tag]) -> Optional[str]:
        """Readable title of the thread panel, e.g. 'Thread #general'"""
        header = self.find_thread_header(container)
        if header is None:
            return None

        title_element = select_first(header, ['.p-flexpane__title_container', '.p-flexpane_header__primary_content'])
        title = TextNormalizer.clean_whitespace((title_element or header).get_text(' '))
        title = ' '.join(title.split())
        return title[:200] or None
