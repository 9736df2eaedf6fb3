#!/usr/bin/env python3
"""
Common Harvesting Components for Slack Thread Harvester
Shared DOM predicates and error types used by the classifier and transcriber.
"""

import logging
from typing import Optional, List, Iterable
from datetime import datetime
from bs4 import BeautifulSoup
from bs4.element import Tag

logger = logging.getLogger(__name__)

INPUT_CLASSES = [
    'c-texty_input',
    'ql-container',
    'ql-editor',
    'ql-clipboard',
    'ql-placeholder',
    'c-composer',
    'c-message_input',
    'p-message_input',
    'c-texty_input_unstyled'
]

INPUT_DESCENDANT_SELECTORS = [
    '[data-qa="message_input"]',
    '.ql-editor',
    '.c-texty_input',
    '[contenteditable="true"]',
    'textarea',
    'input[type="text"]'
]

PLACEHOLDER_TEXTS = ['Reply…', 'Reply to thread', 'Message', 'Type a message']

THREAD_SEPARATOR_CLASS = 'p-thread_separator_row_generic'

class HarvestError(Exception):
    """Base exception for harvesting errors"""

    def __init__(self, message: str, error_type: str = "general"):
        super().__init__(message)
        self.error_type = error_type
        self.timestamp = datetime.now()

class PageLoadError(HarvestError):
    """Raised when a page source cannot be read or fetched"""

    def __init__(self, message: str):
        super().__init__(message, error_type="page_load")

def is_element(node) -> bool:
    """True for real element nodes (not strings and not the document itself)"""
    return isinstance(node, Tag) and not isinstance(node, BeautifulSoup)

def has_class(element: Tag, class_name: str) -> bool:
    classes = element.get('class') or []
    if isinstance(classes, str):
        classes = classes.split()
    return class_name in classes

def class_string(element: Tag) -> str:
    classes = element.get('class') or []
    if isinstance(classes, str):
        return classes
    return ' '.join(classes)

def data_qa(element: Tag) -> Optional[str]:
    return element.get('data-qa')

def node_text(element) -> str:
    """Equivalent of textContent, trimmed"""
    return element.get_text().strip()

def element_children(element: Tag) -> List[Tag]:
    return [child for child in element.children if is_element(child)]

def contains(container: Tag, element: Tag) -> bool:
    """True when element is container or one of its descendants"""
    if container is element:
        return True
    return any(parent is container for parent in element.parents)

def matches(element: Tag, selector: str) -> bool:
    try:
        return element.css.match(selector)
    except Exception as e:
        logger.debug(f"Selector match failed for {selector}: {e}")
        return False

def closest(element: Tag, selector: str) -> Optional[Tag]:
    """Nearest inclusive ancestor matching the selector"""
    candidates = [element] + [parent for parent in element.parents if is_element(parent)]
    for candidate in candidates:
        if matches(candidate, selector):
            return candidate
    return None

def select_first(root, selectors: Iterable[str]) -> Optional[Tag]:
    """First element matching any selector, trying selectors in order"""
    for selector in selectors:
        try:
            found = root.select_one(selector)
        except Exception as e:
            logger.debug(f"Invalid selector {selector}: {e}")
            continue
        if found is not None:
            return found
    return None

def unique_elements(elements: Iterable[Tag]) -> List[Tag]:
    """Remove duplicate element references while preserving order"""
    seen = set()
    unique = []
    for element in elements:
        if id(element) in seen:
            continue
        seen.add(id(element))
        unique.append(element)
    return unique

def is_message_input_element(element: Tag) -> bool:
    """
    Check if an element is a message composer or other UI control to exclude

    Args:
        element: Element to check

    Returns:
        True if the element should never be treated as message content
    """
    qa = data_qa(element)
    if qa and (qa == 'message_input' or 'input' in qa or 'composer' in qa):
        return True

    for class_name in INPUT_CLASSES:
        if has_class(element, class_name):
            return True

    if has_class(element, THREAD_SEPARATOR_CLASS):
        return True

    if select_first(element, INPUT_DESCENDANT_SELECTORS) is not None:
        return True

    if element.select_one(f'.{THREAD_SEPARATOR_CLASS}') is not None:
        return True

    # Composer wrappers carry the thread identity attributes
    if element.has_attr('data-thread-ts') or element.has_attr('data-channel-id'):
        return True

    if node_text(element) in PLACEHOLDER_TEXTS:
        return True

    aria_label = element.get('aria-label')
    if aria_label and ('Reply' in aria_label or 'Message' in aria_label or 'input' in aria_label):
        return True

    return False
