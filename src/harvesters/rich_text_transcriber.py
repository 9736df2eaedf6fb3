#!/usr/bin/env python3
"""
Rich Text Transcriber for Slack Thread Harvester
Converts a message element's formatted content into flat markdown-like text.
"""

import logging
import re
from typing import Optional, List

from bs4.element import Tag, NavigableString, PreformattedString

from models import Message, UNKNOWN_AUTHOR
from harvesters.common_harvester import (
    element_children, has_class, is_element, is_message_input_element, select_first
)
from harvesters.text_normalizer import TextNormalizer

logger = logging.getLogger(__name__)

USER_NAME_SELECTORS = [
    '[data-qa="message_sender_name"]',
    '.c-message__sender_link',
    '.c-message__sender',
    '.c-message_kit__sender',
    '.c-message_kit__sender_link',
    '[data-qa="message_sender"]',
    '.p-rich_text_block .c-link'
]

TIME_SELECTORS = [
    '.c-timestamp',
    '[data-qa="message_timestamp"]',
    '.c-message__time'
]

CONTENT_SELECTORS = [
    '.c-message_kit__blocks',
    '.c-message__message_blocks',
    '.p-block_kit_renderer',
    '.c-message__body',
    '.p-rich_text_section',
    '[data-qa="message_text"]',
    '.c-message__text'
]

SKIP_TAGS = {'script', 'style', 'button', 'input', 'textarea', 'select', 'option'}

BLOCK_TAGS = {'div', 'p', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6'}

CODEMIRROR_CELL_SELECTOR = '.cm-variable, .cm-string, .cm-number, .cm-atom, .cm-keyword'

INVALID_USER_NAME_PATTERNS = [
    re.compile(r'^\s*$'),
    re.compile(r'^[\d\s\.\-\+\(\)]+$'),
    re.compile(r'^(reply|thread|view|show|load|more|less)$', re.IGNORECASE),
    re.compile(r'^\d+\s+(replies?|people)', re.IGNORECASE),
    re.compile(r'^(also\s+send\s+to|reply…)', re.IGNORECASE),
    re.compile(r'^[\.\,\!\?\:\;]+$'),
    re.compile(r'^(am|pm|at|on|in|the|and|or|but|so|also)$', re.IGNORECASE)
]

MAX_USER_NAME_LENGTH = 50

class RichTextTranscriber:
    """Transcribes Slack message elements into Message records"""

    def extract_single_message(self, element: Optional[Tag]) -> Optional[Message]:
        """
        Extract author, timestamp and body from one message element

        Args:
            element: Message element from the classifier

        Returns:
            Message, or None for composer inputs and separator rows
        """
        if element is None:
            return None

        if is_message_input_element(element):
            logger.debug("Skipping message input element during extraction")
            return None

        return Message(
            author=self.extract_user_name(element),
            text=self.extract_complete_message_text(element),
            timestamp=self.extract_timestamp(element)
        )

    def extract_user_name(self, element: Tag) -> str:
        """First valid author name found by the ordered selectors, else the unknown sentinel"""
        rejected = []

        for selector in USER_NAME_SELECTORS:
            user_element = element.select_one(selector)
            if user_element is None:
                continue

            raw_name = user_element.get_text().strip()
            cleaned = self.clean_duplicate_user_name(raw_name)
            if self.is_valid_user_name(cleaned):
                if raw_name != cleaned:
                    logger.debug(f"Cleaned username: {raw_name!r} -> {cleaned!r}")
                return cleaned
            rejected.append((selector, raw_name))

        if rejected:
            logger.debug(f"No valid username found, rejected candidates: {rejected}")
        return UNKNOWN_AUTHOR

    @staticmethod
    def is_valid_user_name(name: str) -> bool:
        if not name:
            return False

        for pattern in INVALID_USER_NAME_PATTERNS:
            if pattern.search(name):
                return False

        return len(name) <= MAX_USER_NAME_LENGTH

    @staticmethod
    def clean_duplicate_user_name(name: str) -> str:
        """
        Undo the name repetition that Slack's markup produces

        "John Doe John Doe" -> "John Doe", "Ann Ann" -> "Ann",
        "John John Doe" -> "John Doe"
        """
        if not name:
            return name

        name = name.replace('&nbsp;', ' ').replace('\u00a0', ' ')
        name = re.sub(r'\s+', ' ', name).strip()

        words = name.split(' ')
        if len(words) >= 4 and len(words) % 2 == 0:
            half = len(words) // 2
            first_half = ' '.join(words[:half])
            if first_half == ' '.join(words[half:]):
                return first_half

        cleaned_words: List[str] = []
        for word in words:
            if word and (not cleaned_words or cleaned_words[-1] != word):
                cleaned_words.append(word)

        if len(cleaned_words) >= 3 and cleaned_words[0] == cleaned_words[1]:
            del cleaned_words[1]

        return ' '.join(cleaned_words)

    def extract_timestamp(self, element: Tag) -> str:
        """Timestamp title (full date) or visible text of the first time element"""
        for selector in TIME_SELECTORS:
            time_element = element.select_one(selector)
            if time_element is not None:
                return time_element.get('title') or time_element.get_text().strip()
        return ''

    def extract_complete_message_text(self, element: Tag) -> str:
        content = select_first(element, CONTENT_SELECTORS)
        if content is None:
            content = element

        raw_text = self.extract_text_with_structure(content)
        return TextNormalizer.final_text_cleanup(raw_text)

    def extract_text_with_structure(self, node) -> str:
        """Recursive structural walk producing markdown-like text"""
        if isinstance(node, PreformattedString):
            # comments, CDATA, doctypes
            return ''
        if isinstance(node, NavigableString):
            return str(node)
        if not is_element(node):
            return ''

        name = node.name
        if name in SKIP_TAGS:
            return ''
        if is_message_input_element(node):
            return ''
        if name == 'br':
            return '\n'
        if name == 'li':
            return self.handle_list_item(node)

        special = self.handle_special_element(node)
        if special is not None:
            return special

        text = ''.join(self.extract_text_with_structure(child) for child in node.children)
        return self.handle_block_element(node, text)

    def handle_special_element(self, element: Tag) -> Optional[str]:
        name = element.name

        if has_class(element, 'CodeMirror-code'):
            return self.handle_codemirror_table(element)

        if name == 'table':
            return self.handle_html_table(element)

        if has_class(element, 'c-member_slug'):
            label = element.get('data-member-label')
            if label:
                href = element.get('href')
                return f" [{label}]({href}) " if href else f" {label} "

        if name == 'a' and (element.get('href') or has_class(element, 'c-link')):
            return self.handle_link_element(element)

        if name in ('strong', 'b'):
            return self._wrap('**', self.extract_children_text(element))

        if name in ('em', 'i'):
            return self._wrap('*', self.extract_children_text(element))

        if name == 'code':
            return self._wrap('`', self.extract_children_text(element))

        if name == 'pre':
            body = ''.join(self.extract_text_with_structure(child) for child in element.children)
            body = body.strip('\n')
            if not body.strip():
                return ''
            return f"\n```\n{body}\n```\n"

        return None

    @staticmethod
    def _wrap(marker: str, text: str) -> str:
        return f"{marker}{text}{marker}" if text else ''

    def handle_link_element(self, element: Tag) -> str:
        link_text = element.get_text().strip()
        href = element.get('href')

        if href and link_text:
            return f" [{link_text}]({href}) "
        if href:
            return f" [{href}]({href}) "
        return f" {link_text} "

    def handle_block_element(self, element: Tag, text: str) -> str:
        name = element.name

        if re.match(r'^h[1-6]$', name):
            level = int(name[1])
            return f"{'#' * level} {TextNormalizer.clean_whitespace(text)}\n\n"

        if name in BLOCK_TAGS and text and not text.endswith('\n'):
            text += '\n'

        if name in ('ol', 'ul') and text and not text.endswith('\n\n'):
            text += '\n'

        return text

    def handle_list_item(self, element: Tag) -> str:
        """
        One list item on its own line, indented two spaces per nesting level

        Nested lists inside the item follow on their own lines.
        """
        indent = '  ' * self.get_list_level(element)

        inline_parts = []
        nested_parts = []
        for child in element.children:
            text = self.extract_text_with_structure(child)
            if is_element(child) and child.name in ('ol', 'ul'):
                nested_parts.append(text)
            else:
                inline_parts.append(text)

        clean_text = TextNormalizer.clean_whitespace(''.join(inline_parts))
        nested = ''.join(nested_parts).strip('\n')
        nested = f"{nested}\n" if nested else ''

        list_parent = element.find_parent(['ol', 'ul'])
        if list_parent is not None and list_parent.name == 'ol':
            siblings = element_children(element.parent)
            index = next(i for i, sibling in enumerate(siblings) if sibling is element) + 1
            return f"{indent}{index}. {clean_text}\n{nested}"

        return f"{indent}- {clean_text}\n{nested}"

    @staticmethod
    def get_list_level(list_item: Tag) -> int:
        level = sum(1 for parent in list_item.parents if parent.name in ('ol', 'ul'))
        return max(0, level - 1)

    def extract_children_text(self, element: Tag) -> str:
        return element.get_text().strip()

    def handle_codemirror_table(self, element: Tag) -> str:
        """CodeMirror grids (CSV previews) rendered as a markdown table"""
        table_data = []
        for row in element.select('.CodeMirror-line'):
            cells = [cell.get_text().strip() for cell in row.select(CODEMIRROR_CELL_SELECTOR)]
            cells = [cell for cell in cells if cell]
            if cells:
                table_data.append(cells)

        if not table_data:
            return ''

        return self._render_markdown_table(table_data)

    def handle_html_table(self, element: Tag) -> str:
        """
        HTML tables rendered as a markdown pipe table

        The header comes from thead, else from th cells, else the first row
        stands in for it. Short rows are padded to the widest row.
        """
        table_data: List[List[str]] = []
        thead = element.find('thead')
        th_elements = element.find_all('th')
        has_header = thead is not None or len(th_elements) > 0

        if has_header:
            header_cells = thead.find_all(['th', 'td']) if thead is not None else th_elements
            header_row = [self.extract_cell_text(cell) for cell in header_cells]
            if header_row:
                table_data.append(header_row)

        body = element.find('tbody') or element
        for row in body.find_all('tr'):
            if thead is not None and row.find_parent('thead') is thead:
                continue
            if has_header and row.find('th') is not None and table_data:
                continue

            row_data = [self.extract_cell_text(cell) for cell in row.find_all(['td', 'th'])]
            if row_data:
                table_data.append(row_data)

        if not table_data:
            return ''

        logger.debug(f"Converted HTML table with {len(table_data)} rows")
        return f"\n\n{self._render_markdown_table(table_data)}\n"

    @staticmethod
    def _render_markdown_table(table_data: List[List[str]]) -> str:
        column_count = max(len(row) for row in table_data)
        lines = []
        for index, row in enumerate(table_data):
            padded = row + [''] * (column_count - len(row))
            lines.append('| ' + ' | '.join(padded) + ' |')
            if index == 0:
                lines.append('|' + '---|' * column_count)
        return '\n'.join(lines) + '\n'

    def extract_cell_text(self, cell: Tag) -> str:
        text = ''.join(self.extract_text_with_structure(child) for child in cell.children)
        return TextNormalizer.clean_cell_text(text)
