#!/usr/bin/env python3
"""
Text Normalizer for Slack Thread Harvester
Whitespace and character cleanup for transcribed message text.
"""

import re
import unicodedata
import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Markdown links produced by the transcriber: [label](target)
_LINK_PATTERN = re.compile(r'\[([^\]\n]*)\]\(\s*([^)\s]*)\s*\)')

class TextNormalizer:
    """Text normalization for transcribed Slack content"""

    @staticmethod
    def normalize_text(text: Optional[str]) -> str:
        """
        Normalize raw page text before structural cleanup

        Args:
            text: Text taken from the page snapshot

        Returns:
            NFC-normalized text without invisible characters
        """
        if not text:
            return ""

        text = text.replace('\x00', '').replace('\ufffd', '')

        try:
            text = unicodedata.normalize('NFC', text)
        except Exception as e:
            logger.debug(f"Unicode normalization failed: {e}")

        return TextNormalizer._clean_problematic_chars(text)

    @staticmethod
    def _clean_problematic_chars(text: str) -> str:
        """Remove zero-width characters and map exotic spaces to plain ones"""
        replacements = {
            '\u200b': '',  # zero-width space
            '\u200c': '',  # zero-width non-joiner
            '\u200d': '',  # zero-width joiner
            '\ufeff': '',  # byte order mark
            '\u00a0': ' ', # non-breaking space
        }

        for old, new in replacements.items():
            text = text.replace(old, new)

        text = re.sub(r'[\u2000-\u200a\u2028\u2029\u202f\u205f\u3000]', ' ', text)
        text = text.replace('\r\n', '\n').replace('\r', '\n')
        return text

    @staticmethod
    def clean_whitespace(text: str) -> str:
        """Collapse runs of spaces and trim around line breaks"""
        if not text:
            return ""
        text = re.sub(r'[ \t]+', ' ', text)
        text = re.sub(r'[ ]*\n[ ]*', '\n', text)
        return text.strip()

    @staticmethod
    def clean_cell_text(text: str) -> str:
        """Flatten table cell text onto one line and escape pipes"""
        text = re.sub(r'\n+', ' ', text)
        text = re.sub(r'\s+', ' ', text)
        text = text.replace('|', '\\|')
        return text.strip()

    @staticmethod
    def tighten_links(text: str) -> str:
        """Remove stray spaces inside and right after markdown links"""
        text = re.sub(r'\]\s*\(\s*', '](', text)
        text = _LINK_PATTERN.sub(lambda match: f"[{match.group(1).strip()}]({match.group(2)})", text)
        # "[a](b) ." -> "[a](b)."
        text = re.sub(r'(\]\([^)\s]*\)) +([.,!?;:])', r'\1\2', text)
        # "( [a](b)" -> "([a](b)"
        text = re.sub(r'\( +\[', '([', text)
        return text

    @staticmethod
    def final_text_cleanup(text: str) -> str:
        """
        Final layout pass over a transcribed message

        Args:
            text: Concatenated output of the structural walk

        Returns:
            Text with collapsed spaces, at most one blank line in a row,
            adjacent list items, and tight markdown links
        """
        if not text:
            return ""

        text = TextNormalizer.normalize_text(text)
        # leading indentation of list items survives, other runs collapse
        text = re.sub(r'(?<=\S)[ \t]+', ' ', text)
        text = re.sub(r'[ \t]+\n', '\n', text)
        text = re.sub(r'\n[ \t]+(?![ \t]|- |\d+\. )', '\n', text)
        text = re.sub(r'\n{3,}', '\n\n', text)
        text = re.sub(r'\n\n([ \t]*\d+\.)', r'\n\1', text)
        text = re.sub(r'\n\n([ \t]*-)', r'\n\1', text)
        text = TextNormalizer.tighten_links(text)
        return text.strip()

    @staticmethod
    def is_valid_message_content(text: str) -> bool:
        """Check if text appears to be real message content rather than garbled output"""
        if not text or len(text.strip()) < 1:
            return False

        control_char_count = sum(1 for char in text
                                 if unicodedata.category(char)[0] == 'C' and char not in '\n\t')
        control_ratio = control_char_count / len(text)

        if control_ratio > 0.3:
            logger.debug(f"Rejecting text with high control character ratio: {control_ratio}")
            return False

        return True
