#!/usr/bin/env python3
"""
Message Stream Processor for Slack Thread Harvester
Removes automated messages and reattaches continuation fragments to their authors.
"""

import logging
import re
from dataclasses import replace
from typing import List

from models import Message

logger = logging.getLogger(__name__)

SYSTEM_MESSAGE_PATTERNS = [re.compile(pattern, re.IGNORECASE) for pattern in [
    # reply counters and composer prompts
    r'\d+\s+replies?',
    r'reply…\s*also\s+send\s+to',
    r'also\s+send\s+to',
    r'\d+\s+people\s+will\s+be\s+notified',
    r'started\s+a\s+thread',
    # channel events
    r'joined\s+the\s+channel',
    r'left\s+the\s+channel',
    r'set\s+the\s+channel\s+topic',
    r'pinned\s+a\s+message',
    r'unpinned\s+a\s+message',
    r'uploaded\s+a\s+file',
    r'shared\s+a\s+file',
    r'added\s+an\s+integration',
    r'removed\s+an\s+integration',
    r'changed\s+the\s+channel\s+name',
    r'archived\s+this\s+channel',
    r'unarchived\s+this\s+channel',
    r'This\s+message\s+was\s+deleted',
    r'Message\s+deleted',
    r'has\s+joined\s+the\s+conversation',
    r'has\s+left\s+the\s+conversation',
    # expanders
    r'View\s+\d+\s+replies?',
    r'Show\s+less',
    r'Show\s+more',
    r'Load\s+more\s+messages',
    r'^\s*…\s*$',
    r'^\s*\.\.\.\s*$',
    # bare controls and placeholders
    r'^reply$',
    r'^thread$',
    r'^view\s+thread$',
    r'^reply…$',
    r'^reply\s+to\s+thread',
    r'^message$',
    r'^type\s+a\s+message',
    r'^send\s+a\s+message',
    r'^compose\s+message'
]]

NUMERIC_ONLY_PATTERN = re.compile(r'^\s*[\d\s\.\-\+\(\)]+\s*$')
UI_WORD_PATTERN = re.compile(r'^(reply|thread|view|show|load|more|less)$', re.IGNORECASE)
LETTER_PATTERN = re.compile(r'[a-zA-Z]')

class MessageStreamProcessor:
    """Post-processing of the raw accumulated message stream"""

    def process_messages(self, raw_messages: List[Message]) -> List[Message]:
        """
        Filter system messages, then merge continuation fragments

        Args:
            raw_messages: Messages in page order; left unmodified

        Returns:
            New list where every message has a real author
        """
        logger.debug(f"Processing {len(raw_messages)} raw messages")

        filtered = self.filter_system_messages(raw_messages)
        logger.debug(f"After system message filtering: {len(filtered)} messages")

        merged = self.merge_continuation_messages(filtered)
        logger.debug(f"After merging continuations: {len(merged)} messages")

        return merged

    def filter_system_messages(self, messages: List[Message]) -> List[Message]:
        """Drop unattributed messages that are Slack UI or automated notices"""
        kept = []
        for message in messages:
            if not message.is_unknown:
                kept.append(message)
            elif self.is_system_message(message.text):
                logger.debug(f"Filtering out system message: {message.text[:50]!r}")
            else:
                kept.append(message)
        return kept

    @staticmethod
    def is_system_message(text: str) -> bool:
        if not text or not text.strip():
            return True

        clean_text = text.strip()

        for pattern in SYSTEM_MESSAGE_PATTERNS:
            if pattern.search(clean_text):
                return True

        if len(clean_text) < 5 and not LETTER_PATTERN.search(clean_text):
            return True

        if NUMERIC_ONLY_PATTERN.match(clean_text):
            return True

        return bool(UI_WORD_PATTERN.match(clean_text))

    def merge_continuation_messages(self, messages: List[Message]) -> List[Message]:
        """
        Append each unattributed fragment to the nearest preceding authored message

        Fragments with no authored message before them are dropped.
        """
        processed: List[Message] = []

        for message in messages:
            if not message.is_unknown:
                processed.append(replace(message))
                continue

            if not processed:
                logger.debug(f"Skipping orphan fragment (no previous author): {message.text[:50]!r}")
                continue

            target = processed[-1]
            logger.debug(f"Merging continuation into message from {target.author}")
            target.text = self.merge_message_texts(target.text, message.text)

            if message.timestamp and (not target.timestamp or
                                      self.is_more_recent_timestamp(message.timestamp, target.timestamp)):
                target.timestamp = message.timestamp

        return processed

    @staticmethod
    def merge_message_texts(previous_text: str, continuation_text: str) -> str:
        previous = previous_text.strip()
        continuation = continuation_text.strip()

        if re.search(r'[.!?]\s*$', previous):
            return f"{previous} {continuation}"

        if re.search(r'[\n\r]\s*$', previous) or re.search(r'[-–—]\s*$', previous):
            return f"{previous}{continuation}"

        return f"{previous} {continuation}"

    @staticmethod
    def is_more_recent_timestamp(candidate: str, current: str) -> bool:
        """Lexical comparison; Slack renders comparable strings within one thread"""
        return candidate > current
