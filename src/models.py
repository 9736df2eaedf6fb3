#!/usr/bin/env python3
"""
Data models for Slack Thread Harvester
"""

import re
from dataclasses import dataclass, field, fields
from typing import List, Optional, Dict, Any, Set
from datetime import datetime

UNKNOWN_AUTHOR = "Unknown User"

@dataclass
class Message:
    """Represents a single harvested thread message"""
    author: str
    text: str
    timestamp: str = ""

    @property
    def is_unknown(self) -> bool:
        return self.author == UNKNOWN_AUTHOR

    def fingerprint(self) -> str:
        """Identity key used to detect messages already seen in a prior pass"""
        text_preview = re.sub(r'\s+', ' ', self.text[:100]).strip()
        author_part = self.author or 'unknown'
        time_part = self.timestamp or 'no-time'
        return f"{author_part}:{time_part}:{text_preview}"

    def to_dict(self) -> Dict[str, str]:
        return {
            'author': self.author,
            'text': self.text,
            'timestamp': self.timestamp
        }

@dataclass
class ScrollSettings:
    """Tunable pagination parameters (delays in ms, distances in px, timeout in s)"""
    scroll_delay: int = 400
    scroll_step: int = 600
    min_scroll_amount: int = 100
    max_scroll_attempts: int = 300
    no_new_messages_threshold: int = 12
    render_delay: int = 200
    timeout: int = 300

    def __post_init__(self):
        for name in ('scroll_delay', 'scroll_step', 'min_scroll_amount',
                     'max_scroll_attempts', 'no_new_messages_threshold', 'timeout'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")

        if not isinstance(self.render_delay, int) or self.render_delay < 0:
            raise ValueError(f"render_delay must be a non-negative integer, got {self.render_delay!r}")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ScrollSettings":
        """Build settings from a config mapping, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in (data or {}).items() if key in known}
        return cls(**values)

    def to_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

@dataclass
class CollectionState:
    """Mutable state of a single incremental collection run"""
    attempts: int = 0
    consecutive_no_new_rounds: int = 0
    seen_keys: Set[str] = field(default_factory=set)
    accumulated: List[Message] = field(default_factory=list)
    last_scroll_top: float = -1
    stuck_scroll_count: int = 0

    def add(self, message: Message) -> bool:
        """Append message unless its fingerprint was already seen"""
        key = message.fingerprint()
        if key in self.seen_keys:
            return False

        self.seen_keys.add(key)
        self.accumulated.append(message)
        return True

@dataclass
class Thread:
    """Represents a harvested thread transcript"""
    messages: List[Message]
    title: Optional[str] = None
    url: Optional[str] = None
    extracted_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if self.extracted_at is None:
            self.extracted_at = datetime.now()

    def participants(self) -> List[str]:
        """Get distinct authors in order of first appearance"""
        seen = []
        for message in self.messages:
            if message.author not in seen:
                seen.append(message.author)
        return seen

    def get_message_count(self) -> int:
        """Get total message count"""
        return len(self.messages)
