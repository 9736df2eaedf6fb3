#!/usr/bin/env python3
"""
Output Formatter for Slack Thread Harvester
Formats harvested threads as a Markdown transcript, a summarization prompt or JSON.
"""

import json
from typing import Dict, Any, List, Optional
import logging

from models import Thread, Message

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ('markdown', 'prompt', 'json')
MESSAGES_PLACEHOLDER = '{MESSAGES}'

class TranscriptFormatter:
    """Formats threads for reading or for an LLM summarization prompt"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config

    def format_thread(self, thread: Thread, fmt: Optional[str] = None) -> str:
        """
        Format a thread

        Args:
            thread: Harvested thread
            fmt: One of OUTPUT_FORMATS; defaults to the config's output.format

        Returns:
            Formatted text

        Raises:
            ValueError: For an unknown format
        """
        fmt = fmt or self.config.get('output', {}).get('format', 'markdown')
        logger.info(f"Formatting thread with {len(thread.messages)} messages as {fmt}")

        if fmt == 'markdown':
            return self.format_markdown(thread)
        if fmt == 'prompt':
            return self.format_prompt(thread)
        if fmt == 'json':
            return self.format_json(thread)
        raise ValueError(f"Unknown output format: {fmt}")

    def format_messages(self, messages: List[Message]) -> str:
        """Numbered transcript block: '1. **author** (time):' followed by the text"""
        return '\n'.join(
            f"{index}. **{message.author}** ({message.timestamp}):\n{message.text}\n"
            for index, message in enumerate(messages, start=1)
        )

    def format_markdown(self, thread: Thread) -> str:
        lines = []

        if self.config.get('output', {}).get('include_metadata', True):
            lines.extend(self._format_metadata(thread))
            lines.append("")

        lines.append(self.format_messages(thread.messages))
        return "\n".join(lines)

    def format_prompt(self, thread: Thread) -> str:
        """Substitute the transcript into the configured prompt template"""
        template = self.config.get('output', {}).get('prompt_template') or MESSAGES_PLACEHOLDER
        messages = self.format_messages(thread.messages)

        if MESSAGES_PLACEHOLDER in template:
            return template.replace(MESSAGES_PLACEHOLDER, messages)
        return f"{template}\n\n{messages}"

    def format_json(self, thread: Thread) -> str:
        data = {
            'title': thread.title,
            'url': thread.url,
            'extracted_at': thread.extracted_at.isoformat(),
            'participants': thread.participants(),
            'messages': [message.to_dict() for message in thread.messages]
        }
        if thread.metadata:
            data['metadata'] = thread.metadata
        return json.dumps(data, ensure_ascii=False, indent=2)

    def _format_metadata(self, thread: Thread) -> list:
        """
        Format thread metadata

        Args:
            thread: Thread object

        Returns:
            List of metadata lines
        """
        lines = []

        if thread.title:
            lines.append(f"### {thread.title}")

        if thread.url:
            lines.append(f"**Source:** {thread.url}")

        lines.append(f"**Extracted:** {thread.extracted_at.strftime('%Y-%m-%d %H:%M:%S')}")
        lines.append(f"**Messages:** {thread.get_message_count()}")

        participants = thread.participants()
        if participants:
            lines.append(f"**Participants:** {', '.join(participants)}")

        return lines
