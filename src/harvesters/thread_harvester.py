#!/usr/bin/env python3
"""
Thread Harvester for Slack Thread Harvester
Wires classifier, transcriber, processor and collector together for one session.
"""

import logging
from datetime import datetime
from typing import Optional, List

from models import Message, Thread, ScrollSettings
from harvesters.element_classifier import ElementClassifier
from harvesters.incremental_collector import IncrementalCollector, ProgressCallback, WaitFunction
from harvesters.message_processor import MessageStreamProcessor
from harvesters.page_source import PageSource
from harvesters.rich_text_transcriber import RichTextTranscriber

logger = logging.getLogger(__name__)

class ThreadHarvester:
    """
    One harvesting session over one page

    Create a new instance per session; nothing is shared between instances.
    """

    def __init__(self, page: PageSource, settings: Optional[ScrollSettings] = None,
                 wait: Optional[WaitFunction] = None,
                 progress_callback: Optional[ProgressCallback] = None):
        self.page = page
        self.settings = settings or ScrollSettings()
        self.classifier = ElementClassifier(page)
        self.transcriber = RichTextTranscriber()
        self.processor = MessageStreamProcessor()
        self.collector = IncrementalCollector(
            page, self.classifier, self.transcriber, self.processor,
            settings=self.settings, wait=wait, progress_callback=progress_callback
        )

    async def harvest(self, url: Optional[str] = None) -> Thread:
        """
        Collect the complete open thread

        Args:
            url: Source reference recorded on the result

        Returns:
            Thread with processed messages (possibly empty)
        """
        started = datetime.now()
        messages = await self.collector.collect_complete_thread_messages()

        container = self.classifier.find_thread_container()
        title = self.classifier.find_thread_title(container)

        thread = Thread(
            messages=messages,
            title=title,
            url=url,
            metadata={
                'participants': len({message.author for message in messages}),
                'duration_seconds': round((datetime.now() - started).total_seconds(), 2),
                'scroll_settings': self.settings.to_dict()
            }
        )
        self._log_harvest_summary(thread)
        return thread

    async def extract_visible_messages(self) -> List[Message]:
        """Processed messages currently rendered, without scrolling"""
        await self.page.refresh()
        return self.processor.process_messages(self.collector.extract_current_messages(verbose=True))

    def _log_harvest_summary(self, thread: Thread):
        if not thread.messages:
            logger.warning("Harvest finished without any messages")
            return

        logger.info(f"Harvested {thread.get_message_count()} messages from "
                    f"{len(thread.participants())} participants"
                    + (f" in '{thread.title}'" if thread.title else ""))
        for author in thread.participants():
            count = sum(1 for message in thread.messages if message.author == author)
            logger.debug(f"  - {author}: {count} messages")
