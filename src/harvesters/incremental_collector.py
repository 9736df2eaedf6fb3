#!/usr/bin/env python3
"""
Incremental Collector for Slack Thread Harvester
Drives the scroll loop over a virtualized thread list and accumulates every message
that is rendered along the way.
"""

import asyncio
import logging
from typing import Optional, List, Callable, Awaitable

from models import Message, ScrollSettings, CollectionState
from harvesters.common_harvester import HarvestError
from harvesters.element_classifier import ElementClassifier
from harvesters.message_processor import MessageStreamProcessor
from harvesters.page_source import PageSource, ScrollState
from harvesters.rich_text_transcriber import RichTextTranscriber
from harvesters.text_normalizer import TextNormalizer

logger = logging.getLogger(__name__)

STUCK_DISTANCE = 5
STUCK_ROUNDS = 3
NEAR_BOTTOM_MARGIN = 50
BOTTOM_MARGIN = 20
SETTLED_DISTANCE = 10
TALL_VIEWPORT = 800
TALL_VIEWPORT_RATIO = 0.8

ProgressCallback = Callable[[int, int], None]
WaitFunction = Callable[[float], Awaitable[None]]

class IncrementalCollector:
    """
    Scroll-and-scan loop for one thread

    Each round scans the rendered messages, records the unseen ones, then
    scrolls one step. Collection ends when several rounds in a row find
    nothing new, when the bottom of the list is confirmed, or when the
    attempt limit or the timeout is reached. Whatever was gathered is always
    post-processed and returned.
    """

    def __init__(self, page: PageSource, classifier: ElementClassifier,
                 transcriber: RichTextTranscriber, processor: MessageStreamProcessor,
                 settings: Optional[ScrollSettings] = None,
                 wait: Optional[WaitFunction] = None,
                 progress_callback: Optional[ProgressCallback] = None):
        self.page = page
        self.classifier = classifier
        self.transcriber = transcriber
        self.processor = processor
        self.settings = settings or ScrollSettings()
        # receives seconds, like asyncio.sleep
        self.wait = wait or asyncio.sleep
        self.progress_callback = progress_callback

    async def collect_complete_thread_messages(self) -> List[Message]:
        """
        Harvest every message of the open thread

        Never raises for page failures; whatever could be read is returned.

        Returns:
            Processed messages in thread order; empty if no thread panel is open
        """
        logger.info("Starting complete thread collection...")
        try:
            await self.page.refresh()
        except Exception as e:
            logger.warning(f"Could not read the page: {e}")
            return []

        if self.classifier.find_thread_container() is None:
            logger.warning("No thread container found; is a thread open?")
            return []

        try:
            scroll = await self.page.scroll_state()
        except Exception as e:
            logger.warning(f"Could not read scroll position: {e}")
            scroll = None

        if scroll is None:
            logger.warning("No scroll container found, using currently visible messages")
            return self.processor.process_messages(self.extract_current_messages(verbose=True))

        state = CollectionState()
        try:
            await self.scroll_to_top()
            await asyncio.wait_for(self._collect(state), timeout=self.settings.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Collection timed out after {self.settings.timeout}s, "
                           f"keeping {len(state.accumulated)} collected messages")
        except Exception as e:
            logger.warning(f"Scroll collection aborted: {e}")

        raw_messages = list(state.accumulated)
        if not raw_messages:
            logger.warning("Scroll collection found no messages, falling back to visible messages")
            try:
                await self.page.refresh()
                raw_messages = self.extract_current_messages(verbose=True)
            except Exception as e:
                logger.warning(f"Could not read visible messages: {e}")

        processed = self.processor.process_messages(raw_messages)
        logger.info(f"Collected {len(raw_messages)} raw messages in {state.attempts} scroll rounds, "
                    f"{len(processed)} after processing")
        return processed

    async def _collect(self, state: CollectionState) -> None:
        while state.attempts < self.settings.max_scroll_attempts:
            try:
                added = await self.scan(state)
            except Exception as e:
                logger.warning(f"Scan round {state.attempts + 1} failed: {e}")
                added = 0

            # a round counts once, either as progress or as no progress
            progressed = added > 0
            if progressed:
                state.consecutive_no_new_rounds = 0
            elif self._count_no_progress(state):
                return

            try:
                reached_bottom = await self.paginate(state)
            except Exception as e:
                logger.warning(f"Scroll round {state.attempts + 1} failed: {e}")
                reached_bottom = False
                if progressed and self._count_no_progress(state):
                    return

            state.attempts += 1

            if reached_bottom:
                logger.info("Confirmed bottom of thread, stopping")
                return

        logger.info(f"Reached maximum of {self.settings.max_scroll_attempts} scroll attempts")

    def _count_no_progress(self, state: CollectionState) -> bool:
        """Record a round without progress; True once the threshold is reached"""
        threshold = self.settings.no_new_messages_threshold
        state.consecutive_no_new_rounds += 1
        logger.debug(f"No progress, count: {state.consecutive_no_new_rounds}/{threshold}")
        if state.consecutive_no_new_rounds >= threshold:
            logger.info("No new messages for several rounds, stopping")
            return True
        return False

    async def scan(self, state: CollectionState) -> int:
        """Refresh the snapshot and record unseen messages; returns how many were new"""
        await self.page.refresh()

        added = 0
        for message in self.extract_current_messages():
            if state.add(message):
                added += 1

        scroll = await self.page.scroll_state()
        percent = round(scroll.progress * 100) if scroll else 0
        logger.debug(f"Scan {state.attempts + 1}: {added} new, {len(state.accumulated)} total, {percent}%")

        if self.progress_callback:
            self.progress_callback(percent, len(state.accumulated))

        return added

    async def paginate(self, state: CollectionState) -> bool:
        """
        Scroll one step further down

        Returns:
            True once the bottom of the list is confirmed

        Raises:
            HarvestError: If the scroll container is gone
        """
        scroll = await self.page.scroll_state()
        if scroll is None:
            raise HarvestError("Scroll container disappeared", error_type="pagination")

        current_top = scroll.scroll_top
        if abs(current_top - state.last_scroll_top) < STUCK_DISTANCE:
            state.stuck_scroll_count += 1
            logger.debug(f"Scroll position barely moved, stuck count: {state.stuck_scroll_count}")
        else:
            state.stuck_scroll_count = 0
        state.last_scroll_top = current_top

        if state.stuck_scroll_count >= STUCK_ROUNDS:
            logger.debug("Scrolling looks stuck, trying a larger step")
            target = current_top + self.settings.scroll_step * 2
            state.stuck_scroll_count = 0
        else:
            target = current_top + self.calculate_scroll_amount(scroll)

        await self.page.scroll_to(target)
        await self.wait_for_render()

        # bottom check uses the metrics from before this step
        near_bottom = current_top >= scroll.scroll_height - scroll.client_height - NEAR_BOTTOM_MARGIN
        at_bottom = current_top + scroll.client_height >= scroll.scroll_height - BOTTOM_MARGIN
        if not (near_bottom or at_bottom):
            return False

        logger.debug("Near or at the bottom, doing a final check")
        before = await self.page.scroll_state()
        before_top = before.scroll_top if before else current_top
        await self.page.scroll_to(before.scroll_height if before else scroll.scroll_height)
        await self.wait_for_render()

        await self.scan(state)

        after = await self.page.scroll_state()
        after_top = after.scroll_top if after else before_top
        return abs(after_top - before_top) < SETTLED_DISTANCE

    def calculate_scroll_amount(self, scroll: ScrollState) -> float:
        amount = self.settings.scroll_step
        if scroll.client_height > TALL_VIEWPORT:
            amount = max(amount, scroll.client_height * TALL_VIEWPORT_RATIO)
        return max(amount, self.settings.min_scroll_amount)

    async def scroll_to_top(self) -> None:
        logger.debug("Scrolling to top...")
        await self.page.scroll_to(0)
        await self.wait_for_render()

    async def wait_for_render(self) -> None:
        """Give the page time to finish scrolling and re-render the virtual list"""
        await self.wait(self.settings.scroll_delay / 1000)
        await self.wait(self.settings.render_delay / 1000)

    def extract_current_messages(self, verbose: bool = False) -> List[Message]:
        """Transcribe the message elements currently rendered in the snapshot"""
        log = logger.info if verbose else logger.debug
        elements = self.classifier.find_message_elements(verbose=False)
        log(f"Found {len(elements)} message elements")

        messages = []
        for index, element in enumerate(elements):
            try:
                if not self.page.rect(element).has_area:
                    continue

                message = self.transcriber.extract_single_message(element)
                if message and TextNormalizer.is_valid_message_content(message.text):
                    messages.append(message)
            except Exception as e:
                log(f"Error extracting message {index + 1}: {e}")

        log(f"Extracted {len(messages)} valid messages")
        return messages
