#!/usr/bin/env python3
"""
Tests for ElementClassifier
"""

import unittest
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
sys.path.insert(0, os.path.dirname(__file__))

from harvesters.element_classifier import ElementClassifier, ClassificationScore
from harvesters.page_source import StaticPage
from slack_fixtures import COMPOSER_ITEM, message_item, thread_page_html

class TestThreadContainer(unittest.TestCase):
    """Test cases for thread panel detection"""

    def test_finds_flexpane(self):
        """Test the open thread flexpane is found"""
        page = StaticPage(thread_page_html([message_item('Alice', 'Hello team', '10:00')]))
        container = ElementClassifier(page).find_thread_container()

        self.assertIsNotNone(container)
        self.assertEqual(container.get('data-qa'), 'threads_flexpane')

    def test_hidden_flexpane_is_ignored(self):
        """Test a collapsed flexpane does not count as an open thread"""
        html = thread_page_html([message_item('Alice', 'Hello team', '10:00')])
        html = html.replace('data-qa="threads_flexpane"', 'data-qa="threads_flexpane" style="display: none"')
        page = StaticPage(html)

        self.assertIsNone(ElementClassifier(page).find_thread_container())

    def test_zero_area_stamp_is_ignored(self):
        """Test geometry stamps decide visibility"""
        html = thread_page_html([message_item('Alice', 'Hello team', '10:00')])
        html = html.replace('data-qa="threads_flexpane"', 'data-qa="threads_flexpane" data-harvest-rect="900,0,0,0"')

        self.assertIsNone(ElementClassifier(StaticPage(html)).find_thread_container())

    def test_thread_class_without_structure_is_rejected(self):
        """Test a bare thread-view class is not enough"""
        page = StaticPage('<div class="p-thread_view"><p>Nothing here</p></div>')

        self.assertIsNone(ElementClassifier(page).find_thread_container())

    def test_list_content_with_thread_identifier_is_accepted(self):
        """Test list content plus a thread class counts as a thread panel"""
        page = StaticPage(
            '<div class="p-thread_view">'
            '<div class="c-virtual_list__item"><div class="c-message_kit__message">Hi there everyone</div></div>'
            '</div>'
        )

        container = ElementClassifier(page).find_thread_container()
        self.assertIsNotNone(container)
        self.assertIn('p-thread_view', container.get('class'))

class TestMessageElements(unittest.TestCase):
    """Test cases for message element discovery"""

    def test_thread_messages_exclude_composer_and_channel(self):
        """Test only thread replies are returned"""
        html = thread_page_html(
            [message_item('Alice', 'Hello team', '10:00'),
             message_item('Bob', 'Morning!', '10:01'),
             COMPOSER_ITEM],
            channel_items=[message_item('Dave', 'Channel chatter', '09:00')]
        )
        elements = ElementClassifier(StaticPage(html)).find_message_elements(verbose=False)

        texts = [element.get_text() for element in elements]
        self.assertEqual(len(elements), 2)
        self.assertIn('Hello team', texts[0])
        self.assertIn('Morning!', texts[1])

    def test_zero_area_messages_are_filtered(self):
        """Test messages without rendered area are dropped"""
        hidden = message_item('Bob', 'Scrolled away', '10:01').replace(
            'data-qa="virtual-list-item"', 'data-qa="virtual-list-item" data-harvest-rect="900,0,0,0"', 1)
        html = thread_page_html([message_item('Alice', 'Hello team', '10:00'), hidden])

        elements = ElementClassifier(StaticPage(html)).find_message_elements(verbose=False)

        self.assertEqual(len(elements), 1)

    def test_container_scoped_search(self):
        """Test the second tier finds older message markup inside the panel"""
        html = (
            '<div class="p-thread_view" data-qa="thread_view">'
            '<div class="p-thread_view__header">Thread</div>'
            '<div class="c-message" data-qa="message"><div class="c-message__content">First reply text</div></div>'
            '<div class="c-message" data-qa="message"><div class="c-message__content">Second reply text</div></div>'
            '</div>'
        )
        elements = ElementClassifier(StaticPage(html)).find_message_elements(verbose=False)

        self.assertEqual(len(elements), 2)
        self.assertIn('First reply text', elements[0].get_text())

    def test_general_search_without_thread(self):
        """Test the page-wide search when no thread panel is open"""
        html = (
            '<div class="c-message_kit__message">One message body</div>'
            '<div class="c-message_kit__message">Another message body</div>'
        )
        elements = ElementClassifier(StaticPage(html)).find_message_elements(verbose=False)

        self.assertEqual(len(elements), 2)

    def test_general_search_uses_first_matching_selector(self):
        """Test earlier selectors take precedence over broader ones"""
        html = '<div class="c-message_list__item"><div class="p-rich_text_section">Only text</div></div>'
        classifier = ElementClassifier(StaticPage(html))

        elements = classifier.find_general_message_elements(verbose=False)

        self.assertEqual(len(elements), 1)
        self.assertIn('p-rich_text_section', elements[0].get('class'))

    def test_general_search_finds_nothing(self):
        """Test a page without message markup yields no elements"""
        classifier = ElementClassifier(StaticPage('<div><p>Just a page</p></div>'))

        self.assertEqual(classifier.find_message_elements(verbose=False), [])

class TestAggressiveFallback(unittest.TestCase):
    """Test cases for the scoring fallback"""

    HTML = (
        '<div class="p-thread_view">'
        '<div class="p-thread_view__header">Thread</div>'
        '<div class="reply"><span class="user-name">Bob</span><span class="time">10:42</span>'
        '<div class="body">Reply body with enough text</div></div>'
        '<div class="note"><span class="time">11:05</span><div>Plain note without an author</div></div>'
        '<div class="tiny">short</div>'
        '</div>'
    )

    def setUp(self):
        self.page = StaticPage(self.HTML)
        self.classifier = ElementClassifier(self.page)
        self.container = self.page.document.select_one('.p-thread_view')

    def test_candidates_sorted_by_score(self):
        """Test candidates come back highest score first"""
        candidates = self.classifier.find_messages_aggressive_fallback(self.container, verbose=False)

        self.assertEqual([div.get('class') for div in candidates], [['reply'], ['note']])

    def test_score_signals(self):
        """Test the individual signals of a strong candidate"""
        reply = self.container.select_one('.reply')
        signals = self.classifier.score_candidate(reply, self.container)

        self.assertTrue(signals.has_author_marker)
        self.assertTrue(signals.has_timestamp_marker)
        self.assertTrue(signals.has_substantial_text)
        self.assertTrue(signals.manageable_child_count)
        self.assertFalse(signals.nested_too_deep)
        self.assertEqual(signals.score, 7)

    def test_deep_nesting_penalty(self):
        """Test the depth penalty lowers the score"""
        self.assertEqual(ClassificationScore(has_author_marker=True, nested_too_deep=True).score, 1)

    def test_element_depth(self):
        """Test depth counts ancestors up to the container"""
        body = self.container.select_one('.reply .body')

        self.assertEqual(self.classifier.get_element_depth(body, self.container), 2)

class TestMainChannel(unittest.TestCase):
    """Test cases for main channel detection"""

    def test_channel_pane_member(self):
        """Test messages inside the channel pane belong to the main channel"""
        html = thread_page_html([], channel_items=[message_item('Dave', 'Channel chatter', '09:00')])
        page = StaticPage(html)
        element = page.document.select_one('.p-message_pane .c-virtual_list__item')

        self.assertTrue(ElementClassifier(page).is_in_main_channel(element))

    def test_left_message_list_geometry(self):
        """Test the left-area rule applies only inside the main message list"""
        html = (
            '<div class="c-message_list">'
            '<div id="left" data-harvest-rect="100,0,500,40">left</div>'
            '<div id="right" data-harvest-rect="1200,0,200,40">right</div>'
            '</div>'
        )
        page = StaticPage(html, viewport_width=1440)
        classifier = ElementClassifier(page)

        self.assertTrue(classifier.is_in_main_channel(page.document.select_one('#left')))
        self.assertFalse(classifier.is_in_main_channel(page.document.select_one('#right')))

    def test_thread_ancestor_wins(self):
        """Test thread replies are never main channel messages"""
        page = StaticPage(thread_page_html([message_item('Alice', 'Hello team', '10:00')]))
        element = page.document.select_one('[data-qa="threads_flexpane"] .c-virtual_list__item')

        self.assertFalse(ElementClassifier(page).is_in_main_channel(element))

class TestThreadHeader(unittest.TestCase):
    """Test cases for thread header and title lookup"""

    def test_flexpane_header_title(self):
        """Test the flexpane header with a Thread title is preferred"""
        page = StaticPage(thread_page_html([message_item('Alice', 'Hello team', '10:00')]))
        classifier = ElementClassifier(page)
        container = classifier.find_thread_container()

        header = classifier.find_thread_header(container)
        self.assertIn('p-flexpane_header', header.get('class'))
        self.assertEqual(classifier.find_thread_title(container), 'Thread #general')

    def test_header_inside_container(self):
        """Test a header inside the thread panel is used when there is no flexpane header"""
        page = StaticPage(
            '<div class="p-thread_view">'
            '<div data-qa="thread_header">Discussion about release</div>'
            '<div class="c-virtual_list__item">Reply</div>'
            '</div>'
        )
        classifier = ElementClassifier(page)
        container = page.document.select_one('.p-thread_view')

        self.assertEqual(classifier.find_thread_title(container), 'Discussion about release')

    def test_no_container(self):
        """Test there is no header without a container"""
        classifier = ElementClassifier(StaticPage('<p>empty</p>'))

        self.assertIsNone(classifier.find_thread_header(None))
        self.assertIsNone(classifier.find_thread_title(None))

if __name__ == '__main__':
    unittest.main()
