#!/usr/bin/env python3
"""
Tests for RichTextTranscriber
"""

import unittest
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bs4 import BeautifulSoup

from models import UNKNOWN_AUTHOR
from harvesters.rich_text_transcriber import RichTextTranscriber

def message_element(body: str, header: str = ''):
    html = (f'<div class="c-message_kit__message">{header}'
            f'<div class="c-message_kit__blocks">{body}</div></div>')
    return BeautifulSoup(html, 'html.parser').select_one('.c-message_kit__message')

class TestMessageText(unittest.TestCase):
    """Test cases for structural text transcription"""

    def setUp(self):
        self.transcriber = RichTextTranscriber()

    def transcribe(self, body: str) -> str:
        return self.transcriber.extract_complete_message_text(message_element(body))

    def test_anchor_becomes_markdown_link(self):
        """Test a plain anchor renders as a markdown link"""
        text = self.transcribe(
            '<div class="p-rich_text_section">See <a href="https://x.test">Docs</a> for details.</div>'
        )

        self.assertIn('[Docs](https://x.test)', text)
        self.assertEqual(text, 'See [Docs](https://x.test) for details.')

    def test_link_before_punctuation(self):
        """Test no space is left between a link and trailing punctuation"""
        text = self.transcribe(
            '<div class="p-rich_text_section">Read <a class="c-link" href="https://x.test/a">the guide</a>.</div>'
        )

        self.assertEqual(text, 'Read [the guide](https://x.test/a).')

    def test_link_without_text_uses_href(self):
        """Test an empty anchor falls back to its href"""
        text = self.transcribe('<div><a href="https://x.test/b"></a></div>')

        self.assertEqual(text, '[https://x.test/b](https://x.test/b)')

    def test_mention(self):
        """Test user mentions keep their label and profile link"""
        text = self.transcribe(
            '<div class="p-rich_text_section">ping '
            '<a class="c-member_slug" data-member-label="@bob" href="/team/U123">@bob</a> please</div>'
        )

        self.assertEqual(text, 'ping [@bob](/team/U123) please')

    def test_mention_without_link(self):
        """Test mentions without an href render as the bare label"""
        text = self.transcribe(
            '<div>thanks <span class="c-member_slug" data-member-label="@carol">@carol</span></div>'
        )

        self.assertEqual(text, 'thanks @carol')

    def test_table_with_header(self):
        """Test a two column table becomes a four line markdown table"""
        text = self.transcribe(
            '<table><thead><tr><th>Name</th><th>Value</th></tr></thead>'
            '<tbody><tr><td>a</td><td>1</td></tr><tr><td>b</td><td>2</td></tr></tbody></table>'
        )

        lines = text.split('\n')
        self.assertEqual(len(lines), 4)
        self.assertEqual(lines[0], '| Name | Value |')
        self.assertIn('---|---', lines[1])
        self.assertEqual(lines[2], '| a | 1 |')
        self.assertEqual(lines[3], '| b | 2 |')

    def test_table_without_header(self):
        """Test the first row stands in for a missing header"""
        text = self.transcribe(
            '<table><tr><td>x</td><td>y</td></tr><tr><td>z</td></tr></table>'
        )

        self.assertEqual(text, '| x | y |\n|---|---|\n| z | |')

    def test_table_cells_escape_pipes(self):
        """Test pipes and line breaks inside cells"""
        text = self.transcribe(
            '<table><tr><td>a|b</td><td>line<br>break</td></tr></table>'
        )

        self.assertEqual(text.split('\n')[0], '| a\\|b | line break |')

    def test_codemirror_grid(self):
        """Test CSV previews rendered by CodeMirror become a table"""
        text = self.transcribe(
            '<div class="CodeMirror-code">'
            '<div class="CodeMirror-line"><span class="cm-variable">name</span><span class="cm-variable">qty</span></div>'
            '<div class="CodeMirror-line"><span class="cm-string">apple</span><span class="cm-number">3</span></div>'
            '</div>'
        )

        self.assertEqual(text, '| name | qty |\n|---|---|\n| apple | 3 |')

    def test_emphasis_and_code(self):
        """Test inline formatting markers"""
        text = self.transcribe(
            '<div class="p-rich_text_section"><b>bold</b> and <i>italic</i> and <code>x = 1</code></div>'
        )

        self.assertEqual(text, '**bold** and *italic* and `x = 1`')

    def test_preformatted_block(self):
        """Test code blocks are fenced"""
        text = self.transcribe('<div>Run this:</div><pre class="c-mrkdwn__pre">make test<br>make lint</pre>')

        self.assertEqual(text, 'Run this:\n\n```\nmake test\nmake lint\n```')

    def test_headings_and_line_breaks(self):
        """Test headings, paragraphs and br elements"""
        text = self.transcribe('<h2>Plan</h2><p>first<br>second</p>')

        self.assertEqual(text, '## Plan\n\nfirst\nsecond')

    def test_ordered_list(self):
        """Test ordered list items are numbered by position"""
        text = self.transcribe('<p>Steps:</p><ol><li>build</li><li>ship</li></ol>')

        self.assertEqual(text, 'Steps:\n1. build\n2. ship')

    def test_unordered_list(self):
        """Test bullet items"""
        text = self.transcribe('<ul><li>alpha</li><li>beta</li></ul>')

        self.assertEqual(text, '- alpha\n- beta')

    def test_nested_list_indentation(self):
        """Test nested items go on their own lines, indented by depth"""
        text = self.transcribe('<ul><li>a<ul><li>b</li></ul></li><li>c</li></ul>')

        self.assertEqual(text, '- a\n  - b\n- c')

    def test_deeply_nested_mixed_lists(self):
        """Test bullets under numbered items and a third level"""
        text = self.transcribe(
            '<ol><li>first<ul><li>detail<ul><li>deeper</li></ul></li><li>more</li></ul></li>'
            '<li>second</li></ol>'
        )

        self.assertEqual(text, '1. first\n  - detail\n    - deeper\n  - more\n2. second')

    def test_list_level(self):
        """Test nesting depth of list items"""
        element = BeautifulSoup('<ul><li>a<ul><li id="inner">b</li></ul></li></ul>', 'html.parser')

        self.assertEqual(RichTextTranscriber.get_list_level(element.select_one('#inner')), 1)
        self.assertEqual(RichTextTranscriber.get_list_level(element.select_one('li')), 0)

    def test_controls_and_scripts_are_skipped(self):
        """Test buttons, scripts and comments contribute nothing"""
        text = self.transcribe(
            '<div class="p-rich_text_section">Visible<button>Reply</button>'
            '<script>var x = 1;</script><!-- hidden --></div>'
        )

        self.assertEqual(text, 'Visible')

    def test_whitespace_is_normalized(self):
        """Test runs of spaces and blank lines collapse"""
        text = self.transcribe('<div>a   \t b</div><div></div><p></p><div>\n\n\n\nc</div>')

        self.assertEqual(text, 'a b\n\nc')

    def test_content_selector_excludes_header(self):
        """Test the sender name is not part of the body"""
        element = message_element(
            '<div class="p-rich_text_section">Body only</div>',
            header='<span data-qa="message_sender_name">Alice</span>'
        )

        self.assertEqual(self.transcriber.extract_complete_message_text(element), 'Body only')

class TestMessageHeader(unittest.TestCase):
    """Test cases for author and timestamp extraction"""

    def setUp(self):
        self.transcriber = RichTextTranscriber()

    def test_single_message(self):
        """Test a complete message"""
        element = message_element(
            '<div class="p-rich_text_section">Deploy is done</div>',
            header=('<button data-qa="message_sender_name">Alice Smith</button>'
                    '<a class="c-timestamp" title="Mar 3rd at 10:15:02 AM"><span>10:15</span></a>')
        )

        message = self.transcriber.extract_single_message(element)

        self.assertEqual(message.author, 'Alice Smith')
        self.assertEqual(message.timestamp, 'Mar 3rd at 10:15:02 AM')
        self.assertEqual(message.text, 'Deploy is done')

    def test_timestamp_text_fallback(self):
        """Test the visible time is used without a title"""
        element = message_element('<div>x</div>', header='<span class="c-message__time">9:41 AM</span>')

        self.assertEqual(self.transcriber.extract_timestamp(element), '9:41 AM')

    def test_missing_header(self):
        """Test continuation fragments have no author or time"""
        message = self.transcriber.extract_single_message(message_element('<div>and one more thing</div>'))

        self.assertEqual(message.author, UNKNOWN_AUTHOR)
        self.assertEqual(message.timestamp, '')

    def test_duplicated_name_is_cleaned(self):
        """Test repeated display names collapse"""
        element = message_element('<div>x</div>', header='<span data-qa="message_sender_name">Jane Doe Jane Doe</span>')

        self.assertEqual(self.transcriber.extract_user_name(element), 'Jane Doe')

    def test_invalid_name_falls_through(self):
        """Test UI text in a sender slot is not taken as a name"""
        element = message_element(
            '<div>x</div>',
            header=('<span data-qa="message_sender_name">5 replies</span>'
                    '<span class="c-message__sender">Bob</span>')
        )

        self.assertEqual(self.transcriber.extract_user_name(element), 'Bob')

    def test_clean_duplicate_user_name(self):
        """Test the duplicate-name rules"""
        clean = RichTextTranscriber.clean_duplicate_user_name

        self.assertEqual(clean('John John Doe'), 'John Doe')
        self.assertEqual(clean('Ann Ann'), 'Ann')
        self.assertEqual(clean('  Li Wei  '), 'Li Wei')
        self.assertEqual(clean('A B A B'), 'A B')

    def test_is_valid_user_name(self):
        """Test user name validation"""
        valid = RichTextTranscriber.is_valid_user_name

        self.assertTrue(valid('Alice'))
        self.assertFalse(valid(''))
        self.assertFalse(valid('reply'))
        self.assertFalse(valid('3 people'))
        self.assertFalse(valid('Also send to #general'))
        self.assertFalse(valid('...'))
        self.assertFalse(valid('and'))
        self.assertFalse(valid('(555) 123-4567'))
        self.assertFalse(valid('x' * 51))

    def test_composer_is_not_a_message(self):
        """Test composer inputs and thread separators are skipped"""
        composer = BeautifulSoup(
            '<div class="c-texty_input"><div class="ql-editor" contenteditable="true">Reply…</div></div>',
            'html.parser'
        ).div
        separator = BeautifulSoup('<div class="p-thread_separator_row_generic">3 replies</div>', 'html.parser').div

        self.assertIsNone(self.transcriber.extract_single_message(composer))
        self.assertIsNone(self.transcriber.extract_single_message(separator))
        self.assertIsNone(self.transcriber.extract_single_message(None))

if __name__ == '__main__':
    unittest.main()
