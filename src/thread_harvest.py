#!/usr/bin/env python3
"""
Slack Thread Harvester CLI
Harvest a Slack thread from a live browser tab or a saved page into a clean transcript.
"""

import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path
import logging

from config_manager import ConfigManager
from harvesters.common_harvester import HarvestError
from harvesters.page_source import load_static_page
from harvesters.thread_harvester import ThreadHarvester
from output_formatter import TranscriptFormatter, OUTPUT_FORMATS

VERSION = "0.1.0"

def setup_logging(verbose: bool = False):
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Harvest a Slack thread into a clean, deduplicated transcript",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  thread_harvest --cdp http://localhost:9222
  thread_harvest saved_thread.html --format prompt
  thread_harvest --cdp http://localhost:9222 --threshold 20 -o ~/Documents/Threads/design.md
        """
    )

    parser.add_argument(
        "source",
        nargs="?",
        help="Saved Slack page (HTML file or URL); omit to use --cdp"
    )

    parser.add_argument(
        "--cdp",
        nargs="?",
        const="",
        metavar="URL",
        help="Attach to a running Chrome over DevTools (default URL: from config)"
    )

    parser.add_argument(
        "--tab-match",
        help="Substring of the Slack tab URL (default: from config)"
    )

    parser.add_argument(
        "--output", "-o",
        help="Output file or directory (default: from config)"
    )

    parser.add_argument(
        "--config", "-c",
        help="Configuration file path (default: ~/.config/slack_thread_harvester/config.yaml)"
    )

    parser.add_argument(
        "--format", "-f",
        choices=OUTPUT_FORMATS,
        help="Output format (default: from config)"
    )

    parser.add_argument("--scroll-delay", type=int, metavar="MS", help="Wait after each scroll step")
    parser.add_argument("--scroll-step", type=int, metavar="PX", help="Base scroll distance")
    parser.add_argument("--max-attempts", type=int, metavar="N", help="Maximum scroll rounds")
    parser.add_argument("--threshold", type=int, metavar="N",
                        help="Stop after N consecutive rounds without new messages")

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Slack Thread Harvester v{VERSION}"
    )

    return parser

def resolve_output_path(output: str, config: dict, fmt: str) -> Path:
    """Output file from -o (file or directory) or the configured directory and template"""
    extension = '.json' if fmt == 'json' else '.md'
    template = config.get('output', {}).get('filename_template', 'thread_{timestamp}.md')
    filename = template.format(timestamp=datetime.now().strftime('%Y%m%d_%H%M%S'))
    filename = str(Path(filename).with_suffix(extension))

    target = Path(output or config.get('default_output', '~/Documents/SlackThreads')).expanduser()
    if target.suffix and not target.is_dir():
        target.parent.mkdir(parents=True, exist_ok=True)
        return target

    target.mkdir(parents=True, exist_ok=True)
    return target / filename

async def harvest(args, config: dict, settings):
    """Run one harvest against the selected page source"""
    logger = logging.getLogger(__name__)

    def report_progress(percent: int, count: int):
        logger.info(f"Progress: {percent}% ({count} messages)")

    if args.source:
        page = load_static_page(args.source, config)
        return await ThreadHarvester(page, settings).harvest(args.source)

    from playwright.async_api import async_playwright
    from harvesters.browser_page import connect_to_slack_tab

    browser_config = config.get('browser', {})
    cdp_url = args.cdp or browser_config.get('cdp_url', 'http://localhost:9222')
    tab_match = args.tab_match or browser_config.get('tab_url_match', 'app.slack.com')

    async with async_playwright() as playwright:
        page = await connect_to_slack_tab(playwright, cdp_url, tab_match)
        harvester = ThreadHarvester(page, settings, progress_callback=report_progress)
        return await harvester.harvest(page.url)

def main():
    parser = build_parser()
    args = parser.parse_args()

    # Setup logging
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    if not args.source and args.cdp is None:
        parser.error("provide a saved page SOURCE or --cdp to attach to a browser")

    try:
        # Load configuration
        logger.info("Loading configuration...")
        config_manager = ConfigManager(args.config)
        config = config_manager.load_config()

        settings = config_manager.get_scroll_settings(config, overrides={
            'scroll_delay': args.scroll_delay,
            'scroll_step': args.scroll_step,
            'max_scroll_attempts': args.max_attempts,
            'no_new_messages_threshold': args.threshold
        })
        logger.debug(f"Scroll settings: {settings}")

        thread = asyncio.run(harvest(args, config, settings))

        if not thread.messages:
            logger.error("No thread messages harvested")
            return 1

        fmt = args.format or config.get('output', {}).get('format', 'markdown')
        content = TranscriptFormatter(config).format_thread(thread, fmt)

        output_path = resolve_output_path(args.output, config, fmt)
        logger.info(f"Saving transcript to {output_path}")
        output_path.write_text(content, encoding='utf-8')

        print(f"✅ Successfully harvested thread!")
        print(f"📁 Saved to: {output_path}")
        print(f"📊 Messages: {thread.get_message_count()} from {len(thread.participants())} participants")

        return 0

    except KeyboardInterrupt:
        logger.info("Operation cancelled by user")
        return 1
    except ValueError as e:
        logger.error(f"Invalid settings: {e}")
        return 1
    except HarvestError as e:
        logger.error(f"Harvest failed: {e}")
        return 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1

if __name__ == "__main__":
    sys.exit(main())
