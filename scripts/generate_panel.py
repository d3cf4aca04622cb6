#!/usr/bin/env python3
"""
CLI Script: Generate Panel
==========================

Command-line tool for appending a single panel to an episode.

Usage:
    python scripts/generate_panel.py --series-title "Night Shift" --style "noir ink" \\
        --episode-title "Pilot" -s "A rainy alley at midnight"
    python scripts/generate_panel.py --episode 3f2a... -s "The detective lights a match" \\
        -c 9b1e... --dialogue "Who's there?" -o panel.jpg
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

# Allow running from a source checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from comicforge.core.config import Config
from comicforge.core.exceptions import ComicForgeError
from comicforge.workflow import ComicStudio


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Generate a comic panel with AI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --series-title "Night Shift" --style "noir ink" --episode-title Pilot -s "A rainy alley"
  %(prog)s --episode EPISODE_ID -s "The detective lights a match" -c CHARACTER_ID
        """,
    )

    # Target episode
    parser.add_argument(
        "--episode",
        help="Existing episode ID to append to",
    )
    parser.add_argument(
        "--series",
        help="Existing series ID (a new episode is created in it)",
    )
    parser.add_argument(
        "--series-title",
        help="Title for a new series",
    )
    parser.add_argument(
        "--style",
        help="Visual style for a new series",
    )
    parser.add_argument(
        "--episode-title",
        default="Episode 1",
        help="Title for a new episode (default: Episode 1)",
    )

    # Panel content
    parser.add_argument(
        "-s", "--scene",
        required=True,
        help="Scene description",
    )
    parser.add_argument(
        "--dialogue",
        default="",
        help="Dialogue text",
    )
    parser.add_argument(
        "-c", "--character",
        action="append",
        default=[],
        help="Character ID present in the panel (can be specified multiple times)",
    )

    # Output
    parser.add_argument(
        "-o", "--output",
        help="Write the panel image to this path",
    )

    # Config
    parser.add_argument(
        "--config",
        help="Path to config file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    return parser.parse_args()


def print_retry(attempt: int, max_retries: int, delay_ms: int) -> None:
    print(f"  Attempt {attempt}/{max_retries} failed, retrying in {delay_ms / 1000:.1f}s...")


async def main():
    """Main CLI entry point."""
    args = parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Validate arguments
    if not args.episode and not args.series and not (args.series_title and args.style):
        print("Error: --episode, --series, or both --series-title and --style are required")
        sys.exit(1)

    config = Config.load(args.config)

    # Check API key
    if not os.getenv(config.generation.api_key_env):
        print(f"Error: {config.generation.api_key_env} environment variable not set")
        sys.exit(1)

    print("=" * 50)
    print("Comic Panel Generator")
    print("=" * 50)

    try:
        async with ComicStudio(config=config) as studio:
            if args.episode:
                episode = studio.get_episode(args.episode)
            else:
                if args.series:
                    series = studio.get_series(args.series)
                else:
                    series = studio.create_series(args.series_title, args.style)
                    print(f"\nSeries: {series.title} ({series.id})")
                episode = studio.create_episode(series.id, args.episode_title)
                print(f"Episode: {episode.title} ({episode.id})")

            print(f"\nScene: {args.scene}")
            if args.dialogue:
                print(f"Dialogue: {args.dialogue}")
            if args.character:
                print(f"Characters: {', '.join(args.character)}")

            panel = await studio.create_panel(
                episode.id,
                args.scene,
                dialogue=args.dialogue,
                character_ids=args.character,
                on_retry=print_retry,
            )

            print("\n" + "-" * 50)
            print(f"Panel: {panel.id} (position {panel.order})")

            if args.output:
                output_path = Path(args.output)
                output_path.parent.mkdir(parents=True, exist_ok=True)
                output_path.write_bytes(panel.image.data)
                print(f"Image saved: {output_path}")

            print("=" * 50)

    except KeyboardInterrupt:
        print("\nCancelled")
        sys.exit(130)
    except ComicForgeError as e:
        print(f"\nError: {e}")
        if e.nothing_changed:
            print("Nothing was saved; the operation can be retried.")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
