#!/usr/bin/env python3
"""
discwright - command line entry point

Author a DVD image from local files, or report which external tools are
installed.
"""

import argparse
import logging
import sys
from pathlib import Path

from . import __version__
from .config import AppConfig
from .events import NullPublisher
from .image_writer import check_image_writer
from .pipeline import author
from .tools import check_dependencies, get_dependency_instructions

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = ("ffmpeg", "ffprobe", "spumux", "dvdauthor")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="discwright",
        description="Author DVD-Video disc images with a menu, chapters, "
                    "multiple audio tracks and subtitles."
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    run = subparsers.add_parser(
        "author", parents=[common], help="Author a DVD image from local files"
    )
    run.add_argument("--video", required=True, help="Main movie file")
    run.add_argument("--audio", nargs="+", required=True, help="Audio track files, in disc order")
    run.add_argument("--audio-languages", default="", help="Comma-separated language codes")
    run.add_argument("--subtitle", nargs="*", default=[], help="Subtitle files, in disc order")
    run.add_argument("--subtitle-languages", default="", help="Comma-separated language codes")
    run.add_argument("--subtitle-burn-in", action="store_true",
                     help="Burn the first subtitle into the picture")
    run.add_argument("--still", required=True, help="Menu background image")
    run.add_argument("--intro", default="", help="Optional intro clip")
    run.add_argument("--format", default="pal", choices=["pal", "ntsc"], help="Disc standard")
    run.add_argument("--volume-name", default=None, help="ISO volume label")
    run.add_argument("--output", required=True, help="Output ISO path")
    run.add_argument("--scratch", default=None,
                     help="Scratch directory (default: <output>.work)")
    run.add_argument("--audio-offset", type=float, default=0.0,
                     help="Audio delay in seconds")
    run.add_argument("--one-pass", action="store_true",
                     help="Constant-quality encode instead of two-pass bitrate budgeting")
    run.add_argument("--force-rebuild", action="store_true",
                     help="Rebuild every artifact even if it exists")

    subparsers.add_parser("check", parents=[common], help="Report installed external tools")
    return parser


def check() -> int:
    """Print the dependency report."""
    print("Checking dependencies...")
    deps = {**check_dependencies(), **check_image_writer()}

    all_present = True
    for dep, available in deps.items():
        status = "✓" if available else "✗"
        print(f"  {status} {dep}")
        if not available and dep in REQUIRED_TOOLS:
            all_present = False

    if not all_present:
        print(get_dependency_instructions())
        return 1

    print("\nAll required dependencies are available!")
    return 0


def run_author(args: argparse.Namespace, config: AppConfig) -> int:
    output = Path(args.output)
    scratch = Path(args.scratch) if args.scratch else output.with_name(output.name + ".work")

    result = author({
        "video": args.video,
        "audios": args.audio,
        "audio_languages": args.audio_languages,
        "subtitles": args.subtitle,
        "subtitle_languages": args.subtitle_languages,
        "subtitle_burn_in": args.subtitle_burn_in,
        "still": args.still,
        "intro": args.intro,
        "format": args.format,
        "volume_name": args.volume_name or config.default_volume_name,
        "output": str(output),
        "scratch": str(scratch),
        "audio_offset": args.audio_offset,
        "two_pass": not args.one_pass,
        "force_rebuild": args.force_rebuild,
    }, config=config, events=NullPublisher())

    if not result.success:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1

    print(f"DVD image created: {result.disc_image}")
    return 0


def main(argv=None):
    """Run the discwright command line."""
    args = build_parser().parse_args(argv)
    config = AppConfig.from_env()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if args.command == "check":
        sys.exit(check())

    sys.exit(run_author(args, config))


if __name__ == "__main__":
    main()
