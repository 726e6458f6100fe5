"""
Script: ci_publish/cli.py
What: Single entry point for every publish step.
Doing: Parses `<command>` (plus an optional working directory) and dispatches to that step's `main()`.
Why: Workflow YAML calls one stable command surface instead of module paths.
Goal: Turn known failures into a short stderr message and exit status 1.
"""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Callable, Mapping

from ci_publish.common import CiPublishError


def command_map() -> dict[str, Callable[[], None]]:
    """
    Map CLI command names to Python entry functions.

    Each value is a `main()` function from one workflow helper module.
    """
    from ci_publish.build_images import main as build_images
    from ci_publish.publish import main as publish
    from ci_publish.push_images import main as push_images
    from ci_publish.registry_login import main as registry_login
    from ci_publish.resolve_image_tags import main as resolve_image_tags
    from ci_publish.write_publish_manifest import main as write_publish_manifest

    return {
        "resolve-image-tags": resolve_image_tags,
        "registry-login": registry_login,
        "build-images": build_images,
        "push-images": push_images,
        "write-publish-manifest": write_publish_manifest,
        "publish": publish,
    }


def build_parser(commands: Mapping[str, Callable[[], None]]) -> argparse.ArgumentParser:
    """Build argument parser with one positional command choice."""
    parser = argparse.ArgumentParser(
        prog="python3 -m ci_publish.cli",
        description="Run one image publish step.",
    )
    parser.add_argument("command", choices=sorted(commands.keys()))
    parser.add_argument(
        "-C",
        "--directory",
        default=None,
        help="Repository root to run in (relative paths such as ci/images.json resolve from here).",
    )
    return parser


def run_command(command: str, commands: Mapping[str, Callable[[], None]]) -> None:
    """
    Run one registered command.

    `commands` is passed in to keep this function easy to test.
    """
    commands[command]()


def main(argv: list[str] | None = None) -> None:
    # Build command registry once so parser and dispatcher use the same keys.
    commands = command_map()
    parser = build_parser(commands)
    args = parser.parse_args(argv)
    if args.directory:
        if not os.path.isdir(args.directory):
            parser.error(f"not a directory: {args.directory}")
        os.chdir(args.directory)

    try:
        run_command(args.command, commands)
    except CiPublishError as exc:
        # Keep failures short and readable in workflow logs.
        print(str(exc), file=sys.stderr)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
