"""
Script: tests/test_cli.py
What: Tests for the shared `ci_publish` command dispatcher.
Doing: Checks command-map entries, parser behavior, and error-to-exit-code handling.
Why: Makes sure workflow command names still point to the right modules.
Goal: Protect the command surface used by workflow steps.
"""

from __future__ import annotations

import io
import unittest
from contextlib import redirect_stderr
from unittest import mock

from ci_publish.cli import build_parser, command_map, main, run_command
from ci_publish.common import CiPublishError


class CliTests(unittest.TestCase):
    def test_command_map_contains_expected_entries(self) -> None:
        self.assertEqual(
            set(command_map()),
            {
                "resolve-image-tags",
                "registry-login",
                "build-images",
                "push-images",
                "write-publish-manifest",
                "publish",
            },
        )

    def test_parser_rejects_unknown_command(self) -> None:
        parser = build_parser({"demo-command": lambda: None})
        self.assertEqual(parser.parse_args(["demo-command"]).command, "demo-command")
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                parser.parse_args(["other"])

    def test_run_command_calls_target_function(self) -> None:
        called: list[str] = []
        run_command("demo", {"demo": lambda: called.append("demo")})
        self.assertEqual(called, ["demo"])

    def test_known_error_exits_with_status_one(self) -> None:
        def _fail() -> None:
            raise CiPublishError("Missing required environment variable: GITHUB_REF")

        stderr = io.StringIO()
        with mock.patch("ci_publish.cli.command_map", return_value={"demo": _fail}):
            with redirect_stderr(stderr):
                with self.assertRaises(SystemExit) as ctx:
                    main(["demo"])
        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("GITHUB_REF", stderr.getvalue())


if __name__ == "__main__":
    unittest.main()
