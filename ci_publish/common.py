"""
Script: ci_publish/common.py
What: Shared helper functions used by all `ci_publish` modules.
Doing: Wraps env reads, command execution, docker inspect calls, and GitHub output/env writes.
Why: Avoids duplicated helper code.
Goal: Keep behavior consistent across all helper modules.
"""

from __future__ import annotations

import json
import os
import subprocess
from typing import Mapping, Sequence


class CiPublishError(RuntimeError):
    """Raised when a publish helper hits a known error condition."""


TRUE_VALUES = {"true", "1", "yes"}
FALSE_VALUES = {"false", "0", "no"}
# `docker manifest inspect` error text for a tag or repository that does not exist.
MANIFEST_NOT_FOUND_MARKERS = ("no such manifest", "manifest unknown")


def require_env(name: str) -> str:
    """Return a required environment variable or raise a clear error."""
    value = os.environ.get(name)
    if value is None or value == "":
        raise CiPublishError(f"Missing required environment variable: {name}")
    return value


def optional_env(name: str, default: str = "") -> str:
    """
    Return an environment variable with a fallback default.

    Set-but-empty counts as unset: workflow expressions like `${{ vars.X }}`
    expand to an empty string when the variable is not defined.
    """
    value = os.environ.get(name, "")
    return value if value != "" else default


def env_flag(name: str, default: bool = False) -> bool:
    """
    Read a true/false workflow input.

    Workflow inputs arrive as strings, so `"true"`, `"1"` and `"yes"` count as
    true. An empty or unset value uses `default`.
    """
    raw = os.environ.get(name, "").strip().lower()
    if raw == "":
        return default
    if raw in TRUE_VALUES:
        return True
    if raw in FALSE_VALUES:
        return False
    raise CiPublishError(f"Environment variable {name} must be true or false, got {raw!r}")


def run_cmd(
    args: Sequence[str],
    *,
    capture_output: bool = True,
    cwd: str | None = None,
    input_text: str | None = None,
) -> str:
    """Run a command and return stdout, raising a readable error on failure."""
    try:
        result = subprocess.run(
            list(args),
            check=True,
            text=True,
            capture_output=capture_output,
            cwd=cwd,
            input=input_text,
        )
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        stdout = (exc.stdout or "").strip()
        details = stderr or stdout or str(exc)
        raise CiPublishError(f"Command failed: {' '.join(args)}\n{details}") from exc
    except FileNotFoundError as exc:
        raise CiPublishError(f"Command not found: {args[0]}") from exc

    if not capture_output:
        return ""
    return result.stdout


def run_json_cmd(args: Sequence[str]) -> object:
    """Run a command that returns JSON and parse it."""
    output = run_cmd(args)
    try:
        return json.loads(output)
    except json.JSONDecodeError as exc:
        raise CiPublishError(f"Expected JSON from command: {' '.join(args)}") from exc


def _append_key_values(env_name: str, values: Mapping[str, str]) -> None:
    target_file = require_env(env_name)
    with open(target_file, "a", encoding="utf-8") as handle:
        for key, value in values.items():
            if "\n" in value:
                raise CiPublishError(f"Refusing to write multi-line value for {key} to {env_name}")
            handle.write(f"{key}={value}\n")


def write_github_outputs(values: Mapping[str, str]) -> None:
    """
    Write step outputs for GitHub Actions.

    GitHub provides a file path in `GITHUB_OUTPUT`; writing `name=value` lines
    there makes that value available to later steps in the same job.
    """
    _append_key_values("GITHUB_OUTPUT", values)


def write_github_env(values: Mapping[str, str]) -> None:
    """
    Export environment variables to later steps in the same job.

    Same `NAME=value` format as step outputs, but the file path comes from
    `GITHUB_ENV` and later steps read the values as plain env vars.
    """
    _append_key_values("GITHUB_ENV", values)


def normalize_namespace(namespace: str) -> str:
    """
    Normalize a registry namespace (Docker Hub user or org) for image paths.

    Repository paths must be lowercase, so `MyOrg` becomes `myorg`.
    """
    return namespace.strip().lower()


def docker_image_exists(image_ref: str) -> bool:
    """
    True when the given image tag already exists in the registry.

    Only a "not found" answer from the registry means False. Auth, rate-limit
    and network failures are raised as errors.
    """
    try:
        run_cmd(["docker", "manifest", "inspect", image_ref])
        return True
    except CiPublishError as exc:
        message = str(exc).lower()
        if any(marker in message for marker in MANIFEST_NOT_FOUND_MARKERS):
            return False
        raise CiPublishError(f"Could not check whether {image_ref} exists:\n{exc}") from exc


def split_image_ref(image_ref: str) -> tuple[str, str]:
    """Split `repo:tag` into `(repo, tag)`; registry ports are kept in `repo`."""
    repository, sep, tag = image_ref.rpartition(":")
    if not sep or "/" in tag:
        return image_ref, ""
    return repository, tag


def docker_repo_digest(image_ref: str) -> str:
    """
    Return the registry digest for a pushed image.

    `docker push` records `repo@sha256:...` in the local image's `RepoDigests`.
    We pick the entry for this image's repository.
    """
    repo_digests = run_json_cmd(
        ["docker", "image", "inspect", "--format", "{{json .RepoDigests}}", image_ref]
    )
    repository, _tag = split_image_ref(image_ref)
    # Docker drops the `docker.io/` prefix (and `library/`) in RepoDigests.
    short_repository = repository.removeprefix("docker.io/").removeprefix("library/")
    for entry in repo_digests or []:
        name, _, digest = str(entry).partition("@")
        if name in (repository, short_repository) and digest.startswith("sha256:"):
            return digest
    raise CiPublishError(f"Missing repo digest for {image_ref} after push")


def _parse_int(name: str, raw: str, minimum: int | None) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise CiPublishError(f"Environment variable {name} must be an integer, got {raw!r}") from exc
    if minimum is not None and value < minimum:
        raise CiPublishError(
            f"Environment variable {name} must be at least {minimum}, got {value}"
        )
    return value


def int_env(name: str, default: int, *, minimum: int | None = None) -> int:
    """Return an integer environment variable with a fallback default."""
    return _parse_int(name, optional_env(name, str(default)).strip() or str(default), minimum)


def require_int_env(name: str) -> int:
    """Return a required integer environment variable."""
    return _parse_int(name, require_env(name).strip(), None)
