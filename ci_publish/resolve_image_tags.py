"""
Script: ci_publish/resolve_image_tags.py
What: Derives the image tags for the ref that triggered this run.
Doing: Parses `GITHUB_REF`, maps branches/tags/pull requests to registry-safe tags, and writes outputs and env values.
Why: Every build of the same commit and ref must land on the same tag names.
Goal: Give build and push steps one deterministic tag list to work from.
"""

from __future__ import annotations

import re

from ci_publish.common import (
    CiPublishError,
    env_flag,
    optional_env,
    require_env,
    write_github_env,
    write_github_outputs,
)


PULL_REF_RE = re.compile(r"^refs/pull/([0-9]+)/(merge|head)$")
SEMVER_RE = re.compile(
    r"^v?(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)"
    r"(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)
HEX_RE = re.compile(r"^[0-9a-f]+$")
UNSAFE_CHARS_RE = re.compile(r"[^a-z0-9._-]+")
# Docker allows at most 128 characters in a tag.
MAX_TAG_LENGTH = 128
SHORT_SHA_LENGTH = 7

REF_BRANCH = "branch"
REF_TAG = "tag"
REF_PULL_REQUEST = "pull_request"


def parse_git_ref(ref: str) -> tuple[str, str]:
    """
    Split a full git ref into `(kind, name)`.

    Examples:
    - `refs/heads/feature/x` -> `("branch", "feature/x")`
    - `refs/tags/v1.2.3` -> `("tag", "v1.2.3")`
    - `refs/pull/42/merge` -> `("pull_request", "42")`
    """
    if ref.startswith("refs/heads/") and len(ref) > len("refs/heads/"):
        return REF_BRANCH, ref[len("refs/heads/"):]
    if ref.startswith("refs/tags/") and len(ref) > len("refs/tags/"):
        return REF_TAG, ref[len("refs/tags/"):]
    match = PULL_REF_RE.match(ref)
    if match:
        return REF_PULL_REQUEST, match.group(1)
    raise CiPublishError(f"Unsupported git ref: {ref!r}")


def clamp_tag(value: str, fallback: str) -> str:
    """Truncate and clean a tag string while preserving a fallback."""
    trimmed = value[:MAX_TAG_LENGTH].rstrip("-")
    return trimmed or fallback


def sanitize_tag(value: str, fallback: str = "unnamed") -> str:
    """Convert an arbitrary name into a registry-safe tag."""
    # Tags may not start with '.' or '-', so strip those from the front.
    safe = UNSAFE_CHARS_RE.sub("-", value.lower()).lstrip("-.").rstrip("-")
    return clamp_tag(safe, fallback)


def short_sha(sha: str) -> str:
    """Return the short (7 character) form of a commit SHA."""
    value = sha.strip().lower()
    if len(value) < SHORT_SHA_LENGTH or not HEX_RE.match(value):
        raise CiPublishError(f"Invalid commit SHA: {sha!r}")
    return value[:SHORT_SHA_LENGTH]


def parse_semver(tag_name: str) -> tuple[str, str, str, str] | None:
    """Return `(major, minor, patch, prerelease)` for a version tag, else None."""
    match = SEMVER_RE.match(tag_name)
    if not match:
        return None
    major, minor, patch, prerelease = match.groups()
    return major, minor, patch, prerelease or ""


def _unique(values: list[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def derive_image_tags(
    kind: str,
    name: str,
    *,
    sha: str,
    default_branch: str = "main",
    latest_tag: str = "latest",
    latest_on_default_branch: bool = False,
) -> list[str]:
    """
    Map one ref to its ordered tag list. The first tag is the primary tag.

    Rules:
    - stable release tag `v1.2.3`: `1.2.3`, `1.2`, `1`, then `latest_tag`
    - prerelease tag `v1.2.3-rc.1`: `1.2.3-rc.1` only
    - other git tags: the sanitized tag name
    - default branch: `edge` (or `latest_tag` when enabled), then `sha-<short>`
    - other branches: `br-<branch>`, then `sha-<short>`
    - pull requests: `pr-<number>`
    """
    if kind == REF_TAG:
        version = parse_semver(name)
        if version is None:
            return [sanitize_tag(name)]
        major, minor, patch, prerelease = version
        if prerelease:
            return [sanitize_tag(f"{major}.{minor}.{patch}-{prerelease}")]
        return _unique(
            [f"{major}.{minor}.{patch}", f"{major}.{minor}", major, sanitize_tag(latest_tag)]
        )

    if kind == REF_BRANCH:
        sha_tag = f"sha-{short_sha(sha)}"
        if name == default_branch:
            branch_tag = sanitize_tag(latest_tag) if latest_on_default_branch else "edge"
        else:
            branch_tag = clamp_tag(f"br-{sanitize_tag(name, 'branch')}", "br-branch")
        return _unique([branch_tag, sha_tag])

    if kind == REF_PULL_REQUEST:
        return [f"pr-{name}"]

    raise CiPublishError(f"Unknown ref kind: {kind}")


def should_push(kind: str, push_pull_requests: bool = False) -> bool:
    """Pull request builds are only pushed when explicitly enabled."""
    if kind == REF_PULL_REQUEST:
        return push_pull_requests
    return True


def resolve_from_env() -> dict[str, str]:
    """Resolve ref kind, tags and push decision from workflow env values."""
    ref = require_env("GITHUB_REF")
    sha = require_env("GITHUB_SHA")
    kind, name = parse_git_ref(ref)
    tags = derive_image_tags(
        kind,
        name,
        sha=sha,
        default_branch=optional_env("DEFAULT_BRANCH", "main"),
        latest_tag=optional_env("LATEST_TAG", "latest"),
        latest_on_default_branch=env_flag("LATEST_ON_DEFAULT_BRANCH"),
    )
    push = should_push(kind, env_flag("PUSH_PULL_REQUESTS"))
    return {
        "ref_kind": kind,
        "ref_name": name,
        "image_tags": ",".join(tags),
        "primary_tag": tags[0],
        "should_push": "true" if push else "false",
    }


def main() -> None:
    resolved = resolve_from_env()

    # Outputs are for `needs.<job>.outputs`; env values are for later steps
    # in this same job.
    write_github_outputs(resolved)
    write_github_env(
        {
            "IMAGE_TAGS": resolved["image_tags"],
            "IMAGE_PRIMARY_TAG": resolved["primary_tag"],
            "IMAGE_SHOULD_PUSH": resolved["should_push"],
            "IMAGE_REF_KIND": resolved["ref_kind"],
            "IMAGE_REF_NAME": resolved["ref_name"],
        }
    )

    print(f"Ref: {resolved['ref_kind']} {resolved['ref_name']}")
    print(f"Image tags: {resolved['image_tags']}")
    print(f"Primary tag: {resolved['primary_tag']}")
    print(f"Push enabled: {resolved['should_push']}")


if __name__ == "__main__":
    main()
