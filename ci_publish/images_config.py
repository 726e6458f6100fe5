"""
Script: ci_publish/images_config.py
What: Loads the list of images this repository builds and publishes.
Doing: Reads `ci/images.json`, fills defaults, validates entries, and builds registry image paths.
Why: Build and push steps must agree on names, contexts and repositories.
Goal: Keep image definitions in one checked-in JSON file instead of workflow YAML.
"""

from __future__ import annotations

import json
import re
from pathlib import Path

from ci_publish.common import CiPublishError, normalize_namespace, optional_env


DEFAULT_IMAGES_FILE = Path("ci/images.json")
DOCKER_HUB_REGISTRY = "docker.io"
# Docker repository path: lowercase components separated by `/`.
REPOSITORY_COMPONENT = r"[a-z0-9]+(?:(?:\.|_|__|-+)[a-z0-9]+)*"
REPOSITORY_RE = re.compile(rf"^{REPOSITORY_COMPONENT}(?:/{REPOSITORY_COMPONENT})*$")


def _string_field(entry: dict, key: str, default: str, label: str) -> str:
    value = entry.get(key)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise CiPublishError(f"{label}: {key} must be a string")
    return value


def _normalize_image(entry: object, index: int) -> dict:
    if not isinstance(entry, dict):
        raise CiPublishError(f"Image entry #{index} must be a JSON object")

    name = _string_field(entry, "name", "", f"Image entry #{index}").strip()
    if not name:
        raise CiPublishError(f"Image entry #{index} is missing required field: name")

    label = f"Image {name}"
    context = _string_field(entry, "context", name, label)
    build_args = entry.get("build_args") or {}
    if not isinstance(build_args, dict):
        raise CiPublishError(f"{label}: build_args must be a JSON object")
    for key, value in build_args.items():
        if not isinstance(value, str):
            raise CiPublishError(f"{label}: build arg {key} must be a string")

    repository = _string_field(entry, "repository", name, label).lower()
    if not REPOSITORY_RE.match(repository):
        raise CiPublishError(f"{label}: invalid repository name {repository!r}")

    return {
        "name": name,
        "context": context,
        "dockerfile": _string_field(entry, "dockerfile", f"{context}/Dockerfile", label),
        "target": _string_field(entry, "target", "", label),
        "repository": repository,
        "build_args": dict(build_args),
    }


def load_images_file(path: Path) -> list[dict]:
    """
    Load and validate image definitions.

    Each returned dict has `name`, `context`, `dockerfile`, `target`,
    `repository` and `build_args`, with defaults filled in.
    """
    if not path.is_file():
        raise CiPublishError(f"Images file not found or not a regular file: {path}")
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise CiPublishError(f"Images file is not valid JSON: {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise CiPublishError(f"Could not read images file {path}: {exc}") from exc

    entries = document.get("images") if isinstance(document, dict) else None
    if not isinstance(entries, list) or not entries:
        raise CiPublishError(f"Images file {path} must contain a non-empty `images` list")

    images = [_normalize_image(entry, index) for index, entry in enumerate(entries, start=1)]

    names = [image["name"] for image in images]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise CiPublishError(f"Duplicate image names in {path}: {', '.join(duplicates)}")
    return images


def select_images(images: list[dict], names: str) -> list[dict]:
    """Keep only images named in a comma-separated list; empty keeps all."""
    wanted = [name.strip() for name in names.split(",") if name.strip()]
    if not wanted:
        return images

    known = {image["name"] for image in images}
    unknown = [name for name in wanted if name not in known]
    if unknown:
        raise CiPublishError(f"Unknown image names: {', '.join(unknown)}")
    return [image for image in images if image["name"] in wanted]


def load_selected_images() -> list[dict]:
    """Load images from `IMAGES_FILE` and apply the `IMAGE_NAMES` filter."""
    images_file = Path(optional_env("IMAGES_FILE", str(DEFAULT_IMAGES_FILE)))
    return select_images(load_images_file(images_file), optional_env("IMAGE_NAMES"))


def image_repository(registry: str, namespace: str, repository: str) -> str:
    """Build the full repository path, for example `docker.io/myorg/frontend`."""
    if not namespace.strip():
        raise CiPublishError("Registry namespace must not be empty")
    registry = registry.strip().rstrip("/") or DOCKER_HUB_REGISTRY
    return f"{registry}/{normalize_namespace(namespace)}/{repository}"


def image_refs(repository_path: str, tags: list[str]) -> list[str]:
    """Return `<repository>:<tag>` for each tag."""
    return [f"{repository_path}:{tag}" for tag in tags]


def parse_tag_list(value: str) -> list[str]:
    """Split the comma-separated `IMAGE_TAGS` value and reject an empty list."""
    tags = [tag.strip() for tag in value.split(",") if tag.strip()]
    if not tags:
        raise CiPublishError("No image tags resolved; run resolve-image-tags first")
    return tags


def registry_from_env() -> tuple[str, str]:
    """
    Return `(registry, namespace)` from workflow env.

    The namespace falls back to the Docker Hub login name, which is where
    personal images live, then to the GitHub owner so fork pull requests
    (no secrets) can still build.
    """
    registry = optional_env("REGISTRY", DOCKER_HUB_REGISTRY)
    namespace = (
        optional_env("DOCKERHUB_NAMESPACE")
        or optional_env("DOCKERHUB_USERNAME")
        or optional_env("GITHUB_REPOSITORY_OWNER")
    )
    if not namespace:
        raise CiPublishError(
            "Missing registry namespace: set DOCKERHUB_NAMESPACE or DOCKERHUB_USERNAME"
        )
    return registry, namespace
