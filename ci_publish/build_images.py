"""
Script: ci_publish/build_images.py
What: Builds every configured image with all tags resolved for this run.
Doing: Runs `docker build` per image from `ci/images.json`, adding OCI labels and one `--tag` per resolved tag.
Why: Tagging at build time means the push step only uploads what was built here.
Goal: Produce locally tagged images ready for `push-images`.
"""

from __future__ import annotations

from datetime import datetime, timezone

from ci_publish.common import optional_env, require_env, run_cmd
from ci_publish.images_config import (
    image_refs,
    image_repository,
    load_selected_images,
    parse_tag_list,
    registry_from_env,
)


def oci_labels(*, source_url: str, revision: str, created: str, version: str) -> dict[str, str]:
    """Standard `org.opencontainers.image.*` labels; empty values are skipped."""
    labels = {
        "org.opencontainers.image.source": source_url,
        "org.opencontainers.image.revision": revision,
        "org.opencontainers.image.created": created,
        "org.opencontainers.image.version": version,
    }
    return {key: value for key, value in labels.items() if value}


def build_command(image: dict, *, refs: list[str], labels: dict[str, str]) -> list[str]:
    """Assemble one `docker build` command line for an image."""
    command = ["docker", "build", "--file", image["dockerfile"]]
    if image["target"]:
        command.extend(["--target", image["target"]])
    for key in sorted(image["build_args"]):
        command.extend(["--build-arg", f"{key}={image['build_args'][key]}"])
    for key in sorted(labels):
        command.extend(["--label", f"{key}={labels[key]}"])
    for ref in refs:
        command.extend(["--tag", ref])
    command.append(image["context"])
    return command


def build_images(
    images: list[dict],
    *,
    registry: str,
    namespace: str,
    tags: list[str],
    labels: dict[str, str],
) -> dict[str, list[str]]:
    """Build each image and return `{image name: [built refs]}`."""
    built: dict[str, list[str]] = {}
    for image in images:
        repository_path = image_repository(registry, namespace, image["repository"])
        refs = image_refs(repository_path, tags)
        print(f"Building {image['name']} from {image['context']} ({image['dockerfile']})")
        run_cmd(build_command(image, refs=refs, labels=labels), capture_output=False)
        for ref in refs:
            print(f"Built {ref}")
        built[image["name"]] = refs
    return built


def labels_from_env(primary_tag: str) -> dict[str, str]:
    """OCI labels from GitHub run metadata; works outside Actions too."""
    server_url = optional_env("GITHUB_SERVER_URL", "https://github.com")
    repository = optional_env("GITHUB_REPOSITORY")
    return oci_labels(
        source_url=f"{server_url}/{repository}" if repository else "",
        revision=optional_env("GITHUB_SHA"),
        created=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        version=primary_tag,
    )


def main() -> None:
    # Tags come from the resolve step through GITHUB_ENV.
    tags = parse_tag_list(require_env("IMAGE_TAGS"))
    registry, namespace = registry_from_env()
    images = load_selected_images()

    build_images(
        images,
        registry=registry,
        namespace=namespace,
        tags=tags,
        labels=labels_from_env(tags[0]),
    )


if __name__ == "__main__":
    main()
