"""
Script: ci_publish/push_images.py
What: Pushes every built image tag to the registry and records the pushed digests.
Doing: Guards release tags against overwrite, runs `docker push` with retries, reads back repo digests, writes outputs and `artifacts/pushed-images.json`.
Why: A release tag like `1.4.2` must keep pointing at one image once published.
Goal: Publish the images built in this run and leave a record of exactly what was pushed.
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Callable, Mapping

from ci_publish.common import (
    CiPublishError,
    docker_image_exists,
    docker_repo_digest,
    env_flag,
    int_env,
    require_env,
    run_cmd,
    write_github_outputs,
)
from ci_publish.images_config import (
    image_refs,
    image_repository,
    load_selected_images,
    parse_tag_list,
    registry_from_env,
)
from ci_publish.resolve_image_tags import parse_semver


ARTIFACT_DIR = Path("artifacts")
PUSHED_IMAGES_PATH = ARTIFACT_DIR / "pushed-images.json"


def immutable_tags(tags: list[str]) -> list[str]:
    """Full version tags (`1.2.3`, `1.2.3-rc.1`) that must never be moved."""
    return [tag for tag in tags if parse_semver(tag) is not None]


def guard_immutable_tags(
    refs_by_tag: Mapping[str, str],
    *,
    exists: Callable[[str], bool],
    allow_overwrite: bool,
) -> None:
    """Fail before pushing anything if a release tag is already published."""
    if allow_overwrite:
        return
    taken = [
        refs_by_tag[tag] for tag in immutable_tags(list(refs_by_tag)) if exists(refs_by_tag[tag])
    ]
    if taken:
        raise CiPublishError(
            "Refusing to overwrite existing release tags: "
            f"{', '.join(taken)}. Set ALLOW_TAG_OVERWRITE=true to replace them."
        )


def docker_push(image_ref: str) -> None:
    run_cmd(["docker", "push", image_ref], capture_output=False)


def push_with_retry(
    image_ref: str,
    *,
    push: Callable[[str], None],
    retry_times: int,
    retry_delay: float,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """
    Push one ref, retrying transient registry failures.

    `retry_times` is the total number of attempts. The error from the last
    attempt is raised unchanged.
    """
    attempts = max(retry_times, 1)
    for attempt in range(1, attempts + 1):
        try:
            push(image_ref)
            return
        except CiPublishError as exc:
            if attempt == attempts:
                raise
            print(f"Push of {image_ref} failed (attempt {attempt}/{attempts}): {exc}")
            sleep(retry_delay)


def push_images(
    images: list[dict],
    *,
    registry: str,
    namespace: str,
    tags: list[str],
    allow_overwrite: bool = False,
    retry_times: int = 3,
    retry_delay: float = 5.0,
    push: Callable[[str], None] = docker_push,
    exists: Callable[[str], bool] = docker_image_exists,
    digest_lookup: Callable[[str], str] = docker_repo_digest,
    sleep: Callable[[float], None] = time.sleep,
) -> list[dict]:
    """
    Push all tags of all images and return one record per image.

    Overwrite checks for every image run before the first push, so a taken
    release tag never leaves a half-published set.
    """
    planned: list[tuple[dict, str, dict[str, str]]] = []
    for image in images:
        repository_path = image_repository(registry, namespace, image["repository"])
        refs_by_tag = dict(zip(tags, image_refs(repository_path, tags)))
        guard_immutable_tags(refs_by_tag, exists=exists, allow_overwrite=allow_overwrite)
        planned.append((image, repository_path, refs_by_tag))

    records: list[dict] = []
    for image, repository_path, refs_by_tag in planned:
        for ref in refs_by_tag.values():
            push_with_retry(
                ref, push=push, retry_times=retry_times, retry_delay=retry_delay, sleep=sleep
            )
            print(f"Pushed {ref}")

        digest = digest_lookup(next(iter(refs_by_tag.values())))
        print(f"Published {repository_path}@{digest}")
        records.append(
            {
                "name": image["name"],
                "repository": repository_path,
                "tags": list(refs_by_tag),
                "digest": digest,
            }
        )
    return records


def write_pushed_images(records: list[dict], path: Path = PUSHED_IMAGES_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"images": records}, indent=2) + "\n", encoding="utf-8")


def main() -> None:
    if not env_flag("IMAGE_SHOULD_PUSH", default=True):
        print("Push disabled for this ref; built images stay local.")
        return

    tags = parse_tag_list(require_env("IMAGE_TAGS"))
    registry, namespace = registry_from_env()
    images = load_selected_images()

    records = push_images(
        images,
        registry=registry,
        namespace=namespace,
        tags=tags,
        allow_overwrite=env_flag("ALLOW_TAG_OVERWRITE"),
        retry_times=int_env("PUSH_RETRY_TIMES", 3, minimum=1),
        retry_delay=int_env("PUSH_RETRY_DELAY", 5, minimum=0),
    )
    write_pushed_images(records)

    # One `<name>_digest` output per image, for deploy jobs that pin by digest.
    write_github_outputs({f"{record['name']}_digest": record["digest"] for record in records})


if __name__ == "__main__":
    main()
