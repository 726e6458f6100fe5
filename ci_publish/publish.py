"""
Script: ci_publish/publish.py
What: Runs the whole publish flow in one process.
Doing: Resolves tags from the git ref, logs in, builds, pushes, and writes the publish manifest.
Why: Handy for single-step workflows and for reproducing a CI publish locally.
Goal: Same results as running the individual commands in order.
"""

from __future__ import annotations

from datetime import datetime, timezone

from ci_publish.build_images import build_images, labels_from_env
from ci_publish.common import env_flag, int_env, optional_env, require_env
from ci_publish.images_config import load_selected_images, parse_tag_list, registry_from_env
from ci_publish.push_images import push_images, write_pushed_images
from ci_publish.registry_login import registry_login
from ci_publish.resolve_image_tags import resolve_from_env
from ci_publish.write_publish_manifest import (
    build_manifest_document,
    run_metadata_from_env,
    write_manifest,
)


def local_run_metadata() -> dict:
    # Outside GitHub Actions there is no run id/number; keep ref and sha only.
    return {
        "repository": optional_env("GITHUB_REPOSITORY"),
        "workflow": "",
        "run": {"ref": require_env("GITHUB_REF"), "sha": require_env("GITHUB_SHA")},
    }


def main() -> None:
    resolved = resolve_from_env()
    tags = parse_tag_list(resolved["image_tags"])
    should_push = resolved["should_push"] == "true"
    print(f"Ref: {resolved['ref_kind']} {resolved['ref_name']}")
    print(f"Image tags: {resolved['image_tags']}")

    # Validate config before touching docker at all.
    registry, namespace = registry_from_env()
    images = load_selected_images()

    if should_push:
        registry_login(registry, require_env("DOCKERHUB_USERNAME"), require_env("DOCKERHUB_TOKEN"))

    build_images(
        images,
        registry=registry,
        namespace=namespace,
        tags=tags,
        labels=labels_from_env(tags[0]),
    )

    records: list[dict] = []
    if should_push:
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
    else:
        print("Push disabled for this ref; built images stay local.")

    run_metadata = run_metadata_from_env() if env_flag("GITHUB_ACTIONS") else local_run_metadata()
    document = build_manifest_document(
        run_metadata=run_metadata,
        ref_kind=resolved["ref_kind"],
        ref_name=resolved["ref_name"],
        tags=tags,
        pushed_images=records,
        generated_at=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
    )
    write_manifest(document)


if __name__ == "__main__":
    main()
