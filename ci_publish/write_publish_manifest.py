"""
Script: ci_publish/write_publish_manifest.py
What: Writes a JSON record of what this run resolved and published.
Doing: Collects workflow/run metadata, resolved tags and pushed digests, then writes `artifacts/publish-manifest.json`.
Why: Makes it easy to answer "which commit is behind this tag" after the fact.
Goal: Save a clear per-run publish manifest.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from ci_publish.common import CiPublishError, require_env, require_int_env
from ci_publish.images_config import parse_tag_list
from ci_publish.push_images import ARTIFACT_DIR, PUSHED_IMAGES_PATH


ARTIFACT_PATH = ARTIFACT_DIR / "publish-manifest.json"


def load_pushed_images(path: Path = PUSHED_IMAGES_PATH) -> list[dict]:
    """Read the push step's record; no file means nothing was pushed."""
    if not path.exists():
        return []
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CiPublishError(f"Could not read pushed images record {path}: {exc}") from exc
    images = document.get("images") if isinstance(document, dict) else None
    if not isinstance(images, list):
        raise CiPublishError(f"Pushed images record {path} must contain an `images` list")
    return images


def run_metadata_from_env() -> dict:
    return {
        "repository": require_env("GITHUB_REPOSITORY"),
        "workflow": require_env("GITHUB_WORKFLOW"),
        "run": {
            "id": require_int_env("GITHUB_RUN_ID"),
            "attempt": require_int_env("GITHUB_RUN_ATTEMPT"),
            "number": require_int_env("GITHUB_RUN_NUMBER"),
            "ref": require_env("GITHUB_REF"),
            "sha": require_env("GITHUB_SHA"),
            "actor": require_env("GITHUB_ACTOR"),
        },
    }


def build_manifest_document(
    *,
    run_metadata: dict,
    ref_kind: str,
    ref_name: str,
    tags: list[str],
    pushed_images: list[dict],
    generated_at: str,
) -> dict:
    # `pushed` is False for runs that only built (pull requests by default).
    document = {"schema_version": 1, "generated_at": generated_at}
    document.update(run_metadata)
    document["resolved"] = {"ref_kind": ref_kind, "ref_name": ref_name, "tags": tags}
    document["pushed"] = bool(pushed_images)
    document["images"] = pushed_images
    return document


def write_manifest(document: dict, path: Path = ARTIFACT_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document, indent=2) + "\n", encoding="utf-8")
    # Print in logs so operators can copy the file contents quickly if needed.
    print(path.read_text(encoding="utf-8"), end="")


def main() -> None:
    generated_at = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    document = build_manifest_document(
        run_metadata=run_metadata_from_env(),
        ref_kind=require_env("IMAGE_REF_KIND"),
        ref_name=require_env("IMAGE_REF_NAME"),
        tags=parse_tag_list(require_env("IMAGE_TAGS")),
        pushed_images=load_pushed_images(),
        generated_at=generated_at,
    )
    write_manifest(document)


if __name__ == "__main__":
    main()
