"""
Script: tests/test_images_config.py
What: Tests loading and validation of `ci/images.json`.
Doing: Checks defaults, error cases, name filtering, and repository path building.
Why: A typo in the images file should fail before any docker command runs.
Goal: Keep image configuration errors clear and early.
"""

from __future__ import annotations

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from ci_publish.common import CiPublishError
from ci_publish.images_config import (
    image_refs,
    image_repository,
    load_images_file,
    load_selected_images,
    parse_tag_list,
    registry_from_env,
    select_images,
)


def _write(temp_dir: str, document: object) -> Path:
    path = Path(temp_dir) / "images.json"
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


class LoadImagesFileTests(unittest.TestCase):
    def test_fills_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = _write(temp_dir, {"images": [{"name": "frontend"}]})
            images = load_images_file(path)

        self.assertEqual(
            images,
            [
                {
                    "name": "frontend",
                    "context": "frontend",
                    "dockerfile": "frontend/Dockerfile",
                    "target": "",
                    "repository": "frontend",
                    "build_args": {},
                }
            ],
        )

    def test_keeps_explicit_values(self) -> None:
        entry = {
            "name": "backend",
            "context": "services/api",
            "dockerfile": "services/api/Dockerfile.prod",
            "target": "runtime",
            "repository": "Shop-API",
            "build_args": {"PYTHON_VERSION": "3.12"},
        }
        with tempfile.TemporaryDirectory() as temp_dir:
            images = load_images_file(_write(temp_dir, {"images": [entry]}))

        self.assertEqual(images[0]["repository"], "shop-api")
        self.assertEqual(images[0]["target"], "runtime")
        self.assertEqual(images[0]["build_args"], {"PYTHON_VERSION": "3.12"})

    def test_rejects_bad_documents(self) -> None:
        bad_documents = [
            {},
            {"images": []},
            {"images": [{"context": "x"}]},
            {"images": [{"name": "a"}, {"name": "a"}]},
            {"images": [{"name": "a", "build_args": {"N": 1}}]},
            {"images": ["frontend"]},
            {"images": [{"name": ["frontend"]}]},
            {"images": [{"name": "a", "context": ["a", "b"]}]},
            {"images": [{"name": "a", "dockerfile": 3}]},
            {"images": [{"name": "a", "target": {"stage": "x"}}]},
            {"images": [{"name": "a", "repository": ["api"]}]},
            {"images": [{"name": "a", "repository": "my api"}]},
            {"images": [{"name": "a", "repository": "-api"}]},
            {"images": [{"name": "a", "repository": "team//api"}]},
        ]
        for document in bad_documents:
            with self.subTest(document=document):
                with tempfile.TemporaryDirectory() as temp_dir:
                    with self.assertRaises(CiPublishError):
                        load_images_file(_write(temp_dir, document))

    def test_missing_and_invalid_files(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            with self.assertRaises(CiPublishError):
                load_images_file(Path(temp_dir) / "nope.json")
            broken = Path(temp_dir) / "broken.json"
            broken.write_text("{not json", encoding="utf-8")
            with self.assertRaises(CiPublishError):
                load_images_file(broken)

    def test_directory_and_undecodable_files(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            with self.assertRaises(CiPublishError):
                load_images_file(Path(temp_dir))
            undecodable = Path(temp_dir) / "images.json"
            undecodable.write_bytes(b'{"images":[{"name":"\xff"}]}')
            with self.assertRaises(CiPublishError):
                load_images_file(undecodable)

    def test_nested_repository_path_is_allowed(self) -> None:
        entry = {"name": "api", "repository": "team/shop.api_v2"}
        with tempfile.TemporaryDirectory() as temp_dir:
            images = load_images_file(_write(temp_dir, {"images": [entry]}))
        self.assertEqual(images[0]["repository"], "team/shop.api_v2")

    def test_empty_images_file_env_uses_default_path(self) -> None:
        original_cwd = os.getcwd()
        with tempfile.TemporaryDirectory() as temp_dir:
            os.chdir(temp_dir)
            self.addCleanup(os.chdir, original_cwd)
            Path("ci").mkdir()
            _write("ci", {"images": [{"name": "frontend"}]})
            with mock.patch.dict(os.environ, {"IMAGES_FILE": "", "IMAGE_NAMES": ""}, clear=True):
                images = load_selected_images()
            os.chdir(original_cwd)
        self.assertEqual([image["name"] for image in images], ["frontend"])


class SelectionAndNamingTests(unittest.TestCase):
    images = [{"name": "frontend"}, {"name": "backend"}]

    def test_select_all_when_empty(self) -> None:
        self.assertEqual(select_images(self.images, ""), self.images)

    def test_select_by_name(self) -> None:
        self.assertEqual(select_images(self.images, " backend "), [{"name": "backend"}])

    def test_select_unknown_name(self) -> None:
        with self.assertRaises(CiPublishError):
            select_images(self.images, "frontend,worker")

    def test_image_repository(self) -> None:
        self.assertEqual(
            image_repository("docker.io", "MyOrg", "frontend"), "docker.io/myorg/frontend"
        )
        self.assertEqual(image_repository("", "me", "api"), "docker.io/me/api")
        self.assertEqual(image_repository("ghcr.io/", "me", "api"), "ghcr.io/me/api")
        with self.assertRaises(CiPublishError):
            image_repository("docker.io", " ", "api")

    def test_image_refs(self) -> None:
        self.assertEqual(
            image_refs("docker.io/me/api", ["1.0.0", "1.0"]),
            ["docker.io/me/api:1.0.0", "docker.io/me/api:1.0"],
        )

    def test_parse_tag_list(self) -> None:
        self.assertEqual(parse_tag_list("edge, sha-0123456,"), ["edge", "sha-0123456"])
        with self.assertRaises(CiPublishError):
            parse_tag_list(" , ")

    def test_registry_from_env_prefers_namespace(self) -> None:
        env = {"DOCKERHUB_USERNAME": "me", "DOCKERHUB_NAMESPACE": "team"}
        with mock.patch.dict(os.environ, env, clear=True):
            self.assertEqual(registry_from_env(), ("docker.io", "team"))
        with mock.patch.dict(os.environ, {"DOCKERHUB_USERNAME": "me"}, clear=True):
            self.assertEqual(registry_from_env(), ("docker.io", "me"))
        with mock.patch.dict(os.environ, {"GITHUB_REPOSITORY_OWNER": "Octo"}, clear=True):
            self.assertEqual(registry_from_env(), ("docker.io", "Octo"))
        with mock.patch.dict(os.environ, {"REGISTRY": "", "DOCKERHUB_USERNAME": "me"}, clear=True):
            self.assertEqual(registry_from_env(), ("docker.io", "me"))
        with mock.patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(CiPublishError):
                registry_from_env()


if __name__ == "__main__":
    unittest.main()
