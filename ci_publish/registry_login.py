"""
Script: ci_publish/registry_login.py
What: Logs the docker CLI into the target registry (Docker Hub by default).
Doing: Runs `docker login --password-stdin` with `DOCKERHUB_USERNAME`/`DOCKERHUB_TOKEN`.
Why: The token goes through stdin so it never shows up in process lists or error text.
Goal: Let `push-images` upload without a separate login action.
"""

from __future__ import annotations

from ci_publish.common import env_flag, optional_env, require_env, run_cmd
from ci_publish.images_config import DOCKER_HUB_REGISTRY


def login_command(registry: str, username: str) -> list[str]:
    """
    Build the `docker login` command.

    Docker Hub is the CLI default, so no server argument is passed for it.
    """
    command = ["docker", "login"]
    if registry and registry != DOCKER_HUB_REGISTRY:
        command.append(registry)
    command.extend(["--username", username, "--password-stdin"])
    return command


def registry_login(registry: str, username: str, token: str) -> None:
    run_cmd(login_command(registry, username), input_text=token)
    print(f"Logged in to {registry or DOCKER_HUB_REGISTRY} as {username}")


def main() -> None:
    # Pull request runs from forks have no secrets, and nothing is pushed anyway.
    if not env_flag("IMAGE_SHOULD_PUSH", default=True):
        print("Push disabled for this ref; skipping registry login.")
        return

    registry = optional_env("REGISTRY", DOCKER_HUB_REGISTRY)
    username = require_env("DOCKERHUB_USERNAME")
    token = require_env("DOCKERHUB_TOKEN")
    registry_login(registry, username, token)


if __name__ == "__main__":
    main()
