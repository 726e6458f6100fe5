"""
Script: ci_publish package
What: Holds the Python helpers that tag, build and publish container images from CI.
Doing: Groups CLI entrypoints and shared utility code in one importable package.
Why: Keeps workflow logic readable and testable instead of inlining shell in workflow YAML.
Goal: Provide one clear home for image tag resolution and Docker Hub publishing.
"""
