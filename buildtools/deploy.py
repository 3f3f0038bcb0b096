"""Applying templated Kubernetes descriptors and running deployment scripts for a target."""

from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from typing import Protocol

from buildtools.cli import LogWriter
from buildtools.file import find_files_for_target, find_scripts_for_target

logger = logging.getLogger(__name__)

DEPLOYMENT_DIR = "k8s"
DEFAULT_TIMEOUT = "2m"

_PLACEHOLDER = re.compile(r"\$\{(COMMIT|TIMESTAMP|IMAGE)\}")


class DeployError(RuntimeError):
    """Raised when a deployment step fails."""


@dataclass
class DeployArgs:
    """What to deploy and where."""

    target: str = ""
    context: str = ""
    namespace: str = ""
    tag: str = ""
    timeout: str = DEFAULT_TIMEOUT
    no_wait: bool = False


class KubeClient(Protocol):
    """The cluster operations a deployment needs."""

    def apply(self, content: str) -> None:
        """Apply the given descriptor text; raise on failure."""

    def deployment_exists(self, name: str) -> bool:
        """Whether a deployment with this name exists."""

    def rollout_status(self, name: str, timeout: str) -> bool:
        """Wait for the rollout of the deployment; True when it succeeded."""

    def deployment_events(self, name: str) -> str:
        """Events of the deployment, as text."""

    def pod_events(self, name: str) -> str:
        """Events of the deployment's pods, as text."""


def deploy(
    directory: str | os.PathLike[str],
    registry_url: str,
    build_name: str,
    timestamp: str,
    client: KubeClient,
    deploy_args: DeployArgs,
) -> None:
    """Apply the target's descriptors from the k8s directory, run its scripts and await rollout."""
    image_name = f"{registry_url}/{build_name}:{deploy_args.tag}"
    deployment_dir = os.path.join(os.fspath(directory), DEPLOYMENT_DIR)
    _process_dir(deployment_dir, deploy_args.tag, timestamp, deploy_args.target, image_name, client)

    if deploy_args.no_wait:
        logger.info("Not waiting for deployment to succeed\n")
        return

    if client.deployment_exists(build_name) and not client.rollout_status(build_name, deploy_args.timeout):
        logger.error("Rollout failed. Fetching events.\n")
        logger.error("%s", client.deployment_events(build_name))
        logger.error("%s", client.pod_events(build_name))
        raise DeployError("failed to rollout")


def _process_dir(
    directory: str,
    commit: str,
    timestamp: str,
    target: str,
    image_name: str,
    client: KubeClient,
) -> None:
    files = find_files_for_target(directory, target)
    scripts = find_scripts_for_target(directory, target)
    for entry in files:
        _process_file(os.path.join(directory, entry.name), commit, timestamp, image_name, client)
    for entry in scripts:
        _exec_file(os.path.join(directory, entry.name))


def _exec_file(path: str) -> None:
    completed = subprocess.run([path], capture_output=True, check=False)
    writer = LogWriter(logger)
    for output in (completed.stdout, completed.stderr):
        if output:
            writer.write(output)
    if completed.returncode != 0:
        raise DeployError(f"exit status {completed.returncode}")


def _process_file(path: str, commit: str, timestamp: str, image: str, client: KubeClient) -> None:
    with open(path, encoding="utf-8", newline="") as handle:
        content = handle.read()
    if not content.strip():
        logger.debug("ignoring empty file '<yellow>%s</yellow>'\n", os.path.basename(path))
        return
    values = {"COMMIT": commit, "TIMESTAMP": timestamp, "IMAGE": image}
    kube_content = _PLACEHOLDER.sub(lambda match: values[match.group(1)], content)
    logger.debug("trying to apply: \n---\n%s\n---\n", kube_content)
    client.apply(kube_content)