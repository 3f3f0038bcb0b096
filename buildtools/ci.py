"""Continuous-integration environments and the build facts they provide."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar

logger = logging.getLogger(__name__)


class VersionControl:
    """A version control system used when the CI does not name a branch or commit.

    This base class stands for "no version control": it knows neither.
    """

    name: str = "none"

    def branch(self) -> str:
        return ""

    def commit(self) -> str:
        return ""


@dataclass
class CI:
    """A CI environment, filled in from the variables it sets."""

    name: ClassVar[str] = ""
    COMMIT_ENV: ClassVar[str] = ""
    BUILD_NAME_ENV: ClassVar[str] = ""
    BRANCH_ENV: ClassVar[str] = ""

    ci_commit: str = ""
    ci_build_name: str = ""
    ci_branch_name: str = ""
    vcs: VersionControl = field(default_factory=VersionControl)
    image_name: str = ""

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> CI:
        """Create an instance from the environment variables this CI sets."""
        env = os.environ if environ is None else environ

        def read(key: str) -> str:
            return env.get(key, "") if key else ""

        return cls(
            ci_commit=read(cls.COMMIT_ENV),
            ci_build_name=read(cls.BUILD_NAME_ENV),
            ci_branch_name=read(cls.BRANCH_ENV),
        )

    def _build_name_from(self, name: str) -> str:
        if self.image_name:
            logger.info("Using %s as BuildName\n", self.image_name)
            return self.image_name
        if name:
            return name.lower()
        return Path.cwd().name.lower()

    def build_name(self) -> str:
        """The name of the current build, in lower case unless overridden."""
        return self._build_name_from(self.ci_build_name)

    def _branch_from(self, name: str) -> str:
        return name or self.vcs.branch()

    def branch(self) -> str:
        return self._branch_from(self.ci_branch_name)

    def commit(self) -> str:
        return self.ci_commit or self.vcs.commit()

    def branch_replace_slash(self) -> str:
        """The branch with slashes and spaces replaced by underscores."""
        return self.branch().replace("/", "_").replace(" ", "_")

    def configured(self) -> bool:
        """Whether this CI is the one running the build."""
        return self.ci_build_name != ""


class Azure(CI):
    name = "Azure"
    COMMIT_ENV = "BUILD_SOURCEVERSION"
    BUILD_NAME_ENV = "BUILD_REPOSITORY_NAME"
    BRANCH_ENV = "BUILD_SOURCEBRANCHNAME"


class Buildkite(CI):
    name = "Buildkite"
    COMMIT_ENV = "BUILDKITE_COMMIT"
    BUILD_NAME_ENV = "BUILDKITE_PIPELINE_SLUG"
    BRANCH_ENV = "BUILDKITE_BRANCH"


class Github(CI):
    name = "Github"
    COMMIT_ENV = "GITHUB_SHA"
    BUILD_NAME_ENV = "RUNNER_WORKSPACE"
    BRANCH_ENV = "GITHUB_REF"

    _WORKSPACE_PREFIX: ClassVar[str] = "/home/runner/work/"

    def build_name(self) -> str:
        return self._build_name_from(self.ci_build_name.removeprefix(self._WORKSPACE_PREFIX))

    def branch(self) -> str:
        ref = self.ci_branch_name
        if ref.startswith("refs/heads"):
            ref = ref.removeprefix("refs/heads/")
        elif ref.startswith("refs/tags"):
            ref = ref.removeprefix("refs/tags/")
        return self._branch_from(ref)


class Gitlab(CI):
    name = "Gitlab"
    COMMIT_ENV = "CI_COMMIT_SHA"
    BUILD_NAME_ENV = "CI_PROJECT_NAME"
    BRANCH_ENV = "CI_COMMIT_REF_NAME"


class TeamCity(CI):
    name = "TeamCity"
    COMMIT_ENV = "BUILD_VCS_NUMBER"
    BUILD_NAME_ENV = "TEAMCITY_PROJECT_NAME"
    BRANCH_ENV = "BUILD_VCS_BRANCH"


class NoCI(CI):
    """Used when no CI environment is detected; everything comes from version control."""

    name = "none"

    def configured(self) -> bool:
        return False


def is_valid(ci: CI) -> bool:
    """Whether the CI knows a commit or a branch."""
    return bool(ci.commit()) or bool(ci.branch())