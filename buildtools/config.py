"""Loading of .buildtools.yaml configuration, from files or the environment."""

from __future__ import annotations

import base64
import binascii
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from buildtools.ci import CI, Azure, Buildkite, Github, Gitlab, NoCI, TeamCity, VersionControl

logger = logging.getLogger(__name__)

ENV_BUILDTOOLS_CONTENT = "BUILDTOOLS_CONTENT"
ENV_IMAGE_NAME = "IMAGE_NAME"
CONFIG_FILENAME = ".buildtools.yaml"

_CI_SECTIONS: dict[str, type[CI]] = {
    "azure": Azure,
    "buildkite": Buildkite,
    "gitlab": Gitlab,
    "github": Github,
    "teamcity": TeamCity,
}
_CI_PRECEDENCE = ("azure", "buildkite", "gitlab", "teamcity", "github")
_CI_YAML_FIELDS = {
    "cicommit": "ci_commit",
    "cibuildname": "ci_build_name",
    "cibranchname": "ci_branch_name",
}
_REGISTRY_TYPES = {
    "dockerhub": "Dockerhub",
    "ecr": "ECR",
    "github": "Github",
    "gitlab": "Gitlab",
    "quay": "Quay",
    "gcr": "GCR",
}
_YAML_NULL = "tag:yaml.org,2002:null"
_YAML_TAG_PREFIX = "tag:yaml.org,2002:"


class ConfigError(ValueError):
    """Raised when configuration cannot be parsed or is inconsistent."""


@dataclass
class Target:
    context: str = ""
    namespace: str = ""
    kubeconfig: str = ""

    def _as_yaml(self) -> dict[str, str]:
        data = {"context": self.context}
        if self.namespace:
            data["namespace"] = self.namespace
        if self.kubeconfig:
            data["kubeconfig"] = self.kubeconfig
        return data


@dataclass
class Gitops:
    url: str = ""
    path: str = ""


@dataclass
class Git:
    name: str = ""
    email: str = ""
    key: str = ""


def _default_ci() -> dict[str, CI]:
    return {name: cls() for name, cls in _CI_SECTIONS.items()}


@dataclass
class Config:
    """The merged build configuration."""

    ci: dict[str, CI] = field(default_factory=_default_ci)
    image_name: str = ""
    registry: dict[str, dict[str, str]] = field(default_factory=dict)
    targets: dict[str, Target] = field(default_factory=dict)
    git: Git = field(default_factory=Git)
    gitops: dict[str, Gitops] = field(default_factory=dict)
    vcs: VersionControl = field(default_factory=VersionControl)

    @property
    def available_ci(self) -> list[CI]:
        """The known CI environments, in the order they are tried."""
        return [self.ci[name] for name in _CI_PRECEDENCE]

    def configured_registries(self) -> list[str]:
        return [name for name in _REGISTRY_TYPES if any(self.registry.get(name, {}).values())]

    def current_ci(self) -> CI:
        """The CI running the build, or NoCI when none is detected."""
        for candidate in self.available_ci:
            if candidate.configured():
                candidate.vcs = self.vcs
                candidate.image_name = self.image_name
                return candidate
        return NoCI(vcs=self.vcs, image_name=self.image_name)

    def current_target(self, name: str) -> Target:
        try:
            target = self.targets[name]
        except KeyError:
            raise ConfigError(f"no target matching {name} found") from None
        return Target(target.context, target.namespace, target.kubeconfig)

    def current_gitops(self, name: str) -> Gitops:
        try:
            gitops = self.gitops[name]
        except KeyError:
            raise ConfigError(f"no gitops matching {name} found") from None
        return Gitops(gitops.url, gitops.path)

    def dump(self) -> str:
        """A YAML summary of the active CI, VCS, registry and targets."""
        configured = self.configured_registries()
        registry = dict(self.registry[configured[0]]) if configured else {}
        data = {
            "ci": self.current_ci().name,
            "vcs": self.vcs.name,
            "registry": registry,
            "targets": {name: target._as_yaml() for name, target in self.targets.items()},
        }
        return yaml.safe_dump(data, sort_keys=False, indent=4, default_flow_style=False)


def init_empty_config() -> Config:
    return Config()


def load(directory: str | os.PathLike[str], vcs: VersionControl | None = None) -> Config:
    """Load configuration from BUILDTOOLS_CONTENT, or from .buildtools.yaml files upwards."""
    cfg = init_empty_config()
    content = os.environ.get(ENV_BUILDTOOLS_CONTENT)
    if content is not None:
        logger.debug("Parsing config from env: %s\n", ENV_BUILDTOOLS_CONTENT)
        try:
            data = base64.b64decode(content.replace("\r", "").replace("\n", ""), validate=True)
        except (binascii.Error, ValueError):
            logger.debug("Failed to decode BASE64, falling back to plaintext\n")
            data = content.encode("utf-8")
        _parse_config(data, cfg)
    else:
        for index, path in enumerate(_config_files(directory)):
            if index == 0:
                logger.debug("Parsing config from file: <green>'%s'</green>\n", path)
            else:
                logger.debug("Merging with config from file: <green>'%s'</green>\n", path)
            _parse_config(path.read_bytes(), cfg)

    _apply_env(cfg, os.environ)
    cfg.vcs = vcs if vcs is not None else VersionControl()
    return cfg


def _config_files(directory: str | os.PathLike[str]) -> list[Path]:
    parent = os.path.abspath(directory)
    found = []
    while True:
        candidate = os.path.join(parent, CONFIG_FILENAME)
        if os.path.exists(candidate):
            found.append(Path(candidate))
        up = os.path.dirname(parent)
        if up == parent:
            break
        parent = up
    return found


def _apply_env(cfg: Config, environ) -> None:
    for ci in cfg.ci.values():
        cls = type(ci)
        for attr, key in (
            ("ci_commit", cls.COMMIT_ENV),
            ("ci_build_name", cls.BUILD_NAME_ENV),
            ("ci_branch_name", cls.BRANCH_ENV),
        ):
            value = environ.get(key, "") if key else ""
            if value:
                setattr(ci, attr, value)
    image_name = environ.get(ENV_IMAGE_NAME, "")
    if image_name:
        cfg.image_name = image_name


def _parse_config(content: bytes | str, cfg: Config) -> None:
    _merge(cfg, unmarshal_strict(content))
    _validate(cfg)


def _validate(cfg: Config) -> None:
    if len(cfg.configured_registries()) > 1:
        raise ConfigError("registry already defined, please check configuration")


def _fill_empty(dst, src) -> None:
    for f in fields(dst):
        if f.name in ("vcs", "image_name"):
            continue
        if not getattr(dst, f.name) and isinstance(getattr(src, f.name), str):
            setattr(dst, f.name, getattr(src, f.name))


def _merge(dst: Config, src: Config) -> None:
    """Fill what dst leaves empty from src; values already in dst win."""
    for name, ci in src.ci.items():
        target = dst.ci[name]
        for attr in _CI_YAML_FIELDS.values():
            if not getattr(target, attr):
                setattr(target, attr, getattr(ci, attr))
    if not dst.image_name:
        dst.image_name = src.image_name
    for name, values in src.registry.items():
        existing = dst.registry.setdefault(name, {})
        for key, value in values.items():
            if not existing.get(key):
                existing[key] = value
    for name, target in src.targets.items():
        dst.targets.setdefault(name, target)
    for name, gitops in src.gitops.items():
        dst.gitops.setdefault(name, gitops)
    _fill_empty(dst.git, src.git)


class _Decoder:
    """Strict decoding of a composed YAML tree, collecting errors with line numbers."""

    def __init__(self) -> None:
        self.errors: list[str] = []

    def fail(self, node: yaml.Node, message: str) -> None:
        self.errors.append(f"line {node.start_mark.line + 1}: {message}")

    @staticmethod
    def describe(node: yaml.Node) -> str:
        tag = node.tag
        if tag.startswith(_YAML_TAG_PREFIX):
            tag = "!!" + tag[len(_YAML_TAG_PREFIX):]
        if isinstance(node, yaml.ScalarNode):
            return f"{tag} `{node.value}`"
        return tag

    def pairs(self, node: yaml.Node, type_name: str) -> list[tuple[yaml.Node, yaml.Node]]:
        if isinstance(node, yaml.ScalarNode) and node.tag == _YAML_NULL:
            return []
        if not isinstance(node, yaml.MappingNode):
            self.fail(node, f"cannot unmarshal {self.describe(node)} into {type_name}")
            return []
        return list(node.value)

    def string(self, node: yaml.Node) -> str:
        if isinstance(node, yaml.ScalarNode):
            return "" if node.tag == _YAML_NULL else node.value
        self.fail(node, f"cannot unmarshal {self.describe(node)} into string")
        return ""

    def entries(self, node: yaml.Node, type_name: str) -> dict[str, yaml.Node]:
        return {self.string(key): value for key, value in self.pairs(node, type_name)}

    def fields(self, node: yaml.Node, type_name: str, known) -> dict[str, yaml.Node]:
        result = {}
        for key, value in self.pairs(node, type_name):
            name = self.string(key)
            if name in known:
                result[name] = value
            else:
                self.fail(key, f"field {name} not found in type {type_name}")
        return result

    def decode(self, root: yaml.Node, cfg: Config) -> None:
        known = ("vcs", "ci", "registry", "targets", "git", "gitops")
        for key, node in self.fields(root, "config.Config", known).items():
            if key == "vcs":
                self.fields(node, "config.VCSConfig", ("vcs",))
            elif key == "ci":
                self._ci(node, cfg)
            elif key == "registry":
                self._registry(node, cfg)
            elif key == "targets":
                for name, value in self.entries(node, "map[string]config.Target").items():
                    cfg.targets[name] = Target(**self._struct(value, "config.Target", ("context", "namespace", "kubeconfig")))
            elif key == "git":
                cfg.git = Git(**self._struct(node, "config.Git", ("name", "email", "key")))
            elif key == "gitops":
                for name, value in self.entries(node, "map[string]config.Gitops").items():
                    cfg.gitops[name] = Gitops(**self._struct(value, "config.Gitops", ("url", "path")))

    def _struct(self, node: yaml.Node, type_name: str, known) -> dict[str, str]:
        return {key: self.string(value) for key, value in self.fields(node, type_name, known).items()}

    def _ci(self, node: yaml.Node, cfg: Config) -> None:
        known = (*_CI_SECTIONS, "imagename")
        for key, value in self.fields(node, "config.CIConfig", known).items():
            if key == "imagename":
                cfg.image_name = self.string(value)
                continue
            ci = cfg.ci[key]
            type_name = f"ci.{type(ci).__name__}"
            for yaml_key, inner in self.fields(value, type_name, _CI_YAML_FIELDS).items():
                setattr(ci, _CI_YAML_FIELDS[yaml_key], self.string(inner))

    def _registry(self, node: yaml.Node, cfg: Config) -> None:
        for key, value in self.fields(node, "config.RegistryConfig", _REGISTRY_TYPES).items():
            type_name = f"registry.{_REGISTRY_TYPES[key]}"
            cfg.registry[key] = {
                name: self.string(inner) for name, inner in self.entries(value, type_name).items()
            }


def unmarshal_strict(content: bytes | str) -> Config:
    """Decode YAML into a new Config, rejecting unknown fields and mistyped values."""
    text = content.decode("utf-8", errors="replace") if isinstance(content, bytes) else content
    try:
        root = yaml.compose(text, Loader=yaml.SafeLoader)
    except yaml.YAMLError as exc:
        raise ConfigError(f"yaml: {exc}") from exc
    cfg = init_empty_config()
    if root is None:
        return cfg
    decoder = _Decoder()
    decoder.decode(root, cfg)
    if decoder.errors:
        raise ConfigError("yaml: unmarshal errors:\n" + "\n".join(f"  {e}" for e in decoder.errors))
    return cfg