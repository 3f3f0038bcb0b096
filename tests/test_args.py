import argparse
import base64
import logging

import pytest

from buildtools.args import ArgsDone, VersionInfo, parse_args
from buildtools.ci import Azure, Buildkite, Github, Gitlab, TeamCity
from buildtools.cli import is_verbose
from buildtools.config import ConfigError


@pytest.fixture(autouse=True)
def clean_state(monkeypatch):
    for cls in (Azure, Buildkite, Github, Gitlab, TeamCity):
        for key in (cls.COMMIT_ENV, cls.BUILD_NAME_ENV, cls.BRANCH_ENV):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("BUILDTOOLS_CONTENT", raising=False)
    monkeypatch.delenv("IMAGE_NAME", raising=False)
    package_logger = logging.getLogger("buildtools")
    level = package_logger.level
    yield
    package_logger.setLevel(level)


def make_parser():
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("--name")
    return parser


INFO = VersionInfo(name="name", description="desc", version="version", commit="commit", date="date")


def messages(caplog):
    return [r.getMessage() for r in caplog.records if r.name.startswith("buildtools")]


def test_parse():
    ns = parse_args("", ["--name", "thename"], VersionInfo(), make_parser())
    assert ns.name == "thename"
    assert ns.verbose is False


def test_help(caplog):
    caplog.set_level(logging.DEBUG, logger="buildtools")
    with pytest.raises(ArgsDone):
        parse_args("", ["--help"], VersionInfo(name="command", description="desc"), make_parser())
    text = "".join(messages(caplog))
    assert "usage: command" in text
    assert "desc\n" in text
    assert "--version" in text
    assert "Print args information and exit" in text
    assert "Enable verbose mode" in text
    assert "Print parsed config and exit" in text
    assert "--name" in text


def test_version(caplog):
    caplog.set_level(logging.DEBUG, logger="buildtools")
    with pytest.raises(ArgsDone):
        parse_args("", ["--version", "--name", "thename"], INFO, make_parser())
    assert messages(caplog) == ["Version: version, commit commit, built at date\n"]


def test_version_info_str():
    info = VersionInfo(version="1.0.0", commit="67d2fcf276fcd9cf743ad4be9a9ef5828adc082f")
    assert str(info) == "Version: 1.0.0, commit 67d2fcf276fcd9cf743ad4be9a9ef5828adc082f, built at unknown"


def test_config(caplog, monkeypatch):
    content = "\ntargets:\n    local:\n        context: docker-desktop\n"
    monkeypatch.setenv("BUILDTOOLS_CONTENT", base64.b64encode(content.encode()).decode())
    caplog.set_level(logging.DEBUG, logger="buildtools")
    with pytest.raises(ArgsDone):
        parse_args("", ["--config", "--name", "thename"], INFO, make_parser())
    assert messages(caplog) == [
        "Parsing config from env: BUILDTOOLS_CONTENT\n",
        "Current config\nci: none\nvcs: none\nregistry: {}\ntargets:\n    local:\n        context: docker-desktop\n",
    ]


def test_config_error(caplog, monkeypatch):
    monkeypatch.setenv("BUILDTOOLS_CONTENT", base64.b64encode(b"_").decode())
    caplog.set_level(logging.DEBUG, logger="buildtools")
    with pytest.raises(ConfigError, match="cannot unmarshal !!str `_` into config.Config"):
        parse_args("", ["--config", "--name", "thename"], INFO, make_parser())
    logged = messages(caplog)
    assert logged[0] == "Parsing config from env: BUILDTOOLS_CONTENT\n"
    assert logged[1].startswith("name: error: yaml: unmarshal errors:")


def test_verbose_enabled():
    logging.getLogger("buildtools").setLevel(logging.INFO)
    ns = parse_args("", ["--verbose", "--name", "thename"], INFO, make_parser())
    assert ns.verbose is True
    assert is_verbose(logging.getLogger("buildtools")) is True


def test_verbose_disabled():
    logging.getLogger("buildtools").setLevel(logging.INFO)
    parse_args("", ["--name", "thename"], INFO, make_parser())
    assert is_verbose(logging.getLogger("buildtools")) is False


def test_unknown_argument(caplog):
    caplog.set_level(logging.DEBUG, logger="buildtools")
    with pytest.raises(ValueError, match="unrecognized arguments: --bogus"):
        parse_args("", ["--bogus"], INFO, make_parser())
    assert any("unrecognized arguments" in m for m in messages(caplog))


def test_missing_positional():
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("target")
    with pytest.raises(ValueError, match="required"):
        parse_args("", [], INFO, parser)


def test_version_before_missing_positional(caplog):
    caplog.set_level(logging.DEBUG, logger="buildtools")
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("target")
    with pytest.raises(ArgsDone):
        parse_args("", ["--version"], VersionInfo(version="1.0.0"), parser)
    assert messages(caplog) == ["Version: 1.0.0, commit none, built at unknown\n"]