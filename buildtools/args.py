"""Command-line parsing shared by all commands, with --version, --verbose and --config."""

from __future__ import annotations

import argparse
import io
import logging
import os
from collections.abc import Sequence
from contextlib import redirect_stderr, redirect_stdout
from dataclasses import dataclass

from buildtools.cli import LogWriter
from buildtools.config import ConfigError, load

logger = logging.getLogger(__name__)
_PACKAGE_LOGGER = "buildtools"


@dataclass(frozen=True)
class VersionInfo:
    """Name, description and build information of a command."""

    name: str = ""
    description: str = ""
    version: str = "dev"
    commit: str = "none"
    date: str = "unknown"

    def __str__(self) -> str:
        return f"Version: {self.version}, commit {self.commit}, built at {self.date}"


class ArgsDone(Exception):
    """Raised when a flag such as --help, --version or --config has done all the work."""


class _VersionAction(argparse.Action):
    def __init__(self, option_strings, dest, info: VersionInfo, **kwargs):
        super().__init__(option_strings, dest, nargs=0, default=False, **kwargs)
        self.info = info

    def __call__(self, parser, namespace, values, option_string=None):
        logger.info("%s\n", self.info)
        raise ArgsDone


class _VerboseAction(argparse.Action):
    def __init__(self, option_strings, dest, **kwargs):
        super().__init__(option_strings, dest, nargs=0, default=False, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        logging.getLogger(_PACKAGE_LOGGER).setLevel(logging.DEBUG)
        setattr(namespace, self.dest, True)


class _ConfigAction(argparse.Action):
    def __init__(self, option_strings, dest, directory, **kwargs):
        super().__init__(option_strings, dest, nargs=0, default=False, **kwargs)
        self.directory = directory

    def __call__(self, parser, namespace, values, option_string=None):
        cfg = load(self.directory)
        logger.info("Current config\n%s", cfg.dump())
        raise ArgsDone


def _error_message(stderr: str) -> str:
    for line in reversed(stderr.splitlines()):
        _, sep, message = line.partition(" error: ")
        if sep:
            return message
    return stderr.strip() or "invalid arguments"


def parse_args(
    directory: str | os.PathLike[str],
    argv: Sequence[str],
    info: VersionInfo,
    parser: argparse.ArgumentParser | None = None,
) -> argparse.Namespace:
    """Parse argv with the given parser plus the common flags; output goes to the log.

    Raises ArgsDone when a flag has finished the command's work.
    """
    combined = argparse.ArgumentParser(
        prog=info.name or None,
        description=info.description or None,
        parents=[parser] if parser is not None else [],
        conflict_handler="resolve",
    )
    combined.add_argument("--version", action=_VersionAction, info=info, help="Print args information and exit")
    combined.add_argument("-v", "--verbose", action=_VerboseAction, help="Enable verbose mode")
    combined.add_argument("--config", action=_ConfigAction, directory=directory, help="Print parsed config and exit")

    out = io.StringIO()
    err = io.StringIO()
    try:
        with redirect_stdout(out), redirect_stderr(err):
            return combined.parse_args(list(argv))
    except SystemExit as exc:
        if exc.code in (0, None):
            raise ArgsDone from None
        raise ValueError(_error_message(err.getvalue())) from None
    except (ConfigError, OSError) as exc:
        logger.error("%s: error: %s\n", info.name, exc)
        raise
    finally:
        writer = LogWriter(logger)
        for text in (out.getvalue(), err.getvalue()):
            if text:
                writer.write(text)