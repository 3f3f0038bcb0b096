"""Selection of deployment files and scripts for a target."""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)


def find_files_for_target(directory: str | os.PathLike[str], target: str) -> list[os.DirEntry[str]]:
    """YAML files to use for the target: specific ones, plus common ones not overridden."""
    return _files_for_target(directory, target, "file", ".yaml", strict=False)


def find_scripts_for_target(directory: str | os.PathLike[str], target: str) -> list[os.DirEntry[str]]:
    """Shell scripts to run for the target: only those named for it."""
    return _files_for_target(directory, target, "script", ".sh", strict=True)


def _log_use(filetype: str, name: str, target: str) -> None:
    logger.debug("using %s '<green>%s</green>' for target: <green>%s</green>\n", filetype, name, target)


def _log_skip(filetype: str, name: str, target: str) -> None:
    logger.debug("not using %s '<red>%s</red>' for target: <green>%s</green>\n", filetype, name, target)


def _files_for_target(
    directory: str | os.PathLike[str],
    target: str,
    filetype: str,
    suffix: str,
    strict: bool,
) -> list[os.DirEntry[str]]:
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda entry: entry.name)

    specific_suffix = f"-{target}{suffix}"
    matching: dict[str, os.DirEntry[str]] = {}
    for entry in entries:
        if not entry.name.endswith(suffix):
            continue
        logger.debug(
            "considering %s '<yellow>%s</yellow>' for target: <green>%s</green>\n",
            filetype,
            entry.name,
            target,
        )
        if entry.name.endswith(specific_suffix) or "-" not in entry.name:
            matching[entry.name] = entry
        else:
            _log_skip(filetype, entry.name, target)

    result: list[os.DirEntry[str]] = []
    for name in sorted(matching):
        if name.endswith(specific_suffix):
            _log_use(filetype, name, target)
            result.append(matching[name])
        elif not strict:
            specific = f"{name.removesuffix(suffix)}{specific_suffix}"
            if specific in matching:
                _log_skip(filetype, name, target)
            else:
                _log_use(filetype, name, target)
                result.append(matching[name])
        else:
            _log_skip(filetype, name, target)
    return result