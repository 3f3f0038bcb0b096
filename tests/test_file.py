import logging

import pytest

from buildtools.file import find_files_for_target, find_scripts_for_target


@pytest.fixture
def sample_dirs(tmp_path):
    layouts = {
        "only_common_files": ["config.yaml", "deploy.yaml"],
        "specific_config_files": ["config-local.yaml", "deploy.yaml", "setup-local.sh"],
        "specific_and_common_config_files": [
            "config.yaml",
            "config-local.yaml",
            "deploy.yaml",
            "setup-local.sh",
        ],
    }
    for directory, names in layouts.items():
        (tmp_path / directory).mkdir()
        for name in names:
            (tmp_path / directory / name).write_text("content")
    return tmp_path


@pytest.mark.parametrize(
    "directory, target, expected",
    [
        ("only_common_files", "local", ["config.yaml", "deploy.yaml"]),
        ("specific_config_files", "local", ["config-local.yaml", "deploy.yaml"]),
        ("specific_and_common_config_files", "local", ["config-local.yaml", "deploy.yaml"]),
        ("specific_and_common_config_files", "prod", ["config.yaml", "deploy.yaml"]),
    ],
)
def test_find_files_for_target(sample_dirs, directory, target, expected):
    got = find_files_for_target(sample_dirs / directory, target)
    assert [entry.name for entry in got] == expected


@pytest.mark.parametrize(
    "directory, target, expected",
    [
        ("only_common_files", "local", []),
        ("specific_config_files", "local", ["setup-local.sh"]),
        ("specific_and_common_config_files", "local", ["setup-local.sh"]),
        ("specific_and_common_config_files", "prod", []),
    ],
)
def test_find_scripts_for_target(sample_dirs, directory, target, expected):
    got = find_scripts_for_target(sample_dirs / directory, target)
    assert [entry.name for entry in got] == expected


def test_find_files_missing_directory(sample_dirs):
    with pytest.raises(FileNotFoundError):
        find_files_for_target(sample_dirs / "not_existing", "local")


def test_find_scripts_missing_directory(sample_dirs):
    with pytest.raises(FileNotFoundError):
        find_scripts_for_target(sample_dirs / "not_existing", "local")


def test_common_script_not_used_when_specific_exists(tmp_path):
    (tmp_path / "setup.sh").write_text("x")
    (tmp_path / "setup-prod.sh").write_text("x")
    got = find_scripts_for_target(tmp_path, "prod")
    assert [entry.name for entry in got] == ["setup-prod.sh"]


def test_entries_carry_full_path(tmp_path):
    (tmp_path / "deploy.yaml").write_text("x")
    got = find_files_for_target(tmp_path, "")
    assert [entry.path for entry in got] == [str(tmp_path / "deploy.yaml")]


def test_log_messages(tmp_path, caplog):
    (tmp_path / "ns-dummy.yaml").write_text("x")
    (tmp_path / "ns-prod.yaml").write_text("x")
    with caplog.at_level(logging.DEBUG, logger="buildtools.file"):
        got = find_files_for_target(tmp_path, "prod")
    assert [entry.name for entry in got] == ["ns-prod.yaml"]
    assert [r.getMessage() for r in caplog.records] == [
        "considering file '<yellow>ns-dummy.yaml</yellow>' for target: <green>prod</green>\n",
        "not using file '<red>ns-dummy.yaml</red>' for target: <green>prod</green>\n",
        "considering file '<yellow>ns-prod.yaml</yellow>' for target: <green>prod</green>\n",
        "using file '<green>ns-prod.yaml</green>' for target: <green>prod</green>\n",
    ]