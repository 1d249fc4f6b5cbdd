"""Tests for worker control application."""

import os
import pathlib
import sys

import pytest

from isoworker import Control
from isoworker import ControlError

FIXTURES_DIR: str = str(pathlib.Path(__file__).parent / "fixtures")
MARKER_ENV_VAR: str = "ISOWORKER_BOOTSTRAP_MARKER"


@pytest.fixture(autouse=True)
def _restore_process_state(monkeypatch: pytest.MonkeyPatch) -> None:
    """Let each test mutate process-wide state that ``apply`` touches.

    :param monkeypatch: Pytest monkeypatch fixture.
    """
    monkeypatch.setattr(sys, "path", list(sys.path))
    monkeypatch.chdir(os.getcwd())
    monkeypatch.setenv(MARKER_ENV_VAR, "unset")
    monkeypatch.setenv("ISOWORKER_CONTROL_TEST", "unset")
    monkeypatch.delitem(sys.modules, "bootstrap_marker", raising=False)


def test_construction_does_not_validate_values() -> None:
    """Malformed values only fail once applied."""
    control: Control = Control({"cwd": 42, "made_up": True})
    with pytest.raises(ControlError):
        control.apply()


def test_construction_requires_a_mapping() -> None:
    """Non-mapping control data is a structural error."""
    with pytest.raises(TypeError):
        Control(["cwd", "/tmp"])  # type: ignore[arg-type]


def test_data_is_a_copy_and_equality_compares_data() -> None:
    """The raw mapping cannot be mutated through the accessor."""
    control: Control = Control({"cwd": "/tmp"})
    data: dict[str, object] = control.data
    data["cwd"] = "/elsewhere"

    assert control.data == {"cwd": "/tmp"}
    assert control == Control({"cwd": "/tmp"})
    assert control != Control({"cwd": "/elsewhere"})


def test_apply_prepares_environment(tmp_path: pathlib.Path) -> None:
    """Environment, working directory and import path are all applied."""
    control: Control = Control(
        {
            "env": {"ISOWORKER_CONTROL_TEST": "applied"},
            "cwd": str(tmp_path),
            "sys_path": [FIXTURES_DIR, str(tmp_path)],
        }
    )
    control.apply()

    assert os.environ["ISOWORKER_CONTROL_TEST"] == "applied"
    assert pathlib.Path(os.getcwd()).resolve() == tmp_path.resolve()
    assert sys.path[0] == FIXTURES_DIR
    assert sys.path[1] == str(tmp_path)


def test_bootstrap_runs_after_sys_path() -> None:
    """The bootstrap target resolves through the applied import path."""
    control: Control = Control(
        {
            "bootstrap": "bootstrap_marker:install",
            "sys_path": [FIXTURES_DIR],
        }
    )
    control.apply()

    assert os.environ[MARKER_ENV_VAR] == f"installed-by-{os.getpid()}"


def test_preload_modules_are_imported() -> None:
    """Preloaded modules end up in ``sys.modules``."""
    Control({"sys_path": [FIXTURES_DIR], "preload_modules": ["bootstrap_marker"]}).apply()
    assert "bootstrap_marker" in sys.modules


@pytest.mark.parametrize(
    "data",
    [
        {"sys_path": "not-a-list"},
        {"sys_path": [1, 2]},
        {"env": {"KEY": 1}},
        {"bootstrap": "missing-colon"},
        {"bootstrap": ":install"},
        {"sys_path": [FIXTURES_DIR], "bootstrap": "bootstrap_marker:MARKER_ENV_VAR"},
        {"cwd": "/definitely/not/a/real/directory"},
        {"autoload": "file.php"},
    ],
)
def test_invalid_control_data_fails_on_apply(data: dict[str, object]) -> None:
    """Invalid values raise ``ControlError`` from ``apply``.

    :param data: Invalid control data.
    """
    control: Control = Control(data)
    with pytest.raises(ControlError):
        control.apply()


def test_for_current_process_mirrors_import_environment() -> None:
    """Default control reproduces the import path and working directory."""
    control: Control = Control.for_current_process(env={"A": "b"})
    data: dict[str, object] = control.data

    assert data["cwd"] == os.getcwd()
    assert data["env"] == {"A": "b"}
    sys_path: object = data["sys_path"]
    assert isinstance(sys_path, list)
    assert "" not in sys_path
    for entry in sys.path:
        if entry != "":
            assert entry in sys_path
