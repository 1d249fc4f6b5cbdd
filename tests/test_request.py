"""Tests for request encoding and the staged decode order."""

import importlib
import os
import pathlib
import sys
import textwrap
import uuid

import pytest

from isoworker import Control
from isoworker import ControlError
from isoworker import Request
from isoworker import codec


@pytest.fixture(autouse=True)
def _restore_process_state(monkeypatch: pytest.MonkeyPatch) -> None:
    """Undo ``sys.path`` and working-directory changes made by ``Control.apply``.

    :param monkeypatch: Pytest monkeypatch fixture.
    """
    monkeypatch.setattr(sys, "path", list(sys.path))
    monkeypatch.chdir(os.getcwd())


def _hidden_module_request(tmp_path: pathlib.Path) -> tuple[bytes, str]:
    """Encode a request whose work item lives in a module that is then hidden.

    The work item is pickled by reference, so decoding it needs the module
    directory on ``sys.path``; only the request's control puts it there.

    :param tmp_path: Directory for the temporary module.
    :returns: Tuple of ``(payload, module_name)``.
    """
    module_name: str = f"isoworker_hidden_{uuid.uuid4().hex}"
    source: str = textwrap.dedent(
        """
        def answer():
            return 42
        """
    ).lstrip()
    (tmp_path / f"{module_name}.py").write_text(source, encoding="utf-8")

    sys.path.insert(0, str(tmp_path))
    importlib.invalidate_caches()
    module: object = importlib.import_module(module_name)
    work_item: object = getattr(module, "answer")
    payload: bytes = Request({"sys_path": [str(tmp_path)]}, work_item).encode()  # type: ignore[arg-type]

    sys.path.remove(str(tmp_path))
    sys.modules.pop(module_name, None)
    importlib.invalidate_caches()
    return payload, module_name


def test_round_trip_preserves_control_and_work_item() -> None:
    """Decoding yields equal control data and an equivalent work item."""
    base: int = 40

    def work() -> int:
        """Return a value derived from the captured environment.

        :returns: Computed value.
        """
        return base + 2

    control_data: dict[str, object] = {"cwd": os.getcwd(), "env": {"ISOWORKER_REQUEST_TEST": "1"}}
    decoded: Request = Request.decode(Request(control_data, work).encode())

    assert decoded.control_data == control_data
    assert decoded.get_control() == Control(control_data)
    assert decoded.work_item() == 42
    os.environ.pop("ISOWORKER_REQUEST_TEST", None)


def test_control_is_encoded_first() -> None:
    """The first payload value is the control mapping."""
    payload: bytes = Request({"cwd": "/tmp"}, int).encode()
    assert codec.decode(payload, 0, 1) == [{"cwd": "/tmp"}]


def test_work_item_needs_control_applied_first(tmp_path: pathlib.Path) -> None:
    """Decoding the work item before control fails; the staged decode succeeds."""
    payload, module_name = _hidden_module_request(tmp_path)

    with pytest.raises(ModuleNotFoundError):
        codec.decode(payload, 1, 1)

    request: Request = Request.decode(payload)
    assert request.work_item() == 42
    assert sys.path[0] == str(tmp_path)
    sys.modules.pop(module_name, None)


def test_control_failure_stops_before_work_item() -> None:
    """A failing bootstrap aborts the decode before the work item is touched."""
    payload: bytes = codec.encode([{"bootstrap": "no-colon"}, "work item"])
    corrupted: bytearray = bytearray(payload)
    # Break the pickle STOP opcode of the last frame.
    corrupted[-1] = 0x00

    with pytest.raises(ControlError):
        Request.decode(bytes(corrupted))


def test_get_control_returns_unapplied_copy() -> None:
    """Reconstructing control does not re-apply it."""
    request: Request = Request({"cwd": "/definitely/not/here"}, int)
    control: Control = request.get_control()
    assert control.data == {"cwd": "/definitely/not/here"}
    assert os.getcwd() != "/definitely/not/here"
