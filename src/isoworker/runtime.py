"""Spawn worker processes and collect their responses."""

import logging
import os
import pathlib
import site
import subprocess
import sys
import sysconfig
from collections.abc import Callable
from collections.abc import Mapping

from isoworker.control import Control
from isoworker.protocol import Request
from isoworker.protocol import Response

logger: logging.Logger = logging.getLogger(__name__)

WORKER_MODULE: str = "isoworker.worker"
PYTHON_ENV_VAR: str = "ISOWORKER_PYTHON"
_PACKAGE_ROOT: str = str(pathlib.Path(__file__).resolve().parent.parent)


class IsolationResult:
    """Everything collected from one reaped worker process."""

    response: Response
    stdout: bytes
    returncode: int | None
    timed_out: bool

    def __init__(
        self,
        response: Response,
        stdout: bytes,
        returncode: int | None,
        timed_out: bool,
    ) -> None:
        """Initialize a result.

        :param response: Parsed worker response.
        :param stdout: Captured worker stdout.
        :param returncode: Raw process exit code; ``None`` when the worker was killed.
        :param timed_out: Whether the worker was killed after its timeout.
        """
        self.response = response
        self.stdout = stdout
        self.returncode = returncode
        self.timed_out = timed_out

    def __repr__(self) -> str:
        return (
            f"IsolationResult(exit_code={self.response.exit_code}, "
            + f"returncode={self.returncode}, timed_out={self.timed_out})"
        )


def _validate_timeout(timeout_seconds: float | None) -> float | None:
    """Validate the worker timeout.

    :param timeout_seconds: Requested timeout.
    :returns: Validated timeout.
    :raises TypeError: If the timeout is not a number.
    :raises ValueError: If the timeout is not positive.
    """
    if timeout_seconds is None:
        return None
    if isinstance(timeout_seconds, (int, float)) is False or isinstance(timeout_seconds, bool) is True:
        raise TypeError("timeout_seconds must be a number")
    if timeout_seconds <= 0:
        raise ValueError("timeout_seconds must be positive")
    return float(timeout_seconds)


def _resolve_python_executable(python_executable: str | None) -> str:
    """Pick the interpreter used for the worker.

    :param python_executable: Explicit interpreter path.
    :returns: Interpreter path.
    """
    if python_executable is not None:
        return python_executable
    from_env: str | None = os.environ.get(PYTHON_ENV_VAR)
    if from_env is not None and len(from_env) > 0:
        return from_env
    return sys.executable


def _site_package_dirs() -> set[str]:
    """Return the site-packages directories of this interpreter.

    :returns: Resolved directory paths.
    """
    candidates: list[str] = list(site.getsitepackages())
    candidates.append(site.getusersitepackages())
    for key in ("purelib", "platlib"):
        candidates.append(sysconfig.get_paths()[key])
    return {str(pathlib.Path(candidate).resolve()) for candidate in candidates}


def _build_worker_env(env: Mapping[str, str] | None) -> dict[str, str]:
    """Build the worker environment so the entry point is importable.

    The package root is appended to ``PYTHONPATH`` only when it is not already
    an interpreter site directory, so an installed package changes nothing.

    :param env: Base environment; the current environment when ``None``.
    :returns: Worker environment.
    """
    worker_env: dict[str, str] = dict(os.environ if env is None else env)
    if _PACKAGE_ROOT in _site_package_dirs():
        return worker_env

    python_path: str = worker_env.get("PYTHONPATH", "")
    entries: list[str] = [entry for entry in python_path.split(os.pathsep) if len(entry) > 0]
    if _PACKAGE_ROOT not in entries:
        entries.append(_PACKAGE_ROOT)
    worker_env["PYTHONPATH"] = os.pathsep.join(entries)
    return worker_env


def _as_bytes(stream: bytes | str | None) -> bytes:
    """Normalize captured stream output.

    :param stream: Captured output.
    :returns: Output bytes.
    """
    if stream is None:
        return b""
    if isinstance(stream, str) is True:
        return stream.encode("utf-8")
    return stream


def run_in_isolation(
    work_item: Callable[[], object],
    control: Control | Mapping[str, object] | None = None,
    timeout_seconds: float | None = None,
    python_executable: str | None = None,
    env: Mapping[str, str] | None = None,
) -> IsolationResult:
    """Run one work item in a fresh worker process.

    :param work_item: Zero-argument callable to run.
    :param control: Worker control; this process's import environment when ``None``.
    :param timeout_seconds: Optional timeout after which the worker is killed.
    :param python_executable: Worker interpreter; ``ISOWORKER_PYTHON`` or ``sys.executable`` when ``None``.
    :param env: Worker environment; the current environment when ``None``.
    :returns: The parsed response with the raw process outcome.
    :raises isoworker.errors.PayloadDecodeError: If the worker wrote a malformed payload.
    """
    if callable(work_item) is False:
        raise TypeError("work_item must be callable")
    validated_timeout: float | None = _validate_timeout(timeout_seconds)
    if control is None:
        control = Control.for_current_process()
    control_data: dict[str, object] = control.data if isinstance(control, Control) is True else dict(control)

    payload: bytes = Request(control_data, work_item).encode()
    command: list[str] = [_resolve_python_executable(python_executable), "-m", WORKER_MODULE]
    logger.debug("Spawning worker %s with %d byte request", command, len(payload))

    stdout: bytes
    stderr: bytes
    returncode: int | None
    timed_out: bool = False
    try:
        completed: subprocess.CompletedProcess[bytes] = subprocess.run(
            command,
            input=payload,
            capture_output=True,
            timeout=validated_timeout,
            env=_build_worker_env(env),
            check=False,
        )
        stdout = completed.stdout
        stderr = completed.stderr
        returncode = completed.returncode
    except subprocess.TimeoutExpired as exc:
        logger.debug("Worker killed after %.3f seconds", validated_timeout)
        stdout = _as_bytes(exc.stdout)
        stderr = _as_bytes(exc.stderr)
        returncode = None
        timed_out = True

    # A worker without a payload failed even if its process reported success.
    raw_exit_code: int | None = None
    if returncode is not None and returncode != 0:
        raw_exit_code = returncode
    response: Response = Response.parse(stderr, exit_code=raw_exit_code)
    logger.debug(
        "Worker exited with %s; response exit code %d, %d bytes of diagnostic output",
        returncode,
        response.exit_code,
        response.stderr_length,
    )
    return IsolationResult(response, stdout, returncode, timed_out)
