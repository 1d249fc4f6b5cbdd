"""User-facing API entrypoints for isoworker."""

from collections.abc import Callable
from collections.abc import Mapping

from isoworker.control import Control
from isoworker.errors import WorkerCrashError
from isoworker.errors import WorkerTimeoutError
from isoworker.protocol import is_error_value
from isoworker.runtime import IsolationResult
from isoworker.runtime import run_in_isolation


def assert_in_isolation(
    work_item: Callable[[], object],
    control: Control | Mapping[str, object] | None = None,
    timeout_seconds: float | None = None,
    python_executable: str | None = None,
    env: Mapping[str, str] | None = None,
) -> object:
    """Run a work item in a separate process as if it ran in this one.

    Errors raised by the work item are re-raised here, so assertions made
    inside the worker fail the calling test.

    :param work_item: Zero-argument callable to run.
    :param control: Worker control; this process's import environment when ``None``.
    :param timeout_seconds: Optional timeout after which the worker is killed.
    :param python_executable: Worker interpreter.
    :param env: Worker environment.
    :returns: The work item's return value.
    :raises WorkerTimeoutError: If the worker was killed after its timeout.
    :raises WorkerCrashError: If the worker failed without reporting an error value.
    """
    result: IsolationResult = run_in_isolation(
        work_item,
        control=control,
        timeout_seconds=timeout_seconds,
        python_executable=python_executable,
        env=env,
    )
    if result.timed_out is True:
        raise WorkerTimeoutError(f"Worker did not finish within {timeout_seconds} seconds")

    return_value: object = result.response.return_value
    if is_error_value(return_value) is True:
        raise return_value  # type: ignore[misc]
    if result.response.exit_code != 0:
        raise WorkerCrashError(
            f"Worker exited with code {result.response.exit_code} without reporting a result",
        )
    return return_value
