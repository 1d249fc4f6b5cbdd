"""Public package API for isoworker."""

from isoworker.actions import ExitAction
from isoworker.api import assert_in_isolation
from isoworker.control import Control
from isoworker.errors import ControlError
from isoworker.errors import IsoworkerError
from isoworker.errors import IsoworkerProtocolError
from isoworker.errors import PayloadDecodeError
from isoworker.errors import WorkerCrashError
from isoworker.errors import WorkerRemoteError
from isoworker.errors import WorkerTimeoutError
from isoworker.protocol import SENTINEL
from isoworker.protocol import Request
from isoworker.protocol import Response
from isoworker.runtime import IsolationResult
from isoworker.runtime import run_in_isolation
from isoworker.stderr_stream import StderrStream

__all__: list[str] = [
    "assert_in_isolation",
    "run_in_isolation",
    "Control",
    "ExitAction",
    "IsolationResult",
    "Request",
    "Response",
    "SENTINEL",
    "StderrStream",
    "ControlError",
    "IsoworkerError",
    "IsoworkerProtocolError",
    "PayloadDecodeError",
    "WorkerCrashError",
    "WorkerRemoteError",
    "WorkerTimeoutError",
]
