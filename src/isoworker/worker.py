"""Worker process entry point for isoworker.

Run as ``python -m isoworker.worker``: the encoded request is read from stdin
and the response is written to stderr after :data:`isoworker.protocol.SENTINEL`.
"""

import logging
import os
import sys
import time
import traceback

from isoworker import codec
from isoworker.errors import WorkerRemoteError
from isoworker.protocol import SENTINEL
from isoworker.protocol import Request
from isoworker.protocol import Response

logger: logging.Logger = logging.getLogger(__name__)


def _portable_result(value: object) -> object:
    """Return ``value`` or a stand-in when it cannot make the trip back.

    :param value: Work item result or raised exception.
    :returns: A value the orchestrator is able to deserialize.
    """
    serialized: bytes | None = codec.try_dumps(value)
    if serialized is not None:
        try:
            codec.loads(serialized)
            return value
        except Exception:
            logger.debug("Result of type %s does not round-trip", type(value).__name__, exc_info=True)

    type_name: str = type(value).__name__
    if isinstance(value, BaseException) is True:
        stacktrace: str = "".join(traceback.format_exception(type(value), value, value.__traceback__))
        return WorkerRemoteError(type_name, str(value), stacktrace)
    return WorkerRemoteError(
        "PicklingError",
        f"Cannot serialize work item result of type {type_name}",
        "",
    )


def run_request(payload: bytes) -> Response:
    """Decode a request, run its work item and build the response.

    :param payload: Encoded request bytes.
    :returns: Response carrying the result or the raised exception.
    """
    request: Request = Request.decode(payload)
    started: float = time.perf_counter()
    result: object
    try:
        result = request.work_item()
    except Exception as exc:
        result = exc
    duration: float = time.perf_counter() - started

    telemetry: dict[str, object] = {
        "pid": os.getpid(),
        "durationSeconds": duration,
    }
    return Response(_portable_result(result), telemetry=telemetry)


def main() -> int:
    """Run one request read from stdin and report it on stderr.

    :returns: Process exit code.
    """
    payload: bytes = sys.stdin.buffer.read()
    response: Response = run_request(payload)
    response_payload: bytes = response.build_payload()

    sys.stdout.flush()
    sys.stderr.flush()
    sys.stderr.buffer.write(SENTINEL + response_payload)
    sys.stderr.buffer.flush()
    return response.exit_code


if __name__ == "__main__":
    sys.exit(main())
