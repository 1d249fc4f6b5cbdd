"""Request and response payloads exchanged with a worker process."""

from collections.abc import Callable
from collections.abc import Mapping

from isoworker import codec
from isoworker.control import Control
from isoworker.stderr_stream import StderrStream
from isoworker.telemetry import with_memory_peak_usage

SENTINEL: bytes = b"\r\n\r\n#|worker-stderr-output|#\r\n\r\n"


def is_error_value(value: object) -> bool:
    """Report whether a result value represents a failure.

    :param value: Result value.
    :returns: ``True`` when ``value`` is an exception instance.
    """
    return isinstance(value, BaseException)


class ValueCapture:
    """Zero-argument callable that materializes a serialized value on demand."""

    _serialized: bytes

    def __init__(self, serialized: bytes) -> None:
        """Initialize a capture from already serialized bytes.

        :param serialized: Output of :func:`isoworker.codec.dumps`.
        """
        self._serialized = serialized

    @classmethod
    def of(cls, value: object) -> "ValueCapture":
        """Capture one value.

        :param value: Value to capture.
        :returns: Capture returning ``value`` when invoked.
        """
        return cls(codec.dumps(value))

    def __call__(self) -> object:
        """Deserialize and return the captured value.

        :returns: Captured value.
        """
        return codec.loads(self._serialized)


class Request:
    """A work item plus the control data needed to decode it."""

    _control: dict[str, object]
    _work_item: Callable[[], object]

    def __init__(self, control: Mapping[str, object], work_item: Callable[[], object]) -> None:
        """Initialize a request.

        :param control: Raw control mapping.
        :param work_item: Zero-argument callable to run in the worker.
        """
        self._control = dict(control)
        self._work_item = work_item

    def encode(self) -> bytes:
        """Encode the request with the control data first.

        :returns: Encoded payload bytes.
        """
        return codec.encode([self._control, self._work_item])

    @classmethod
    def decode(cls, payload: bytes) -> "Request":
        """Decode a request, applying its control before the work item is decoded.

        The work item may reference modules that are only importable once the
        control has been applied, so the two values are decoded separately.

        :param payload: Encoded payload bytes.
        :returns: Decoded request.
        """
        [control_data] = codec.decode(payload, 0, 1)
        control: Control = Control(control_data)  # type: ignore[arg-type]
        control.apply()

        [work_item] = codec.decode(payload, 1, 1)
        return cls(control.data, work_item)  # type: ignore[arg-type]

    @property
    def control_data(self) -> dict[str, object]:
        """Return a copy of the raw control mapping.

        :returns: Control data.
        """
        return dict(self._control)

    def get_control(self) -> Control:
        """Return a fresh, unapplied control built from the raw data.

        :returns: Control instance.
        """
        return Control(self._control)

    @property
    def work_item(self) -> Callable[[], object]:
        """Return the work item.

        :returns: Zero-argument callable.
        """
        return self._work_item


class Response:
    """The outcome of one work item as reported by its worker."""

    _return_value: object
    _exit_code: int
    _telemetry: dict[str, object]
    _stderr_length: int

    def __init__(
        self,
        return_value: object,
        exit_code: int | None = None,
        telemetry: Mapping[str, object] | None = None,
    ) -> None:
        """Initialize a response.

        :param return_value: Work item result or error value.
        :param exit_code: Explicit exit code; derived from ``return_value`` when ``None``.
        :param telemetry: Telemetry entries.
        """
        if exit_code is None:
            exit_code = 1 if is_error_value(return_value) is True else 0
        self._return_value = return_value
        self._exit_code = exit_code
        self._telemetry = dict(telemetry) if telemetry is not None else {}
        self._stderr_length = 0

    @classmethod
    def parse(cls, stderr: bytes | str, exit_code: int | None = None) -> "Response":
        """Build a response from a worker's complete stderr capture.

        :param stderr: Everything the worker wrote to stderr.
        :param exit_code: Raw process exit code, used only when no payload is present.
        :returns: Parsed response.
        :raises isoworker.errors.PayloadDecodeError: If a payload is present but malformed.
        """
        buffer: bytes = stderr.encode("utf-8") if isinstance(stderr, str) is True else stderr
        fallback_exit_code: int = 1 if exit_code is None else exit_code
        separator_pos: int = buffer.find(SENTINEL)

        if separator_pos == -1:
            # No payload: the worker did not fail gracefully.
            if len(buffer) == 0:
                return cls(None, fallback_exit_code, {})
            error: BaseException = StderrStream(buffer).get_error()
            return cls(error, fallback_exit_code, {})

        payload: bytes = buffer[separator_pos + len(SENTINEL):]
        capture, telemetry = codec.decode(payload, 0, 2)
        return_value: object = capture()  # type: ignore[operator]
        response: Response = cls(return_value, None, telemetry)  # type: ignore[arg-type]
        response._stderr_length = separator_pos
        return response

    def build_payload(self) -> bytes:
        """Encode this response for writing after :data:`SENTINEL`.

        :returns: Encoded payload bytes.
        """
        capture: ValueCapture = ValueCapture.of(self._return_value)
        telemetry: dict[str, object] = with_memory_peak_usage(self._telemetry)
        return codec.encode([capture, telemetry])

    @property
    def return_value(self) -> object:
        """Return the work item result or error value.

        :returns: Result value.
        """
        return self._return_value

    @property
    def exit_code(self) -> int:
        """Return the exit disposition of the work item.

        :returns: ``0`` on success, non-zero on failure.
        """
        return self._exit_code

    @property
    def telemetry(self) -> dict[str, object]:
        """Return a copy of the telemetry entries.

        :returns: Telemetry mapping.
        """
        return dict(self._telemetry)

    @property
    def stderr_length(self) -> int:
        """Return the number of stderr bytes written before the payload.

        :returns: Diagnostic prefix length; ``0`` when there was no payload.
        """
        return self._stderr_length
