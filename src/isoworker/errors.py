"""Custom error types for isoworker."""


class IsoworkerError(Exception):
    """Base class for all isoworker errors."""


class IsoworkerProtocolError(IsoworkerError):
    """Raised for payloads that violate the request/response protocol."""


class PayloadDecodeError(IsoworkerProtocolError):
    """Raised when encoded payload bytes are malformed or truncated."""


class ControlError(IsoworkerError):
    """Raised when control data cannot be applied to the worker process."""


class WorkerTimeoutError(IsoworkerError):
    """Raised when a worker process exceeds its timeout."""


class WorkerRemoteError(IsoworkerError):
    """Stand-in for a worker-side error that could not be transported as-is."""

    remote_type_name: str
    remote_message: str
    remote_traceback: str

    def __init__(
        self,
        remote_type_name: str,
        remote_message: str,
        remote_traceback: str,
    ) -> None:
        """Initialize a remote exception wrapper.

        :param remote_type_name: Original remote exception type name.
        :param remote_message: Original remote exception message.
        :param remote_traceback: Original remote traceback text.
        """
        self.remote_type_name = remote_type_name
        self.remote_message = remote_message
        self.remote_traceback = remote_traceback
        formatted: str = (
            f"Worker raised {remote_type_name}: {remote_message}\n"
            + f"Worker traceback:\n{remote_traceback}"
        )
        super().__init__(formatted)

    def __reduce__(self) -> object:
        """Pickle through the constructor arguments.

        :returns: Reduce tuple.
        """
        return (
            WorkerRemoteError,
            (self.remote_type_name, self.remote_message, self.remote_traceback),
        )


class WorkerCrashError(IsoworkerError):
    """Error recovered from a worker that exited without a protocol payload."""

    message: str
    file: str | None
    line: int | None
    type_name: str | None
    raw_text: str

    def __init__(
        self,
        message: str,
        file: str | None = None,
        line: int | None = None,
        type_name: str | None = None,
        raw_text: str = "",
    ) -> None:
        """Initialize a recovered crash error.

        :param message: Recovered error message.
        :param file: Source file of the failure, when recoverable.
        :param line: Source line of the failure, when recoverable.
        :param type_name: Original error type name, when recoverable.
        :param raw_text: Raw diagnostic text the error was recovered from.
        """
        self.message = message
        self.file = file
        self.line = line
        self.type_name = type_name
        self.raw_text = raw_text
        formatted: str = message
        if type_name is not None:
            formatted = f"{type_name}: {message}"
        if file is not None and line is not None:
            formatted = f"{formatted} ({file}:{line})"
        super().__init__(formatted)

    def __reduce__(self) -> object:
        """Pickle through the constructor arguments.

        :returns: Reduce tuple.
        """
        return (
            WorkerCrashError,
            (self.message, self.file, self.line, self.type_name, self.raw_text),
        )
