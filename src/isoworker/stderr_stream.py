"""Best-effort recovery of an error value from raw worker stderr text."""

import re

from isoworker.errors import WorkerCrashError

_TRACEBACK_HEADER: str = "Traceback (most recent call last):"
_TRACEBACK_FILE_LINE: re.Pattern[str] = re.compile(r'^[ \t]*File "(?P<file>[^"\n]+)", line (?P<line>\d+)', re.MULTILINE)
_EXCEPTION_LINE: re.Pattern[str] = re.compile(r"^(?P<type>[A-Za-z_][\w.]*)(?::\s?(?P<message>.*))?$")
_FATAL_PYTHON_ERROR: re.Pattern[str] = re.compile(r"^Fatal Python error: (?P<message>[^\n]+)$", re.MULTILINE)
# Matches stay on one line and start at a line start so long output scans in linear time.
_FATAL_ERROR_IN_FILE: re.Pattern[str] = re.compile(
    r"^(?P<kind>[\w ]{0,40}?(?:fatal|uncaught|parse)[\w ]{0,40}?error):[ \t]*(?P<message>[^\n]+?)"
    + r"[ \t]+in[ \t]+(?P<file>[^\s]+?)(?:[ \t]+on line[ \t]+|:)(?P<line>\d+)",
    re.IGNORECASE | re.MULTILINE,
)


class StderrStream:
    """Raw text collected from a worker's error stream."""

    _text: str

    def __init__(self, text: bytes | str) -> None:
        """Initialize from captured stderr.

        :param text: Captured stderr bytes or text.
        """
        if isinstance(text, bytes) is True:
            self._text = text.decode("utf-8", errors="replace")
        else:
            self._text = str(text)

    @property
    def text(self) -> str:
        """Return the decoded stderr text.

        :returns: Captured text.
        """
        return self._text

    def get_error(self) -> WorkerCrashError:
        """Build the most specific error value the text allows.

        :returns: Recovered error; the raw text is the message when no known shape matches.
        """
        recovered: WorkerCrashError | None = self._from_traceback()
        if recovered is not None:
            return recovered
        recovered = self._from_fatal_python_error()
        if recovered is not None:
            return recovered
        recovered = self._from_fatal_error_in_file()
        if recovered is not None:
            return recovered
        return WorkerCrashError(self._text, raw_text=self._text)

    def _from_traceback(self) -> WorkerCrashError | None:
        """Parse the last Python traceback in the text.

        :returns: Recovered error or ``None``.
        """
        header_pos: int = self._text.rfind(_TRACEBACK_HEADER)
        if header_pos == -1:
            return None

        block: str = self._text[header_pos + len(_TRACEBACK_HEADER):]
        file: str | None = None
        line: int | None = None
        for match in _TRACEBACK_FILE_LINE.finditer(block):
            file = match.group("file")
            line = int(match.group("line"))

        # The exception line is the first unindented line after the frames.
        for candidate in block.splitlines():
            if len(candidate) == 0 or candidate[0].isspace() is True:
                continue
            exception_match: re.Match[str] | None = _EXCEPTION_LINE.match(candidate.rstrip())
            if exception_match is None:
                continue
            message: str = exception_match.group("message") or ""
            return WorkerCrashError(
                message,
                file=file,
                line=line,
                type_name=exception_match.group("type"),
                raw_text=self._text,
            )
        return None

    def _from_fatal_python_error(self) -> WorkerCrashError | None:
        """Parse interpreter fatal errors such as faulthandler dumps.

        :returns: Recovered error or ``None``.
        """
        match: re.Match[str] | None = _FATAL_PYTHON_ERROR.search(self._text)
        if match is None:
            return None

        file: str | None = None
        line: int | None = None
        file_match: re.Match[str] | None = _TRACEBACK_FILE_LINE.search(self._text, match.end())
        if file_match is not None:
            file = file_match.group("file")
            line = int(file_match.group("line"))
        return WorkerCrashError(
            match.group("message").strip(),
            file=file,
            line=line,
            type_name="Fatal Python error",
            raw_text=self._text,
        )

    def _from_fatal_error_in_file(self) -> WorkerCrashError | None:
        """Parse ``<kind> error: <message> in <file> on line <n>`` text.

        :returns: Recovered error or ``None``.
        """
        match: re.Match[str] | None = _FATAL_ERROR_IN_FILE.search(self._text)
        if match is None:
            return None
        return WorkerCrashError(
            match.group("message").strip(),
            file=match.group("file"),
            line=int(match.group("line")),
            type_name=match.group("kind").strip(),
            raw_text=self._text,
        )
