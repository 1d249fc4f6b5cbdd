"""Ready-made work items."""

import sys


class ExitAction:
    """Work item that writes fixed output and exits the worker process."""

    exit_code: int
    stdout: str
    stderr: str

    def __init__(self, exit_code: int, stdout: str = "", stderr: str = "") -> None:
        """Initialize the action.

        :param exit_code: Process exit code.
        :param stdout: Text written to stdout before exiting.
        :param stderr: Text written to stderr before exiting.
        """
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr

    def __call__(self) -> object:
        """Write the configured output and exit.

        :raises SystemExit: Always.
        """
        sys.stdout.write(self.stdout)
        sys.stdout.flush()
        sys.stderr.write(self.stderr)
        sys.stderr.flush()
        sys.exit(self.exit_code)
