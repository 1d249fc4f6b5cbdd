"""Telemetry measurements attached to worker responses."""

import resource
import sys

MEMORY_PEAK_USAGE_KEY: str = "memoryPeakUsage"


def peak_memory_usage() -> int:
    """Return the peak resident set size of the current process.

    :returns: Peak resident set size in bytes.
    """
    max_rss: int = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    if sys.platform == "darwin":
        return max_rss
    return max_rss * 1024


def with_memory_peak_usage(telemetry: dict[str, object] | None) -> dict[str, object]:
    """Merge a fresh peak-memory measurement into telemetry data.

    :param telemetry: Caller-supplied telemetry entries.
    :returns: New telemetry mapping including ``memoryPeakUsage``.
    """
    merged: dict[str, object] = {}
    if telemetry is not None:
        merged.update(telemetry)
    merged[MEMORY_PEAK_USAGE_KEY] = peak_memory_usage()
    return merged
