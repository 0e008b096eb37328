"""Exception hierarchy surfaced by the capture pipeline."""
from __future__ import annotations


class SnapshotError(Exception):
    """Base class for every error raised by a capture."""


class ConfigurationError(SnapshotError, ValueError):
    """Invalid options or geometry, reported before any resource is allocated."""


class RenderError(SnapshotError):
    """The vector document could not be decoded, even through the fallback path."""


class AssemblyError(SnapshotError):
    """The paged document builder was used out of order."""


class CaptureTimeoutError(SnapshotError, TimeoutError):
    """The capture-level deadline expired between two stages."""
