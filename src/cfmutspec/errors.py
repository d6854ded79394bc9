"""Exceptions raised by the classification stages.

Per-record conditions (``UnresolvedLocusError``, ``AmbiguousBaseError``) are raised by
the pure helpers and caught by the stage loops, which count and skip the record.
``InputFormatError`` is raised while loading inputs and aborts the run.
"""

from __future__ import annotations

from typing import Optional


class EngineError(Exception):
    """Base class for cfmutspec errors."""


class UnresolvedLocusError(EngineError):
    """A fragment annotation references a locus absent from the locus table."""

    def __init__(self, locus_key: object, fragment_id: Optional[str] = None) -> None:
        msg = f"Locus {locus_key} is not in the locus table"
        if fragment_id is not None:
            msg += f" (fragment {fragment_id})"
        super().__init__(msg)
        self.locus_key = locus_key
        self.fragment_id = fragment_id


class AmbiguousBaseError(EngineError):
    """A base outside A/C/G/T where an unambiguous base is required."""

    def __init__(self, message: str, *, sequence: str = "") -> None:
        super().__init__(message)
        self.sequence = sequence


class InputFormatError(EngineError, ValueError):
    """Malformed input record."""

    def __init__(self, message: str, *, path: Optional[str] = None, line: Optional[int] = None) -> None:
        where = ""
        if path is not None:
            where = f"{path}"
            if line is not None:
                where += f":{line}"
            where += ": "
        super().__init__(where + message)
        self.path = path
        self.line = line


class ReferenceMismatchError(EngineError):
    """The reference genome disagrees with the locus table at a locus."""
