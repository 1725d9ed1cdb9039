"""Exceptions raised by crashguardpy.

Runtime operations of the guardian never raise; these are only seen by
callers of the lower-level decoding helpers.
"""


class CrashGuardError(Exception):
    """Base class for crashguardpy errors."""


class DeathNoteDecodeError(CrashGuardError, ValueError):
    """A death note marker could not be parsed."""
