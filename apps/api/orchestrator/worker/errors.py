from __future__ import annotations


class PermanentJobError(Exception):
    """A job failure that retrying cannot fix."""
