"""
Error types shared by the feature and places adapters.
"""
from typing import Optional


class LoadFailure(Exception):
    """A feature or places source could not be loaded or queried."""

    def __init__(self, source: str, message: str, *, status_code: Optional[int] = None):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message
        self.status_code = status_code
