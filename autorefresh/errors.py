"""Exception hierarchy for autorefresh.

Both errors are raised at construction time; nothing here is raised once
the endpoint is serving.
"""
from __future__ import annotations


class AutorefreshError(Exception):
    """Base exception for all autorefresh errors."""


class InvalidParametersError(AutorefreshError, ValueError):
    """Reloader was configured with values it cannot run with."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid parameters: {reason}")


class TemplateParsingError(AutorefreshError):
    """The reload script could not be compiled in the given environment."""
    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Failed to parse template: {cause}")
