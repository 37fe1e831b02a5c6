"""Error taxonomy for the automation core."""

from typing import Optional


class AutomationError(Exception):
    """Base class for errors raised by the automation core."""


class ConfigError(AutomationError):
    """Missing credential or setup."""


class ServiceError(AutomationError):
    """Transport failure or empty completion from the generation service."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(AutomationError):
    """Model output had no recognizable shape after every fallback stage."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text[:200]


class MissingFieldError(AutomationError):
    """A required field was absent after parsing."""

    def __init__(self, message: str, field: str = ""):
        super().__init__(message)
        self.field = field


class EmptyResultError(AutomationError):
    """Parsing succeeded but produced no usable elements."""


class StoreError(AutomationError):
    """Persistence collaborator failure. Never leaves the run ledger."""
