"""
Error taxonomy for AMC measure evaluation.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class AmcError(Exception):
    """Base error with an optional details payload."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(AmcError):
    """The report is wired wrong: bad filter types, unknown object type or rule.

    Always fatal. Raised before any result is emitted.
    """


class DataAccessError(AmcError):
    """The data store failed while loading the population or candidate objects."""
