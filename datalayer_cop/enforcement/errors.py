"""Error taxonomy for dataLayer enforcement.

Configuration problems found while loading a config file are raised; problems
found while building or evaluating rules are logged and degraded so that a
bad rule never breaks the hosting page's queue.
"""

from typing import Any, Dict, Optional


class CopError(Exception):
    """Base class for all DataLayer Cop errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            'error_type': type(self).__name__,
            'message': self.message,
            'context': self.context,
        }


class CopConfigurationError(CopError):
    """Configuration file could not be loaded or failed validation."""
    pass


class RuleConfigurationError(CopError):
    """A configured rule could not be turned into a usable predicate."""
    pass
