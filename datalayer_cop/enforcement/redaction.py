"""Redaction of personal data in payloads sent to remote collectors.

Values are redacted by property name rather than by content: any property
whose key looks like personal data has its whole value replaced with a fixed
marker, containers included. Containers under other keys are walked
recursively.
"""

import copy
import re
from typing import Any, Iterable, List, Optional, Pattern

REDACTION_MARKER = "(redacted)"

SENSITIVE_KEY_FRAGMENTS: List[str] = [
    "name", "email", "tele", "phone",
    "address", "street", "country", "city", "state", "province", "region", "zip", "postal",
    "birth", "dob", "born", "gender", "sex", "race", "ethnicity",
    "height", "weight", "password",
]


class Redactor:
    """Replaces sensitive values in a deep copy of a payload."""

    def __init__(
        self,
        fragments: Optional[Iterable[str]] = None,
        marker: str = REDACTION_MARKER
    ):
        """Initialize redactor.

        Args:
            fragments: Case-insensitive key fragments marking sensitive data
            marker: Replacement value for redacted properties
        """
        self.fragments = list(fragments) if fragments is not None else list(SENSITIVE_KEY_FRAGMENTS)
        self.marker = marker
        self._pattern: Pattern[str] = re.compile(
            "|".join(re.escape(f) for f in self.fragments), re.IGNORECASE
        )

    def is_sensitive_key(self, key: Any) -> bool:
        return bool(self.fragments) and self._pattern.search(str(key)) is not None

    def redact(self, payload: Any) -> Any:
        """Return a redacted deep copy; the input is never modified."""
        return self._redact_in_place(copy.deepcopy(payload))

    def _redact_in_place(self, value: Any) -> Any:
        if isinstance(value, dict):
            for key, item in value.items():
                if self.is_sensitive_key(key):
                    value[key] = self.marker
                elif isinstance(item, (dict, list, tuple)):
                    value[key] = self._redact_in_place(item)
            return value

        if isinstance(value, (list, tuple)):
            # List indices never match a fragment, only nested mappings can
            return [self._redact_in_place(item) for item in value]

        return value


def redact_payload(payload: Any) -> Any:
    """Redact a payload with the default sensitive key list."""
    return Redactor().redact(payload)
