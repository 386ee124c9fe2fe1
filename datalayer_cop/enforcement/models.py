"""Data models for dataLayer rule enforcement.

This module defines the core data models used by the enforcement pipeline,
including rule definitions, the tagged call variants accepted by the queue,
per-rule test records and evaluation outcomes.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field


class PayloadType(str, Enum):
    """Recognized payload shapes."""
    GTM = "gtm"      # Object literal pushed by Google Tag Manager snippets
    GTAG = "gtag"    # Positional command pushed by gtag()


class Verdict(str, Enum):
    """Final decision for a payload."""
    ACCEPTED = "accepted"
    DROPPED = "dropped"


@dataclass(frozen=True)
class CommandCall:
    """Positional gtag command, e.g. ``gtag('event', 'purchase', {...})``."""

    args: Tuple[Any, ...] = ()

    @classmethod
    def of(cls, *args: Any) -> 'CommandCall':
        return cls(tuple(args))

    @property
    def command(self) -> Optional[Any]:
        """Leading command keyword (``event``, ``config``, ``set``...)."""
        return self.args[0] if self.args else None

    @property
    def event_name(self) -> Optional[Any]:
        return self.args[1] if len(self.args) > 1 else None

    @property
    def params(self) -> Mapping[str, Any]:
        """Event parameters, or an empty mapping when none were passed."""
        if len(self.args) > 2 and isinstance(self.args[2], Mapping):
            return self.args[2]
        return {}

    def __len__(self) -> int:
        return len(self.args)

    def __getitem__(self, index: int) -> Any:
        return self.args[index]


class Rule(BaseModel):
    """A named conformance check applied to queue payloads."""

    model_config = {"populate_by_name": True, "arbitrary_types_allowed": True}

    name: Optional[str] = Field(
        default=None,
        description="Human-readable description of the expectation"
    )
    # Left untyped so a misconfigured predicate can be carried and surfaced
    predicate: Any = Field(
        default=None,
        alias="assert",
        description="Callable (payload, payload_type) -> bool"
    )
    drop_on_fail: bool = Field(
        default=False,
        alias="dropOnFail",
        description="Discard the payload when the predicate fails"
    )
    severity: Optional[str] = Field(
        default=None,
        description="Label matched against the report trigger list"
    )
    type: Optional[PayloadType] = Field(
        default=None,
        description="Restrict the rule to one payload shape"
    )
    description: Optional[str] = Field(
        default=None,
        description="Longer explanation shown by the CLI"
    )

    @property
    def has_predicate(self) -> bool:
        return callable(self.predicate)

    def applies_to(self, payload_type: PayloadType) -> bool:
        """Check if the rule should run for the given payload shape."""
        return self.type is None or self.type == payload_type

    def describe(self) -> Dict[str, Any]:
        """JSON-safe representation without the predicate."""
        return self.model_dump(mode="json", exclude={"predicate"})


def payload_to_data(payload: Any) -> Any:
    """Deep copy of a payload in plain JSON-friendly containers."""
    if isinstance(payload, CommandCall):
        return [copy.deepcopy(arg) for arg in payload.args]
    return copy.deepcopy(payload)


class TestRecord(BaseModel):
    """Outcome of one (rule, payload) evaluation."""

    # Keep pytest from collecting this model when imported into test modules
    __test__: ClassVar[bool] = False

    model_config = {"arbitrary_types_allowed": True}

    rule: Rule
    payload: Any
    payload_type: PayloadType
    passed: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Serialized copy used by reporting; never shares the payload."""
        return {
            'rule': self.rule.describe(),
            'payload': payload_to_data(self.payload),
            'payload_type': self.payload_type.value,
            'passed': self.passed,
        }


class HostContext(BaseModel):
    """Details about the hosting page included in remote reports."""

    hostname: str = Field(default="localhost", description="Page hostname")
    url: str = Field(default="", description="Full page URL")
    user_agent: str = Field(default="", description="User agent string")


@dataclass
class ClassifiedPayload:
    """Result of inspecting the first argument of a queue append."""

    payload: Any
    payload_type: Optional[PayloadType] = None
    evaluate: bool = False
    forward: bool = False


@dataclass
class EvaluationOutcome:
    """Verdict and failures produced by running the rule list on a payload."""

    verdict: Verdict
    payload: Any = None
    failures: List[TestRecord] = field(default_factory=list)
    evaluated: int = 0

    @property
    def accepted(self) -> bool:
        return self.verdict == Verdict.ACCEPTED

    @property
    def flagged(self) -> bool:
        """Accepted, but at least one rule failed."""
        return self.accepted and bool(self.failures)


class Disposition(str, Enum):
    """What the interceptor did with an appended item."""
    ACCEPTED = "accepted"    # Evaluated, every rule passed, forwarded
    FLAGGED = "flagged"      # Evaluated, some rules failed, forwarded
    DROPPED = "dropped"      # A drop rule failed, withheld
    BYPASSED = "bypassed"    # Reserved event or non-event gtag command, forwarded
    IGNORED = "ignored"      # Not classifiable, withheld
