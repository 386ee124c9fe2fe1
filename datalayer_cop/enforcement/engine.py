"""Rule evaluation for dataLayer payloads.

Rules run in configured order. A failing rule is logged, reported when its
severity is in the configured trigger list, and ends evaluation when it is
marked ``drop_on_fail``. Rules only observe payloads; they never rewrite them.
"""

import logging
from typing import Any, List, Optional, Sequence

from .models import EvaluationOutcome, PayloadType, Rule, TestRecord, Verdict
from .reporting import Reporter

logger = logging.getLogger(__name__)


class RuleEngine:
    """Applies an ordered rule list to classified payloads."""

    def __init__(
        self,
        rules: Sequence[Rule],
        reporter: Optional[Reporter] = None,
        label: str = "DataLayer Cop"
    ):
        self.rules: List[Rule] = list(rules)
        self.reporter = reporter
        self.label = label

    def enforce(self, rule: Rule, payload: Any, payload_type: PayloadType) -> TestRecord:
        """Run a single rule against a payload.

        A rule without a callable predicate, or whose predicate raises, is a
        configuration problem: it is logged and the test counts as passed.
        """
        test = TestRecord(rule=rule, payload=payload, payload_type=payload_type)

        if not rule.has_predicate:
            logger.warning(
                f"{self.label} - Rule object is missing assert method - skipping... ({rule.name})"
            )
            return test

        try:
            test.passed = bool(rule.predicate(payload, payload_type))
        except Exception as e:
            logger.warning(f"{self.label} - Rule {rule.name!r} raised {type(e).__name__}: {e} - skipping...")
            return test

        if not test.passed:
            logger.warning(f"{self.label} - {payload_type.value} payload failed rule: {rule.name}")

        return test

    def evaluate(self, payload: Any, payload_type: PayloadType) -> EvaluationOutcome:
        """Evaluate all applicable rules against a payload.

        Args:
            payload: Object payload or gtag command, passed to predicates as-is
            payload_type: Shape determined by the classifier

        Returns:
            ACCEPTED with the original payload, or DROPPED at the first
            failing drop rule
        """
        outcome = EvaluationOutcome(verdict=Verdict.ACCEPTED, payload=payload)

        for rule in self.rules:
            if not rule.applies_to(payload_type):
                continue

            test = self.enforce(rule, payload, payload_type)
            outcome.evaluated += 1

            if test.passed:
                continue

            outcome.failures.append(test)

            if self.reporter is not None and self.reporter.should_report(test):
                # A failed report never changes the verdict
                try:
                    self.reporter.report(test)
                except Exception as e:
                    logger.warning(f"{self.label} - Reporting failed for rule {rule.name!r}: {e}")

            if rule.drop_on_fail:
                logger.warning(f"{self.label} - Dropping {payload_type.value} payload (rule: {rule.name})")
                outcome.verdict = Verdict.DROPPED
                outcome.payload = None
                return outcome

        return outcome
