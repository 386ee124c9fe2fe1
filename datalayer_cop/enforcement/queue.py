"""Shared event queue abstractions and the enforcing interceptor.

The hosting page owns one or more named append-only queues. Installing a
``QueueInterceptor`` replaces a queue's ``append`` slot with a wrapper that
classifies each item, runs the rule engine and forwards accepted items to the
original ``append``.

Known limitation: code that captured a reference to the queue's original
``append`` before installation keeps calling it directly and bypasses
enforcement. Only code that re-reads ``queue.append`` goes through the wrapper.
"""

import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol

from .casing import CaseMatcher
from .catalog import RuleCatalog, rule_catalog
from .classifier import PayloadClassifier
from .config import CopConfig
from .engine import RuleEngine
from .models import CommandCall, Disposition, EvaluationOutcome, HostContext, Rule
from .reporting import Reporter, ReportTransport

logger = logging.getLogger(__name__)

DecisionHook = Callable[[Any, Disposition, Optional[EvaluationOutcome]], None]


class EventQueue(Protocol):
    """The only operation required of a shared queue."""

    def append(self, item: Any) -> Any:
        ...


class DataLayer:
    """List-backed append-only queue, the Python stand-in for ``window.dataLayer``."""

    def __init__(self, items: Optional[List[Any]] = None):
        self.items: List[Any] = list(items or [])

    def append(self, item: Any) -> int:
        """Append an item and return the new length, like Array.push."""
        self.items.append(item)
        return len(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.items)

    def __getitem__(self, index: int) -> Any:
        return self.items[index]

    def __repr__(self) -> str:
        return f"DataLayer({self.items!r})"


class PageHost:
    """Hosting page: named queues plus the details used in remote reports."""

    def __init__(self, hostname: str = "localhost", url: str = "", user_agent: str = ""):
        self.queues: Dict[str, Any] = {}
        self.context = HostContext(hostname=hostname, url=url, user_agent=user_agent)

    def get_queue(self, name: str) -> Optional[Any]:
        return self.queues.get(name)

    def ensure_queue(self, name: str) -> Any:
        """Return the named queue, creating an empty one if absent."""
        if name not in self.queues:
            self.queues[name] = DataLayer()
        return self.queues[name]


def gtag(queue: EventQueue, *args: Any) -> Any:
    """Append a positional gtag command, e.g. ``gtag(q, 'event', 'login', {...})``."""
    return queue.append(CommandCall(tuple(args)))


class QueueInterceptor:
    """Wraps a queue's append so every item passes through the rule engine."""

    def __init__(
        self,
        config: Optional[CopConfig] = None,
        host: Optional[PageHost] = None,
        queue: Optional[EventQueue] = None,
        transport: Optional[ReportTransport] = None,
        catalog: Optional[RuleCatalog] = None
    ):
        """Build the pipeline and install it on the queue.

        Args:
            config: Enforcement configuration (defaults apply when omitted)
            host: Hosting page owning the named queue
            queue: Queue to wrap directly instead of looking it up on the host
            transport: Transport for remote reports
            catalog: Predefined rule catalog used to resolve rule references
        """
        self.config = config or CopConfig()
        self.label = f"{self.config.data_layer} Cop"
        self.host = host or PageHost()
        self.queue = queue if queue is not None else self.host.ensure_queue(self.config.data_layer)

        matcher = CaseMatcher(self.config.preferred_case)
        self.rules: List[Rule] = (catalog or rule_catalog).normalize(self.config.rules, matcher, self.label)

        self.classifier = PayloadClassifier()
        self.reporter = Reporter(
            self.config,
            queue_sink=self._append_to_queue,
            transport=transport,
            host=self.host.context
        )
        self.engine = RuleEngine(self.rules, self.reporter, self.label)

        self.installed = False
        self._original_append: Optional[Callable[[Any], Any]] = None
        self._wrapper: Optional[Callable[[Any], Any]] = None
        self._shadowed_instance_append = False
        self._hooks: List[DecisionHook] = []

        if not self.rules:
            logger.warning(f"{self.label} - No rules defined.")
            return

        self.install()

    def register_hook(self, hook: DecisionHook) -> None:
        """Call ``hook(item, disposition, outcome)`` after every decision."""
        self._hooks.append(hook)

    def install(self) -> None:
        """Replace the queue's append and announce the resolved rules."""
        if self.installed:
            return

        original = self.queue.append
        wrapper = self.intercept
        self._shadowed_instance_append = 'append' in getattr(self.queue, '__dict__', {})

        try:
            self.queue.append = wrapper
        except (AttributeError, TypeError) as e:
            logger.warning(f"{self.label} - Queue append cannot be replaced ({e}); enforcement disabled.")
            return

        self._original_append = original
        self._wrapper = wrapper
        self.installed = True
        logger.info(f"{self.label} - Enforcing {len(self.rules)} rule(s) on {self.config.data_layer}")

        original({
            'event': f"{self.config.namespace}.loaded",
            'rules': [rule.describe() for rule in self.rules],
        })

    def uninstall(self) -> None:
        """Restore the queue's original append."""
        if not self.installed:
            return

        if self._shadowed_instance_append:
            self.queue.append = self._original_append
        elif getattr(self.queue, '__dict__', {}).get('append') is self._wrapper:
            del self.queue.append

        self.installed = False
        self._wrapper = None

    def intercept(self, item: Any) -> Any:
        """Replacement append: classify, evaluate, then forward or withhold.

        Never raises; unexpected errors forward the item unchanged. Once
        uninstalled, items are forwarded without evaluation.
        """
        if not self.installed:
            return self._forward(item)

        try:
            disposition, outcome = self.decide(item)
        except Exception as e:
            logger.warning(f"{self.label} - Enforcement failed ({type(e).__name__}: {e}); forwarding payload.")
            return self._forward(item)

        self._notify(item, disposition, outcome)

        if disposition in (Disposition.DROPPED, Disposition.IGNORED):
            return None
        return self._forward(item)

    def decide(self, item: Any) -> tuple[Disposition, Optional[EvaluationOutcome]]:
        """Classify an item and run the rules it is subject to."""
        classified = self.classifier.classify(item)

        if not classified.forward:
            return Disposition.IGNORED, None
        if not classified.evaluate:
            return Disposition.BYPASSED, None

        outcome = self.engine.evaluate(classified.payload, classified.payload_type)
        if not outcome.accepted:
            return Disposition.DROPPED, outcome
        if outcome.flagged:
            return Disposition.FLAGGED, outcome
        return Disposition.ACCEPTED, outcome

    def _forward(self, item: Any) -> Any:
        if self._original_append is None:
            # Never installed, so the queue still exposes its own append
            return self.queue.append(item)
        return self._original_append(item)

    def _append_to_queue(self, item: Any) -> Any:
        # Re-enters the wrapper; reserved diagnostic events are bypassed there
        return self.queue.append(item)

    def _notify(self, item: Any, disposition: Disposition, outcome: Optional[EvaluationOutcome]) -> None:
        for hook in self._hooks:
            try:
                hook(item, disposition, outcome)
            except Exception as e:
                logger.debug(f"{self.label} - Decision hook failed: {e}")


def install(config: Optional[CopConfig] = None, host: Optional[PageHost] = None, **kwargs: Any) -> QueueInterceptor:
    """Create and install an interceptor for the configured queue."""
    return QueueInterceptor(config, host=host, **kwargs)
