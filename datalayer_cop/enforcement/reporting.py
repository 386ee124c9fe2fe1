"""Violation reporting to the dataLayer and to a remote collector.

Failures are reported through two independent sinks: a diagnostic
``gtm.pageError`` event pushed back onto the queue, and a redacted JSON
envelope sent to an HTTPS endpoint. Remote sends are fire-and-forget: they
run on a background thread, are never retried, and never raise.
"""

import json
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Protocol
from urllib.parse import urlparse

import httpx

from .config import CopConfig
from .models import HostContext, TestRecord
from .redaction import Redactor

logger = logging.getLogger(__name__)

DIAGNOSTIC_EVENT = "gtm.pageError"
DIAGNOSTIC_MESSAGE_KEY = "gtm.errorMessage"


def is_valid_url(value: Any) -> bool:
    """Check that a value is a well-formed https URL with a host."""
    if not isinstance(value, str) or not value or any(c.isspace() for c in value):
        return False

    try:
        parsed = urlparse(value)
        # Accessing the port validates it
        parsed.port
    except ValueError:
        return False

    return parsed.scheme == "https" and bool(parsed.hostname)


class ReportTransport(Protocol):
    """Anything able to ship a serialized report body to a URL."""

    def send(self, url: str, body: str) -> None:
        ...


class BeaconTransport:
    """Non-blocking POST of report bodies using httpx on daemon threads."""

    def __init__(self, client: Optional[httpx.Client] = None, timeout_seconds: float = 5.0):
        """Initialize transport.

        Args:
            client: Optional shared httpx client (a new request is made per send otherwise)
            timeout_seconds: Per-request timeout
        """
        self._client = client
        self.timeout_seconds = timeout_seconds
        self._pending: List[threading.Thread] = []
        self._lock = threading.Lock()

    def send(self, url: str, body: str) -> None:
        """Start sending and return immediately."""
        thread = threading.Thread(
            target=self._post,
            args=(url, body),
            name="datalayer-cop-beacon",
            daemon=True
        )
        with self._lock:
            self._pending = [t for t in self._pending if t.is_alive()]
            self._pending.append(thread)
        thread.start()

    def flush(self, timeout: Optional[float] = None) -> int:
        """Wait for in-flight sends to finish.

        Returns:
            Number of sends that were waited on
        """
        with self._lock:
            pending = list(self._pending)
            self._pending.clear()

        for thread in pending:
            thread.join(timeout=timeout)
        return len(pending)

    def _post(self, url: str, body: str) -> None:
        headers = {"Content-Type": "application/json"}
        try:
            if self._client is not None:
                response = self._client.post(url, content=body, headers=headers, timeout=self.timeout_seconds)
            else:
                response = httpx.post(url, content=body, headers=headers, timeout=self.timeout_seconds)
            logger.debug(f"Report sent to {url} (status {response.status_code})")
        except httpx.HTTPError as e:
            logger.debug(f"Report to {url} failed: {e}")


class Reporter:
    """Emits diagnostics for failing rules."""

    def __init__(
        self,
        config: CopConfig,
        queue_sink: Optional[Callable[[Any], Any]] = None,
        transport: Optional[ReportTransport] = None,
        host: Optional[HostContext] = None,
        redactor: Optional[Redactor] = None
    ):
        """Initialize reporter.

        Args:
            config: Enforcement configuration (report section and namespace)
            queue_sink: Callable appending an item to the shared queue
            transport: Remote transport (BeaconTransport by default)
            host: Hosting page details for report envelopes
            redactor: Redactor applied to payloads leaving the page
        """
        self.config = config
        self.queue_sink = queue_sink
        self.transport = transport if transport is not None else BeaconTransport()
        self.host = host or HostContext()
        self.redactor = redactor or Redactor()
        self.label = f"{config.data_layer} Cop"

    def should_report(self, test: TestRecord) -> bool:
        return not test.passed and self.config.report.triggers(test.rule.severity)

    def report(self, test: TestRecord) -> None:
        """Send a failing test to every enabled sink."""
        self.report_to_url(test)
        self.report_to_queue(test)

    def diagnostic_event(self, test: TestRecord) -> Dict[str, Any]:
        """Queue event describing a failed test."""
        record = test.to_dict()
        record['payload'] = json.dumps(record['payload'], default=str)
        return {
            'event': DIAGNOSTIC_EVENT,
            DIAGNOSTIC_MESSAGE_KEY: test.rule.name,
            self.config.namespace: record,
        }

    def report_to_queue(self, test: TestRecord) -> None:
        if not self.config.report.to_data_layer or self.queue_sink is None:
            return
        try:
            event = self.diagnostic_event(test)
        except (TypeError, ValueError) as e:
            logger.warning(f"{self.label} - Could not serialize payload for diagnostic event: {e}")
            return

        # The gtm. prefix on the diagnostic event keeps it out of rule evaluation
        try:
            self.queue_sink(event)
        except Exception as e:
            logger.warning(f"{self.label} - Diagnostic event could not be appended: {e}")

    def build_envelope(self, test: TestRecord) -> Dict[str, Any]:
        """Report body with host details and a redacted payload."""
        envelope: Dict[str, Any] = {
            'hostname': self.host.hostname,
            'url': self.host.url,
            'user_agent': self.host.user_agent,
        }
        envelope.update(test.to_dict())
        envelope['payload'] = self.redactor.redact(envelope['payload'])
        return envelope

    def report_to_url(self, test: TestRecord) -> None:
        if not self.config.report.url_enabled:
            return

        url = self.config.report.to_url
        if not is_valid_url(url):
            logger.warning(
                f"{self.label} - Attempted to report to URL - but an invalid URL was provided ({url})."
            )
            return

        try:
            body = json.dumps(self.build_envelope(test), default=str)
            self.transport.send(url, body)
        except Exception as e:
            # Reporting must never affect the payload decision
            logger.debug(f"{self.label} - Report to {url} could not be sent: {e}")
