"""Classification of items appended to the dataLayer."""

import logging
from typing import Any

from .models import ClassifiedPayload, CommandCall, PayloadType

logger = logging.getLogger(__name__)

# Event names reserved for Google Tag Manager's internal bookkeeping
RESERVED_EVENT_PREFIX = "gtm."

# gtag() commands; only "event" carries a payload worth validating
GTAG_EVENT_COMMAND = "event"
GTAG_COMMANDS = frozenset({"config", "event", "set", "js", "get", "consent"})


def is_plain_mapping(item: Any) -> bool:
    """True for plain dict payloads (not subclasses or other containers)."""
    return type(item) is dict


class PayloadClassifier:
    """Decides the shape of an appended item and whether rules apply."""

    def classify(self, item: Any) -> ClassifiedPayload:
        """Classify the first argument of a queue append.

        Args:
            item: Whatever page code appended to the queue

        Returns:
            ClassifiedPayload describing shape, evaluation and forwarding
        """
        if isinstance(item, CommandCall):
            evaluate = item.command == GTAG_EVENT_COMMAND
            if not evaluate:
                logger.debug(f"Bypassing gtag command {item.command!r}")
            return ClassifiedPayload(
                payload=item,
                payload_type=PayloadType.GTAG,
                evaluate=evaluate,
                forward=True,
            )

        if is_plain_mapping(item):
            event = item.get('event')
            reserved = isinstance(event, str) and event.startswith(RESERVED_EVENT_PREFIX)
            if reserved:
                logger.debug(f"Bypassing reserved event {event!r}")
            return ClassifiedPayload(
                payload=item,
                payload_type=PayloadType.GTM,
                evaluate=not reserved,
                forward=True,
            )

        logger.debug(f"Ignoring unclassifiable queue item of type {type(item).__name__}")
        return ClassifiedPayload(payload=item)
