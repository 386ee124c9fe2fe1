"""Shared test fixtures and configuration for DataLayer Cop tests."""

import pytest
from pathlib import Path
import sys
from typing import List, Tuple

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from datalayer_cop.enforcement.config import CopConfig
from datalayer_cop.enforcement.queue import PageHost


class RecordingTransport:
    """Transport double capturing report bodies instead of sending them."""

    def __init__(self, fail: bool = False):
        self.sent: List[Tuple[str, str]] = []
        self.fail = fail

    def send(self, url: str, body: str) -> None:
        if self.fail:
            raise ConnectionError("network down")
        self.sent.append((url, body))


@pytest.fixture
def transport():
    """Recording report transport."""
    return RecordingTransport()


@pytest.fixture
def host():
    """Hosting page with an example hostname."""
    return PageHost(
        hostname="shop.example.com",
        url="https://shop.example.com/checkout",
        user_agent="Mozilla/5.0 (test)"
    )


@pytest.fixture
def predefined_config():
    """Configuration using every predefined rule with reporting enabled."""
    return CopConfig(
        report={
            "to_url": "https://collector.example.com/violations",
            "to_data_layer": True,
            "only": ["error", "warn"],
        },
        rules=[
            {"predefined": "event_property_exists", "severity": "error"},
            {"predefined": "event_is_namespaced", "severity": "warn"},
            {"predefined": "payload_properties_are_preferred_case", "severity": "warn"},
            {"predefined": "event_is_preferred_case_after_namespace", "severity": "warn"},
        ],
    )


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


@pytest.fixture
def failing_transport():
    """Transport whose sends always raise."""
    return RecordingTransport(fail=True)
