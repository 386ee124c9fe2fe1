"""DataLayer enforcement module for DataLayer Cop.

This module intercepts appends to a shared analytics event queue and checks
each payload against an ordered list of conformance rules before it reaches
the tag manager.

Key Components:
- QueueInterceptor: Wraps the queue's append and orchestrates the pipeline
- PayloadClassifier: Distinguishes gtm object payloads from gtag commands
- RuleEngine: Ordered rule evaluation with drop-on-fail semantics
- RuleCatalog: Predefined rules referenced from configuration by key
- Reporter: In-queue diagnostics and redacted remote reports
- CaseMatcher: snake/camel/pascal/namespace predicates

Example Usage:
    from datalayer_cop.enforcement import CopConfig, PageHost, QueueInterceptor

    host = PageHost(hostname="shop.example.com")
    config = CopConfig(rules=[{"predefined": "event_property_exists", "drop_on_fail": True}])
    QueueInterceptor(config, host=host)

    host.get_queue("dataLayer").append({"event": "checkout.step_completed"})
"""

from .models import (
    CommandCall,
    Disposition,
    EvaluationOutcome,
    HostContext,
    PayloadType,
    Rule,
    TestRecord,
    Verdict,
)

from .casing import (
    CaseMatcher,
    get_common_pattern,
    is_camel_case,
    is_namespaced,
    is_pascal_case,
    is_snake_case,
)

from .config import (
    CopConfig,
    CopConfigManager,
    ReportConfig,
    create_default_config,
    get_cop_config,
    load_cop_config,
    validate_config,
)

from .catalog import RuleCatalog, register_rule, rule_catalog
from .classifier import PayloadClassifier
from .engine import RuleEngine
from .errors import CopConfigurationError, CopError, RuleConfigurationError
from .redaction import Redactor, redact_payload
from .reporting import BeaconTransport, Reporter, is_valid_url
from .queue import DataLayer, EventQueue, PageHost, QueueInterceptor, gtag, install

__all__ = [
    # Main pipeline
    "QueueInterceptor",
    "install",
    "DataLayer",
    "EventQueue",
    "PageHost",
    "gtag",

    # Core components
    "PayloadClassifier",
    "RuleEngine",
    "RuleCatalog",
    "rule_catalog",
    "register_rule",
    "Reporter",
    "BeaconTransport",
    "Redactor",
    "redact_payload",
    "is_valid_url",

    # Case predicates
    "CaseMatcher",
    "get_common_pattern",
    "is_snake_case",
    "is_camel_case",
    "is_pascal_case",
    "is_namespaced",

    # Data models
    "CommandCall",
    "Disposition",
    "EvaluationOutcome",
    "HostContext",
    "PayloadType",
    "Rule",
    "TestRecord",
    "Verdict",

    # Configuration
    "CopConfig",
    "CopConfigManager",
    "ReportConfig",
    "create_default_config",
    "get_cop_config",
    "load_cop_config",
    "validate_config",

    # Errors
    "CopError",
    "CopConfigurationError",
    "RuleConfigurationError",
]
