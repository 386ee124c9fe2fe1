"""Predefined rule catalog and rule normalization.

Predefined rules are registered by key with the ``register_rule`` decorator.
Configured rule entries either reference one of them by key (optionally
overriding individual fields) or describe a complete rule themselves.
"""

import importlib
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from .casing import CaseMatcher, is_namespaced
from .errors import RuleConfigurationError
from .models import CommandCall, PayloadType, Rule

logger = logging.getLogger(__name__)

PREDEFINED_MARKER = "predefined"

RuleFactory = Callable[[CaseMatcher], Dict[str, Any]]


def _event_of(payload: Any) -> Any:
    if isinstance(payload, CommandCall):
        return payload.event_name
    if isinstance(payload, Mapping):
        return payload.get('event')
    return None


def _property_keys(payload: Any) -> List[Any]:
    if isinstance(payload, CommandCall):
        return list(payload.params.keys())
    if isinstance(payload, Mapping):
        return list(payload.keys())
    return []


class RuleCatalog:
    """Registry of predefined rule factories."""

    def __init__(self):
        self._factories: Dict[str, RuleFactory] = {}

    def register(self, key: str, factory: RuleFactory) -> None:
        self._factories[key] = factory

    def is_registered(self, key: Any) -> bool:
        return isinstance(key, str) and key in self._factories

    def keys(self) -> List[str]:
        return list(self._factories.keys())

    def get_predefined(self, key: str, matcher: CaseMatcher) -> Dict[str, Any]:
        """Field mapping for a predefined rule, empty when the key is unknown."""
        factory = self._factories.get(key)
        if factory is None:
            return {}
        return factory(matcher)

    def predefined_rules(self, matcher: CaseMatcher) -> Dict[str, Rule]:
        """All predefined rules built for a preferred case."""
        return {key: Rule.model_validate(self.get_predefined(key, matcher)) for key in self._factories}

    def resolve(self, entry: Any, matcher: CaseMatcher, label: str = "DataLayer Cop") -> Rule:
        """Turn a configured rule entry into a plain Rule.

        Override fields are shallow-merged on top of the predefined definition
        and win on conflicts; the ``predefined`` marker is discarded.
        """
        if isinstance(entry, Rule):
            return entry

        overrides = dict(entry)
        if 'predicate' in overrides:
            overrides['assert'] = overrides.pop('predicate')
        if 'dropOnFail' in overrides:
            overrides['drop_on_fail'] = overrides.pop('dropOnFail')

        key = overrides.pop(PREDEFINED_MARKER, None)
        data: Dict[str, Any] = {}
        if key is not None:
            if not self.is_registered(key):
                logger.warning(f"{label} - Unknown predefined rule {key!r}")
            data = self.get_predefined(key, matcher)
        data.update(overrides)

        if isinstance(data.get('assert'), str):
            try:
                data['assert'] = import_predicate(data['assert'])
            except RuleConfigurationError as e:
                logger.warning(f"{label} - {e}")
                data['assert'] = None

        try:
            return Rule.model_validate(data)
        except ValidationError as e:
            logger.warning(f"{label} - Invalid rule definition {data.get('name')!r}: {e}")
            name = data.get('name')
            return Rule(name=name if isinstance(name, str) else None)

    def normalize(self, entries: Iterable[Any], matcher: CaseMatcher, label: str = "DataLayer Cop") -> List[Rule]:
        """Resolve a configured rule list, preserving order."""
        if not matcher.is_valid:
            logger.warning(
                f"{label} - Unrecognized preferred case {matcher.preferred_case!r}; "
                f"case rules will be skipped"
            )
        return [self.resolve(entry, matcher, label) for entry in entries]


def import_predicate(path: str) -> Callable[..., Any]:
    """Import a predicate given as ``package.module:function``."""
    module_name, _, attr = path.partition(':')
    if not module_name or not attr:
        raise RuleConfigurationError(f"Predicate must look like 'module:function', got {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise RuleConfigurationError(f"Cannot import predicate module {module_name!r}: {e}")

    predicate = getattr(module, attr, None)
    if not callable(predicate):
        raise RuleConfigurationError(f"Predicate {path!r} is not callable")
    return predicate


# Global rule catalog
rule_catalog = RuleCatalog()


def register_rule(key: str):
    """Decorator to register a predefined rule factory.

    Args:
        key: Key used by configuration entries to reference the rule
    """
    def decorator(factory: RuleFactory) -> RuleFactory:
        rule_catalog.register(key, factory)
        return factory

    return decorator


@register_rule("event_property_exists")
def event_property_exists(matcher: CaseMatcher) -> Dict[str, Any]:
    def check(payload: Any, payload_type: Optional[PayloadType] = None) -> bool:
        event = _event_of(payload)
        return isinstance(event, str) and len(event) > 0

    return {
        'name': 'Expect payload to include an `event` property.',
        'assert': check,
        'drop_on_fail': False,
        'type': PayloadType.GTM,
    }


@register_rule("event_is_namespaced")
def event_is_namespaced(matcher: CaseMatcher) -> Dict[str, Any]:
    def check(payload: Any, payload_type: Optional[PayloadType] = None) -> bool:
        return is_namespaced(_event_of(payload))

    return {
        'name': 'Expect `event` property value to be prefixed with a namespace.',
        'assert': check,
        'drop_on_fail': False,
        'type': PayloadType.GTM,
    }


@register_rule("payload_properties_are_preferred_case")
def payload_properties_are_preferred_case(matcher: CaseMatcher) -> Dict[str, Any]:
    def check(payload: Any, payload_type: Optional[PayloadType] = None) -> bool:
        return all(matcher.is_preferred_case(key) for key in _property_keys(payload))

    return {
        'name': f'Expect all payload properties to match preferred case ({matcher.preferred_case}).',
        'assert': check if matcher.is_valid else None,
        'drop_on_fail': False,
    }


@register_rule("event_is_preferred_case_after_namespace")
def event_is_preferred_case_after_namespace(matcher: CaseMatcher) -> Dict[str, Any]:
    def check(payload: Any, payload_type: Optional[PayloadType] = None) -> bool:
        event = _event_of(payload)
        if not is_namespaced(event):
            return True
        # Segment between the first and second dots
        return matcher.is_preferred_case(event.split('.')[1])

    return {
        'name': (
            f'Expect `event` property value to match preferred case '
            f'({matcher.preferred_case}) after namespace.'
        ),
        'assert': check if matcher.is_valid else None,
        'drop_on_fail': False,
        'type': PayloadType.GTM,
    }
