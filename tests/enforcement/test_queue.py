"""Tests for the queue interceptor end to end."""

import json
import logging
from types import SimpleNamespace

import pytest

from datalayer_cop.enforcement.config import CopConfig
from datalayer_cop.enforcement.models import Disposition, Rule
from datalayer_cop.enforcement.queue import DataLayer, PageHost, QueueInterceptor, gtag, install


def never(payload, payload_type):
    return False


def drop_config(*rules, **kwargs):
    return CopConfig(rules=list(rules), **kwargs)


class TestInstallation:
    """Test cases for installing and removing the interceptor."""

    def test_loaded_event_announced(self, predefined_config, host, transport):
        interceptor = QueueInterceptor(predefined_config, host=host, transport=transport)
        queue = host.get_queue("dataLayer")

        assert interceptor.installed
        assert "append" in vars(queue)
        loaded = queue[0]
        assert loaded["event"] == "datalayercop.loaded"
        assert [rule["name"] for rule in loaded["rules"]] == [rule.name for rule in interceptor.rules]
        assert all("predicate" not in rule for rule in loaded["rules"])

    def test_loaded_event_bypasses_rules(self, host):
        config = drop_config(Rule(name="drop everything", predicate=never, drop_on_fail=True))

        QueueInterceptor(config, host=host)

        assert host.get_queue("dataLayer")[0]["event"] == "datalayercop.loaded"

    def test_no_rules_means_no_install(self, host, caplog):
        with caplog.at_level(logging.WARNING):
            interceptor = QueueInterceptor(CopConfig(), host=host)

        queue = host.get_queue("dataLayer")
        assert not interceptor.installed
        assert "append" not in vars(queue)
        assert len(queue) == 0
        assert "No rules defined." in caplog.text

    def test_queue_created_when_absent(self, predefined_config):
        host = PageHost()
        QueueInterceptor(predefined_config, host=host)

        assert isinstance(host.get_queue("dataLayer"), DataLayer)

    def test_existing_queue_reused(self, predefined_config, host):
        existing = DataLayer([{"event": "gtm.js"}])
        host.queues["dataLayer"] = existing

        QueueInterceptor(predefined_config, host=host)

        assert host.get_queue("dataLayer") is existing
        assert existing[0] == {"event": "gtm.js"}
        assert existing[1]["event"] == "datalayercop.loaded"

    def test_custom_queue_and_namespace(self, host):
        config = drop_config({"predefined": "event_is_namespaced"}, data_layer="eventQueue", namespace="acme")

        QueueInterceptor(config, host=host)

        assert host.get_queue("dataLayer") is None
        assert host.get_queue("eventQueue")[0]["event"] == "acme.loaded"

    def test_uninstall_restores_class_append(self, predefined_config, host):
        interceptor = QueueInterceptor(predefined_config, host=host)
        queue = host.get_queue("dataLayer")

        interceptor.uninstall()
        queue.append("not evaluated")

        assert not interceptor.installed
        assert "append" not in vars(queue)
        assert queue[-1] == "not evaluated"

    def test_uninstall_restores_instance_append(self, predefined_config):
        items = []
        queue = SimpleNamespace(append=items.append)

        interceptor = QueueInterceptor(predefined_config, queue=queue)
        assert queue.append == interceptor.intercept

        interceptor.uninstall()

        assert queue.append == items.append

    def test_unpatchable_queue(self, predefined_config, caplog):
        with caplog.at_level(logging.WARNING):
            interceptor = QueueInterceptor(predefined_config, queue=[])

        assert not interceptor.installed
        assert "cannot be replaced" in caplog.text

    def test_install_helper(self, predefined_config, host, transport):
        interceptor = install(predefined_config, host=host, transport=transport)

        assert isinstance(interceptor, QueueInterceptor)
        assert interceptor.installed


class TestInterception:
    """Test cases for payloads pushed through the wrapped queue."""

    def test_conforming_payload_forwarded(self, predefined_config, host, transport):
        QueueInterceptor(predefined_config, host=host, transport=transport)
        queue = host.get_queue("dataLayer")
        payload = {"event": "checkout.step_completed", "cart_total": 3}

        result = queue.append(payload)

        assert result == 2
        assert queue[-1] is payload
        assert transport.sent == []

    def test_flagged_payload_forwarded_with_diagnostics(self, predefined_config, host, transport):
        QueueInterceptor(predefined_config, host=host, transport=transport)
        queue = host.get_queue("dataLayer")
        payload = {"event": "purchase", "cartTotal": 3}

        queue.append(payload)

        events = [item["event"] for item in queue]
        assert events == ["datalayercop.loaded", "gtm.pageError", "gtm.pageError", "purchase"]
        assert queue[-1] is payload
        assert queue[1]["gtm.errorMessage"] == "Expect `event` property value to be prefixed with a namespace."
        assert len(transport.sent) == 2
        envelope = json.loads(transport.sent[0][1])
        assert envelope["hostname"] == "shop.example.com"
        assert envelope["user_agent"] == "Mozilla/5.0 (test)"

    def test_drop_rule_withholds_payload(self, host):
        config = drop_config({"predefined": "event_is_namespaced", "drop_on_fail": True})
        QueueInterceptor(config, host=host)
        queue = host.get_queue("dataLayer")

        assert queue.append({"event": "purchase"}) is None
        assert queue.append({"event": "shop.purchase"}) == 2
        assert [item["event"] for item in queue] == ["datalayercop.loaded", "shop.purchase"]

    def test_reserved_events_bypass(self, host):
        config = drop_config(Rule(name="drop everything", predicate=never, drop_on_fail=True))
        QueueInterceptor(config, host=host)
        queue = host.get_queue("dataLayer")

        queue.append({"event": "gtm.dom"})

        assert queue[-1] == {"event": "gtm.dom"}

    def test_gtag_commands(self, host):
        config = drop_config({"predefined": "payload_properties_are_preferred_case", "drop_on_fail": True})
        QueueInterceptor(config, host=host)
        queue = host.get_queue("dataLayer")

        gtag(queue, "config", "G-XXXXXXX", {"sendPageView": False})
        gtag(queue, "event", "login", {"loginMethod": "sso"})
        gtag(queue, "event", "login", {"method": "sso"})

        forwarded = [item.args for item in list(queue)[1:]]
        assert forwarded == [
            ("config", "G-XXXXXXX", {"sendPageView": False}),
            ("event", "login", {"method": "sso"}),
        ]

    def test_gtm_only_rules_skip_gtag(self, host):
        config = drop_config({"predefined": "event_property_exists", "drop_on_fail": True})
        QueueInterceptor(config, host=host)
        queue = host.get_queue("dataLayer")

        gtag(queue, "event", "login")

        assert queue[-1].args == ("event", "login")

    @pytest.mark.parametrize("item", ["page_view", 42, None, ["event", "login"]])
    def test_unclassifiable_items_withheld(self, predefined_config, host, item):
        QueueInterceptor(predefined_config, host=host)
        queue = host.get_queue("dataLayer")

        assert queue.append(item) is None
        assert len(queue) == 1

    def test_diagnostic_does_not_recurse(self, host):
        config = drop_config(
            Rule(name="never passes", predicate=never, severity="error"),
            report={"to_data_layer": True, "only": ["error"]}
        )
        QueueInterceptor(config, host=host)
        queue = host.get_queue("dataLayer")

        queue.append({"event": "shop.view"})

        assert [item["event"] for item in queue] == ["datalayercop.loaded", "gtm.pageError", "shop.view"]

    def test_transport_failure_does_not_change_decision(self, predefined_config, host, failing_transport):
        QueueInterceptor(predefined_config, host=host, transport=failing_transport)
        queue = host.get_queue("dataLayer")

        queue.append({"event": "purchase"})

        assert queue[-1] == {"event": "purchase"}

    def test_unexpected_error_fails_open(self, predefined_config, host, caplog):
        interceptor = QueueInterceptor(predefined_config, host=host)
        queue = host.get_queue("dataLayer")

        def explode(item):
            raise RuntimeError("boom")

        interceptor.classifier.classify = explode

        with caplog.at_level(logging.WARNING):
            queue.append({"event": "shop.view"})

        assert queue[-1] == {"event": "shop.view"}
        assert "Enforcement failed" in caplog.text


class TestDecisionHooks:
    """Test cases for decision hooks."""

    def test_hooks_receive_dispositions(self, host):
        config = drop_config(
            {"predefined": "event_is_namespaced", "drop_on_fail": True},
            {"predefined": "payload_properties_are_preferred_case"}
        )
        interceptor = QueueInterceptor(config, host=host)
        decisions = []
        interceptor.register_hook(lambda item, disposition, outcome: decisions.append(disposition))
        queue = host.get_queue("dataLayer")

        queue.append({"event": "shop.view"})
        queue.append({"event": "shop.view", "pageType": "home"})
        queue.append({"event": "view"})
        queue.append({"event": "gtm.load"})
        queue.append("junk")

        assert decisions == [
            Disposition.ACCEPTED,
            Disposition.FLAGGED,
            Disposition.DROPPED,
            Disposition.BYPASSED,
            Disposition.IGNORED,
        ]

    def test_outcome_passed_to_hook(self, host):
        config = drop_config({"predefined": "event_is_namespaced"})
        interceptor = QueueInterceptor(config, host=host)
        outcomes = []
        interceptor.register_hook(lambda item, disposition, outcome: outcomes.append(outcome))

        host.get_queue("dataLayer").append({"event": "view"})

        assert outcomes[0].evaluated == 1
        assert [t.rule.name for t in outcomes[0].failures] == [
            "Expect `event` property value to be prefixed with a namespace."
        ]

    def test_failing_hook_ignored(self, predefined_config, host):
        interceptor = QueueInterceptor(predefined_config, host=host)

        def broken(item, disposition, outcome):
            raise ValueError("hook bug")

        interceptor.register_hook(broken)
        queue = host.get_queue("dataLayer")
        queue.append({"event": "shop.view"})

        assert queue[-1] == {"event": "shop.view"}


class TestDropGuarantees:
    """Test cases keeping drops in force when reporting or installation changes."""

    def test_drop_survives_unserializable_payload(self, host, caplog):
        config = drop_config(
            {"predefined": "event_is_namespaced", "drop_on_fail": True, "severity": "error"},
            report={"to_data_layer": True, "only": ["error"]}
        )
        QueueInterceptor(config, host=host)
        queue = host.get_queue("dataLayer")
        payload = {"event": "purchase"}
        payload["self"] = payload

        with caplog.at_level(logging.WARNING):
            result = queue.append(payload)

        assert result is None
        assert all(item is not payload for item in queue)
        assert "Enforcement failed" not in caplog.text

    def test_stale_wrapper_forwards_after_uninstall(self, predefined_config, host):
        interceptor = QueueInterceptor(predefined_config, host=host)
        queue = host.get_queue("dataLayer")
        stale_append = queue.append

        interceptor.uninstall()
        result = stale_append({"event": "view"})

        assert result == len(queue)
        assert queue[-1] == {"event": "view"}
