"""Tests for AlertRule validation and the SQL rule store."""

import pytest

from marketpulse.alerts.models import AlertRule, ConditionKind, Severity
from marketpulse.alerts.rules import SqlRuleStore
from marketpulse.errors import ConfigurationError


def _fields(**overrides):
    fields = {
        "name": "High error rate",
        "condition": "error_rate",
        "threshold": 10,
        "time_window": 5,
        "severity": "high",
        "channels": ["ops-slack"],
    }
    fields.update(overrides)
    return fields


class TestAlertRuleValidation:
    def test_create_coerces_enums(self):
        rule = AlertRule.create(**_fields())

        assert rule.condition == ConditionKind.ERROR_RATE
        assert rule.severity == Severity.HIGH
        assert rule.channels == ("ops-slack",)
        assert rule.is_active is True

    @pytest.mark.parametrize("time_window", [0, -5])
    def test_non_positive_window_rejected(self, time_window):
        with pytest.raises(ConfigurationError):
            AlertRule.create(**_fields(time_window=time_window))

    def test_active_rule_without_channels_rejected(self):
        with pytest.raises(ConfigurationError, match="at least one channel"):
            AlertRule.create(**_fields(channels=[]))

    def test_inactive_rule_may_have_no_channels(self):
        rule = AlertRule.create(**_fields(channels=[], is_active=False))
        assert rule.channels == ()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"condition": "disk_full"},
            {"severity": "urgent"},
            {"threshold": float("nan")},
            {"threshold": "ten"},
            {"name": "  "},
            {"time_window": 2.5},
            {"is_active": None},
            {"is_active": "yes"},
        ],
    )
    def test_malformed_rules_rejected(self, overrides):
        with pytest.raises(ConfigurationError):
            AlertRule.create(**_fields(**overrides))

    def test_missing_field_rejected(self):
        fields = _fields()
        del fields["condition"]
        with pytest.raises(ConfigurationError, match="condition"):
            AlertRule.create(**fields)

    def test_with_changes_validates_result(self):
        rule = AlertRule.create(**_fields())

        updated = rule.with_changes(threshold=20, severity="critical")
        assert updated.threshold == 20
        assert updated.severity == Severity.CRITICAL

        with pytest.raises(ConfigurationError):
            rule.with_changes(time_window=0)

        with pytest.raises(ConfigurationError, match="is_active"):
            rule.with_changes(is_active=None)

    def test_snapshot_is_json_safe(self):
        snapshot = AlertRule.create(**_fields()).snapshot()
        assert snapshot["condition"] == "error_rate"
        assert snapshot["severity"] == "high"
        assert snapshot["channels"] == ["ops-slack"]


class TestSqlRuleStore:
    @pytest.mark.asyncio
    async def test_create_and_list_active(self, session_factory):
        store = SqlRuleStore(session_factory)
        active = await store.create(AlertRule.create(**_fields()))
        await store.create(AlertRule.create(**_fields(name="Paused", is_active=False)))

        rules = await store.list_active()

        assert [r.id for r in rules] == [active.id]
        assert rules[0].channels == ("ops-slack",)
        assert len(await store.list_all()) == 2

    @pytest.mark.asyncio
    async def test_update_applies_changes(self, session_factory):
        store = SqlRuleStore(session_factory)
        rule = await store.create(AlertRule.create(**_fields()))

        updated = await store.update(rule.id, threshold=3, channels=["ops-email", "ops-sms"])

        assert updated.threshold == 3
        assert updated.channels == ("ops-email", "ops-sms")
        assert (await store.get(rule.id)).threshold == 3

    @pytest.mark.asyncio
    async def test_invalid_update_leaves_rule_unchanged(self, session_factory):
        store = SqlRuleStore(session_factory)
        rule = await store.create(AlertRule.create(**_fields()))

        with pytest.raises(ConfigurationError):
            await store.update(rule.id, time_window=-1)

        assert (await store.get(rule.id)).time_window == 5

    @pytest.mark.asyncio
    async def test_update_missing_rule(self, session_factory):
        with pytest.raises(ConfigurationError):
            await SqlRuleStore(session_factory).update(999, threshold=1)

    @pytest.mark.asyncio
    async def test_delete(self, session_factory):
        store = SqlRuleStore(session_factory)
        rule = await store.create(AlertRule.create(**_fields()))

        assert await store.delete(rule.id) is True
        assert await store.delete(rule.id) is False
        assert await store.get(rule.id) is None
