"""
Tests for requisition_config: settings loading, parsing and rule seeding.

Covers:
- load_settings with the packaged default set
- Environment overrides and the REQUISITION_CONFIG_TRACE entry
- parse_settings / parse_approval_rule validation
- seed_approval_rules is a no-op once rules exist
"""

from decimal import Decimal

import pytest
import yaml

from requisition_config import DEFAULT_SETTINGS_FILE, compute_checksum, load_settings
from requisition_config.bridges import seed_approval_rules
from requisition_config.loader import load_yaml_file, parse_approval_rule, parse_settings
from requisition_kernel.domain.approval import ApproverRole


def minimal_settings(**overrides):
    data = {"database_url": "sqlite:///:memory:"}
    data.update(overrides)
    return data


# ---------------------------------------------------------------------------
# load_settings
# ---------------------------------------------------------------------------


class TestLoadSettings:

    @pytest.fixture(autouse=True)
    def _no_env_overrides(self, monkeypatch):
        monkeypatch.delenv("REQUISITION_DATABASE_URL", raising=False)
        monkeypatch.delenv("REQUISITION_LOG_LEVEL", raising=False)

    def test_default_set(self):
        settings = load_settings()
        assert settings.default_currency == "USD"
        assert settings.variance_threshold == Decimal("0.10")
        assert settings.default_approver_role == ApproverRole.FINANCE
        assert len(settings.approval_rules) == 3

    def test_default_rules_tiered(self):
        small, standard, large = load_settings().approval_rules
        assert small.required_approvers == (ApproverRole.MANAGER,)
        assert standard.min_amount == Decimal("1000")
        assert standard.max_amount == Decimal("10000")
        assert large.max_amount is None
        assert large.required_approvers == (
            ApproverRole.MANAGER, ApproverRole.FINANCE, ApproverRole.ADMIN,
        )

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("REQUISITION_DATABASE_URL", "postgresql+psycopg2://u:p@db/req")
        monkeypatch.setenv("REQUISITION_LOG_LEVEL", "debug")
        settings = load_settings()
        assert settings.database_url == "postgresql+psycopg2://u:p@db/req"
        assert settings.log_level == "DEBUG"

    def test_checksum_deterministic(self, monkeypatch):
        first = load_settings().checksum
        assert load_settings().checksum == first
        monkeypatch.setenv("REQUISITION_LOG_LEVEL", "WARNING")
        assert load_settings().checksum != first

    def test_trace_logged(self, captured_logs, monkeypatch):
        monkeypatch.setenv("REQUISITION_LOG_LEVEL", "DEBUG")
        settings = load_settings()
        trace = next(r for r in captured_logs() if r["message"] == "REQUISITION_CONFIG_TRACE")
        assert trace["checksum"] == settings.checksum
        assert trace["overrides"] == ["log_level"]
        assert trace["approval_rule_count"] == 3
        assert trace["source"] == str(DEFAULT_SETTINGS_FILE)

    def test_custom_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(yaml.safe_dump(minimal_settings(default_currency="gbp")))
        settings = load_settings(path)
        assert settings.default_currency == "GBP"
        assert settings.approval_rules == ()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseSettings:

    def test_defaults_applied(self):
        settings = parse_settings(minimal_settings())
        assert settings.default_currency == "USD"
        assert settings.variance_threshold == Decimal("0.10")
        assert settings.sqlite_busy_timeout_seconds == 30.0
        assert settings.checksum == compute_checksum(minimal_settings())

    def test_database_url_required(self):
        with pytest.raises(KeyError):
            parse_settings({"default_currency": "USD"})

    @pytest.mark.parametrize("overrides", [
        {"default_currency": "XYZ"},
        {"variance_threshold": "1.5"},
        {"variance_threshold": "-0.1"},
        {"default_approver_role": "CFO"},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            parse_settings(minimal_settings(**overrides))

    def test_invalid_rule_rejected(self):
        data = minimal_settings(approval_rules=[
            {"name": "backwards", "min_amount": "500", "max_amount": "100",
             "required_approvers": ["FINANCE"]},
        ])
        with pytest.raises(ValueError, match="backwards"):
            parse_settings(data)


class TestParseApprovalRule:

    def test_open_ended_global_rule(self):
        rule = parse_approval_rule(
            {"name": "big", "min_amount": "10000", "required_approvers": ["finance", "ADMIN"]}
        )
        assert rule.max_amount is None
        assert rule.department_id is None
        assert rule.required_approvers == (ApproverRole.FINANCE, ApproverRole.ADMIN)

    def test_department_scoped(self):
        rule = parse_approval_rule({
            "name": "eng",
            "min_amount": 0,
            "max_amount": 500,
            "required_approvers": ["MANAGER"],
            "department_id": "6f1c2a9e-0000-4000-8000-000000000001",
        })
        assert str(rule.department_id) == "6f1c2a9e-0000-4000-8000-000000000001"
        assert rule.max_amount == Decimal("500")

    def test_empty_approvers_rejected(self):
        with pytest.raises(ValueError):
            parse_approval_rule({"name": "none", "min_amount": "0", "required_approvers": []})


class TestLoadYamlFile:

    def test_empty_file_is_empty_dict(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("database_url: [unclosed")
        with pytest.raises(yaml.YAMLError):
            load_yaml_file(path)


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


class TestSeedApprovalRules:

    def test_seeds_once(self, rule_service, directory_data, captured_logs):
        rule_defs = load_settings().approval_rules

        created = seed_approval_rules(rule_service, directory_data.admin_id, rule_defs)
        assert len(created) == 3
        assert rule_service.count_rules() == 3

        assert seed_approval_rules(rule_service, directory_data.admin_id, rule_defs) == []
        assert rule_service.count_rules() == 3
        assert any(r["message"] == "approval_rules_seed_skipped" for r in captured_logs())
