"""
Tests for the threshold policy pipeline (``approval_config``).

YAML -> ThresholdPolicyDefinition -> validate -> compile -> ThresholdPolicy.
Invalid policies must fail at load time, never as an unchainable request
at runtime.
"""

from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from approval_config import DEFAULT_POLICY_PATH, get_active_policy
from approval_config.compiler import compile_policy
from approval_config.loader import compute_checksum, load_policy_file, parse_policy
from approval_config.schema import ceiling_value
from approval_config.validator import validate_policy
from approval_kernel.domain.org import Role
from approval_kernel.domain.thresholds import UNBOUNDED, EntityCategory
from approval_kernel.exceptions import PolicyValidationError


def _base_document() -> dict:
    with open(DEFAULT_POLICY_PATH) as f:
        return yaml.safe_load(f)


def _write(tmp_path: Path, document: dict) -> Path:
    path = tmp_path / "policy.yaml"
    path.write_text(yaml.safe_dump(document))
    return path


class TestDefaultPolicy:
    def test_loads_and_validates(self):
        definition = load_policy_file(DEFAULT_POLICY_PATH)
        result = validate_policy(definition)
        assert result.is_valid, result.errors
        assert result.warnings == []

    def test_compiled_ceilings(self):
        policy = get_active_policy()
        assert policy.threshold_for(Role.ZONE_MANAGER, EntityCategory.SAFE_TRANSACTION) == Decimal("2000")
        assert policy.threshold_for(Role.PROJECT_MANAGER, EntityCategory.SAFE_TRANSACTION) == Decimal("10000")
        assert policy.threshold_for(Role.AREA_MANAGER, EntityCategory.EXPENSE) == Decimal("20000")
        assert policy.threshold_for(Role.PMO, EntityCategory.PAYROLL_RUN) == UNBOUNDED

    def test_compiled_rules(self):
        policy = get_active_policy()
        assert policy.rule_for(EntityCategory.PAYROLL_RUN).minimum_role == Role.PROJECT_MANAGER
        task = policy.rule_for(EntityCategory.TASK)
        assert not task.monetary
        assert task.fixed_chain == (Role.ZONE_MANAGER,)
        assert policy.global_scope_role == Role.ADMIN

    def test_trace_log_emitted(self, captured_logs):
        policy = get_active_policy()
        traces = [r for r in captured_logs() if r["message"] == "APPROVAL_POLICY_TRACE"]
        assert len(traces) == 1
        assert traces[0]["policy_id"] == "construction-default"
        assert traces[0]["checksum"] == policy.policy_hash

    def test_checksum_is_stable(self):
        assert get_active_policy().policy_hash == get_active_policy().policy_hash

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_policy(tmp_path / "absent.yaml")


class TestChecksum:
    def test_key_order_does_not_matter(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_any_edit_changes_checksum(self, tmp_path):
        document = _base_document()
        document["roles"]["zone_manager"]["ceilings"]["expense"] = 1200
        edited = get_active_policy(_write(tmp_path, document))
        assert edited.policy_hash != get_active_policy().policy_hash
        assert edited.threshold_for(Role.ZONE_MANAGER, EntityCategory.EXPENSE) == Decimal("1200")


class TestCeilingValue:
    def test_unbounded_marker(self):
        assert ceiling_value("unbounded") == UNBOUNDED

    def test_decimal_string(self):
        assert ceiling_value("2500.50") == Decimal("2500.50")


class TestValidation:
    def _errors(self, document):
        return validate_policy(parse_policy(document)).errors

    def test_unknown_role(self):
        document = _base_document()
        document["roles"]["foreman"] = {"ceilings": {"expense": 100}}
        assert any("unknown role: foreman" in e for e in self._errors(document))

    def test_unknown_category_in_ceilings(self):
        document = _base_document()
        document["roles"]["pmo"]["ceilings"]["fuel"] = 100
        assert any("unknown category fuel" in e for e in self._errors(document))

    def test_missing_category_rule(self):
        document = _base_document()
        del document["categories"]["payroll_run"]
        assert any("payroll_run" in e for e in self._errors(document))

    def test_missing_unbounded_role(self):
        document = _base_document()
        document["roles"]["pmo"]["ceilings"]["expense"] = 100000
        assert any("no unbounded role" in e for e in self._errors(document))

    def test_ceilings_must_not_decrease_with_level(self):
        document = _base_document()
        document["roles"]["area_manager"]["ceilings"]["expense"] = 3000
        assert any("below" in e for e in self._errors(document))

    def test_non_positive_ceiling(self):
        document = _base_document()
        document["roles"]["zone_manager"]["ceilings"]["expense"] = 0
        assert any("must be positive" in e for e in self._errors(document))

    def test_garbage_ceiling(self):
        document = _base_document()
        document["roles"]["zone_manager"]["ceilings"]["expense"] = "lots"
        assert any("invalid ceiling" in e for e in self._errors(document))

    def test_fixed_chain_on_monetary_category(self):
        document = _base_document()
        document["categories"]["expense"]["fixed_chain"] = ["zone_manager"]
        assert any("fixed_chain is only allowed" in e for e in self._errors(document))

    def test_non_monetary_without_chain(self):
        document = _base_document()
        document["categories"]["task"] = {"monetary": False}
        assert any("needs a fixed_chain" in e for e in self._errors(document))

    def test_overlay_without_ceiling(self):
        document = _base_document()
        del document["roles"]["project_manager"]["ceilings"]["payroll_run"]
        assert any("minimum_role" in e for e in self._errors(document))

    def test_unknown_global_scope_role(self):
        document = _base_document()
        document["global_scope_role"] = "superuser"
        assert any("global_scope_role" in e for e in self._errors(document))

    def test_ceiling_on_non_monetary_is_warning(self):
        document = _base_document()
        document["roles"]["zone_manager"]["ceilings"]["task"] = 10
        result = validate_policy(parse_policy(document))
        assert result.is_valid
        assert any("non-monetary" in w for w in result.warnings)

    def test_invalid_policy_refused_at_load(self, tmp_path, captured_logs):
        document = _base_document()
        document["roles"]["pmo"]["ceilings"]["expense"] = 100000
        with pytest.raises(PolicyValidationError) as exc_info:
            get_active_policy(_write(tmp_path, document))
        assert exc_info.value.code == "POLICY_VALIDATION_FAILED"
        assert "approval_policy_invalid" in [r["message"] for r in captured_logs()]

    def test_warnings_logged_but_policy_loads(self, tmp_path, captured_logs):
        document = _base_document()
        document["roles"]["zone_manager"]["ceilings"]["task"] = 10
        get_active_policy(_write(tmp_path, document))
        warnings = [r for r in captured_logs() if r["message"] == "approval_policy_warning"]
        assert len(warnings) == 1


class TestCompiler:
    def test_requires_approval_false_compiles(self):
        document = _base_document()
        document["categories"]["task"] = {"monetary": False, "requires_approval": False}
        definition = parse_policy(document)
        assert validate_policy(definition).is_valid
        policy = compile_policy(definition)
        assert not policy.rule_for(EntityCategory.TASK).requires_approval
