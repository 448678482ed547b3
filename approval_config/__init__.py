"""
approval_config -- single public entrypoint for the threshold policy.

Responsibility:
    ``get_active_policy()`` is the ONLY way runtime code obtains the
    threshold policy.  YAML loading, validation and compilation are
    internal steps of that call.

Architecture position:
    Configuration.  Sits above ``approval_kernel.domain``; the kernel never
    imports from this package.

Failure modes:
    - ``FileNotFoundError`` -- the policy file does not exist.
    - ``PolicyValidationError`` -- the policy failed validation.

Audit relevance:
    Every successful call emits an ``APPROVAL_POLICY_TRACE`` log entry with
    the policy id, version and checksum.  The same checksum is stored on
    every workflow created under the policy.
"""

from __future__ import annotations

from pathlib import Path

from approval_config.compiler import compile_policy
from approval_config.loader import load_policy_file
from approval_config.validator import validate_policy
from approval_kernel.domain.thresholds import ThresholdPolicy
from approval_kernel.exceptions import PolicyValidationError
from approval_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_POLICY_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_policy(path: Path | None = None) -> ThresholdPolicy:
    """Load, validate and compile the threshold policy.

    Args:
        path: Policy YAML file.  Defaults to the bundled ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        PolicyValidationError: If validation reports errors.
    """
    definition = load_policy_file(path or DEFAULT_POLICY_PATH)

    validation = validate_policy(definition)
    for warning in validation.warnings:
        _logger.warning("approval_policy_warning", extra={"detail": warning})
    if not validation.is_valid:
        _logger.error(
            "approval_policy_invalid",
            extra={"policy_id": definition.policy_id, "errors": validation.errors},
        )
        raise PolicyValidationError(validation.errors)

    policy = compile_policy(definition)

    _logger.info(
        "APPROVAL_POLICY_TRACE",
        extra={
            "trace_type": "APPROVAL_POLICY_TRACE",
            "policy_id": definition.policy_id,
            "policy_version": policy.version,
            "checksum": policy.policy_hash,
            "role_count": len(definition.roles),
            "category_count": len(definition.categories),
        },
    )
    return policy


__all__ = ["DEFAULT_POLICY_PATH", "get_active_policy"]
