"""
Policy loader (``approval_config.loader``).

Responsibility
--------------
Loads a threshold policy YAML file and parses it into the frozen
``approval_config.schema`` dataclasses.  Build/test tooling: runtime
callers go through ``approval_config.get_active_policy()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from approval_config.schema import (
    CategoryDef,
    RoleDef,
    ThresholdPolicyDefinition,
)
from approval_kernel.utils.hashing import hash_payload


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_role(name: str, data: dict[str, Any]) -> RoleDef:
    ceilings = data.get("ceilings") or {}
    return RoleDef(
        name=name,
        ceilings=tuple(
            (str(category), str(value)) for category, value in sorted(ceilings.items())
        ),
    )


def parse_category(name: str, data: dict[str, Any]) -> CategoryDef:
    data = data or {}
    return CategoryDef(
        name=name,
        monetary=bool(data.get("monetary", True)),
        requires_approval=bool(data.get("requires_approval", True)),
        fixed_chain=tuple(str(role) for role in data.get("fixed_chain") or ()),
        minimum_role=data.get("minimum_role"),
    )


def parse_policy(data: dict[str, Any]) -> ThresholdPolicyDefinition:
    """
    Parse a full policy document.

    Raises:
        KeyError: if ``policy_id``, ``version`` or ``global_scope_role``
            is missing.
    """
    return ThresholdPolicyDefinition(
        policy_id=data["policy_id"],
        version=int(data["version"]),
        global_scope_role=data["global_scope_role"],
        roles=tuple(
            parse_role(name, body or {})
            for name, body in (data.get("roles") or {}).items()
        ),
        categories=tuple(
            parse_category(name, body)
            for name, body in (data.get("categories") or {}).items()
        ),
        checksum=compute_checksum(data),
    )


def load_policy_file(path: Path) -> ThresholdPolicyDefinition:
    return parse_policy(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``.  Key order is ignored."""
    return hash_payload(data)
