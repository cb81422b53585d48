"""
Tariff configuration loader (``parking_config.loader``).

Responsibility
--------------
Loads a YAML tariff file and parses it into ``parking_config.schema``
instances.  Rule and discount entries go through the domain record
constructors (``PricingRule.from_record``, ``DiscountDefinition.from_record``)
so that configuration and persistence share one validated shape.

Invariants enforced
-------------------
* Money values must be integers or quoted decimal strings; YAML floats are
  refused by the money coercion.
* Times of day must be quoted (``"08:00"``); unquoted ``18:00`` is a
  base-60 integer in YAML 1.1 and is refused.
* ``compute_checksum`` produces a deterministic SHA-256 hash for change
  detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required top-level keys  -> ``KeyError`` propagates.
* Invalid field values  -> ``ValidationError`` from the domain types.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

import yaml

from parking_config.schema import BillingSettings, TariffConfiguration
from parking_kernel.domain.discounts import DiscountDefinition
from parking_kernel.domain.pricing import PricingProfile, PricingRule
from parking_kernel.exceptions import ValidationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML node must be a mapping")
    return data


def parse_settings(data: dict[str, Any] | None) -> BillingSettings:
    data = data or {}
    return BillingSettings(
        timezone=data.get("timezone", "America/Santiago"),
        currency=data.get("currency", "CLP"),
        cash_methods=tuple(data.get("cash_methods", ("CASH",))),
        require_shift_for_check_in=bool(data.get("require_shift_for_check_in", True)),
    )


def _time_value(value: Any, field_name: str) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        raise ValidationError(field_name, "times of day must be quoted strings", value)
    return value


def parse_rule(data: dict[str, Any]) -> PricingRule:
    record = dict(data)
    for name in ("start_time", "end_time"):
        record[name] = _time_value(record.get(name), name)
    return PricingRule.from_record(record)


def parse_profile(data: dict[str, Any]) -> PricingProfile:
    return PricingProfile(
        id=str(data["id"]),
        name=data.get("name") or str(data["id"]),
        sector_id=str(data["sector_id"]),
        rules=tuple(parse_rule(r) for r in data.get("rules", [])),
        active_from=data["active_from"],
        active_to=data.get("active_to"),
        is_active=bool(data.get("is_active", True)),
    )


def parse_discount(data: dict[str, Any]) -> DiscountDefinition:
    return DiscountDefinition.from_record(data)


def parse_tariff_config(data: dict[str, Any]) -> TariffConfiguration:
    """
    Build a ``TariffConfiguration`` from an already-loaded document.

    Requires ``name`` and ``version``; ``settings``, ``profiles`` and
    ``discounts`` are optional.
    """
    return TariffConfiguration(
        name=str(data["name"]),
        version=int(data["version"]),
        description=data.get("description"),
        settings=parse_settings(data.get("settings")),
        profiles=tuple(parse_profile(p) for p in data.get("profiles", [])),
        discounts=tuple(parse_discount(d) for d in data.get("discounts", [])),
        checksum=compute_checksum(data),
    )


def load_tariff_config(path: Path | str) -> TariffConfiguration:
    return parse_tariff_config(load_yaml_file(Path(path)))


def _canonical(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=_canonical)
    return hashlib.sha256(canonical.encode()).hexdigest()
