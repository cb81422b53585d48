"""
parking_config -- tariff and billing configuration.

Responsibility:
    Reads versioned YAML tariff sets (pricing profiles, discounts and
    billing settings) into frozen domain objects.  ``get_active_config()``
    is the entrypoint services use; the loader functions are exposed for
    tooling and tests.

Architecture position:
    Configuration -- sits above ``parking_kernel.domain``.  The kernel never
    imports from ``parking_config``; callers pass the loaded profiles and
    discounts into the kernel explicitly.

Failure modes:
    - ``FileNotFoundError`` -- the requested set does not exist.
    - ``ValidationError`` -- a rule, discount or setting is malformed.
    - ``KeyError`` / ``ValueError`` -- structural problems in the document.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``parking_config_loaded`` log entry with the set name, version and
    checksum, tying every quote back to the tariff set that priced it.
"""

from __future__ import annotations

from pathlib import Path

from parking_config.loader import (
    compute_checksum,
    load_tariff_config,
    parse_tariff_config,
)
from parking_config.schema import BillingSettings, TariffConfiguration
from parking_kernel.logging_config import get_logger

logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    name: str = "default",
    config_dir: Path | None = None,
) -> TariffConfiguration:
    """Load the named tariff set from ``config_dir`` (``sets/`` by default)."""
    directory = config_dir or _DEFAULT_CONFIG_DIR
    path = directory / f"{name}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"No tariff set '{name}' in {directory}")
    config = load_tariff_config(path)
    logger.info(
        "parking_config_loaded",
        extra={
            "config_name": config.name,
            "config_version": config.version,
            "checksum": config.checksum,
            "profile_count": len(config.profiles),
            "discount_count": len(config.discounts),
        },
    )
    return config


__all__ = [
    "BillingSettings",
    "TariffConfiguration",
    "compute_checksum",
    "get_active_config",
    "load_tariff_config",
    "parse_tariff_config",
]
