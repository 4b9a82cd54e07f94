"""
Receiving Configuration Schema.

Defines the structure and defaults for receipt-note and return-note
settings. Values can be overridden from a dict or a YAML file.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Self

import yaml

from procurement_kernel.exceptions import ConfigurationError
from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.receiving.config")


@dataclass
class ReceivingConfig:
    """
    Configuration schema for the receiving module.

        config = ReceivingConfig.from_yaml("receiving.yaml")
        service = ReceivingService(store, config=config)
    """

    # Document numbering
    receipt_number_prefix: str = "GRN-"
    receipt_number_width: int = 6
    return_number_prefix: str = "RTN-"
    return_number_width: int = 0

    # Pricing
    absorb_allocation_rounding: bool = False

    # Ordering document status updates after a save
    update_ordering_status: bool = True

    # Concurrent loads of sibling form resources
    resource_loader_workers: int = 4
    resource_cache_ttl_seconds: int | None = None

    def __post_init__(self):
        if self.receipt_number_width < 0 or self.return_number_width < 0:
            raise ConfigurationError("number widths cannot be negative")
        if self.resource_loader_workers < 1:
            raise ConfigurationError("resource_loader_workers must be at least 1")
        logger.info(
            "receiving_config_initialized",
            extra={
                "receipt_number_prefix": self.receipt_number_prefix,
                "return_number_prefix": self.return_number_prefix,
                "update_ordering_status": self.update_ordering_status,
                "resource_loader_workers": self.resource_loader_workers,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the standard defaults."""
        logger.info("receiving_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a dictionary (e.g. loaded from a file)."""
        logger.info(
            "receiving_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        known = {f.name for f in fields(cls)}
        unknown = tuple(sorted(k for k in data if k not in known))
        if unknown:
            raise ConfigurationError(
                f"Unknown receiving config keys: {', '.join(unknown)}", keys=unknown
            )
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """
        Load config from a YAML file.

        The file may hold the settings at the top level or under a
        ``receiving:`` key. An empty file gives the defaults.

        Raises:
            FileNotFoundError: if the file does not exist.
            ConfigurationError: if the YAML is malformed or not a mapping.
        """
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Malformed receiving config {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Receiving config {path} must be a mapping")
        if "receiving" in data and isinstance(data["receiving"], dict):
            data = data["receiving"]
        return cls.from_dict(data)
