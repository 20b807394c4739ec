"""Configuration loading for the ListGenie client gateway."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from listgenie.models import GatewayConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/gateway_config.json")
BASE_URL_ENV = "LISTGENIE_BASE_URL"


def load_gateway_config(config_path: Path | None = None) -> GatewayConfig:
    """Load gateway configuration from JSON, falling back to defaults.

    Reads from ``config/gateway_config.json`` when *config_path* is ``None``.
    If the file does not exist, returns a ``GatewayConfig`` with defaults.
    Unknown keys are ignored. ``LISTGENIE_BASE_URL`` in the environment
    overrides ``base_url`` from the file.

    Args:
        config_path: Optional explicit path to gateway_config.json.

    Returns:
        GatewayConfig populated from file + environment overrides.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    data: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)
        logger.debug("Loaded gateway config from %s", config_path)

    # Build kwargs from JSON data, only including recognised fields
    field_names = {f.name for f in GatewayConfig.__dataclass_fields__.values()}
    ignored = sorted(set(data) - field_names)
    if ignored:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(ignored))
    kwargs = {k: v for k, v in data.items() if k in field_names}

    config = GatewayConfig(**kwargs)

    base_url = os.environ.get(BASE_URL_ENV)
    if base_url:
        config.base_url = base_url

    if config.max_polls < 1:
        raise ValueError(f"max_polls must be at least 1, got {config.max_polls}")
    if config.max_retries < 0:
        raise ValueError(f"max_retries must not be negative, got {config.max_retries}")

    return config
