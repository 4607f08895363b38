"""Transformers that apply operator-specified data to ConfigMaps."""

from __future__ import annotations

import logging
from typing import Any, Optional

from knoperator.manifest import Transformer, nested_field, set_nested_field

_CONFIG_PREFIX_LENGTH = len("config-")

_log = logging.getLogger(__name__)


def config_map_transform(config: dict[str, dict[str, str]],
                         log: Optional[logging.Logger] = None) -> Transformer:
    """Overlay ``config`` onto ConfigMaps named either ``config-<key>`` or ``<key>``."""

    def transformer(resource: dict[str, Any]) -> None:
        if resource.get("kind") != "ConfigMap":
            return
        name = (resource.get("metadata") or {}).get("name", "")
        if name in config:
            update_config_map(resource, config[name], log)
            return
        short_name = name[_CONFIG_PREFIX_LENGTH:]
        if short_name in config:
            update_config_map(resource, config[short_name], log)

    return transformer


def update_config_map(cm: dict[str, Any], data: dict[str, str],
                      log: Optional[logging.Logger] = None) -> None:
    """Set keys in the ConfigMap's data, only touching those whose values differ."""
    logger = log or _log
    name = (cm.get("metadata") or {}).get("name", "")
    for key, value in data.items():
        previous, found = nested_field(cm, "data", key)
        if found:
            if previous == value:
                continue
            logger.info("Setting map=%s key=%s value=%s previous=%s", name, key, value, previous)
        else:
            logger.info("Setting map=%s key=%s value=%s", name, key, value)
        set_nested_field(cm, value, "data", key)