from __future__ import annotations

import copy
import os
import threading
from pathlib import Path
from typing import Any

import yaml

from daybridge.fileio import atomic_write_text
from daybridge.models import AppConfig, default_app_config


SECRET_FIELDS = (("caldav", "password"),)
MASK = "***"


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _drop_masked_secrets(payload: dict[str, Any]) -> dict[str, Any]:
    # A masked or blank secret coming back from a client keeps the stored value.
    cleaned = copy.deepcopy(payload)
    for section, key in SECRET_FIELDS:
        block = cleaned.get(section)
        if not isinstance(block, dict) or key not in block:
            continue
        if str(block.get(key) or "").strip() in {"", MASK}:
            block.pop(key)
    return cleaned


class ConfigManager:
    def __init__(self, config_path: str | os.PathLike[str]) -> None:
        self.config_path = Path(config_path)
        self._lock = threading.RLock()
        if not self.config_path.exists():
            self.save(default_app_config())

    def load(self) -> AppConfig:
        with self._lock:
            with self.config_path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
            return AppConfig.from_dict(data)

    def save(self, config: AppConfig) -> None:
        text = yaml.safe_dump(
            config.to_dict(),
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
        )
        with self._lock:
            atomic_write_text(self.config_path, text)

    def update(self, payload: dict[str, Any]) -> AppConfig:
        with self._lock:
            current = self.load().to_dict()
            merged = _deep_merge(current, _drop_masked_secrets(payload))
            config = AppConfig.from_dict(merged)
            self.save(config)
            return config

    def masked(self) -> dict[str, Any]:
        config = self.load().to_dict()
        for section, key in SECRET_FIELDS:
            if config.get(section, {}).get(key):
                config[section][key] = MASK
        return config
