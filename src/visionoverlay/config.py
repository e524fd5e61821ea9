from __future__ import annotations

from pathlib import Path

import yaml

from visionoverlay.types import Capability

DEFAULT_CONFIG_PATH = Path("configs/overlay.yaml")
DEFAULT_ENABLED = (Capability.FACE, Capability.OBJECT_DETECTION)


def load_config(config_path: Path) -> dict:
    if not config_path.exists():
        return {}

    with config_path.open("r", encoding="utf-8") as f:
        doc = yaml.safe_load(f) or {}

    if not isinstance(doc, dict):
        raise ValueError(f"Config {config_path} must be a mapping, got {type(doc).__name__}")
    return doc


def request_overrides(config: dict) -> dict[Capability, dict]:
    section = config.get("requests") or {}
    overrides: dict[Capability, dict] = {}
    for key, values in section.items():
        overrides[parse_capability(key)] = dict(values or {})
    return overrides


def enabled_capabilities(config: dict) -> frozenset[Capability]:
    section = config.get("capabilities") or {}
    names = section.get("enabled")
    if names is None:
        return frozenset(DEFAULT_ENABLED)
    return frozenset(parse_capability(name) for name in names)


def camera_settings(config: dict) -> dict:
    section = config.get("camera") or {}
    return {
        "camera_id": int(section.get("camera_id") or 0),
        "camera_name": section.get("camera_name"),
    }


def parse_capability(name: str) -> Capability:
    key = str(name).strip().lower().replace("-", "_")
    try:
        return Capability(key)
    except ValueError:
        choices = ", ".join(c.value for c in Capability)
        raise ValueError(f"Unknown capability '{name}'. Choose from: {choices}") from None
