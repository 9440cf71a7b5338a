"""config.py - configuration.

layered config: defaults -> global (~/.capturedemo/config.json) ->
project (.capturedemo.json) -> environment. a broken layer is skipped,
never fatal.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from capturedemo import paths
from capturedemo.log import LEVELS


# ============================================================
# DEFAULTS
# ============================================================

DEFAULTS = {
    "demos": ["capture", "as_input"],
    "log_level": "info",
    "trace": False,
    "color_output": True,
}


@dataclass
class Config:
    """merged configuration from all layers."""
    values: dict = field(default_factory=dict)
    source: str = ""  # which layer provided the final values

    def get(self, key: str, default=None):
        return self.values.get(key, DEFAULTS.get(key, default))

    def set(self, key: str, value):
        self.values[key] = value

    def __getitem__(self, key: str):
        return self.get(key)

    def __contains__(self, key: str):
        return key in self.values or key in DEFAULTS

    def to_dict(self) -> dict:
        merged = dict(DEFAULTS)
        merged.update(self.values)
        return merged


# ============================================================
# CONFIG LOADING
# ============================================================

def _read_json(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def load_global() -> dict:
    return _read_json(paths.GLOBAL_CONFIG)


def save_global(config: dict):
    paths.ensure_dir(paths.GLOBAL_CONFIG.parent)
    paths.GLOBAL_CONFIG.write_text(json.dumps(config, indent=2) + "\n")


def load_project(root: str = ".") -> dict:
    return _read_json(Path(root) / paths.PROJECT_CONFIG_NAME)


def save_project(config: dict, root: str = "."):
    config_path = Path(root) / paths.PROJECT_CONFIG_NAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


def load_config(root: str = ".") -> Config:
    """load merged config: defaults -> global -> project -> env."""
    merged = dict(DEFAULTS)

    global_config = load_global()
    merged.update(global_config)

    project_config = load_project(root)
    merged.update(project_config)

    env_overrides = _env_overrides()
    merged.update(env_overrides)

    source = "defaults"
    if env_overrides:
        source = "env"
    elif project_config:
        source = "project"
    elif global_config:
        source = "global"

    return Config(values=merged, source=source)


def _env_overrides() -> dict:
    """extract config overrides from environment variables."""
    overrides = {}

    env_map = {
        "CAPTUREDEMO_DEMOS": "demos",
        "CAPTUREDEMO_LOG_LEVEL": "log_level",
        "CAPTUREDEMO_TRACE": "trace",
        "CAPTUREDEMO_COLOR": "color_output",
    }

    for env_key, config_key in env_map.items():
        value = os.environ.get(env_key)
        if value is None:
            continue
        overrides[config_key] = parse_value(config_key, value)

    return overrides


def parse_value(key: str, raw: str):
    """turn a string from the environment or the command line into a value."""
    if key == "demos":
        return [d.strip() for d in raw.split(",") if d.strip()]
    if key in ("trace", "color_output"):
        return raw.lower() in ("true", "1", "yes")
    return raw.lower()


# ============================================================
# CONFIG WRITING
# ============================================================

def _check(key: str, value):
    if key not in DEFAULTS:
        raise ValueError(f"unknown config key: {key!r} (one of {', '.join(DEFAULTS)})")
    if key == "log_level" and value not in LEVELS:
        raise ValueError(f"unknown log level: {value!r} (one of {', '.join(LEVELS)})")


def set_global_value(key: str, value):
    """set a value in the global config."""
    _check(key, value)
    config = load_global()
    config[key] = value
    save_global(config)


def set_project_value(key: str, value, root: str = "."):
    """set a value in the project config."""
    _check(key, value)
    config = load_project(root)
    config[key] = value
    save_project(config, root)


def list_config(root: str = ".") -> dict:
    """every config value with the layer it came from."""
    global_config = load_global()
    project_config = load_project(root)
    env = _env_overrides()

    result = {}
    for key in DEFAULTS:
        source = "default"
        value = DEFAULTS[key]

        if key in global_config:
            source = "global"
            value = global_config[key]
        if key in project_config:
            source = "project"
            value = project_config[key]
        if key in env:
            source = "env"
            value = env[key]

        result[key] = {"value": value, "source": source}

    return result
