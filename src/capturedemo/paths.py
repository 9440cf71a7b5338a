"""paths.py - one place for all capturedemo paths.

config.py reads from here. tests patch these, never Path.home() directly.
"""

from pathlib import Path


def capturedemo_home() -> Path:
    """~/.capturedemo/ - the root of all capturedemo state."""
    return Path.home() / ".capturedemo"


def ensure_dir(path: Path) -> Path:
    """mkdir -p. returns the path for chaining."""
    path.mkdir(parents=True, exist_ok=True)
    return path


# -- ~/.capturedemo/ paths --
GLOBAL_CONFIG = capturedemo_home() / "config.json"

# -- per-project --
PROJECT_CONFIG_NAME = ".capturedemo.json"
