"""
Engine configuration persistence.

Stores directory layout and propagation limits in a JSON file next to the
campaign data.
"""

import json
import logging
from pathlib import Path
from typing import TypedDict

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".kapis_engine.json"


class EngineConfig(TypedDict, total=False):
    """Engine configuration."""
    data_dir: str  # world-state.yaml, active-quests.yaml, calendar
    locations_dir: str  # <loc>/Events.md and <loc>/State.md
    npcs_dir: str  # <npc>.md documents
    calendar_file: str
    cache_ttl_seconds: float
    max_propagation_depth: int
    depth_warning_threshold: int
    max_cascade_levels: int  # 1 = first-order neighbours only
    staged_writes: bool  # False = write after each effect
    history_limit: int  # propagation_history entries kept


DEFAULT_CONFIG: EngineConfig = {
    "data_dir": "data",
    "locations_dir": "game-data/locations",
    "npcs_dir": "game-data/NPCs",
    "calendar_file": "data/calendar.yaml",
    "cache_ttl_seconds": 300.0,
    "max_propagation_depth": 10,
    "depth_warning_threshold": 5,
    "max_cascade_levels": 1,
    "staged_writes": True,
    "history_limit": 100,
}


def get_config_path(root: Path | str = ".") -> Path:
    """Get path to config file."""
    return Path(root) / CONFIG_FILENAME


def load_config(root: Path | str = ".", path: Path | str | None = None) -> EngineConfig:
    """Load config from file, or return defaults if not found."""
    path = Path(path) if path else get_config_path(root)

    if not path.exists():
        return DEFAULT_CONFIG.copy()

    try:
        with open(path, "r", encoding="utf-8") as f:
            saved = json.load(f)
        if not isinstance(saved, dict):
            raise ValueError("config must be a JSON object")
        # Merge with defaults to handle missing keys
        config = DEFAULT_CONFIG.copy()
        config.update(saved)
        return config
    except (json.JSONDecodeError, ValueError, IOError) as e:
        logger.warning(f"Ignoring unreadable config {path}: {e}")
        return DEFAULT_CONFIG.copy()


def save_config(config: EngineConfig, root: Path | str = ".") -> bool:
    """Save config to file. Returns True on success."""
    path = get_config_path(root)

    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except IOError as e:
        logger.error(f"Failed to save config {path}: {e}")
        return False
