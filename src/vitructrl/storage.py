"""
On-disk locations and saved workout plans.
"""

import json
import logging
import os
import platform
from pathlib import Path
from typing import Dict, List, Optional

from .errors import ValidationError
from .plan import PlanItem, item_from_dict, item_to_dict

logger = logging.getLogger(__name__)

APP_DIR_NAME = "vitructrl"


def _platform_dir(xdg_var: str, mac_subdir: str, linux_default: str) -> Path:
    # XDG variable wins on every platform
    base = os.environ.get(xdg_var)
    if base:
        return Path(base) / APP_DIR_NAME

    system = platform.system()
    if system == "Darwin":
        return Path.home() / "Library" / mac_subdir / APP_DIR_NAME
    if system == "Windows":
        local_appdata = os.environ.get("LOCALAPPDATA")
        if local_appdata:
            return Path(local_appdata) / APP_DIR_NAME
        appdata = os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming"))
        return Path(appdata) / APP_DIR_NAME
    return Path.home() / linux_default / APP_DIR_NAME


def get_cache_dir() -> Path:
    """Directory for throwaway state such as the last device address."""
    path = _platform_dir("XDG_CACHE_HOME", "Caches", ".cache")
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Directory for user data such as saved plans."""
    path = _platform_dir("XDG_DATA_HOME", "Application Support", ".local/share")
    path.mkdir(parents=True, exist_ok=True)
    return path


class PlanStore:
    """Saved plans, keyed by name, in a single JSON document.

    Args:
        path: JSON file to use (defaults to ``plans.json`` in the data dir)
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path or get_data_dir() / "plans.json"

    def _read(self) -> Dict[str, list]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read plans from {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed plan file {self.path}")
            return {}
        return data

    def _write(self, plans: Dict[str, list]) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            with open(tmp, "w") as f:
                json.dump(plans, f, indent=2)
            tmp.replace(self.path)
            return True
        except OSError as e:
            logger.error(f"Failed to write plans to {self.path}: {e}")
            return False

    def names(self) -> List[str]:
        return sorted(self._read())

    def load(self, name: str) -> Optional[List[PlanItem]]:
        """Load a plan by name.

        Returns:
            The plan items, or None if no plan has that name

        Raises:
            ValidationError: if the stored plan has invalid items
        """
        raw = self._read().get(name)
        if raw is None:
            return None
        if not isinstance(raw, list):
            raise ValidationError("plan", name, "a list of items")
        return [item_from_dict(entry) for entry in raw]

    def save(self, name: str, items: List[PlanItem]) -> bool:
        name = name.strip()
        if not name:
            raise ValidationError("name", name, "non-empty")
        plans = self._read()
        plans[name] = [item_to_dict(item) for item in items]
        if self._write(plans):
            logger.info(f'Saved plan "{name}" ({len(items)} items)')
            return True
        return False

    def delete(self, name: str) -> bool:
        plans = self._read()
        if name not in plans:
            return False
        del plans[name]
        if self._write(plans):
            logger.info(f'Deleted plan "{name}"')
            return True
        return False
