"""
Durable client-side slots: a tiny key-value store whose values survive
Streamlit reruns and process restarts.

Layout: one file per slot, ``<state_dir>/<slot>.json``. The default state
dir is ``./.expense_tracker``; ``EXPENSE_UI_STATE_DIR`` overrides it.
Writes go to ``.tmp`` first and are then ``os.replace``d into place, so a
crash mid-write never leaves a half-written slot behind.
"""

import os
import re
from pathlib import Path
from typing import Optional, Union

from expense_tracker.logging_setup import get_logger

logger = get_logger("expense_tracker.frontend.storage")

_SLOT_RE = re.compile(r"^[a-z0-9_]+$")


def default_state_dir() -> Path:
    root = os.getenv("EXPENSE_UI_STATE_DIR")
    if root and root.strip():
        return Path(root).expanduser().resolve()
    return (Path.cwd() / ".expense_tracker").resolve()


class FileSlotStorage:
    def __init__(self, state_dir: Union[str, Path, None] = None):
        self.state_dir = Path(state_dir) if state_dir is not None else default_state_dir()

    def _path(self, slot: str) -> Path:
        # Slot names become file names
        if not _SLOT_RE.fullmatch(slot):
            raise ValueError(f"Invalid slot name: {slot!r}")
        return self.state_dir / f"{slot}.json"

    def get(self, slot: str) -> Optional[str]:
        path = self._path(slot)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError:
            logger.warning("Slot %s is not valid UTF-8; treating as empty", slot)
            return ""

    def set(self, slot: str, value: str) -> None:
        path = self._path(slot)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, path)

    def remove(self, slot: str) -> None:
        self._path(slot).unlink(missing_ok=True)
