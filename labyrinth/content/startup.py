from __future__ import annotations

import os
from pathlib import Path

from labyrinth.content.singleton import init_content


def init_content_for_app() -> None:
    # project root is two levels up from this file: labyrinth/content/startup.py
    default_root = Path(__file__).resolve().parents[2]
    root = os.environ.get("LABYRINTH_CONTENT_DIR")
    init_content(project_root=Path(root) if root else default_root)
