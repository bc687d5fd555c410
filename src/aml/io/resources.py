from __future__ import annotations
from pathlib import Path

ASSETS_DIR = Path(__file__).resolve().parent.parent / "assets"


class BundledResources:
    def __init__(self, root: str | Path = ASSETS_DIR):
        self.root = Path(root)

    def load(self, path: str) -> bytes:
        p = self.root / path
        if not p.exists():
            raise FileNotFoundError(f"bundled resource not found: {p}")
        return p.read_bytes()
