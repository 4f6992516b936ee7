# src/lcplatform/adapters/json_tree_store.py
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from ..contracts.tree import DecisionTree
from ..ports.tree_store import TreeStorePort


@dataclass(frozen=True)
class JsonTreeStore(TreeStorePort):
    """Árbol <-> JSON (DecisionTree.to_dict / from_dict)."""
    indent: int | None = 2

    def save(self, tree: DecisionTree, uri: str) -> str:
        path = Path(uri)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(tree.to_dict(), indent=self.indent, ensure_ascii=False), encoding="utf-8")
        return str(path)

    def load(self, uri: str) -> DecisionTree:
        data = json.loads(Path(uri).read_text(encoding="utf-8"))
        return DecisionTree.from_dict(data)
