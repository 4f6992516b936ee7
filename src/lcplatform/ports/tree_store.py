# src/lcplatform/ports/tree_store.py
from __future__ import annotations

from typing import Protocol, runtime_checkable
from ..contracts.tree import DecisionTree

URI = str

@runtime_checkable
class TreeStorePort(Protocol):
    def save(self, tree: DecisionTree, uri: URI) -> URI: ...
    def load(self, uri: URI) -> DecisionTree: ...

__all__ = ["TreeStorePort", "URI"]
