# src/lcplatform/contracts/tree.py
"""
Árbol de decisión binario (ejes alineados), inmutable.

- TreeSplit posee en exclusiva sus dos hijos (sin punteros al padre).
- Regla: valor <= threshold -> left (si le_goes_left), si no -> right.
- TreeLeaf guarda el código predicho (1..K del ClassLabelMapping) y la
  distribución de clases del subconjunto de entrenamiento.
- flatten() produce arrays paralelos para recorrer muchos píxeles a la vez.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Literal, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np

from .core import BandName, ClassLabel, ClassLabelMapping

Criterion = Literal["gini", "entropy"]
TREE_SCHEMA_VERSION = "1.0.0"


@dataclass(frozen=True)
class TreeLeaf:
    code: int
    counts: Tuple[int, ...]  # counts[k] = filas de la clase con código k+1
    impurity: float = 0.0

    @property
    def n_samples(self) -> int:
        return int(sum(self.counts))

    @property
    def confidence(self) -> float:
        n = self.n_samples
        return float(self.counts[self.code - 1]) / n if n else 0.0


@dataclass(frozen=True)
class TreeSplit:
    feature: int
    threshold: float
    left: "TreeNode"
    right: "TreeNode"
    n_samples: int = 0
    impurity: float = 0.0
    le_goes_left: bool = True

    def child_for(self, value: float) -> "TreeNode":
        goes_le = value <= self.threshold
        return self.left if goes_le == self.le_goes_left else self.right


TreeNode = Union[TreeLeaf, TreeSplit]


class FlatTree(NamedTuple):
    """Árbol en arrays paralelos; nodo 0 = raíz; feature == -1 => hoja."""
    feature: np.ndarray      # int32
    threshold: np.ndarray    # float64
    left: np.ndarray         # int32
    right: np.ndarray        # int32
    code: np.ndarray         # int32 (0 en nodos internos)
    confidence: np.ndarray   # float32
    le_goes_left: np.ndarray # bool

    @property
    def n_nodes(self) -> int:
        return int(self.feature.shape[0])


@dataclass(frozen=True)
class DecisionTree:
    root: TreeNode
    feature_names: Tuple[BandName, ...]
    classes: ClassLabelMapping
    criterion: Criterion = "gini"

    # ---------- recorridos ----------
    def _walk(self) -> Iterator[Tuple[TreeNode, int]]:
        stack: List[Tuple[TreeNode, int]] = [(self.root, 0)]
        while stack:
            node, depth = stack.pop()
            yield node, depth
            if isinstance(node, TreeSplit):
                stack.append((node.right, depth + 1))
                stack.append((node.left, depth + 1))

    def depth(self) -> int:
        return max(d for _, d in self._walk())

    def n_nodes(self) -> int:
        return sum(1 for _ in self._walk())

    def leaves(self) -> Tuple[TreeLeaf, ...]:
        return tuple(n for n, _ in self._walk() if isinstance(n, TreeLeaf))

    def n_leaves(self) -> int:
        return len(self.leaves())

    # ---------- predicción ----------
    def predict_row(self, x: Sequence[float]) -> Optional[int]:
        """Código de clase para un vector; None si toca no-data (NaN) en el camino."""
        if len(x) != len(self.feature_names):
            raise ValueError(f"vector de {len(x)} valores; el árbol espera {len(self.feature_names)}")
        node = self.root
        while isinstance(node, TreeSplit):
            v = float(x[node.feature])
            if np.isnan(v):
                return None
            node = node.child_for(v)
        return node.code

    def predict_label(self, x: Sequence[float]) -> Optional[str]:
        code = self.predict_row(x)
        return None if code is None else self.classes.name_of(code)

    def feature_importances(self) -> Dict[BandName, float]:
        """Reducción total de impureza por feature, normalizada a suma 1."""
        acc = np.zeros(len(self.feature_names), dtype=np.float64)
        for node, _ in self._walk():
            if not isinstance(node, TreeSplit):
                continue
            n_l = _n_samples(node.left); n_r = _n_samples(node.right)
            acc[node.feature] += (
                node.n_samples * node.impurity
                - n_l * _impurity(node.left)
                - n_r * _impurity(node.right)
            )
        total = float(acc.sum())
        if total > 0:
            acc = acc / total
        return {name: float(v) for name, v in zip(self.feature_names, acc.tolist())}

    def flatten(self) -> FlatTree:
        feature: List[int] = []; threshold: List[float] = []
        left: List[int] = []; right: List[int] = []
        code: List[int] = []; conf: List[float] = []; le_left: List[bool] = []

        def _alloc() -> int:
            feature.append(-1); threshold.append(0.0); left.append(-1); right.append(-1)
            code.append(0); conf.append(0.0); le_left.append(True)
            return len(feature) - 1

        pending: List[Tuple[TreeNode, int]] = [(self.root, _alloc())]
        while pending:
            node, idx = pending.pop()
            if isinstance(node, TreeLeaf):
                code[idx] = node.code
                conf[idx] = node.confidence
                continue
            feature[idx] = node.feature
            threshold[idx] = node.threshold
            le_left[idx] = node.le_goes_left
            li = _alloc(); ri = _alloc()
            left[idx] = li; right[idx] = ri
            pending.append((node.right, ri))
            pending.append((node.left, li))

        return FlatTree(
            feature=np.asarray(feature, dtype=np.int32),
            threshold=np.asarray(threshold, dtype=np.float64),
            left=np.asarray(left, dtype=np.int32),
            right=np.asarray(right, dtype=np.int32),
            code=np.asarray(code, dtype=np.int32),
            confidence=np.asarray(conf, dtype=np.float32),
            le_goes_left=np.asarray(le_left, dtype=bool),
        )

    # ---------- (de)serialización ----------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_version": TREE_SCHEMA_VERSION,
            "criterion": self.criterion,
            "feature_names": list(self.feature_names),
            "classes": [c.model_dump(mode="json") for c in self.classes.labels],
            "root": _node_to_dict(self.root),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DecisionTree":
        version = str(d.get("schema_version", ""))
        if version.split(".")[0] != TREE_SCHEMA_VERSION.split(".")[0]:
            raise ValueError(f"schema_version de árbol no soportada: {version!r}")
        classes = ClassLabelMapping(labels=tuple(ClassLabel.model_validate(c) for c in d["classes"]))
        return cls(
            root=_node_from_dict(d["root"]),
            feature_names=tuple(d["feature_names"]),
            classes=classes,
            criterion=d.get("criterion", "gini"),
        )


def _n_samples(node: TreeNode) -> int:
    return node.n_samples

def _impurity(node: TreeNode) -> float:
    return node.impurity

def _node_to_dict(node: TreeNode) -> Dict[str, Any]:
    if isinstance(node, TreeLeaf):
        return {"leaf": True, "code": node.code, "counts": list(node.counts), "impurity": node.impurity}
    return {
        "leaf": False,
        "feature": node.feature,
        "threshold": node.threshold,
        "le_goes_left": node.le_goes_left,
        "n_samples": node.n_samples,
        "impurity": node.impurity,
        "left": _node_to_dict(node.left),
        "right": _node_to_dict(node.right),
    }

def _node_from_dict(d: Dict[str, Any]) -> TreeNode:
    if d["leaf"]:
        return TreeLeaf(code=int(d["code"]), counts=tuple(int(c) for c in d["counts"]),
                        impurity=float(d.get("impurity", 0.0)))
    return TreeSplit(
        feature=int(d["feature"]),
        threshold=float(d["threshold"]),
        left=_node_from_dict(d["left"]),
        right=_node_from_dict(d["right"]),
        n_samples=int(d.get("n_samples", 0)),
        impurity=float(d.get("impurity", 0.0)),
        le_goes_left=bool(d.get("le_goes_left", True)),
    )


__all__ = ["Criterion", "TreeLeaf", "TreeSplit", "TreeNode", "FlatTree", "DecisionTree", "TREE_SCHEMA_VERSION"]
