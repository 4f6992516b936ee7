# src/lcplatform/services/tree_trainer.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from ..contracts.core import BandName, ClassLabelMapping, TreeParams
from ..contracts.errors import InsufficientDataError, TrainingDataError
from ..contracts.products import LabeledSamples
from ..contracts.tree import DecisionTree, TreeLeaf, TreeNode, TreeSplit

log = logging.getLogger(__name__)

EPS = 1e-12  # tolerancia para empates de impureza


def impurity(counts: np.ndarray, criterion: str = "gini") -> np.ndarray:
    """
    Impureza por fila de una matriz de conteos (m, K).
    gini = 1 - sum(p^2); entropy = -sum(p log2 p).
    """
    counts = np.atleast_2d(np.asarray(counts, dtype=np.float64))
    total = counts.sum(axis=1)
    safe = np.where(total > 0, total, 1.0)
    p = counts / safe[:, None]
    if criterion == "gini":
        out = 1.0 - (p * p).sum(axis=1)
    elif criterion == "entropy":
        with np.errstate(divide="ignore", invalid="ignore"):
            logp = np.where(p > 0, np.log2(np.where(p > 0, p, 1.0)), 0.0)
        out = -(p * logp).sum(axis=1)
    else:
        raise ValueError(f"criterion desconocido: {criterion!r}")
    return np.where(total > 0, out, 0.0)


class SplitCandidate(NamedTuple):
    feature: int
    threshold: float
    weighted: float  # (n_l/n) I_l + (n_r/n) I_r
    n_left: int


def best_split(
    X: np.ndarray,
    y: np.ndarray,
    n_classes: int,
    *,
    criterion: str = "gini",
    min_samples_leaf: int = 1,
) -> Optional[SplitCandidate]:
    """
    Mejor (feature, umbral) para un nodo. `y` con códigos 0..K-1.
    Empates: menor feature, luego menor umbral. None si no hay candidatos.
    """
    n, n_features = X.shape
    if n < 2 * min_samples_leaf:
        return None
    onehot = np.zeros((n, n_classes), dtype=np.int64)
    best: Optional[SplitCandidate] = None

    for f in range(n_features):
        order = np.argsort(X[:, f], kind="stable")
        xs = X[order, f]
        onehot[:] = 0
        onehot[np.arange(n), y[order]] = 1
        left = np.cumsum(onehot, axis=0)[:-1]          # conteos izq. si se corta tras la fila i
        right = onehot.sum(axis=0)[None, :] - left
        n_left = np.arange(1, n, dtype=np.int64)
        n_right = n - n_left

        ok = xs[:-1] < xs[1:]
        ok &= (n_left >= min_samples_leaf) & (n_right >= min_samples_leaf)
        if not ok.any():
            continue
        pos = np.flatnonzero(ok)
        w = (n_left[pos] * impurity(left[pos], criterion) + n_right[pos] * impurity(right[pos], criterion)) / n

        m = float(w.min())
        k = int(pos[np.flatnonzero(w <= m + EPS)[0]])  # primer (menor umbral) dentro del empate
        if best is not None and not m < best.weighted - EPS:
            continue
        a, b = float(xs[k]), float(xs[k + 1])
        t = a + (b - a) / 2.0
        if not a <= t < b:  # redondeo: el punto medio no puede caer en el valor superior
            t = a
        best = SplitCandidate(feature=f, threshold=t, weighted=m, n_left=int(n_left[k]))
    return best


@dataclass
class DecisionTreeTrainer:
    """
    Inducción CART (clasificación, splits binarios en ejes).

    Parada (nodo -> hoja): puro, n < min_samples_split, profundidad == max_depth,
    o ningún candidato reduce estrictamente la impureza ponderada
    (ni alcanza min_impurity_decrease, ponderado por n_nodo / N como en sklearn).
    Hoja: clase mayoritaria; empate -> menor código.
    Determinista: mismas filas en el mismo orden -> mismo árbol.
    """
    params: TreeParams = TreeParams()

    def fit(self, samples: LabeledSamples) -> DecisionTree:
        return self.fit_arrays(samples.X, samples.y, samples.classes, samples.feature_names)

    def fit_arrays(
        self,
        X: np.ndarray,
        y: np.ndarray,
        classes: ClassLabelMapping,
        feature_names: Sequence[BandName],
    ) -> DecisionTree:
        X = np.asarray(X, dtype=np.float64)
        y = np.asarray(y)
        if X.ndim != 2:
            raise TrainingDataError(f"X debe ser 2D; recibido shape={X.shape}")
        if y.ndim != 1 or y.shape[0] != X.shape[0]:
            raise TrainingDataError(f"y {y.shape} no coincide con filas de X {X.shape}")
        if X.shape[1] != len(feature_names):
            raise TrainingDataError(
                f"X tiene {X.shape[1]} columnas y hay {len(feature_names)} feature_names"
            )

        n_labels = int(np.unique(y).size)
        if X.shape[0] < 2 or n_labels < 2:
            raise InsufficientDataError(int(X.shape[0]), n_labels)
        if not np.isfinite(X).all():
            raise TrainingDataError("X contiene valores no finitos (NaN/inf); descarta esas filas antes de entrenar")
        k = len(classes)
        if y.min() < 1 or y.max() > k:
            raise TrainingDataError(f"códigos de clase fuera de 1..{k}: [{int(y.min())}, {int(y.max())}]")

        root = self._build(X, (y.astype(np.int64) - 1), k)
        tree = DecisionTree(
            root=root,
            feature_names=tuple(feature_names),
            classes=classes,
            criterion=self.params.criterion,
        )
        log.info(
            "Árbol entrenado: %d filas, %d features, profundidad %d, %d hojas (%s)",
            X.shape[0], X.shape[1], tree.depth(), tree.n_leaves(), self.params.criterion,
        )
        return tree

    # ---------- construcción iterativa (sin límite de recursión) ----------
    def _leaf(self, counts: np.ndarray, imp: float) -> TreeLeaf:
        return TreeLeaf(code=int(np.argmax(counts)) + 1, counts=tuple(int(c) for c in counts), impurity=imp)

    def _build(self, X: np.ndarray, y0: np.ndarray, k: int) -> TreeNode:
        p = self.params
        n_total = X.shape[0]
        built: Dict[int, TreeNode] = {}
        # ("expand", key, idx, depth) | ("join", key, split, left_key, right_key)
        stack: List[Tuple] = [("expand", 0, np.arange(n_total), 0)]
        next_key = 1

        while stack:
            item = stack.pop()
            if item[0] == "join":
                _, key, (feature, threshold, n, imp), lk, rk = item
                built[key] = TreeSplit(
                    feature=feature, threshold=threshold,
                    left=built.pop(lk), right=built.pop(rk),
                    n_samples=n, impurity=imp,
                )
                continue

            _, key, idx, depth = item
            yn = y0[idx]
            counts = np.bincount(yn, minlength=k)
            imp = float(impurity(counts, p.criterion)[0])
            n = int(idx.size)

            if (
                np.count_nonzero(counts) <= 1
                or n < p.min_samples_split
                or (p.max_depth is not None and depth >= p.max_depth)
            ):
                built[key] = self._leaf(counts, imp)
                continue

            cand = best_split(X[idx], yn, k, criterion=p.criterion, min_samples_leaf=p.min_samples_leaf)
            gain = imp - cand.weighted if cand is not None else 0.0
            if cand is None or gain <= EPS or (n / n_total) * gain < p.min_impurity_decrease:
                built[key] = self._leaf(counts, imp)
                continue

            go_left = X[idx, cand.feature] <= cand.threshold
            lk, rk = next_key, next_key + 1
            next_key += 2
            stack.append(("join", key, (cand.feature, cand.threshold, n, imp), lk, rk))
            stack.append(("expand", rk, idx[~go_left], depth + 1))
            stack.append(("expand", lk, idx[go_left], depth + 1))

        return built[0]


def train_tree(samples: LabeledSamples, params: Optional[TreeParams] = None) -> DecisionTree:
    return DecisionTreeTrainer(params or TreeParams()).fit(samples)


__all__ = ["DecisionTreeTrainer", "best_split", "impurity", "train_tree", "SplitCandidate", "EPS"]
