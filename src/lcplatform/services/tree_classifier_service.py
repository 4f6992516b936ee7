# src/lcplatform/services/tree_classifier_service.py
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

import numpy as np

from ..contracts.core import NODATA_CODE
from ..contracts.errors import FeatureMismatchError
from ..contracts.geo import GeoRaster
from ..contracts.products import ClassifiedRaster, LabeledSamples, SpectralStack
from ..contracts.tree import DecisionTree, FlatTree

log = logging.getLogger(__name__)


def code_dtype(n_classes: int) -> np.dtype:
    # 0 reservado a no-data
    return np.dtype(np.uint8) if n_classes <= 254 else np.dtype(np.uint16)


def walk_flat(flat: FlatTree, X: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Recorre el árbol para todas las filas de X (n, F) a la vez, un nivel por paso.
    Devuelve (índice de hoja, válido). Un NaN en la feature de un nodo visitado
    corta el recorrido de esa fila (válido=False); NaN en otras features no afecta.
    """
    n = X.shape[0]
    node = np.zeros(n, dtype=np.int32)
    valid = np.ones(n, dtype=bool)
    active = np.flatnonzero(flat.feature[node] >= 0)
    rows = np.arange(n)
    while active.size:
        nd = node[active]
        v = X[rows[active], flat.feature[nd]]
        nan = np.isnan(v)
        if nan.any():
            valid[active[nan]] = False
            active = active[~nan]; nd = nd[~nan]; v = v[~nan]
        goes_le = v <= flat.threshold[nd]
        to_left = goes_le == flat.le_goes_left[nd]
        node[active] = np.where(to_left, flat.left[nd], flat.right[nd])
        active = active[flat.feature[node[active]] >= 0]
    return node, valid


@dataclass
class TreeClassifierService:
    """
    Aplica un DecisionTree a cada píxel de un SpectralStack.
    - Valida bandas vs features ANTES de tocar píxeles (FeatureMismatchError).
    - Procesa en bloques de `tile_rows` filas; árbol aplanado una sola vez.
    - workers > 1: bloques en un ThreadPoolExecutor; cada bloque escribe
      una franja disjunta del buffer de salida (sin locks).
    """
    tile_rows: int = 256
    workers: int = 1
    with_confidence: bool = False

    def check_features(self, stack: SpectralStack, tree: DecisionTree) -> None:
        if tuple(stack.band_names) != tuple(tree.feature_names):
            raise FeatureMismatchError(tree.feature_names, stack.band_names)

    def _tiles(self, height: int) -> Iterator[Tuple[int, int]]:
        step = max(int(self.tile_rows), 1)
        for r0 in range(0, height, step):
            yield r0, min(r0 + step, height)

    def classify(self, stack: SpectralStack, tree: DecisionTree) -> ClassifiedRaster:
        self.check_features(stack, tree)

        p = stack.profile
        data = stack.data
        flat = tree.flatten()
        dtype = code_dtype(len(tree.classes))
        out = np.zeros((p.height, p.width), dtype=dtype)
        conf = np.full((p.height, p.width), np.nan, dtype=np.float32) if self.with_confidence else None
        leaf_code = flat.code.astype(dtype)

        def _run(tile: Tuple[int, int]) -> None:
            r0, r1 = tile
            block = data[:, r0:r1, :]
            b, h, w = block.shape
            X = block.reshape(b, h * w).T
            leaf, valid = walk_flat(flat, X)
            codes = np.where(valid, leaf_code[leaf], NODATA_CODE).astype(dtype, copy=False)
            out[r0:r1, :] = codes.reshape(h, w)
            if conf is not None:
                c = np.where(valid, flat.confidence[leaf], np.nan).astype(np.float32, copy=False)
                conf[r0:r1, :] = c.reshape(h, w)

        tiles = list(self._tiles(p.height))
        if self.workers > 1 and len(tiles) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                # list() propaga la primera excepción de cualquier bloque
                list(pool.map(_run, tiles))
        else:
            for t in tiles:
                _run(t)

        profile = p.evolve(count=1, dtype=str(dtype), nodata=float(NODATA_CODE))
        confidence = None
        if conf is not None:
            confidence = GeoRaster(data=conf, profile=p.evolve(count=1, dtype="float32", nodata=float("nan")))

        valid_frac = float((out != NODATA_CODE).mean()) if out.size else 0.0
        log.info(
            "Clasificación: %dx%d píxeles, %d bloque(s), workers=%d, válidos %.1f%%",
            p.width, p.height, len(tiles), self.workers, 100.0 * valid_frac,
        )
        return ClassifiedRaster(
            raster=GeoRaster(data=out, profile=profile),
            classes=tree.classes,
            confidence=confidence,
            meta={"depth": tree.depth(), "n_leaves": tree.n_leaves(), "criterion": tree.criterion},
        )

    def predict_samples(self, X: np.ndarray, tree: DecisionTree) -> np.ndarray:
        """Códigos para filas (n, F); 0 donde el recorrido toca NaN."""
        X = np.asarray(X, dtype=np.float64)
        if X.ndim != 2 or X.shape[1] != len(tree.feature_names):
            raise FeatureMismatchError(tree.feature_names, [f"col{i}" for i in range(X.shape[-1])])
        flat = tree.flatten()
        leaf, valid = walk_flat(flat, X)
        return np.where(valid, flat.code[leaf], NODATA_CODE).astype(np.int32)

    def training_accuracy(self, samples: LabeledSamples, tree: DecisionTree) -> float:
        if tuple(samples.feature_names) != tuple(tree.feature_names):
            raise FeatureMismatchError(tree.feature_names, samples.feature_names)
        if len(samples) == 0:
            return float("nan")
        pred = self.predict_samples(samples.X, tree)
        return float((pred == samples.y).mean())


def classify(stack: SpectralStack, tree: DecisionTree, tile_rows: int = 256, workers: int = 1) -> ClassifiedRaster:
    return TreeClassifierService(tile_rows=tile_rows, workers=workers).classify(stack, tree)


__all__ = ["TreeClassifierService", "walk_flat", "code_dtype", "classify"]
