# src/lcplatform/services/feature_service.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from rasterio import features as rio_features
from rasterio.transform import Affine

from ..contracts.core import ClassLabel, ClassLabelMapping
from ..contracts.errors import EmptyTrainingSetError
from ..contracts.geo import GeoProfile, GeoTransform, window_transform, world_to_pixel
from ..contracts.products import LabeledSamples, SpectralStack, TrainingSite
from .raster_window import geometry_window_of

log = logging.getLogger(__name__)


def _point_coords(geom) -> List[Tuple[float, float]]:
    if geom.geom_type == "Point":
        return [(geom.x, geom.y)]
    return [(p.x, p.y) for p in geom.geoms]


def _is_point_like(geom) -> bool:
    return geom.geom_type in ("Point", "MultiPoint")


@dataclass
class FeatureService:
    """
    Extrae vectores de bandas bajo los sitios de entrenamiento (puro dominio).
    - Polígonos: una fila por píxel cuyo centro cae dentro (rasterize, all_touched=False).
    - Puntos: una fila por punto (píxel que lo contiene); fuera de la grilla se omite.
    - Cada sitio se procesa por separado: la etiqueta de cada fila es la del sitio de origen.
    - Filas con cualquier banda no-data (NaN o profile.nodata) se descartan, nunca se rellenan.
    """
    all_touched: bool = False

    def _polygon_pixels(self, geom, profile: GeoProfile) -> Tuple[np.ndarray, np.ndarray]:
        win = geometry_window_of(geom, profile)
        if win is None:
            return np.empty(0, dtype=np.intp), np.empty(0, dtype=np.intp)
        r0, c0, h, w = win
        burn = rio_features.rasterize(
            [(geom, 1)],
            out_shape=(h, w),
            transform=Affine.from_gdal(*window_transform(profile.transform, r0, c0)),
            fill=0,
            dtype="uint8",
            all_touched=self.all_touched,
        )
        rows, cols = np.nonzero(burn)
        return rows + r0, cols + c0

    def _point_pixels(self, geom, gt: GeoTransform, width: int, height: int) -> Tuple[np.ndarray, np.ndarray]:
        rows: List[int] = []
        cols: List[int] = []
        for x, y in _point_coords(geom):
            c, r = world_to_pixel(x, y, gt)
            ci, ri = int(math.floor(c)), int(math.floor(r))
            if 0 <= ri < height and 0 <= ci < width:
                rows.append(ri); cols.append(ci)
        return np.asarray(rows, dtype=np.intp), np.asarray(cols, dtype=np.intp)

    def site_pixels(self, stack: SpectralStack, site: TrainingSite) -> Tuple[np.ndarray, np.ndarray]:
        """(rows, cols) de los píxeles que aporta un sitio (sin filtrar no-data)."""
        p = stack.profile
        geom = site.geometry
        if geom is None or geom.is_empty:
            return np.empty(0, dtype=np.intp), np.empty(0, dtype=np.intp)
        if _is_point_like(geom):
            return self._point_pixels(geom, p.transform, p.width, p.height)
        return self._polygon_pixels(geom, p)

    def extract(
        self,
        stack: SpectralStack,
        sites: Sequence[TrainingSite],
        classes: Optional[ClassLabelMapping] = None,
        declared: Sequence[ClassLabel] = (),
    ) -> LabeledSamples:
        """
        `classes`: mapping fijo (p.ej. el de un árbol previo); etiquetas ajenas -> ValueError.
        Sin `classes`, el mapping son los nombres distintos ordenados alfabéticamente
        (colores/macro heredados de `declared` por nombre).
        """
        if classes is not None:
            unknown = sorted({s.label for s in sites} - set(classes.names()))
            if unknown:
                raise ValueError(f"Etiquetas de sitio fuera del mapping de clases: {unknown}")

        data = stack.data
        nodata = stack.raster.nodata_mask()  # NaN o profile.nodata
        x_chunks: List[np.ndarray] = []
        label_chunks: List[np.ndarray] = []
        site_chunks: List[np.ndarray] = []
        skipped = 0
        dropped = 0

        for i, site in enumerate(sites):
            rows, cols = self.site_pixels(stack, site)
            if rows.size == 0:
                skipped += 1
                continue
            x = data[:, rows, cols].T  # (n, B)
            valid = ~nodata[:, rows, cols].any(axis=0)
            dropped += int((~valid).sum())
            if not valid.any():
                continue
            x_chunks.append(x[valid])
            label_chunks.append(np.full(int(valid.sum()), site.label, dtype=object))
            site_chunks.append(np.full(int(valid.sum()), i, dtype=np.int32))

        if skipped:
            log.warning("%d sitio(s) sin píxeles dentro del raster; omitidos", skipped)
        if dropped:
            log.info("%d fila(s) descartadas por no-data", dropped)

        if not x_chunks:
            raise EmptyTrainingSetError(0)

        X = np.vstack(x_chunks)
        labels = np.concatenate(label_chunks)
        present = sorted(set(labels.tolist()))
        if len(present) < 2:
            raise EmptyTrainingSetError(int(X.shape[0]), present)

        mapping = classes if classes is not None else ClassLabelMapping.from_names(present, declared)
        code_of = {name: mapping.code_of(name) for name in present}
        y = np.fromiter((code_of[lab] for lab in labels), dtype=np.int32, count=labels.shape[0])

        samples = LabeledSamples(
            X=X,
            y=y,
            classes=mapping,
            feature_names=stack.band_names,
            site_index=np.concatenate(site_chunks),
        )
        log.info("Muestras: %d filas, clases %s", len(samples), samples.class_counts())
        return samples


__all__ = ["FeatureService"]
