from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Set, Tuple

import numpy as np

from .core import BandName, ClassLabelMapping, NODATA_CODE
from .geo import GeoRaster, GeoProfile, validate_profile_compat


@dataclass(frozen=True)
class BandSet:
    """
    Bandas sueltas (una GeoRaster 2D por nombre) sobre la misma grilla.
    - Colección inmutable en tiempo de ejecución.
    """
    bands: Mapping[BandName, GeoRaster]

    def __post_init__(self):
        d = dict(self.bands)
        it = iter(d.values())
        first = next(it, None)
        for r in it:
            validate_profile_compat(first.profile, r.profile, require_same_crs=True)
        for name, r in d.items():
            if not r.is_single_band():
                raise ValueError(f"Banda {name} no es de una sola capa: shape={r.shape}")
        object.__setattr__(self, "bands", MappingProxyType(d))

    def names(self) -> Set[BandName]:
        return set(self.bands.keys())

    def has(self, name: BandName) -> bool:
        return name in self.bands

    def require(self, required: Iterable[BandName]) -> None:
        missing = [b for b in required if b not in self.bands]
        if missing:
            raise KeyError(f"Faltan bandas requeridas: {missing}")

    def stack(self, order: Sequence[BandName]) -> "SpectralStack":
        if not order:
            raise ValueError("order de bandas vacío")
        self.require(order)
        arrs = [self.bands[n].data.reshape(self.bands[n].data.shape[-2:]) for n in order]
        data = np.stack(arrs, axis=0).astype(arrs[0].dtype, copy=False)
        p0 = self.bands[order[0]].profile
        return SpectralStack(
            raster=GeoRaster(data=data, profile=p0.evolve(count=len(order))),
            band_names=tuple(order),
        )


@dataclass(frozen=True)
class SpectralStack:
    """Raster multibanda (B, H, W) con el orden de bandas fijado."""
    raster: GeoRaster
    band_names: Tuple[BandName, ...]

    def __post_init__(self):
        if self.raster.data.ndim != 3:
            raise ValueError("SpectralStack requiere datos (B, H, W)")
        if len(self.band_names) != self.raster.data.shape[0]:
            raise ValueError(
                f"band_names ({len(self.band_names)}) no coincide con bandas del raster ({self.raster.data.shape[0]})"
            )
        if len(set(self.band_names)) != len(self.band_names):
            raise ValueError(f"band_names duplicados: {self.band_names}")
        object.__setattr__(self, "band_names", tuple(self.band_names))

    @property
    def profile(self) -> GeoProfile:
        return self.raster.profile

    @property
    def data(self) -> np.ndarray:
        return self.raster.data

    def band(self, name: BandName) -> np.ndarray:
        return self.raster.data[self.band_names.index(name)]

    def pixel_matrix(self) -> np.ndarray:
        """(B, H, W) -> (H*W, B), vista cuando es posible."""
        b, h, w = self.raster.data.shape
        return self.raster.data.reshape(b, h * w).T


@dataclass(frozen=True)
class TrainingSite:
    """Geometría (shapely) con etiqueta de verdad terreno."""
    geometry: Any
    label: str
    site_id: Optional[str] = None

    def __post_init__(self):
        label = str(self.label).strip()
        if not label:
            raise ValueError("label de sitio vacío")
        object.__setattr__(self, "label", label)


@dataclass(frozen=True)
class LabeledSamples:
    """
    Filas (vector de bandas, código de clase).
    X: (N, F) float, y: (N,) int con códigos 1..K del mapping.
    """
    X: np.ndarray
    y: np.ndarray
    classes: ClassLabelMapping
    feature_names: Tuple[BandName, ...]
    site_index: Optional[np.ndarray] = None  # índice del sitio de origen por fila

    def __post_init__(self):
        if self.X.ndim != 2:
            raise ValueError(f"X debe ser 2D; recibido {self.X.shape}")
        if self.y.shape != (self.X.shape[0],):
            raise ValueError(f"y {self.y.shape} no coincide con filas de X {self.X.shape}")
        if self.X.shape[1] != len(self.feature_names):
            raise ValueError("feature_names no coincide con columnas de X")

    def __len__(self) -> int:
        return int(self.X.shape[0])

    def labels(self) -> Tuple[str, ...]:
        return tuple(self.classes.name_of(int(c)) for c in self.y)

    def class_counts(self) -> Dict[str, int]:
        codes, counts = np.unique(self.y, return_counts=True)
        return {self.classes.name_of(int(c)): int(n) for c, n in zip(codes.tolist(), counts.tolist())}

    def class_weights(self) -> Dict[int, float]:
        # pesos inversos a la frecuencia
        unique, counts = np.unique(self.y, return_counts=True)
        total = float(self.y.size) if self.y.size else 1.0
        k = len(unique)
        return {int(c): float(total / (k * n)) for c, n in zip(unique.tolist(), counts.tolist())}

    def to_frame(self):
        import pandas as pd

        df = pd.DataFrame(self.X, columns=list(self.feature_names))
        df["label"] = list(self.labels())
        df["code"] = self.y.astype("int32")
        if self.site_index is not None:
            df["site"] = self.site_index
        return df


@dataclass(frozen=True)
class ClassifiedRaster:
    """Raster de códigos de clase (0 = no-data) + mapping que lo interpreta."""
    raster: GeoRaster
    classes: ClassLabelMapping
    confidence: Optional[GeoRaster] = None
    meta: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.raster.data.ndim != 2:
            raise ValueError("ClassifiedRaster requiere datos 2D")

    @property
    def data(self) -> np.ndarray:
        return self.raster.data

    def valid_mask(self) -> np.ndarray:
        return self.raster.data != NODATA_CODE

    def label_at(self, row: int, col: int) -> Optional[str]:
        code = int(self.raster.data[row, col])
        return None if code == NODATA_CODE else self.classes.name_of(code)
