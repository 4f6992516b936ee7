# src/lcplatform/contracts/geo.py

from __future__ import annotations
import math
from dataclasses import dataclass, replace
from typing import Any, Literal, Tuple, Optional

import numpy as np
import numpy.typing as npt

GeoTransform = Tuple[float, float, float, float, float, float]
DTypeStr = Literal["uint8","uint16","int16","uint32","int32","float32","float64"]

# ---------- CRS (puro dominio, sin rasterio) ----------
@dataclass(frozen=True)
class CRSRef:
    wkt: Optional[str] = None
    epsg: Optional[int] = None

    @staticmethod
    def from_epsg(code: int) -> "CRSRef":
        return CRSRef(epsg=int(code))

    @staticmethod
    def from_wkt(wkt: str) -> "CRSRef":
        return CRSRef(wkt=wkt)

    @staticmethod
    def parse(text: str) -> "CRSRef":
        s = str(text).strip()
        if not s:
            raise ValueError("CRS vacío")
        if s.upper().startswith("EPSG:"):
            return CRSRef.from_epsg(int(s.split(":", 1)[1]))
        return CRSRef.from_wkt(s)

    def is_empty(self) -> bool:
        return not self.wkt and self.epsg is None

    def to_string(self) -> str:
        """'EPSG:<code>' si hay EPSG, si no el WKT tal cual."""
        if self.epsg is not None:
            return f"EPSG:{int(self.epsg)}"
        if self.wkt:
            return self.wkt
        raise ValueError("CRSRef vacío: no hay WKT ni EPSG.")

    @staticmethod
    def _normalize_wkt(wkt: str) -> str:
        # upper + espacios colapsados; no reordena nodos
        s = " ".join(wkt.strip().upper().split())
        s = s.replace(" ,", ",").replace(", ", ",")
        return s.replace("[ ", "[").replace(" ]", "]")

    def equals(self, other: "CRSRef") -> bool:
        """
        1) ambos EPSG -> compara enteros
        2) ambos WKT -> compara WKT normalizado
        3) mezcla -> False
        """
        if self is other:
            return True
        if self.epsg is not None and other.epsg is not None:
            return int(self.epsg) == int(other.epsg)
        if self.wkt and other.wkt:
            return self._normalize_wkt(self.wkt) == self._normalize_wkt(other.wkt)
        return False

# ---------- Perfil y Raster ----------
@dataclass(frozen=True)
class GeoProfile:
    count: int
    dtype: DTypeStr
    width: int
    height: int
    transform: GeoTransform
    crs: CRSRef
    nodata: Optional[float] = None

    def pixel_size(self) -> Tuple[float, float]:
        _, px, _, _, _, py = self.transform
        return (px, py)

    def pixel_area(self) -> float:
        px, py = self.pixel_size()
        return abs(px * py)

    def evolve(self, **changes: Any) -> "GeoProfile":
        return replace(self, **changes)

@dataclass(frozen=True)
class GeoRaster:
    """
    data: (H, W) para una banda o (B, H, W) multibanda.
    El buffer queda en solo-lectura al construir.
    """
    data: "npt.NDArray[Any]"  # type: ignore[valid-type]
    profile: GeoProfile

    def __post_init__(self):
        if self.data.ndim not in (2, 3):
            raise ValueError(f"GeoRaster espera 2D o 3D; recibido ndim={self.data.ndim}")
        h, w = self.data.shape[-2:]
        if (w, h) != (self.profile.width, self.profile.height):
            raise ValueError(
                f"Shape {self.data.shape} no coincide con perfil {self.profile.width}x{self.profile.height}"
            )
        if self.data.flags.writeable:
            self.data.setflags(write=False)

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.data.shape  # type: ignore[no-any-return]

    def is_single_band(self) -> bool:
        return self.data.ndim == 2 or self.data.shape[0] == 1

    def as_3d(self) -> np.ndarray:
        return self.data[np.newaxis, ...] if self.data.ndim == 2 else self.data

    def nodata_mask(self) -> np.ndarray:
        """True donde el valor es no-data (NaN o igual a profile.nodata)."""
        arr = self.data
        mask = np.zeros(arr.shape, dtype=bool)
        if arr.dtype.kind == "f":
            mask |= np.isnan(arr)
        nd = self.profile.nodata
        if nd is not None and not math.isnan(nd):
            mask |= arr == nd
        return mask

# ---------- GeoTransform helpers (afines a GDAL, sin dependencia) ----------
def window_transform(gt: GeoTransform, row_off: int, col_off: int) -> GeoTransform:
    """GeoTransform de una ventana que empieza en (row_off, col_off)."""
    x0, y0 = pixel_to_world(col_off, row_off, gt)
    return (x0, gt[1], gt[2], y0, gt[4], gt[5])

def pixel_to_world(col: float, row: float, gt: GeoTransform) -> Tuple[float, float]:
    x0, px, rx, y0, ry, py = gt
    x = x0 + col * px + row * rx
    y = y0 + col * ry + row * py
    return x, y

def world_to_pixel(x: float, y: float, gt: GeoTransform) -> Tuple[float, float]:
    x0, px, rx, y0, ry, py = gt
    det = px * py - rx * ry
    if abs(det) < 1e-18:
        raise ValueError("GeoTransform no invertible (det≈0).")
    dx = x - x0; dy = y - y0
    col = ( py * dx - rx * dy) / det
    row = (-ry * dx + px * dy) / det
    return col, row

def _gt_close(a: GeoTransform, b: GeoTransform, tol: float = 1e-6) -> bool:
    return all(math.isclose(x, y, rel_tol=0.0, abs_tol=tol) for x, y in zip(a, b))

def _nodata_equal(a: Optional[float], b: Optional[float]) -> bool:
    if a is None or b is None:
        return a is None and b is None
    if math.isnan(a) or math.isnan(b):
        return math.isnan(a) and math.isnan(b)
    return a == b

def validate_profile_compat(a: GeoProfile, b: GeoProfile, *, require_same_crs: bool = True) -> None:
    if require_same_crs and not a.crs.equals(b.crs):
        raise ValueError("CRS no coincide.")
    if a.width != b.width or a.height != b.height:
        raise ValueError(f"Dimensiones no coinciden: {a.width}x{a.height} vs {b.width}x{b.height}")
    if not _gt_close(a.transform, b.transform):
        raise ValueError("GeoTransform no coincide (requiere resampling/alineación).")
    if a.dtype != b.dtype:
        raise ValueError(f"dtype no coincide: {a.dtype} vs {b.dtype}")
    if not _nodata_equal(a.nodata, b.nodata):
        raise ValueError(f"nodata no coincide: {a.nodata} vs {b.nodata}")

__all__ = [
    "GeoTransform","CRSRef","GeoProfile","GeoRaster",
    "window_transform","pixel_to_world","world_to_pixel",
    "validate_profile_compat","DTypeStr",
]
