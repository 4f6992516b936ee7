# src/lcplatform/services/raster_window.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from rasterio.errors import WindowError
from rasterio.features import geometry_window
from rasterio.transform import Affine

from ..contracts.geo import GeoProfile


@dataclass(frozen=True)
class _Grid:
    # lo mínimo que geometry_window lee de un dataset
    transform: Affine
    width: int
    height: int


def geometry_window_of(geom, profile: GeoProfile) -> Optional[Tuple[int, int, int, int]]:
    """(row_off, col_off, height, width) que cubre la geometría, recortada a la grilla; None si no intersecta."""
    grid = _Grid(Affine.from_gdal(*profile.transform), profile.width, profile.height)
    try:
        win = geometry_window(grid, [geom])
    except WindowError:
        return None
    r0, c0 = int(win.row_off), int(win.col_off)
    h, w = int(win.height), int(win.width)
    if h <= 0 or w <= 0:
        return None
    return (r0, c0, h, w)


__all__ = ["geometry_window_of"]
