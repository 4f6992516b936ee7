# src/lcplatform/ports/roi.py
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable
from ..contracts.geo import GeoRaster, CRSRef

Geometry = Any  # shapely.geometry.base.BaseGeometry

@runtime_checkable
class ROIClipperPort(Protocol):
    """
    Recorta un raster (2D o 3D) al área de estudio.
    - La grilla de salida es la ventana que cubre el bbox de la geometría.
    - Píxeles fuera de la geometría -> nodata (NaN en float, profile.nodata/0 en enteros).
    - `geometry_crs` distinto al del raster => reproyectar la geometría, nunca el raster.
    """
    def clip_raster(self, raster: GeoRaster, geometry: Geometry, geometry_crs: CRSRef) -> GeoRaster: ...
    def load_geometry(self, uri: str) -> tuple[Geometry, CRSRef]: ...

__all__ = ["ROIClipperPort", "Geometry"]
