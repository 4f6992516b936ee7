# src/lcplatform/ports/raster_write.py
from __future__ import annotations

from typing import Protocol, runtime_checkable, Mapping, Optional
from ..contracts.geo import GeoRaster

URI = str

@runtime_checkable
class RasterWriterPort(Protocol):
    """
    Escritor de rasters GeoTIFF (reflectancia, mapa clasificado, confianza).
    Crea carpetas intermedias; devuelve la URI escrita.
    """
    def write(
        self,
        uri: URI,
        raster: GeoRaster,
        *,
        band_names: Optional[tuple[str, ...]] = None,
        tags: Optional[Mapping[str, str]] = None,
        compress: Optional[str] = None,
    ) -> URI: ...

__all__ = ["RasterWriterPort", "URI"]
