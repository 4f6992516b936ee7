# src/lcplatform/adapters/rasterio_raster_writer.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

import rasterio
from rasterio.transform import Affine

from ..contracts.geo import GeoRaster
from ..ports.raster_write import RasterWriterPort


def _ensure_dir(path: str) -> None:
    d = os.path.dirname(path)
    if d and not os.path.exists(d):
        os.makedirs(d, exist_ok=True)


@dataclass(frozen=True)
class RasterioRasterWriter(RasterWriterPort):
    """GeoTIFF vía rasterio. Multibanda (B, H, W) -> B bandas; descripción = nombre de banda."""
    default_compress: str = "DEFLATE"

    def write(
        self,
        uri: str,
        raster: GeoRaster,
        *,
        band_names: Optional[tuple[str, ...]] = None,
        tags: Optional[Mapping[str, str]] = None,
        compress: Optional[str] = None,
    ) -> str:
        _ensure_dir(uri)
        data = raster.as_3d()
        p = raster.profile
        count = int(data.shape[0])
        if band_names is not None and len(band_names) != count:
            raise ValueError(f"band_names ({len(band_names)}) no coincide con bandas ({count})")

        profile = {
            "driver": "GTiff",
            "height": p.height,
            "width": p.width,
            "count": count,
            "dtype": data.dtype,
            "transform": Affine.from_gdal(*p.transform),
            "compress": (compress or self.default_compress).upper(),
            "nodata": p.nodata,
        }
        # tiled solo si la grilla admite bloques de 256
        if p.width >= 256 and p.height >= 256:
            profile.update(tiled=True, blockxsize=256, blockysize=256)
        if not p.crs.is_empty():
            profile["crs"] = p.crs.to_string()

        with rasterio.open(uri, "w", **profile) as dst:
            dst.write(data)
            if band_names:
                for i, name in enumerate(band_names, start=1):
                    dst.set_band_description(i, name)
            if tags:
                dst.update_tags(**{str(k): str(v) for k, v in tags.items()})
        return uri
