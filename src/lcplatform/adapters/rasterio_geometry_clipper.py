# src/lcplatform/adapters/rasterio_geometry_clipper.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Tuple

import geopandas as gpd
import numpy as np
from rasterio.features import geometry_mask
from rasterio.transform import Affine

from ..contracts.geo import CRSRef, GeoRaster, window_transform
from ..ports.roi import Geometry, ROIClipperPort
from ..services.raster_window import geometry_window_of
from .rasterio_raster_reader import crs_to_crsref

log = logging.getLogger(__name__)


def reproject_geometry(geom: Geometry, src: CRSRef, dst: CRSRef) -> Geometry:
    """Reproyecta una geometría shapely; sin CRS en algún lado o CRS iguales -> tal cual."""
    if src.is_empty() or dst.is_empty() or src.equals(dst):
        return geom
    gs = gpd.GeoSeries([geom], crs=src.to_string()).to_crs(dst.to_string())
    return gs.iloc[0]


@dataclass(frozen=True)
class RasterioGeometryClipper(ROIClipperPort):
    """
    Recorte a la ventana del bbox de la geometría + máscara (centro de píxel dentro).
    Fuera de la geometría: NaN (float) o profile.nodata (enteros; 0 si no hay).
    """
    all_touched: bool = False

    def load_geometry(self, uri: str) -> Tuple[Geometry, CRSRef]:
        if not os.path.exists(uri):
            raise FileNotFoundError(uri)
        gdf = gpd.read_file(uri)
        if gdf.empty:
            raise ValueError(f"Área de estudio vacía: {uri}")
        geom = gdf.geometry.union_all()
        return geom, crs_to_crsref(gdf.crs)

    def clip_raster(self, raster: GeoRaster, geometry: Geometry, geometry_crs: CRSRef) -> GeoRaster:
        p = raster.profile
        geom = reproject_geometry(geometry, geometry_crs, p.crs)
        if geom is None or geom.is_empty:
            raise ValueError("Geometría de recorte vacía")

        win = geometry_window_of(geom, p)
        if win is None:
            raise ValueError("La geometría de recorte no intersecta el raster")
        r0, c0, h, w = win
        gt = window_transform(p.transform, r0, c0)

        outside = geometry_mask(
            [geom], out_shape=(h, w), transform=Affine.from_gdal(*gt), all_touched=self.all_touched
        )
        data = raster.as_3d()[:, r0:r0 + h, c0:c0 + w].copy()
        if data.dtype.kind == "f":
            fill = np.nan if p.nodata is None else p.nodata
            nodata = p.nodata if p.nodata is not None else float("nan")
        else:
            nodata = p.nodata if p.nodata is not None else 0.0
            fill = nodata
        data[:, outside] = fill
        if raster.data.ndim == 2:
            data = data[0]

        log.debug("Recorte ventana filas %d:%d, cols %d:%d", r0, r0 + h, c0, c0 + w)
        return GeoRaster(data=data, profile=p.evolve(width=w, height=h, transform=gt, nodata=nodata))
