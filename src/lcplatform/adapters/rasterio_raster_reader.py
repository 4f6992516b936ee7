# src/lcplatform/adapters/rasterio_raster_reader.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Tuple

import numpy as np
import rasterio
from rasterio.transform import Affine

from ..contracts.geo import GeoRaster, GeoProfile, CRSRef, GeoTransform, DTypeStr
from ..ports.raster_read import RasterReaderPort

_DTYPE_MAP = {
    np.dtype("uint8"): "uint8",
    np.dtype("uint16"): "uint16",
    np.dtype("int16"): "int16",
    np.dtype("uint32"): "uint32",
    np.dtype("int32"): "int32",
    np.dtype("float32"): "float32",
    np.dtype("float64"): "float64",
}


def np_to_dtype_str(dt: np.dtype) -> DTypeStr:
    try:
        return _DTYPE_MAP[np.dtype(dt)]  # type: ignore[return-value]
    except KeyError as e:
        raise ValueError(f"dtype {dt} no soportado") from e


def affine_to_gt(a: Affine) -> GeoTransform:
    return (a.c, a.a, a.b, a.f, a.d, a.e)


def crs_to_crsref(crs_obj) -> CRSRef:
    """rasterio/pyproj CRS -> CRSRef (EPSG si se puede, si no WKT, si no vacío)."""
    if not crs_obj:
        return CRSRef()
    epsg = crs_obj.to_epsg()
    if epsg is not None:
        return CRSRef.from_epsg(int(epsg))
    wkt = crs_obj.to_wkt()
    return CRSRef.from_wkt(wkt) if wkt else CRSRef()


def _profile_from_ds(ds, count: int, dtype: np.dtype, nodata) -> GeoProfile:
    return GeoProfile(
        count=count,
        dtype=np_to_dtype_str(dtype),
        width=ds.width,
        height=ds.height,
        transform=affine_to_gt(ds.transform),
        crs=crs_to_crsref(ds.crs),
        nodata=float(nodata) if nodata is not None else None,
    )


@dataclass(frozen=True)
class RasterioRasterReader(RasterReaderPort):
    """Lector rasterio.

    Regla: `read()` devuelve un **GeoRaster 2D**. Para datasets multibanda
    pasa `band_index` (1-based, como rasterio).
    """

    def read(self, uri: str, band_index: int | None = None) -> GeoRaster:
        if not os.path.exists(uri):
            raise FileNotFoundError(uri)
        with rasterio.open(uri) as ds:
            idx = 1 if band_index is None else int(band_index)
            if not 1 <= idx <= ds.count:
                raise ValueError(f"band_index {idx} fuera de rango (1..{ds.count}) en {uri}")
            arr = ds.read(idx)
            nodata = ds.nodatavals[idx - 1]
            return GeoRaster(arr, _profile_from_ds(ds, 1, arr.dtype, nodata))

    def profile(self, uri: str) -> GeoProfile:
        if not os.path.exists(uri):
            raise FileNotFoundError(uri)
        with rasterio.open(uri) as ds:
            return _profile_from_ds(ds, ds.count, np.dtype(ds.dtypes[0]), ds.nodata)

    def size(self, uri: str) -> Tuple[int, int]:
        with rasterio.open(uri) as ds:
            return ds.width, ds.height

    def exists(self, uri: str) -> bool:
        return os.path.exists(uri)
