# src/lcplatform/services/reflectance_service.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..contracts.core import ReflectanceCalibration
from ..contracts.errors import InvalidRangeError
from ..contracts.geo import GeoRaster
from ..contracts.products import SpectralStack

log = logging.getLogger(__name__)


def validate_calibration(cal: ReflectanceCalibration) -> None:
    if not cal.valid_min < cal.valid_max:
        raise InvalidRangeError(
            f"Rango válido degenerado: valid_min={cal.valid_min} >= valid_max={cal.valid_max}"
        )
    if cal.scale == 0 or not math.isfinite(cal.scale):
        raise InvalidRangeError(f"scale inválido: {cal.scale}")
    if not math.isfinite(cal.offset):
        raise InvalidRangeError(f"offset inválido: {cal.offset}")


@dataclass
class ReflectanceService:
    """
    DN crudo -> reflectancia (%) por píxel y banda (puro dominio, sin I/O).
    - Fuera de [valid_min, valid_max] o ya no-data -> NaN.
    - Sin acoplamiento entre bandas; nunca muta la entrada.
    - Salida float32; perfil con dtype float32 y nodata NaN.
    """
    calibration: ReflectanceCalibration = ReflectanceCalibration()

    def correct_array(
        self,
        arr: np.ndarray,
        calibration: Optional[ReflectanceCalibration] = None,
        nodata: Optional[float] = None,
    ) -> np.ndarray:
        cal = calibration or self.calibration
        validate_calibration(cal)

        src = np.asarray(arr)
        values = src.astype(np.float64)
        invalid = ~np.isfinite(values)
        if nodata is not None and not math.isnan(nodata):
            invalid |= src == nodata
        invalid |= (values < cal.valid_min) | (values > cal.valid_max)

        out = (values * cal.scale + cal.offset) * 100.0
        out[invalid] = np.nan
        return out.astype(np.float32)

    def correct(
        self,
        stack: SpectralStack,
        calibration: Optional[ReflectanceCalibration] = None,
    ) -> SpectralStack:
        cal = calibration or self.calibration
        validate_calibration(cal)

        p = stack.profile
        data = self.correct_array(stack.data, cal, nodata=p.nodata)
        out = SpectralStack(
            raster=GeoRaster(data=data, profile=p.evolve(dtype="float32", nodata=float("nan"))),
            band_names=stack.band_names,
        )

        if log.isEnabledFor(logging.INFO):
            frac = float(np.isnan(data).mean()) if data.size else 0.0
            lo, hi = cal.output_range()
            log.info(
                "Reflectancia: %d bandas %dx%d, no-data %.1f%%, rango [%.3f, %.3f]",
                len(stack.band_names), p.width, p.height, 100.0 * frac, lo, hi,
            )
        return out


__all__ = ["ReflectanceService", "validate_calibration"]
