# src/lcplatform/services/classmap_service.py
"""
Post-proceso del mapa clasificado (contracts-first):
  conteos por clase -> porcentajes (sobre píxeles válidos) -> áreas -> paleta
  -> (quicklook PNG / filas de reporte, opcionales)

No calcula rutas ni usa Settings; el llamador decide dónde escribir.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np
from PIL import Image

from ..contracts.core import NODATA_CODE
from ..contracts.products import ClassifiedRaster
from ..ports.exporters import ReportExporterPort

REPORT_HEADERS = ("code", "name", "macro", "color", "pixels", "percent", "area")


@dataclass(frozen=True)
class ClassMapSummary:
    counts: Mapping[int, int]             # código -> píxeles (todas las clases del mapping, incluso 0)
    percents: Mapping[int, float]         # % sobre píxeles válidos
    areas: Mapping[int, float]            # unidades del CRS al cuadrado
    palette: Mapping[int, Tuple[int, int, int]]
    n_valid: int
    n_nodata: int

    @property
    def total(self) -> int:
        return self.n_valid + self.n_nodata


@dataclass
class ClassMapService:
    reporter: Optional[ReportExporterPort] = None

    def summarize(self, classified: ClassifiedRaster) -> ClassMapSummary:
        arr = classified.data
        k = len(classified.classes)
        counts_all = np.bincount(arr.reshape(-1).astype(np.int64), minlength=k + 1)
        n_nodata = int(counts_all[NODATA_CODE])
        counts = {code: int(counts_all[code]) for code in range(1, k + 1)}
        n_valid = int(sum(counts.values()))
        px_area = classified.raster.profile.pixel_area()
        return ClassMapSummary(
            counts=counts,
            percents=self._to_percents(counts, total=n_valid),
            areas={c: n * px_area for c, n in counts.items()},
            palette=classified.classes.palette(),
            n_valid=n_valid,
            n_nodata=n_nodata,
        )

    @staticmethod
    def _to_percents(counts: Mapping[int, int], *, total: int) -> Dict[int, float]:
        if total <= 0:
            return {int(k): 0.0 for k in counts}
        return {int(k): (v / float(total)) * 100.0 for k, v in counts.items()}

    def report_rows(self, classified: ClassifiedRaster, summary: Optional[ClassMapSummary] = None) -> List[Dict[str, Any]]:
        s = summary or self.summarize(classified)
        rows: List[Dict[str, Any]] = []
        for label in classified.classes.labels:
            code = int(label.id)
            rows.append({
                "code": code,
                "name": label.name,
                "macro": label.macro.value,
                "color": label.color.to_hex(),
                "pixels": s.counts[code],
                "percent": round(s.percents[code], 4),
                "area": s.areas[code],
            })
        return rows

    def export_report(self, classified: ClassifiedRaster, out_path: Path, summary: Optional[ClassMapSummary] = None) -> Path:
        if self.reporter is None:
            raise RuntimeError("ReportExporterPort no configurado")
        ctx = {"headers": list(REPORT_HEADERS), "rows": self.report_rows(classified, summary)}
        return Path(self.reporter.render("class_summary", ctx, str(out_path)))

    @staticmethod
    def save_png(classified: ClassifiedRaster, out_path: Path) -> Path:
        """Quicklook RGBA 1 píxel = 1 píxel; no-data transparente."""
        arr = classified.data
        h, w = arr.shape
        rgba = np.zeros((h, w, 4), dtype=np.uint8)
        for code, color in classified.classes.palette().items():
            m = arr == code
            rgba[m, :3] = color
            rgba[m, 3] = 255
        out_path = Path(out_path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        Image.fromarray(rgba).save(out_path)
        return out_path


__all__ = ["ClassMapService", "ClassMapSummary", "REPORT_HEADERS"]
