# src/lcplatform/adapters/geopandas_sites_loader.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Sequence

import geopandas as gpd

from ..contracts.geo import CRSRef
from ..contracts.products import TrainingSite
from ..ports.training_sites import TrainingSitesPort

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeoPandasSitesLoader(TrainingSitesPort):
    """
    Sitios de entrenamiento desde cualquier formato que lea geopandas
    (GeoJSON, Shapefile, GPKG). Geometrías nulas/vacías o sin etiqueta se omiten.
    Sin CRS en el archivo -> se asume el CRS destino.
    """
    id_field: Optional[str] = None

    def load(
        self,
        uri: str,
        *,
        label_field: str = "class",
        target_crs: Optional[CRSRef] = None,
    ) -> Sequence[TrainingSite]:
        if not os.path.exists(uri):
            raise FileNotFoundError(uri)
        gdf = gpd.read_file(uri)
        if label_field not in gdf.columns:
            raise KeyError(f"Columna de etiqueta '{label_field}' no existe en {uri}; hay {list(gdf.columns)}")

        if target_crs is not None and not target_crs.is_empty():
            if gdf.crs is None:
                log.warning("%s sin CRS; se asume %s", uri, target_crs.to_string())
                gdf = gdf.set_crs(target_crs.to_string())
            else:
                gdf = gdf.to_crs(target_crs.to_string())

        out: List[TrainingSite] = []
        skipped = 0
        for idx, row in gdf.iterrows():
            geom = row.geometry
            label = row[label_field]
            if geom is None or geom.is_empty or label is None or str(label).strip() in ("", "nan"):
                skipped += 1
                continue
            site_id = str(row[self.id_field]) if self.id_field else str(idx)
            out.append(TrainingSite(geometry=geom, label=str(label), site_id=site_id))
        if skipped:
            log.warning("%d sitio(s) sin geometría o etiqueta omitidos en %s", skipped, uri)
        return out
