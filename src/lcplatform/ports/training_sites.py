# src/lcplatform/ports/training_sites.py
from __future__ import annotations

from typing import Protocol, runtime_checkable, Optional, Sequence
from ..contracts.geo import CRSRef
from ..contracts.products import TrainingSite

@runtime_checkable
class TrainingSitesPort(Protocol):
    """
    Carga sitios de verdad terreno (puntos/polígonos + etiqueta).
    Si `target_crs` viene, las geometrías salen ya en ese CRS.
    """
    def load(
        self,
        uri: str,
        *,
        label_field: str = "class",
        target_crs: Optional[CRSRef] = None,
    ) -> Sequence[TrainingSite]: ...

__all__ = ["TrainingSitesPort"]
