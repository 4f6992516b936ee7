# src/lcplatform/ports/renderer.py
from __future__ import annotations

from typing import Protocol, runtime_checkable, Optional
from ..contracts.products import ClassifiedRaster

URI = str

@runtime_checkable
class MapRendererPort(Protocol):
    """Mapa temático con leyenda (colores y orden del ClassLabelMapping)."""
    def render(self, classified: ClassifiedRaster, out_uri: URI, *, title: Optional[str] = None) -> URI: ...

__all__ = ["MapRendererPort", "URI"]
