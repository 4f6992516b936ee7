# src/lcplatform/adapters/matplotlib_renderer.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import matplotlib

matplotlib.use("Agg")  # sin display

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.colors import BoundaryNorm, ListedColormap
from matplotlib.patches import Patch

from ..contracts.core import NODATA_CODE
from ..contracts.products import ClassifiedRaster
from ..ports.renderer import MapRendererPort


@dataclass(frozen=True)
class MatplotlibMapRenderer(MapRendererPort):
    """
    Mapa temático: un color por código (paleta del mapping), leyenda en el
    orden del mapping, no-data transparente (masked array).
    """
    dpi: int = 150
    figsize: tuple[float, float] = (8.0, 8.0)

    def render(self, classified: ClassifiedRaster, out_uri: str, *, title: Optional[str] = None) -> str:
        labels = classified.classes.labels
        k = len(labels)
        colors = [np.array(c.color.as_tuple()) / 255.0 for c in labels]
        cmap = ListedColormap(colors)
        norm = BoundaryNorm(np.arange(0.5, k + 1.5, 1.0), cmap.N)
        shown = np.ma.masked_equal(classified.data, NODATA_CODE)

        fig, ax = plt.subplots(figsize=self.figsize)
        try:
            ax.imshow(shown, cmap=cmap, norm=norm, interpolation="nearest")
            ax.set_axis_off()
            if title:
                ax.set_title(title)
            handles = [Patch(facecolor=col, edgecolor="black", label=c.name) for c, col in zip(labels, colors)]
            ax.legend(handles=handles, loc="upper left", bbox_to_anchor=(1.01, 1.0), frameon=False)
            out = Path(out_uri)
            out.parent.mkdir(parents=True, exist_ok=True)
            fig.savefig(out, dpi=self.dpi, bbox_inches="tight", transparent=True)
        finally:
            plt.close(fig)
        return str(out_uri)
