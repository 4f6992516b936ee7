# src/lcplatform/adapters/csv_exporter.py
from __future__ import annotations

import csv
import os
from typing import Any, Iterable, Mapping

from ..ports.exporters import ReportExporterPort


class CSVExporter(ReportExporterPort):
    """Exporter de reportes tabulares: escribe un CSV desde `context`.

    Convención:
      - `context["headers"]` -> lista de nombres de columna (opcional)
      - `context["rows"]`    -> iterable de dicts o secuencias
    Sin `headers` se infieren de la primera fila. `template_id` solo se registra
    en la primera línea como comentario si `context["comment"]` es True.
    """
    def render(self, template_id: str, context: Mapping[str, Any], out_uri: str) -> str:
        rows = list(context.get("rows", []))  # type: Iterable[Any]
        headers = context.get("headers")
        if headers is None and rows:
            first = rows[0]
            headers = list(first.keys()) if isinstance(first, Mapping) else [f"col{i+1}" for i in range(len(first))]

        os.makedirs(os.path.dirname(out_uri) or ".", exist_ok=True)
        with open(out_uri, "w", newline="", encoding="utf-8") as f:
            if context.get("comment"):
                f.write(f"# {template_id}\n")
            writer = csv.writer(f)
            if headers:
                writer.writerow(headers)
            for r in rows:
                if isinstance(r, Mapping):
                    writer.writerow([r.get(h, "") for h in headers])
                else:
                    writer.writerow(list(r))
        return out_uri
