# =============================
# FILE: examples/using_pipeline.py
# =============================
"""
Uso mínimo: pipeline completo sin CLI.
Los adapters concretos vienen de composition/di.py; las rutas salen de Settings.
"""
from pathlib import Path

from lcplatform.composition.di import build_inputs, build_pipeline, build_settings, build_spec
from lcplatform.log import configure_logging


if __name__ == "__main__":
    configure_logging("INFO")
    root = Path("/ruta/al/proyecto").resolve()
    scene = "LC08_L2SP_001075_20230115_20230131_02_T1"

    settings = build_settings(root)
    res = build_pipeline().run(build_inputs(settings, scene), build_spec(settings, scene))

    print("Árbol:", res.tree.depth(), "niveles,", res.tree.n_leaves(), "hojas")
    print("Importancia de bandas:")
    for band, imp in sorted(res.tree.feature_importances().items(), key=lambda kv: -kv[1]):
        print(" -", band, f"{imp:.3f}")

    print("Cobertura:")
    for code, pct in res.summary.percents.items():
        print(" -", res.classified.classes.name_of(code), f"{pct:.2f}%")

    for key, path in res.outputs.items():
        print(key, "->", path)
