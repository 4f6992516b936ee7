# src/lcplatform/cli.py
"""
CLI de clasificación de cobertura de suelo (contracts-first, minimal).

Comandos principales:
  - correct: DN -> reflectancia (%) y GeoTIFF multibanda.
  - train: extrae muestras en sitios de entrenamiento y entrena el árbol (JSON).
  - classify: aplica un árbol guardado y genera el classmap.
  - run: pipeline completo por convención de carpetas (00-Config/01-Raw/...).

Ejemplos rápidos:
  lcplatform train --scene LC08_L2SP_001075_20230115 \
      -b red=./SR_B4.TIF -b nir=./SR_B5.TIF --sites ./sites.geojson

  lcplatform classify --scene LC08_L2SP_001075_20230115 \
      -b red=./SR_B4.TIF -b nir=./SR_B5.TIF --tree ./tree.json --png --map

  lcplatform --root ./proyecto run --scene LC08_L2SP_001075_20230115
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Dict, Iterable, Optional, Sequence, Tuple

from .config import Settings, get_settings
from .contracts.core import BandName, TreeParams
from .contracts.errors import LandCoverError
from .contracts.products import SpectralStack
from .composition.di import build_inputs, build_pipeline, build_settings, build_spec
from .log import configure_logging
from .services.classmap_service import ClassMapService
from .services.feature_service import FeatureService
from .services.pipeline_service import LandCoverPipeline, PipelineSpec
from .services.reflectance_service import ReflectanceService
from .services.tree_classifier_service import TreeClassifierService
from .services.tree_trainer import DecisionTreeTrainer

# ----------------------
# Utilidades locales
# ----------------------

def _parse_band_args(items: Iterable[str]) -> Dict[BandName, str]:
    out: Dict[BandName, str] = {}
    for it in items:
        if "=" not in it:
            raise ValueError("Formato de banda inválido. Usa -b nombre=path.tif (p.ej. -b nir=./SR_B5.TIF)")
        k, v = it.split("=", 1)
        k = k.strip().lower()
        v = v.strip()
        if not k or not v:
            raise ValueError(f"Par banda=path incompleto: {it!r}")
        if k in out:
            raise ValueError(f"Banda repetida: {k}")
        out[k] = v
    if not out:
        raise ValueError("Debes especificar al menos una banda con -b nombre=path.tif")
    return out


def _settings(args: argparse.Namespace) -> Settings:
    if args.root:
        return build_settings(Path(args.root))
    return get_settings()


def _order(args: argparse.Namespace, band_map: Dict[BandName, str]) -> Tuple[BandName, ...]:
    order = tuple(b.lower() for b in args.order) if args.order else tuple(band_map.keys())
    missing = [b for b in order if b not in band_map]
    if missing:
        raise ValueError(f"--order menciona bandas sin -b: {missing}")
    return order


def _load_corrected(
    pipeline: LandCoverPipeline, s: Settings, band_map: Dict[BandName, str], order: Sequence[BandName], roi: Optional[str]
) -> SpectralStack:
    raw = pipeline.load_stack(band_map, order)
    if roi:
        raw = pipeline.crop(raw, roi)
    return ReflectanceService(s.reflectance).correct(raw)


def _tree_params(s: Settings, args: argparse.Namespace) -> TreeParams:
    upd = {}
    if args.criterion:
        upd["criterion"] = args.criterion
    if args.max_depth is not None:
        upd["max_depth"] = args.max_depth
    if args.min_samples_split is not None:
        upd["min_samples_split"] = args.min_samples_split
    if args.min_samples_leaf is not None:
        upd["min_samples_leaf"] = args.min_samples_leaf
    return TreeParams(**{**s.tree.model_dump(), **upd})

# ----------------------
# Comandos
# ----------------------

def _print_outputs(outputs: Dict[str, Path], last: Optional[str] = None) -> None:
    for key, path in outputs.items():
        if key != last:
            print(str(path))
    if last in outputs:
        print(str(outputs[last]))


def cmd_correct(args: argparse.Namespace) -> int:
    s = _settings(args)
    pipeline = build_pipeline()
    band_map = _parse_band_args(args.band)
    order = _order(args, band_map)

    out_path = Path(args.out) if args.out else s.out_path("reflectance", scene=args.scene)
    spec = PipelineSpec(order=tuple(order), out_reflectance=out_path)
    pipeline.check_outputs(spec)

    corrected = _load_corrected(pipeline, s, band_map, order, args.roi)
    _print_outputs(pipeline.export(spec, corrected=corrected))
    return 0


def cmd_train(args: argparse.Namespace) -> int:
    s = _settings(args)
    pipeline = build_pipeline()
    band_map = _parse_band_args(args.band)
    order = _order(args, band_map)

    out_tree = Path(args.out) if args.out else s.out_path("tree", scene=args.scene)
    out_csv: Optional[Path] = None
    if args.samples:
        out_csv = s.out_path("samples", scene=args.scene) if args.samples == "-" else Path(args.samples)
    spec = PipelineSpec(order=tuple(order), out_tree=out_tree, out_samples=out_csv)
    pipeline.check_outputs(spec)

    corrected = _load_corrected(pipeline, s, band_map, order, args.roi)
    assert pipeline.sites is not None
    sites = pipeline.sites.load(
        args.sites, label_field=args.label_field or s.label_field, target_crs=corrected.profile.crs
    )
    samples = FeatureService().extract(corrected, sites, declared=s.classes)
    tree = DecisionTreeTrainer(_tree_params(s, args)).fit(samples)

    # árbol y CSV van juntos: si uno falla no queda el otro
    outputs = pipeline.export(spec, samples=samples, tree=tree)

    acc = TreeClassifierService().training_accuracy(samples, tree)
    print(f"filas={len(samples)} clases={dict(samples.class_counts())} profundidad={tree.depth()} "
          f"hojas={tree.n_leaves()} exactitud_entrenamiento={acc:.3f}", file=sys.stderr)
    _print_outputs(outputs, last="tree")
    return 0


def cmd_classify(args: argparse.Namespace) -> int:
    s = _settings(args)
    pipeline = build_pipeline()
    band_map = _parse_band_args(args.band)

    out_tif = Path(args.out) if args.out else s.out_path("classmap", scene=args.scene)
    spec = PipelineSpec(
        order=(),
        out_classmap=out_tif,
        out_confidence=out_tif.with_name(out_tif.stem + "_confidence.tif") if args.confidence else None,
        out_quicklook=out_tif.with_suffix(".png") if args.png else None,
        out_map=out_tif.with_name(out_tif.stem + "_map.png") if args.map else None,
        out_report=out_tif.with_suffix(".csv") if args.report else None,
        map_title=args.scene,
    )
    pipeline.check_outputs(spec)
    if pipeline.tree_store is None:
        raise RuntimeError("TreeStorePort no configurado")

    tree = pipeline.tree_store.load(args.tree)
    # el orden de bandas lo fija el árbol
    order = tuple(b.lower() for b in args.order) if args.order else tuple(tree.feature_names)
    missing = [b for b in order if b not in band_map]
    if missing:
        raise ValueError(f"El árbol necesita bandas sin -b: {missing}")
    corrected = _load_corrected(pipeline, s, band_map, order, args.roi)

    clf = TreeClassifierService(
        tile_rows=args.tile_rows or s.tile_rows,
        workers=args.workers or s.workers,
        with_confidence=bool(args.confidence),
    )
    classified = clf.classify(corrected, tree)

    # TIFF, mapa y reporte van juntos: si uno falla se retiran los demás
    _print_outputs(pipeline.export(spec, classified=classified), last="classmap")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    s = _settings(args)
    inputs = build_inputs(s, args.scene, with_study_area=not args.no_roi)
    spec = build_spec(s, args.scene, write_outputs=not args.dry_run)
    res = build_pipeline().run(inputs, spec)
    for key, path in res.outputs.items():
        print(str(path))
    for row in ClassMapService().report_rows(res.classified, res.summary):
        print(f"{row['code']:>3} {row['name']:<20} {row['pixels']:>10} {row['percent']:>8.2f}%", file=sys.stderr)
    return 0

# ----------------------
# Parser
# ----------------------

def _add_band_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--scene", required=True, help="id de escena (placeholder {scene} de las rutas de salida)")
    p.add_argument("-b", "--band", action="append", default=[], help="Par banda=path (p.ej., nir=./SR_B5.TIF)")
    p.add_argument("--order", nargs="*", default=None, help="Orden explícito de bandas")
    p.add_argument("--roi", help="área de estudio (GeoJSON/GPKG/SHP); recorta antes de corregir")
    p.add_argument("--out", help="ruta de salida explícita (si no, usa Settings.output_patterns)")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="lcplatform", description="Clasificación de cobertura de suelo con árbol de decisión")
    p.add_argument("--root", help="project_root (lee 00-Config/settings.yaml si existe)")
    p.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING, ERROR")
    sub = p.add_subparsers(dest="cmd", required=True)

    # correct
    pc = sub.add_parser("correct", help="DN -> reflectancia (%%), GeoTIFF multibanda")
    _add_band_args(pc)
    pc.set_defaults(func=cmd_correct)

    # train
    pt = sub.add_parser("train", help="extrae muestras y entrena el árbol (JSON)")
    _add_band_args(pt)
    pt.add_argument("--sites", required=True, help="sitios de entrenamiento (puntos/polígonos con etiqueta)")
    pt.add_argument("--label-field", help="columna de etiqueta (default Settings.label_field)")
    pt.add_argument("--samples", nargs="?", const="-", help="exporta muestras CSV (sin valor: ruta de Settings)")
    pt.add_argument("--criterion", choices=("gini", "entropy"))
    pt.add_argument("--max-depth", type=int)
    pt.add_argument("--min-samples-split", type=int)
    pt.add_argument("--min-samples-leaf", type=int)
    pt.set_defaults(func=cmd_train)

    # classify
    pk = sub.add_parser("classify", help="aplica un árbol guardado y genera classmap")
    _add_band_args(pk)
    pk.add_argument("--tree", required=True, help="árbol JSON (salida de train)")
    pk.add_argument("--png", action="store_true", help="exporta quicklook PNG junto al TIFF")
    pk.add_argument("--map", action="store_true", help="exporta mapa con leyenda (matplotlib)")
    pk.add_argument("--report", action="store_true", help="exporta resumen CSV por clase")
    pk.add_argument("--confidence", action="store_true", help="exporta raster de confianza por píxel")
    pk.add_argument("--tile-rows", type=int, help="filas por bloque")
    pk.add_argument("--workers", type=int, help="hilos para clasificar bloques")
    pk.set_defaults(func=cmd_classify)

    # run
    pr = sub.add_parser("run", help="pipeline completo por convención de carpetas")
    pr.add_argument("--scene", required=True, help="id de escena (carpeta 01-Raw/{scene})")
    pr.add_argument("--no-roi", action="store_true", help="ignora 00-Config/study_area.geojson")
    pr.add_argument("--dry-run", action="store_true", help="no escribe salidas")
    pr.set_defaults(func=cmd_run)

    return p


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        configure_logging(args.log_level)
        return int(bool(args.func(args)))  # 0 si todo bien
    except KeyboardInterrupt:
        return 130
    except LandCoverError as ex:
        print(f"[ERROR] {ex.stage.value}: {ex.message}", file=sys.stderr)
        return 1
    except Exception as ex:
        print(f"[ERROR] {ex}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
