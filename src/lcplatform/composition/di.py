from __future__ import annotations
from pathlib import Path
import json
import yaml

from ..config import Settings
from ..contracts.core import ClassLabel, MacroClass, RGB8, SceneId
from ..adapters.csv_exporter import CSVExporter
from ..adapters.geopandas_sites_loader import GeoPandasSitesLoader
from ..adapters.json_tree_store import JsonTreeStore
from ..adapters.matplotlib_renderer import MatplotlibMapRenderer
from ..adapters.rasterio_geometry_clipper import RasterioGeometryClipper
from ..adapters.rasterio_raster_reader import RasterioRasterReader
from ..adapters.rasterio_raster_writer import RasterioRasterWriter
from ..services.pipeline_service import LandCoverPipeline, PipelineInputs, PipelineSpec

SETTINGS_YAML = Path("00-Config") / "settings.yaml"
CLASS_LABELS_JSON = Path("00-Config") / "class_labels.json"


def load_settings_from_yaml(path: Path, **overrides) -> Settings:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    data.update(overrides)
    return Settings(**data)

def load_class_labels(path: Path) -> tuple[ClassLabel, ...]:
    items = json.loads(path.read_text(encoding="utf-8"))
    out: list[ClassLabel] = []
    for i, it in enumerate(items):
        out.append(
            ClassLabel(
                id=int(it.get("id", i + 1)),
                name=str(it["name"]),
                macro=MacroClass(it.get("macro", MacroClass.OTHER.value)),
                color=RGB8(**it.get("color", {})),
            )
        )
    return tuple(out)

def build_settings(project_root: Path) -> Settings:
    """
    settings.yaml (si existe) + class_labels.json (si Settings no trae clases).
    Sin YAML -> Settings() por defecto (env/.env) con project_root dado.
    """
    root = Path(project_root)
    cfg = (root / SETTINGS_YAML).resolve()
    if cfg.exists():
        st = load_settings_from_yaml(cfg, project_root=root)
    else:
        st = Settings(project_root=root)
    if not st.classes:
        labels_json = (root / CLASS_LABELS_JSON).resolve()
        if labels_json.exists():
            st = st.model_copy(update={"classes": load_class_labels(labels_json)})
    return st

def build_pipeline() -> LandCoverPipeline:
    """Cablea los adapters concretos (rasterio/geopandas/matplotlib/JSON/CSV)."""
    return LandCoverPipeline(
        reader=RasterioRasterReader(),
        sites=GeoPandasSitesLoader(),
        clipper=RasterioGeometryClipper(),
        writer=RasterioRasterWriter(),
        tree_store=JsonTreeStore(),
        renderer=MatplotlibMapRenderer(),
        reporter=CSVExporter(),
    )

def build_spec(settings: Settings, scene: str, *, write_outputs: bool = True) -> PipelineSpec:
    """PipelineSpec desde Settings; rutas de salida según output_patterns."""
    outs: dict = {}
    if write_outputs:
        def o(key: str) -> Path:
            return settings.out_path(key, scene=scene)
        outs = dict(
            out_reflectance=o("reflectance"),
            out_samples=o("samples"),
            out_tree=o("tree"),
            out_classmap=o("classmap"),
            out_confidence=o("confidence") if settings.with_confidence else None,
            out_map=o("map"),
            out_report=o("report"),
        )
    return PipelineSpec(
        order=tuple(settings.band_order),
        calibration=settings.reflectance,
        tree=settings.tree,
        label_field=settings.label_field,
        declared_classes=tuple(settings.classes),
        tile_rows=settings.tile_rows,
        workers=settings.workers,
        with_confidence=settings.with_confidence,
        map_title=scene,
        **outs,
    )

def build_inputs(settings: Settings, scene: str, *, with_study_area: bool = True) -> PipelineInputs:
    """Entradas por convención de carpetas (input_patterns); el área de estudio solo si existe."""
    band_uris = {b: str(p) for b, p in settings.band_paths(scene).items()}
    study = settings.in_path("study_area")
    try:
        scene_id = SceneId.from_landsat_id(scene)
    except ValueError:
        scene_id = SceneId(name=scene)
    return PipelineInputs(
        band_uris=band_uris,
        scene=scene_id,
        sites_uri=str(settings.in_path("training_sites")),
        study_area_uri=str(study) if with_study_area and study.exists() else None,
    )
