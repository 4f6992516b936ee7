# src/lcplatform/services/pipeline_service.py
"""
Pipeline de cobertura de suelo, contracts-first.
Etapas en estricto orden:
  LOAD -> (CROP) -> CORRECT -> EXTRACT -> TRAIN -> CLASSIFY -> EXPORT (opcional)

No asume backends concretos: todo va vía *ports*. No usa Settings ni calcula rutas.
Si una etapa falla, no queda nada escrito: los ports de salida se validan antes
de LOAD y EXPORT (siempre la última) retira lo escrito si falla a medias.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from ..contracts.core import (
    BandName,
    ClassLabel,
    ReflectanceCalibration,
    RunMeta,
    SceneId,
    Stage,
    TreeParams,
)
from ..contracts.errors import LandCoverError
from ..contracts.geo import GeoProfile, GeoRaster, validate_profile_compat
from ..contracts.products import BandSet, ClassifiedRaster, LabeledSamples, SpectralStack
from ..contracts.tree import DecisionTree
from ..ports.exporters import ReportExporterPort
from ..ports.raster_read import RasterReaderPort
from ..ports.raster_write import RasterWriterPort
from ..ports.renderer import MapRendererPort
from ..ports.roi import ROIClipperPort
from ..ports.training_sites import TrainingSitesPort
from ..ports.tree_store import TreeStorePort
from .classmap_service import ClassMapService, ClassMapSummary
from .feature_service import FeatureService
from .reflectance_service import ReflectanceService
from .tree_classifier_service import TreeClassifierService
from .tree_trainer import DecisionTreeTrainer

log = logging.getLogger(__name__)

# ----------------------
# Especificaciones / DTOs
# ----------------------

@dataclass(frozen=True)
class PipelineInputs:
    band_uris: Mapping[BandName, str]
    scene: SceneId
    sites_uri: Optional[str] = None       # requerido salvo que venga tree_uri
    study_area_uri: Optional[str] = None  # None -> sin recorte
    tree_uri: Optional[str] = None        # árbol ya entrenado (omite EXTRACT/TRAIN)


@dataclass(frozen=True)
class PipelineSpec:
    order: Tuple[BandName, ...]
    calibration: ReflectanceCalibration = ReflectanceCalibration()
    tree: TreeParams = TreeParams()
    label_field: str = "class"
    declared_classes: Tuple[ClassLabel, ...] = ()
    tile_rows: int = 256
    workers: int = 1
    with_confidence: bool = False
    # Salidas: None -> no se escribe
    out_reflectance: Optional[Path] = None
    out_samples: Optional[Path] = None
    out_tree: Optional[Path] = None
    out_classmap: Optional[Path] = None
    out_confidence: Optional[Path] = None
    out_map: Optional[Path] = None
    out_quicklook: Optional[Path] = None
    out_report: Optional[Path] = None
    map_title: Optional[str] = None


@dataclass(frozen=True)
class PipelineResult:
    classified: ClassifiedRaster
    tree: DecisionTree
    summary: ClassMapSummary
    meta: RunMeta
    samples: Optional[LabeledSamples] = None
    training_accuracy: Optional[float] = None
    outputs: Mapping[str, Path] = field(default_factory=dict)

# ----------------------
# Servicio
# ----------------------

@dataclass
class LandCoverPipeline:
    reader: RasterReaderPort
    sites: Optional[TrainingSitesPort] = None
    clipper: Optional[ROIClipperPort] = None
    writer: Optional[RasterWriterPort] = None
    tree_store: Optional[TreeStorePort] = None
    renderer: Optional[MapRendererPort] = None
    reporter: Optional[ReportExporterPort] = None

    @contextmanager
    def _stage(self, stage: Stage) -> Iterator[None]:
        log.info("[%s] inicio", stage.value)
        try:
            yield
        except LandCoverError as ex:
            log.error("[%s] %s", ex.stage.value, ex.message)
            raise
        except Exception as ex:
            log.error("[%s] %s: %s", stage.value, type(ex).__name__, ex)
            raise LandCoverError(f"{type(ex).__name__}: {ex}", stage=stage) from ex

    # --------- API principal ---------
    def run(self, inputs: PipelineInputs, spec: PipelineSpec) -> PipelineResult:
        meta = RunMeta(scene=inputs.scene, roi_id=inputs.study_area_uri, calibration=spec.calibration)

        with self._stage(Stage.LOAD):
            self.check_outputs(spec)
            raw = self.load_stack(inputs.band_uris, spec.order)

        if inputs.study_area_uri is not None:
            with self._stage(Stage.CROP):
                raw = self.crop(raw, inputs.study_area_uri)

        with self._stage(Stage.CORRECT):
            corrected = ReflectanceService(spec.calibration).correct(raw)

        samples: Optional[LabeledSamples] = None
        if inputs.tree_uri is not None:
            with self._stage(Stage.TRAIN):
                if self.tree_store is None:
                    raise RuntimeError("TreeStorePort no configurado")
                tree = self.tree_store.load(inputs.tree_uri)
        else:
            with self._stage(Stage.EXTRACT):
                samples = self.extract(corrected, inputs, spec)
            with self._stage(Stage.TRAIN):
                tree = DecisionTreeTrainer(spec.tree).fit(samples)

        classifier = TreeClassifierService(
            tile_rows=spec.tile_rows, workers=spec.workers, with_confidence=spec.with_confidence
        )
        with self._stage(Stage.CLASSIFY):
            classified = classifier.classify(corrected, tree)
            acc = classifier.training_accuracy(samples, tree) if samples is not None else None
            if acc is not None:
                log.info("Exactitud sobre entrenamiento: %.3f", acc)

        summary = ClassMapService().summarize(classified)

        with self._stage(Stage.EXPORT):
            outputs = self.export(
                spec, corrected=corrected, samples=samples, tree=tree, classified=classified, summary=summary,
            )

        meta = meta.end_now()
        log.info("Pipeline %s terminado en %.2fs", inputs.scene.name, meta.duration_s or 0.0)
        return PipelineResult(
            classified=classified,
            tree=tree,
            summary=summary,
            meta=meta,
            samples=samples,
            training_accuracy=acc,
            outputs=outputs,
        )

    # --------- Fases internas ---------
    def load_stack(self, band_uris: Mapping[BandName, str], order: Sequence[BandName]) -> SpectralStack:
        if not band_uris:
            raise ValueError("band_uris vacío")
        missing = [b for b in order if b not in band_uris]
        if missing:
            raise KeyError(f"Faltan bandas requeridas: {missing}")
        rasters: Dict[BandName, GeoRaster] = {}
        ref: Optional[GeoProfile] = None
        for b in order:
            r = self.reader.read(band_uris[b])
            if ref is None:
                ref = r.profile
            else:
                validate_profile_compat(ref, r.profile)
            rasters[b] = r
        return BandSet(bands=rasters).stack(tuple(order))

    def crop(self, stack: SpectralStack, study_area_uri: str) -> SpectralStack:
        if self.clipper is None:
            raise RuntimeError("Se proporcionó área de estudio pero no hay ROIClipperPort configurado")
        geom, geom_crs = self.clipper.load_geometry(study_area_uri)
        clipped = self.clipper.clip_raster(stack.raster, geom, geom_crs)
        p = clipped.profile
        log.info("Recorte: %dx%d píxeles", p.width, p.height)
        return SpectralStack(raster=clipped, band_names=stack.band_names)

    def extract(self, corrected: SpectralStack, inputs: PipelineInputs, spec: PipelineSpec) -> LabeledSamples:
        if self.sites is None:
            raise RuntimeError("TrainingSitesPort no configurado")
        if inputs.sites_uri is None:
            raise ValueError("sites_uri requerido para entrenar (o entrega tree_uri)")
        sites = self.sites.load(inputs.sites_uri, label_field=spec.label_field, target_crs=corrected.profile.crs)
        log.info("%d sitio(s) de entrenamiento", len(sites))
        return FeatureService().extract(corrected, sites, declared=spec.declared_classes)

    # --------- Export (opcional y sin rutas implícitas) ---------
    def check_outputs(self, spec: PipelineSpec) -> None:
        """Falla antes de leer nada si alguna salida pedida no tiene su port."""
        needs = (
            ("RasterWriterPort", self.writer, (spec.out_reflectance, spec.out_classmap, spec.out_confidence)),
            ("TreeStorePort", self.tree_store, (spec.out_tree,)),
            ("MapRendererPort", self.renderer, (spec.out_map,)),
            ("ReportExporterPort", self.reporter, (spec.out_report,)),
        )
        missing = [name for name, port, outs in needs if port is None and any(o is not None for o in outs)]
        if missing:
            raise RuntimeError(f"Salidas pedidas sin port configurado: {missing}")

    def export(
        self,
        spec: PipelineSpec,
        *,
        corrected: Optional[SpectralStack] = None,
        samples: Optional[LabeledSamples] = None,
        tree: Optional[DecisionTree] = None,
        classified: Optional[ClassifiedRaster] = None,
        summary: Optional[ClassMapSummary] = None,
    ) -> Dict[str, Path]:
        """
        Escribe las salidas pedidas en `spec` cuyo producto esté disponible.
        Todo o nada: si una escritura falla se borran las ya escritas.
        """
        self.check_outputs(spec)
        cms = ClassMapService(reporter=self.reporter)
        out: Dict[str, Path] = {}
        touched: List[Path] = []

        def _put(key: str, path: Path, write: Callable[[], object]) -> None:
            touched.append(Path(path))
            out[key] = Path(write())  # type: ignore[arg-type]

        try:
            if spec.out_reflectance is not None and corrected is not None:
                _put("reflectance", spec.out_reflectance, lambda: self.writer.write(
                    str(spec.out_reflectance), corrected.raster, band_names=corrected.band_names,
                ))
            if spec.out_samples is not None and samples is not None:
                _put("samples", spec.out_samples, lambda: _write_samples(samples, Path(spec.out_samples)))
            if spec.out_tree is not None and tree is not None:
                _put("tree", spec.out_tree, lambda: self.tree_store.save(tree, str(spec.out_tree)))
            if classified is not None:
                if spec.out_classmap is not None:
                    tags = {f"class_{c.id}": c.name for c in classified.classes.labels}
                    _put("classmap", spec.out_classmap,
                         lambda: self.writer.write(str(spec.out_classmap), classified.raster, tags=tags))
                if spec.out_confidence is not None and classified.confidence is not None:
                    _put("confidence", spec.out_confidence,
                         lambda: self.writer.write(str(spec.out_confidence), classified.confidence))
                if spec.out_quicklook is not None:
                    _put("quicklook", spec.out_quicklook, lambda: cms.save_png(classified, Path(spec.out_quicklook)))
                if spec.out_map is not None:
                    _put("map", spec.out_map,
                         lambda: self.renderer.render(classified, str(spec.out_map), title=spec.map_title))
                if spec.out_report is not None:
                    _put("report", spec.out_report,
                         lambda: cms.export_report(classified, Path(spec.out_report), summary))
        except Exception:
            _remove(touched)
            raise

        for k, v in out.items():
            log.info("Escrito %s: %s", k, v)
        return out


def _write_samples(samples: LabeledSamples, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    samples.to_frame().to_csv(path, index=False)
    return path


def _remove(paths: Sequence[Path]) -> None:
    for p in paths:
        try:
            p.unlink(missing_ok=True)
        except OSError as ex:
            log.warning("No se pudo borrar salida parcial %s: %s", p, ex)
    if paths:
        log.warning("EXPORT falló; %d salida(s) retiradas", len(paths))



__all__ = ["PipelineInputs", "PipelineSpec", "PipelineResult", "LandCoverPipeline"]
