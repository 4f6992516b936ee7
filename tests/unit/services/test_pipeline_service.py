from pathlib import Path

import numpy as np
import pytest
from lcplatform.contracts.core import ReflectanceCalibration, SceneId, Stage
from lcplatform.contracts.errors import EmptyTrainingSetError, LandCoverError
from lcplatform.contracts.geo import GeoRaster
from lcplatform.services.pipeline_service import LandCoverPipeline, PipelineInputs, PipelineSpec
from tests.factories import make_profile, pixel_box, site

# DN que corrigen a reflectancias bien separadas
DN_LOW, DN_HIGH = 10000, 30000

class FakeReader:
    def __init__(self, bands):
        self.bands = bands
    def read(self, uri, band_index=None):
        arr = self.bands[uri]
        return GeoRaster(data=arr, profile=make_profile(arr.shape[1], arr.shape[0], dtype=arr.dtype.name))
    def profile(self, uri):
        return self.read(uri).profile
    def size(self, uri):
        return self.bands[uri].shape[::-1]
    def exists(self, uri):
        return uri in self.bands

class FakeSites:
    def __init__(self, sites):
        self._sites = sites
    def load(self, uri, *, label_field="class", target_crs=None):
        return list(self._sites)

class FakeWriter:
    def __init__(self):
        self.written = []
    def write(self, uri, raster, *, band_names=None, tags=None, compress=None):
        self.written.append((uri, raster, tags))
        Path(uri).parent.mkdir(parents=True, exist_ok=True)
        Path(uri).touch()
        return uri

class FakeStore:
    def __init__(self, tree=None):
        self.tree = tree
        self.saved = []
    def save(self, tree, uri):
        self.saved.append(uri)
        Path(uri).touch()
        self.tree = tree
        return uri
    def load(self, uri):
        return self.tree

class FakeRenderer:
    def render(self, classified, out_uri, *, title=None):
        return out_uri

class BrokenRenderer:
    def render(self, classified, out_uri, *, title=None):
        raise OSError("disco lleno")

class CountingReader(FakeReader):
    def __init__(self, bands):
        super().__init__(bands)
        self.calls = 0
    def read(self, uri, band_index=None):
        self.calls += 1
        return super().read(uri, band_index)

def _bands():
    red = np.full((4, 4), DN_LOW, dtype=np.uint16)
    nir = np.full((4, 4), DN_LOW, dtype=np.uint16)
    nir[:, 2:] = DN_HIGH          # mitad derecha "vegetación"
    nir[3, 3] = 0                 # fuera de rango -> no-data
    return {"red.tif": red, "nir.tif": nir}

def _sites():
    return [site(pixel_box(0, 0), "suelo"), site(pixel_box(1, 0), "suelo"),
            site(pixel_box(0, 3), "bosque"), site(pixel_box(1, 3), "bosque")]

def _inputs(**kw):
    base = dict(band_uris={"red": "red.tif", "nir": "nir.tif"}, scene=SceneId(name="t"), sites_uri="sites.geojson")
    base.update(kw)
    return PipelineInputs(**base)

def _pipeline(sites=None, store=None):
    return LandCoverPipeline(
        reader=FakeReader(_bands()), sites=FakeSites(_sites() if sites is None else sites),
        writer=FakeWriter(), tree_store=store or FakeStore(), renderer=FakeRenderer(),
    )

def test_run_end_to_end_in_memory(tmp_path):
    pl = _pipeline()
    spec = PipelineSpec(order=("red", "nir"), out_classmap=tmp_path / "c.tif", out_tree=tmp_path / "t.json",
                        out_samples=tmp_path / "s.csv", out_map=tmp_path / "m.png")
    res = pl.run(_inputs(), spec)
    cm = res.classified
    assert cm.classes.names() == ("bosque", "suelo")
    assert cm.label_at(0, 0) == "suelo"
    assert cm.label_at(2, 3) == "bosque"
    assert cm.label_at(3, 3) is None
    assert res.training_accuracy == pytest.approx(1.0)
    assert res.summary.n_nodata == 1
    assert set(res.outputs) == {"classmap", "tree", "samples", "map"}
    assert (tmp_path / "s.csv").exists()
    uri, _, tags = pl.writer.written[0]
    assert tags == {"class_1": "bosque", "class_2": "suelo"}
    assert res.meta.duration_s is not None

def test_run_without_outputs_writes_nothing():
    pl = _pipeline()
    res = pl.run(_inputs(), PipelineSpec(order=("red", "nir")))
    assert res.outputs == {}
    assert pl.writer.written == [] and pl.tree_store.saved == []

def test_run_with_stored_tree_skips_training():
    first = _pipeline().run(_inputs(), PipelineSpec(order=("red", "nir")))
    pl = _pipeline(sites=[], store=FakeStore(first.tree))
    res = pl.run(_inputs(sites_uri=None, tree_uri="t.json"), PipelineSpec(order=("red", "nir")))
    assert res.samples is None and res.training_accuracy is None
    assert np.array_equal(res.classified.data, first.classified.data)

def test_failure_in_extract_writes_nothing(tmp_path):
    pl = _pipeline(sites=[site(pixel_box(0, 0), "suelo")])
    spec = PipelineSpec(order=("red", "nir"), out_reflectance=tmp_path / "r.tif", out_classmap=tmp_path / "c.tif")
    with pytest.raises(EmptyTrainingSetError) as ei:
        pl.run(_inputs(), spec)
    assert ei.value.stage == Stage.EXTRACT
    assert pl.writer.written == []

def test_foreign_errors_are_wrapped_with_stage():
    pl = _pipeline()
    with pytest.raises(LandCoverError) as ei:
        pl.run(_inputs(band_uris={"red": "red.tif", "nir": "nope.tif"}), PipelineSpec(order=("red", "nir")))
    assert ei.value.stage == Stage.LOAD
    assert isinstance(ei.value.__cause__, KeyError)

def test_missing_band_in_order():
    with pytest.raises(LandCoverError) as ei:
        _pipeline().run(_inputs(), PipelineSpec(order=("red", "nir", "swir1")))
    assert ei.value.stage == Stage.LOAD

def test_invalid_calibration_fails_in_correct():
    bad = ReflectanceCalibration(valid_min=5, valid_max=5)
    with pytest.raises(LandCoverError) as ei:
        _pipeline().run(_inputs(), PipelineSpec(order=("red", "nir"), calibration=bad))
    assert ei.value.stage == Stage.CORRECT

def test_crop_requires_clipper():
    with pytest.raises(LandCoverError) as ei:
        _pipeline().run(_inputs(study_area_uri="aoi.geojson"), PipelineSpec(order=("red", "nir")))
    assert ei.value.stage == Stage.CROP

def test_missing_output_port_fails_before_reading(tmp_path):
    reader = CountingReader(_bands())
    store = FakeStore()
    pl = LandCoverPipeline(reader=reader, sites=FakeSites(_sites()), writer=FakeWriter(), tree_store=store)
    spec = PipelineSpec(order=("red", "nir"), out_reflectance=tmp_path / "r.tif",
                        out_tree=tmp_path / "t.json", out_map=tmp_path / "m.png")
    with pytest.raises(LandCoverError) as ei:
        pl.run(_inputs(), spec)
    assert ei.value.stage == Stage.LOAD
    assert "MapRendererPort" in ei.value.message
    assert reader.calls == 0
    assert pl.writer.written == [] and store.saved == []
    assert list(tmp_path.iterdir()) == []

def test_report_without_reporter_fails_before_reading(tmp_path):
    pl = _pipeline()
    with pytest.raises(LandCoverError) as ei:
        pl.run(_inputs(), PipelineSpec(order=("red", "nir"), out_report=tmp_path / "r.csv"))
    assert ei.value.stage == Stage.LOAD
    assert "ReportExporterPort" in ei.value.message

def test_failed_export_removes_partial_outputs(tmp_path):
    pl = _pipeline()
    pl.renderer = BrokenRenderer()
    spec = PipelineSpec(order=("red", "nir"), out_reflectance=tmp_path / "r.tif", out_samples=tmp_path / "s.csv",
                        out_tree=tmp_path / "t.json", out_classmap=tmp_path / "c.tif", out_map=tmp_path / "m.png")
    with pytest.raises(LandCoverError) as ei:
        pl.run(_inputs(), spec)
    assert ei.value.stage == Stage.EXPORT
    assert isinstance(ei.value.__cause__, OSError)
    # llegaron a escribirse antes del fallo, y ya no están
    assert [Path(u).name for u, _, _ in pl.writer.written] == ["r.tif", "c.tif"]
    assert pl.tree_store.saved
    assert list(tmp_path.iterdir()) == []

def test_export_writes_only_available_products(tmp_path):
    pl = _pipeline()
    res = pl.run(_inputs(), PipelineSpec(order=("red", "nir")))
    spec = PipelineSpec(order=("red", "nir"), out_tree=tmp_path / "t.json", out_samples=tmp_path / "s.csv",
                        out_classmap=tmp_path / "c.tif")
    out = pl.export(spec, tree=res.tree)
    assert out == {"tree": tmp_path / "t.json"}
    assert pl.writer.written == []
    assert not (tmp_path / "s.csv").exists()
