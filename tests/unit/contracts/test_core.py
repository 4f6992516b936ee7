import pytest
from datetime import date
from pydantic import ValidationError

from lcplatform.contracts.core import (
    ClassLabel, ClassLabelMapping, MacroClass, RGB8, ReflectanceCalibration, SceneId, Stage, TreeParams, RunMeta,
)
from lcplatform.contracts.errors import EmptyTrainingSetError, FeatureMismatchError, InvalidRangeError, LandCoverError

def test_rgb8_and_label():
    col = RGB8(r=10, g=20, b=30)
    lab = ClassLabel(id=1, name="agua", macro=MacroClass.WATER, color=col)
    assert lab.color.to_hex() == "#0A141E"

def test_mapping_from_names_ids_in_order():
    m = ClassLabelMapping.from_names(["bosque", "pasto", "urbano"])
    assert m.names() == ("bosque", "pasto", "urbano")
    assert [c.id for c in m.labels] == [1, 2, 3]
    assert m.code_of("pasto") == 2
    assert m.name_of(3) == "urbano"
    assert len(m) == 3

def test_mapping_inherits_declared_color_and_macro():
    declared = [ClassLabel(id=7, name="agua", macro=MacroClass.WATER, color=RGB8(r=0, g=0, b=255))]
    m = ClassLabelMapping.from_names(["agua", "suelo"], declared)
    assert m.labels[0].macro is MacroClass.WATER
    assert m.palette()[1] == (0, 0, 255)
    assert m.labels[1].macro is MacroClass.OTHER

def test_mapping_unknowns_raise_keyerror():
    m = ClassLabelMapping.from_names(["a", "b"])
    with pytest.raises(KeyError):
        m.code_of("c")
    with pytest.raises(KeyError):
        m.name_of(0)  # 0 = no-data, no es clase

@pytest.mark.parametrize("ids", [[2, 3], [1, 1], [2, 1]])
def test_mapping_ids_must_be_1_to_k(ids):
    with pytest.raises(ValidationError):
        ClassLabelMapping(labels=tuple(ClassLabel(id=i, name=f"c{n}") for n, i in enumerate(ids)))

def test_class_id_zero_is_reserved():
    with pytest.raises(ValidationError):
        ClassLabel(id=0, name="nodata")

def test_mapping_duplicate_names_fail():
    with pytest.raises(ValidationError):
        ClassLabelMapping(labels=(ClassLabel(id=1, name="a"), ClassLabel(id=2, name="a")))

def test_sceneid_from_landsat_id():
    s = SceneId.from_landsat_id("LC08_L2SP_001075_20230115_20230131_02_T1")
    assert s.acquired == date(2023, 1, 15)

@pytest.mark.parametrize("bad", ["S2A_MSIL2A_20230115", "LC08_L2SP_00107_20230115", ""])
def test_sceneid_from_landsat_id_bad(bad):
    with pytest.raises(ValueError):
        SceneId.from_landsat_id(bad)

def test_calibration_defaults_and_output_range():
    c = ReflectanceCalibration()
    lo, hi = c.output_range()
    assert lo == pytest.approx((7273 * 0.0000275 - 0.2) * 100)
    assert hi == pytest.approx((43636 * 0.0000275 - 0.2) * 100)
    assert 0.0 < lo < 0.01 and 99.9 < hi < 100.1

def test_tree_params_defaults_match_sklearn():
    p = TreeParams()
    assert (p.criterion, p.max_depth, p.min_samples_split, p.min_samples_leaf) == ("gini", None, 2, 1)
    with pytest.raises(ValidationError):
        TreeParams(min_samples_split=1)
    with pytest.raises(ValidationError):
        TreeParams(criterion="log_loss")

def test_runmeta_duration():
    m = RunMeta(scene=SceneId(name="x"))
    assert m.duration_s is None
    assert m.end_now().duration_s >= 0.0

def test_errors_carry_stage_and_run_error():
    assert InvalidRangeError("x").stage is Stage.CORRECT
    e = EmptyTrainingSetError(0, ["a"])
    assert isinstance(e, ValueError) and isinstance(e, LandCoverError)
    assert e.stage is Stage.EXTRACT
    re_ = FeatureMismatchError(["red", "nir"], ["nir", "red"]).to_run_error()
    assert re_.stage is Stage.CLASSIFY and "nir" in re_.message
    assert LandCoverError("y", stage=Stage.LOAD).stage is Stage.LOAD
