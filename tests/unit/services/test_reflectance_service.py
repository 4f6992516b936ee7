import numpy as np
import pytest
from lcplatform.contracts.core import ReflectanceCalibration
from lcplatform.contracts.errors import InvalidRangeError
from lcplatform.services.reflectance_service import ReflectanceService
from tests.factories import make_stack

S, O = 0.0000275, -0.2

def test_boundaries_scenario():
    stack = make_stack(np.array([[[7272, 7273, 43636, 43637]]], dtype=np.uint16), names=["red"])
    out = ReflectanceService().correct(stack).data[0, 0]
    assert np.isnan(out[0]) and np.isnan(out[3])
    assert out[1] == pytest.approx((7273 * S + O) * 100, abs=1e-4)
    assert out[2] == pytest.approx((43636 * S + O) * 100, abs=1e-4)
    assert out[2] == pytest.approx(100.0, abs=1e-2)

@pytest.mark.parametrize("v", [-5.0, 0.0, 7272.9, 43636.1, 1e9])
def test_out_of_range_is_nodata_regardless_of_sign(v):
    arr = np.array([v])
    assert np.isnan(ReflectanceService().correct_array(arr)[0])

def test_in_range_values_within_output_range():
    rng = np.random.default_rng(0)
    raw = rng.integers(7273, 43637, size=(2, 8, 8)).astype(np.uint16)
    out = ReflectanceService().correct(make_stack(raw)).data
    lo, hi = ReflectanceCalibration().output_range()
    assert np.isfinite(out).all()
    assert out.min() >= lo - 1e-4 and out.max() <= hi + 1e-4
    np.testing.assert_allclose(out, (raw.astype(np.float64) * S + O) * 100, rtol=1e-6)

def test_existing_nodata_stays_nodata():
    raw = np.array([[[10000, 20000]]], dtype=np.uint16)
    stack = make_stack(raw, nodata=10000.0)
    out = ReflectanceService().correct(stack).data
    assert np.isnan(out[0, 0, 0]) and np.isfinite(out[0, 0, 1])

def test_nan_input_stays_nodata():
    arr = np.array([np.nan, 20000.0], dtype=np.float32)
    out = ReflectanceService().correct_array(arr)
    assert np.isnan(out[0]) and np.isfinite(out[1])

def test_input_untouched_and_deterministic():
    raw = np.array([[[7000, 9000], [30000, 50000]]], dtype=np.uint16)
    stack = make_stack(raw.copy())
    svc = ReflectanceService()
    a = svc.correct(stack).data
    b = svc.correct(stack).data
    assert np.array_equal(stack.data, raw)
    assert a.tobytes() == b.tobytes()
    assert a.dtype == np.float32

def test_output_profile_float_nan():
    out = ReflectanceService().correct(make_stack(np.full((1, 2, 2), 9000, dtype=np.uint16)))
    assert out.profile.dtype == "float32"
    assert np.isnan(out.profile.nodata)
    assert out.band_names == ("b1",)

def test_all_nodata_is_valid_output():
    out = ReflectanceService().correct(make_stack(np.zeros((2, 3, 3), dtype=np.uint16)))
    assert np.isnan(out.data).all()

@pytest.mark.parametrize("cal", [
    ReflectanceCalibration(valid_min=10, valid_max=10),
    ReflectanceCalibration(valid_min=20, valid_max=10),
    ReflectanceCalibration(scale=0.0),
])
def test_degenerate_calibration_raises_before_work(cal):
    with pytest.raises(InvalidRangeError):
        ReflectanceService(cal).correct(make_stack(np.zeros((1, 2, 2), dtype=np.uint16)))
