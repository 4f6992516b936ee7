import numpy as np
import pytest
from lcplatform.contracts.core import NODATA_CODE
from lcplatform.contracts.errors import FeatureMismatchError
from lcplatform.contracts.products import LabeledSamples
from lcplatform.contracts.tree import DecisionTree, TreeLeaf, TreeSplit
from lcplatform.services import tree_classifier_service as tcs
from lcplatform.services.tree_classifier_service import TreeClassifierService, code_dtype, walk_flat
from lcplatform.services.tree_trainer import DecisionTreeTrainer
from tests.factories import make_stack, mapping

def _two_class_tree(names=("b1", "b2")):
    X = np.array([[10.0, 5.0], [90.0, 5.0]])
    return DecisionTreeTrainer().fit_arrays(X, np.array([1, 2]), mapping("A", "B"), names)

def _three_class_tree():
    # b1 <= 50 -> A ; si no, b2 <= 20 -> B ; si no C
    right = TreeSplit(feature=1, threshold=20.0, left=TreeLeaf(2, (0, 3, 1)), right=TreeLeaf(3, (0, 0, 4)), n_samples=8)
    root = TreeSplit(feature=0, threshold=50.0, left=TreeLeaf(1, (5, 0, 0)), right=right, n_samples=13)
    return DecisionTree(root=root, feature_names=("b1", "b2"), classes=mapping("A", "B", "C"))

def test_row_matching_training_and_nodata_pixel():
    tree = _two_class_tree()
    data = np.array([[[10.0, np.nan]], [[5.0, 5.0]]], dtype=np.float32)  # (2, 1, 2)
    out = TreeClassifierService().classify(make_stack(data), tree)
    assert out.data.tolist() == [[1, NODATA_CODE]]
    assert out.label_at(0, 0) == "A"
    assert out.label_at(0, 1) is None
    assert out.classes is tree.classes
    assert out.raster.profile.nodata == 0.0
    assert out.data.dtype == np.uint8

def test_nan_in_unvisited_band_is_ignored():
    tree = _two_class_tree()
    data = np.array([[[90.0]], [[np.nan]]], dtype=np.float32)
    out = TreeClassifierService().classify(make_stack(data), tree)
    assert out.data.tolist() == [[2]]

def test_band_order_mismatch_raises_before_pixel_work(monkeypatch):
    def boom(*a, **k):
        raise AssertionError("no debería recorrer píxeles")
    monkeypatch.setattr(tcs, "walk_flat", boom)
    tree = _two_class_tree()
    data = np.zeros((2, 3, 3), dtype=np.float32)
    with pytest.raises(FeatureMismatchError) as ei:
        TreeClassifierService().classify(make_stack(data, names=("b2", "b1")), tree)
    assert ei.value.expected == ("b1", "b2")
    with pytest.raises(FeatureMismatchError):
        TreeClassifierService().classify(make_stack(np.zeros((3, 2, 2), np.float32)), tree)

def test_walk_flat_matches_predict_row():
    tree = _three_class_tree()
    rng = np.random.default_rng(0)
    X = rng.uniform(0, 100, size=(200, 2))
    X[::17, 0] = np.nan
    leaf, valid = walk_flat(tree.flatten(), X)
    flat = tree.flatten()
    for i, row in enumerate(X):
        expected = tree.predict_row(row)
        got = int(flat.code[leaf[i]]) if valid[i] else None
        assert got == expected

def test_tiles_and_threads_give_identical_maps():
    tree = _three_class_tree()
    rng = np.random.default_rng(1)
    data = rng.uniform(0, 100, size=(2, 37, 23)).astype(np.float32)
    data[0, 5:9, 3:7] = np.nan
    stack = make_stack(data)
    ref = TreeClassifierService(tile_rows=1000).classify(stack, tree).data
    assert np.array_equal(TreeClassifierService(tile_rows=5).classify(stack, tree).data, ref)
    assert np.array_equal(TreeClassifierService(tile_rows=4, workers=4).classify(stack, tree).data, ref)
    assert (ref[5:9, 3:7] == NODATA_CODE).all()
    assert set(np.unique(ref).tolist()) <= {0, 1, 2, 3}

def test_root_leaf_tree_labels_every_pixel():
    tree = DecisionTree(root=TreeLeaf(1, (3,)), feature_names=("b1",), classes=mapping("A"))
    data = np.array([[[1.0, np.nan]]], dtype=np.float32)
    out = TreeClassifierService().classify(make_stack(data), tree)
    assert out.data.tolist() == [[1, 1]]

def test_confidence_raster():
    tree = _three_class_tree()
    data = np.array([[[10.0, 90.0, np.nan]], [[0.0, 10.0, 0.0]]], dtype=np.float32)
    out = TreeClassifierService(with_confidence=True).classify(make_stack(data), tree)
    conf = out.confidence.data
    assert conf[0, 0] == pytest.approx(1.0)
    assert conf[0, 1] == pytest.approx(0.75)
    assert np.isnan(conf[0, 2])
    assert out.confidence.profile.dtype == "float32"
    assert TreeClassifierService().classify(make_stack(data), tree).confidence is None

def test_code_dtype_widens_for_many_classes():
    assert code_dtype(2) == np.uint8
    assert code_dtype(254) == np.uint8
    assert code_dtype(255) == np.uint16
    names = [f"c{i:03d}" for i in range(300)]
    tree = DecisionTree(root=TreeLeaf(300, (0,) * 299 + (1,)), feature_names=("b1",), classes=mapping(*names))
    out = TreeClassifierService().classify(make_stack(np.ones((1, 2, 2), np.float32)), tree)
    assert out.data.dtype == np.uint16
    assert (out.data == 300).all()

def test_predict_samples_and_training_accuracy():
    tree = _three_class_tree()
    X = np.array([[10.0, 0.0], [90.0, 10.0], [90.0, 90.0], [np.nan, 0.0]])
    svc = TreeClassifierService()
    assert svc.predict_samples(X, tree).tolist() == [1, 2, 3, 0]
    samples = LabeledSamples(X=X[:3], y=np.array([1, 2, 2]), classes=tree.classes, feature_names=("b1", "b2"))
    assert svc.training_accuracy(samples, tree) == pytest.approx(2 / 3)
    with pytest.raises(FeatureMismatchError):
        svc.predict_samples(np.zeros((2, 3)), tree)

def test_module_level_classify():
    tree = _two_class_tree()
    data = np.array([[[10.0, 90.0]], [[5.0, 5.0]]], dtype=np.float32)
    assert tcs.classify(make_stack(data), tree).data.tolist() == [[1, 2]]
