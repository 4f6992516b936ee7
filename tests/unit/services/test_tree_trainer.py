import numpy as np
import pytest
from lcplatform.contracts.core import TreeParams
from lcplatform.contracts.errors import InsufficientDataError, TrainingDataError
from lcplatform.contracts.products import LabeledSamples
from lcplatform.contracts.tree import TreeLeaf, TreeSplit
from lcplatform.services.tree_trainer import DecisionTreeTrainer, best_split, impurity
from tests.factories import mapping

def _fit(X, y, names=None, **params):
    X = np.asarray(X, dtype=np.float64)
    names = names or tuple(f"f{i}" for i in range(X.shape[1]))
    classes = mapping(*[chr(ord("A") + i) for i in range(int(max(y)))])
    return DecisionTreeTrainer(TreeParams(**params)).fit_arrays(X, np.asarray(y), classes, names)

def _leaves_reachable(node, acc):
    if isinstance(node, TreeLeaf):
        acc.append(node)
    else:
        _leaves_reachable(node.left, acc); _leaves_reachable(node.right, acc)
    return acc

def test_impurity_gini_and_entropy():
    assert impurity([5, 5])[0] == pytest.approx(0.5)
    assert impurity([4, 0])[0] == pytest.approx(0.0)
    assert impurity([5, 5], "entropy")[0] == pytest.approx(1.0)
    assert impurity([1, 1, 1, 1], "entropy")[0] == pytest.approx(2.0)
    assert impurity([0, 0])[0] == 0.0

def test_two_rows_single_split_at_midpoint():
    t = _fit([[10.0, 5.0], [90.0, 5.0]], [1, 2])
    assert isinstance(t.root, TreeSplit)
    assert t.root.feature == 0
    assert t.root.threshold == pytest.approx(50.0)
    assert 10.0 < t.root.threshold < 90.0
    assert t.root.left == TreeLeaf(code=1, counts=(1, 0), impurity=0.0)
    assert t.root.right.code == 2
    assert t.depth() == 1

def test_tie_break_lowest_feature_then_lowest_threshold():
    # ambas features separan perfecto -> gana la feature 0
    t = _fit([[1.0, 1.0], [2.0, 2.0]], [1, 2])
    assert t.root.feature == 0
    # en una feature, dos umbrales con igual impureza -> el menor
    X = [[0.0], [1.0], [2.0], [3.0]]
    cand = best_split(np.asarray(X), np.array([0, 1, 1, 0]), 2)
    assert cand.threshold == pytest.approx(0.5)

def test_midpoint_rounding_stays_below_upper_value():
    a = 1.0
    b = np.nextafter(1.0, 2.0)
    t = _fit([[a], [b]], [1, 2])
    assert a <= t.root.threshold < b

def test_pure_node_is_leaf_and_majority_tie_lowest_code():
    t = _fit([[1.0], [1.0], [1.0], [1.0]], [2, 1, 2, 1])
    # sin umbral posible -> hoja con empate 2-2 -> menor código
    assert isinstance(t.root, TreeLeaf)
    assert t.root.code == 1

def test_max_depth_and_min_samples():
    X = [[i] for i in range(8)]
    y = [1, 2, 1, 2, 1, 2, 1, 2]
    assert _fit(X, y).depth() > 1
    assert _fit(X, y, max_depth=1).depth() == 1
    t = _fit(X, y, min_samples_split=9)
    assert isinstance(t.root, TreeLeaf)
    t = _fit(X, y, min_samples_leaf=3)
    for leaf in t.leaves():
        assert leaf.n_samples >= 3

def test_no_strict_reduction_stops():
    # XOR-like en 1 feature sin ganancia en la raíz con gini -> hoja
    t = _fit([[0.0], [0.0], [1.0], [1.0]], [1, 2, 1, 2])
    assert isinstance(t.root, TreeLeaf)

def test_leaves_never_hallucinate_labels():
    rng = np.random.default_rng(7)
    X = rng.normal(size=(60, 3))
    y = (X[:, 0] > 0).astype(int) + (X[:, 2] > 0.5).astype(int) + 1
    t = _fit(X, y, max_depth=3)
    for leaf in _leaves_reachable(t.root, []):
        assert leaf.counts[leaf.code - 1] > 0
        assert leaf.counts[leaf.code - 1] == max(leaf.counts)

def test_deterministic_structure():
    rng = np.random.default_rng(3)
    X = rng.integers(0, 5, size=(40, 4)).astype(float)  # muchos empates
    y = rng.integers(1, 4, size=40)
    assert _fit(X, y).to_dict() == _fit(X, y).to_dict()

def test_perfect_fit_on_separable_data():
    X = np.array([[1, 9], [2, 8], [3, 1], [4, 2], [8, 8], [9, 9]], dtype=float)
    y = np.array([1, 1, 2, 2, 3, 3])
    t = _fit(X, y, criterion="entropy")
    assert [t.predict_row(x) for x in X] == y.tolist()
    assert t.criterion == "entropy"

def test_fit_from_labeled_samples():
    s = LabeledSamples(
        X=np.array([[10.0], [90.0]], dtype=np.float32), y=np.array([1, 2], dtype=np.int32),
        classes=mapping("agua", "suelo"), feature_names=("nir",),
    )
    t = DecisionTreeTrainer().fit(s)
    assert t.feature_names == ("nir",)
    assert t.predict_label([20.0]) == "agua"

def test_insufficient_data():
    with pytest.raises(InsufficientDataError):
        _fit([[1.0]], [1])
    with pytest.raises(InsufficientDataError):
        _fit([[1.0], [2.0], [3.0]], [1, 1, 1])

def test_bad_training_data():
    with pytest.raises(TrainingDataError):
        _fit([[1.0], [np.nan]], [1, 2])
    with pytest.raises(TrainingDataError):
        DecisionTreeTrainer().fit_arrays(np.zeros((3, 1)), np.array([1, 2]), mapping("a", "b"), ("x",))
    with pytest.raises(TrainingDataError):
        DecisionTreeTrainer().fit_arrays(np.zeros((2, 1)), np.array([1, 3]), mapping("a", "b"), ("x",))
