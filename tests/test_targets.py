from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from markovcal.calibration import Target, TargetSet, load_targets, save_targets, synthetic_targets
from markovcal.model import MarkovCRSModel

TRUE_PARAMS = {"p_mets": 0.1, "p_die_mets": 0.05}


def test_synthetic_targets_are_reproducible():
    model = MarkovCRSModel(n_cycles=60)
    t1 = synthetic_targets(model.simulate, TRUE_PARAMS, np.random.default_rng(5))
    t2 = synthetic_targets(model.simulate, TRUE_PARAMS, np.random.default_rng(5))
    assert t1.names == ["surv"]
    assert len(t1["surv"]) == 60
    assert np.array_equal(t1["surv"].value, t2["surv"].value)
    assert np.all(t1["surv"].se >= 0.005)


def test_synthetic_targets_subset_times():
    model = MarkovCRSModel(n_cycles=60)
    targets = synthetic_targets(model.simulate, TRUE_PARAMS, np.random.default_rng(0), times=[6, 12, 24])
    assert targets["surv"].time.tolist() == [6, 12, 24]


def test_frame_round_trip(tmp_path: Path):
    targets = TargetSet({
        "surv": Target("surv", [1, 2, 3], [0.99, 0.98, 0.96], [0.01, 0.01, 0.02]),
    })
    path = tmp_path / "targets.csv"
    save_targets(targets, path)
    loaded = load_targets(path)
    assert loaded.names == ["surv"]
    assert np.allclose(loaded["surv"].value, [0.99, 0.98, 0.96])
    assert np.allclose(loaded["surv"].lower, targets["surv"].lower)


def test_model_values_alignment():
    target = Target("surv", [1, 3], [1.0, 0.5], [0.1, 0.1])
    assert target.model_values(np.array([1.0, 0.8, 0.6])).tolist() == [1.0, 0.6]
    with pytest.raises(ValueError):
        target.model_values(np.array([1.0, 0.9]))


def test_invalid_targets_raise():
    with pytest.raises(ValueError):
        Target("surv", [1, 2], [0.9], [0.1])
    with pytest.raises(ValueError):
        Target("surv", [1], [0.9], [0.0])
    with pytest.raises(ValueError):
        Target("surv", [0], [0.9], [0.1])
    with pytest.raises(ValueError):
        TargetSet.from_frame(pd.DataFrame({"target": ["surv"], "time": [1]}))


def test_with_weights():
    targets = TargetSet({"surv": Target("surv", [1], [0.9], [0.1])})
    assert targets.with_weights({"surv": 2.0}).get_weights() == {"surv": 2.0}
    with pytest.raises(ValueError):
        targets.with_weights({"other": 1.0})


def test_fractional_times_are_rejected():
    with pytest.raises(ValueError, match="whole cycles"):
        Target("surv", [1.5, 2.0], [0.9, 0.8], [0.1, 0.1])
    assert Target("surv", [1.0, 2.0], [0.9, 0.8], [0.1, 0.1]).time.tolist() == [1, 2]


def test_missing_weight_in_csv_is_rejected(tmp_path: Path):
    path = tmp_path / "targets.csv"
    pd.DataFrame({
        "target": ["surv", "surv"],
        "time": [1, 2],
        "value": [0.99, 0.98],
        "se": [0.01, 0.01],
        "weight": [np.nan, np.nan],
    }).to_csv(path, index=False)
    with pytest.raises(ValueError, match="weight"):
        load_targets(path)
