import numpy as np
import pytest

from markovcal.calibration import (
    CalibrationProblem,
    GaussianLikelihood,
    NelderMeadConfig,
    define_parameter_priors,
    run_nelder_mead,
    synthetic_targets,
)
from markovcal.model import MarkovCRSModel

TRUE_PARAMS = {"p_mets": 0.1, "p_die_mets": 0.05}


def _problem():
    model = MarkovCRSModel(n_cycles=60)
    space = define_parameter_priors()
    targets = synthetic_targets(model.simulate, TRUE_PARAMS, np.random.default_rng(4))
    return CalibrationProblem(space, GaussianLikelihood(model.simulate, targets, space))


def test_recovers_true_parameters():
    problem = _problem()
    result = run_nelder_mead(problem, NelderMeadConfig(n_starts=4), np.random.default_rng(0))
    best = result.best()
    low, high = sorted(best.values())
    assert abs(low - 0.05) < 0.02
    assert abs(high - 0.1) < 0.02
    assert problem.space.in_bounds(problem.space.to_array(best))[0]


def test_start_order_does_not_change_best():
    problem = _problem()
    cfg = NelderMeadConfig(n_starts=4)
    starts = problem.space.sample_uniform(4, np.random.default_rng(9))
    forward = run_nelder_mead(problem, cfg, np.random.default_rng(0), starts=starts)
    backward = run_nelder_mead(problem, cfg, np.random.default_rng(0), starts=starts[::-1])
    assert forward.best() == backward.best()
    assert np.max(forward.values) == np.max(backward.values)


def test_iteration_cap_is_soft():
    problem = _problem()
    result = run_nelder_mead(problem, NelderMeadConfig(n_starts=2, max_iter=2), np.random.default_rng(1))
    assert result.n_converged == 0
    for run in result.runs:
        assert not run.converged
        assert problem.space.in_bounds(run.x)[0]
        assert np.isfinite(run.log_likelihood)
    assert len(result.top(10)) == 2


def test_starts_outside_bounds_raise():
    problem = _problem()
    with pytest.raises(ValueError):
        run_nelder_mead(problem, NelderMeadConfig(), np.random.default_rng(0), starts=[[0.5, 0.05]])


def test_failed_runs_never_ranked_best():
    model = MarkovCRSModel(n_cycles=60)
    space = define_parameter_priors()
    targets = synthetic_targets(model.simulate, TRUE_PARAMS, np.random.default_rng(4))

    def fails_above(params):
        if params["p_mets"] > 0.09:
            raise RuntimeError("unstable region")
        return model.simulate(params)

    problem = CalibrationProblem(space, GaussianLikelihood(fails_above, targets, space))
    starts = np.array([[0.14, 0.06], [0.06, 0.11]])
    result = run_nelder_mead(problem, NelderMeadConfig(n_starts=2), np.random.default_rng(0), starts=starts)
    assert np.isneginf(result.runs[0].log_likelihood)
    top = result.top(10)
    assert len(top) == 1
    assert top["start_index"].tolist() == [1]
    assert np.all(np.isfinite(top["log_likelihood"]))
    assert result.best()["p_mets"] <= 0.09
