import numpy as np

from markovcal.calibration import (
    CalibrationProblem,
    GaussianLikelihood,
    RandomSearchConfig,
    define_parameter_priors,
    run_random_search,
    synthetic_targets,
)
from markovcal.model import MarkovCRSModel

TRUE_PARAMS = {"p_mets": 0.1, "p_die_mets": 0.05}


def _problem(simulate=None):
    model = MarkovCRSModel(n_cycles=60)
    space = define_parameter_priors()
    targets = synthetic_targets(model.simulate, TRUE_PARAMS, np.random.default_rng(2))
    return CalibrationProblem(space, GaussianLikelihood(simulate or model.simulate, targets, space))


def test_ranking_is_reproducible():
    problem = _problem()
    cfg = RandomSearchConfig(n_samples=300, top_k=10)
    first = run_random_search(problem, cfg, np.random.default_rng(7))
    second = run_random_search(problem, cfg, np.random.default_rng(7))
    assert first.top(10).equals(second.top(10))
    ranked = first.ranked()
    assert np.all(np.diff(ranked["log_likelihood"]) <= 0)


def test_ties_keep_sample_order():
    problem = _problem(lambda params: {"surv": np.full(60, 0.5)})
    result = run_random_search(problem, RandomSearchConfig(n_samples=50), np.random.default_rng(0))
    assert result.ranked()["sample"].tolist() == list(range(50))


def test_failed_samples_never_in_top_k():
    model = MarkovCRSModel(n_cycles=60)

    def flaky(params):
        if params["p_die_mets"] < 0.1:
            raise RuntimeError("unstable")
        return model.simulate(params)

    problem = _problem(flaky)
    result = run_random_search(problem, RandomSearchConfig(n_samples=200), np.random.default_rng(1))
    assert result.n_failed > 0
    top = result.top(200)
    assert np.all(np.isfinite(top["log_likelihood"]))
    assert np.all(top["p_die_mets"] >= 0.1)
    assert result.best()["p_die_mets"] >= 0.1


def test_best_fit_near_truth_and_in_bounds():
    problem = _problem()
    result = run_random_search(problem, RandomSearchConfig(n_samples=1000), np.random.default_rng(3))
    best = result.best()
    assert problem.space.in_bounds(problem.space.to_array(best))[0]
    # Survival is symmetric in the two rates, so either ordering fits.
    low, high = sorted(best.values())
    assert abs(low - 0.05) < 0.02
    assert abs(high - 0.1) < 0.02
