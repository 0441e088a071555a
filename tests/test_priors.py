import numpy as np
import pytest

from markovcal.calibration import ParameterPrior, ParameterSpace, define_parameter_priors


def test_latin_hypercube_is_stratified():
    space = ParameterSpace([ParameterPrior("a", 0.0, 1.0), ParameterPrior("b", 0.0, 1.0)])
    X = space.sample(10, np.random.default_rng(3))
    assert X.shape == (10, 2)
    for j in range(2):
        strata = np.sort(np.floor(X[:, j] * 10).astype(int))
        assert strata.tolist() == list(range(10))


def test_samples_lie_within_bounds():
    space = define_parameter_priors()
    X = space.sample(1000, np.random.default_rng(0))
    assert np.all(space.in_bounds(X))
    U = space.sample_uniform(200, np.random.default_rng(0))
    assert np.all(space.in_bounds(U))


def test_log_prior_outside_bounds():
    space = define_parameter_priors(0.04, 0.16)
    X = np.array([[0.03, 0.1], [0.1, 0.17], [-1.0, 2.0]])
    assert np.all(np.isneginf(space.log_prob(X)))
    assert np.all(space.prob(X) == 0.0)


def test_uniform_log_prior_value():
    space = define_parameter_priors(0.04, 0.16)
    value = space.log_prob([0.1, 0.05])[0]
    assert value == pytest.approx(-2 * np.log(0.12))


def test_other_distributions_stay_bounded():
    space = ParameterSpace([
        ParameterPrior("a", 0.1, 0.9, "beta", (2.0, 3.0)),
        ParameterPrior("b", 0.001, 0.1, "loguniform"),
        ParameterPrior("c", 0.0, 1.0, "truncnorm", (0.5, 0.2)),
    ])
    X = space.sample(500, np.random.default_rng(1))
    assert np.all(space.in_bounds(X))
    assert np.all(np.isfinite(space.log_prob(X)))


def test_invalid_priors_raise():
    with pytest.raises(ValueError):
        ParameterPrior("a", 1.0, 0.0)
    with pytest.raises(ValueError):
        ParameterPrior("a", 0.0, 1.0, "gamma")
    with pytest.raises(ValueError):
        ParameterSpace([ParameterPrior("a", 0.0, 1.0), ParameterPrior("a", 0.0, 1.0)])
    with pytest.raises(ValueError):
        define_parameter_priors().sample(0, np.random.default_rng(0))


def test_shape_params_are_checked():
    with pytest.raises(ValueError, match="needs params"):
        ParameterPrior("a", 0.0, 1.0, "beta")
    with pytest.raises(ValueError, match="needs params"):
        ParameterPrior("a", 0.0, 1.0, "truncnorm", (0.5,))
    with pytest.raises(ValueError, match="sd must be positive"):
        ParameterPrior("a", 0.0, 1.0, "truncnorm", (0.5, -0.1))
    with pytest.raises(ValueError, match="positive lower bound"):
        ParameterPrior("a", 0.0, 1.0, "loguniform")


def test_dict_conversion():
    space = define_parameter_priors()
    params = space.to_dict([0.1, 0.05])
    assert params == {"p_mets": 0.1, "p_die_mets": 0.05}
    assert np.allclose(space.to_array(params), [0.1, 0.05])
    with pytest.raises(ValueError):
        space.to_array({"p_other": 0.1})
