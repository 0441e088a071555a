import numpy as np
import pytest

from markovcal.model import MarkovCRSModel


def test_survival_is_monotone_and_bounded():
    model = MarkovCRSModel(n_cycles=60)
    surv = model.simulate({"p_mets": 0.1, "p_die_mets": 0.05})["surv"]
    assert surv.shape == (60,)
    assert np.all(np.diff(surv) <= 0)
    assert np.all((surv >= 0) & (surv <= 1))


def test_survival_matches_closed_form_for_first_cycles():
    model = MarkovCRSModel(n_cycles=3)
    p_mets, p_die_mets = 0.1, 0.05
    surv = model.simulate({"p_mets": p_mets, "p_die_mets": p_die_mets})["surv"]
    # Death needs two transitions, so nobody dies in the first cycle.
    assert surv[0] == pytest.approx(1.0)
    assert surv[1] == pytest.approx(1.0 - p_mets * p_die_mets)


def test_trace_rows_sum_to_one():
    trace = MarkovCRSModel(n_cycles=12).trace({"p_mets": 0.16, "p_die_mets": 0.04})
    assert trace.shape == (13, 3)
    assert np.allclose(trace.sum(axis=1), 1.0)


def test_invalid_parameters_raise():
    model = MarkovCRSModel()
    with pytest.raises(ValueError):
        model.simulate({"p_mets": 1.5, "p_die_mets": 0.05})
    with pytest.raises(ValueError):
        model.simulate({"p_mets": 0.1})


def test_survival_is_symmetric_in_the_two_rates():
    model = MarkovCRSModel(n_cycles=60)
    a = model.simulate({"p_mets": 0.1, "p_die_mets": 0.05})["surv"]
    b = model.simulate({"p_mets": 0.05, "p_die_mets": 0.1})["surv"]
    assert np.allclose(a, b)
