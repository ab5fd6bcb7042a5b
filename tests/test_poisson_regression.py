"""
Integration tests for Poisson regression trained with the L-BFGS maximizer.
"""

import math

import numpy as np
import pytest
from scipy.optimize import minimize

from singularity.regression.src.config import OptimizerConfig
from singularity.regression.src.exceptions import OptimizationError, RegressionException
from singularity.regression.src.lbfgs import OptimizerState
from singularity.regression.src.listener import TraceListener
from singularity.regression.src.poisson_regression import PoissonObjective, PoissonRegression
from singularity.regression.src.training_set import TrainingSet

TIGHT = OptimizerConfig(
    tolerance=1e-12,
    gradient_tolerance=1e-7,
    absolute_tolerance=1e-10,
    relative_tolerance=1e-12,
)


def intercept_only_counts():
    """Counts 1..5 with a constant feature: the MLE is beta = ln(mean(y)) = ln 3."""
    return TrainingSet.from_arrays(np.ones((5, 1)), [1, 2, 3, 4, 5])


def synthetic_counts(n=40, seed=0):
    rng = np.random.default_rng(seed)
    x = np.linspace(0.0, 1.0, n)
    X = np.column_stack([np.ones(n), x])
    y = rng.poisson(np.exp(0.3 + 1.5 * x))
    return TrainingSet.from_arrays(X, y)


def test_intercept_only_converges_to_log_mean():
    samples = intercept_only_counts()
    start_value = PoissonObjective(samples, regularization=0.0).get_value()

    model = PoissonRegression(iterations=100, regularization=0.0)
    converged = model.train(samples)

    assert converged
    assert model.parameters[0] == pytest.approx(math.log(3.0), abs=1e-2)
    final = PoissonObjective(samples, regularization=0.0, beta0=model.parameters)
    assert final.get_value() > start_value
    assert model.optimizer.iterations <= 100


def test_matches_scipy_reference_optimum():
    samples = synthetic_counts()
    reg = 0.01
    objective = PoissonObjective(samples, reg)

    def neg_value(beta):
        objective.set_parameters(beta)
        return -objective.get_value()

    def neg_grad(beta):
        objective.set_parameters(beta)
        return -objective.get_gradient()

    reference = minimize(neg_value, np.zeros(2), jac=neg_grad, method="L-BFGS-B", tol=1e-12)

    model = PoissonRegression(iterations=200, regularization=reg, config=TIGHT)
    assert model.train(samples)

    np.testing.assert_allclose(model.parameters, reference.x, atol=1e-4)


def test_gradient_matches_finite_differences():
    objective = PoissonObjective(synthetic_counts(n=10, seed=3), regularization=0.05)
    beta = np.array([0.2, -0.4])
    objective.set_parameters(beta)
    grad = objective.get_gradient()

    h = 1e-6
    for i in range(beta.size):
        e = np.zeros_like(beta)
        e[i] = h
        objective.set_parameters(beta + e)
        up = objective.get_value()
        objective.set_parameters(beta - e)
        down = objective.get_value()
        assert grad[i] == pytest.approx((up - down) / (2 * h), rel=1e-5, abs=1e-6)


def test_overflow_yields_negative_infinity_without_warnings():
    objective = PoissonObjective(intercept_only_counts(), regularization=0.0)
    objective.set_parameters(np.array([1000.0]))
    with np.errstate(all="raise"):
        assert objective.get_value() == -np.inf


def test_large_features_train_through_unstable_region():
    """The unit first step overflows exp(); the line search must back off."""
    X = np.column_stack([np.ones(6), np.array([0.0, 200.0, 400.0, 600.0, 800.0, 1000.0])])
    samples = TrainingSet.from_arrays(X, [0, 1, 1, 2, 3, 5])

    model = PoissonRegression(iterations=200, regularization=0.01)
    model.train(samples)

    assert np.all(np.isfinite(model.parameters))
    assert np.all(np.isfinite(model.predict(X)))


def test_predictions_and_accuracy():
    samples = intercept_only_counts()
    model = PoissonRegression(regularization=0.0, config=TIGHT)
    model.train(samples)

    assert model.test([1.0]) == pytest.approx(3.0, rel=1e-4)
    np.testing.assert_allclose(model.predict(np.ones((2, 1))), [3.0, 3.0], rtol=1e-4)
    # mean |3 - y| over y = 1..5 is 1.2
    assert model.accuracy(samples) == pytest.approx(1.0 - 1.2, abs=1e-3)
    assert model.accuracy(TrainingSet()) == 0.0


def test_untrained_model_and_empty_training_set_raise():
    model = PoissonRegression()
    with pytest.raises(RegressionException):
        model.test([1.0])
    with pytest.raises(RegressionException):
        model.predict([[1.0]])
    with pytest.raises(RegressionException, match="empty"):
        model.train(TrainingSet())


def test_wrong_feature_count_raises():
    model = PoissonRegression(regularization=0.0)
    model.train(intercept_only_counts())
    with pytest.raises(RegressionException, match="expected 1 features"):
        model.test([1.0, 2.0])


def test_listener_receives_start_iterations_and_end():
    trace = TraceListener()
    model = PoissonRegression(iterations=50, regularization=0.0)
    model.set_learning_listener(trace)

    model.train(intercept_only_counts())

    assert trace.started == 1
    assert trace.ended == 1
    frame = trace.to_frame()
    assert list(frame["iteration"]) == list(range(len(frame)))
    assert (frame["total"] == 50).all()


def test_non_convergence_warns_and_keeps_best_weights():
    samples = synthetic_counts()
    model = PoissonRegression(iterations=1, regularization=0.01, config=TIGHT)

    with pytest.warns(RuntimeWarning, match="without converging"):
        assert not model.train(samples)

    assert model.optimizer.state is OptimizerState.EXHAUSTED_BUDGET
    start = PoissonObjective(samples, 0.01).get_value()
    trained = PoissonObjective(samples, 0.01, beta0=model.parameters).get_value()
    assert trained > start


def test_inconsistent_objective_aborts_training(monkeypatch):
    """A gradient that disagrees with the value must not produce a model."""
    monkeypatch.setattr(PoissonObjective, "get_value", lambda self: float(np.sum(self.beta)))
    monkeypatch.setattr(PoissonObjective, "get_gradient", lambda self: 1.0 + self.beta)

    model = PoissonRegression(regularization=0.0)
    with pytest.raises(RegressionException) as excinfo:
        model.train(intercept_only_counts())

    assert isinstance(excinfo.value.__cause__, OptimizationError)
    assert model.parameters is None


def test_repr_lists_weights():
    model = PoissonRegression()
    assert repr(model) == "PoissonRegression(Beta=[])"
    model.betas = np.array([0.5, -1.25])
    assert repr(model) == "PoissonRegression(Beta=[0.5, -1.25])"
    assert model.name() == "PoissonRegression"
