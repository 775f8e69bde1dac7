'''
Unit tests for `atm_src.time_model.TimeStructuredModel`: Beta time densities,
the direct/log reliability mask, moment matching of the Beta parameters and
the concentration update.
'''

import numpy as np
import pytest
from scipy import stats as st

from atm_src.corpus import Corpus
from atm_src.exceptions import ConfigurationError
from atm_src.statistics import SufficientStatistics
from atm_src.time_model import TimeStructuredModel


def stats_for(words, topics, num_topics=2, num_vocab=3):
    corpus = Corpus(words, topics, num_vocab=num_vocab)
    return corpus, SufficientStatistics.from_corpus(corpus, num_topics, np.ones(num_vocab))


def test_time_weights_are_beta_densities():
    model = TimeStructuredModel([0.1, 0.5, 0.8], np.ones(2))
    model.beta_params[:] = [[2.0, 5.0], [0.7, 1.3]]

    direct, log, use_log = model.time_weights()

    t = np.array([0.1, 0.5, 0.8])[:, None]
    expected = st.beta.pdf(t, model.beta_params[:, 0], model.beta_params[:, 1])
    np.testing.assert_allclose(direct, expected, rtol=1e-10)
    np.testing.assert_allclose(log, np.log(expected), rtol=1e-8, atol=1e-12)
    assert not use_log.any()


def test_extreme_parameters_switch_to_log_domain():
    model = TimeStructuredModel([0.05, 0.5], np.ones(2))
    # gamma(a + b) overflows for a + b > 171
    model.beta_params[:] = [[400.0, 400.0], [1.0, 1.0]]

    direct, log, use_log = model.time_weights()

    assert use_log.all()
    assert np.all(np.isfinite(log))
    np.testing.assert_allclose(log[:, 0], st.beta.logpdf([0.05, 0.5], 400.0, 400.0), rtol=1e-8)
    np.testing.assert_allclose(direct[:, 1], [1.0, 1.0])


def test_timestamps_on_the_boundary_have_finite_log_density():
    model = TimeStructuredModel([0.0, 1.0], np.ones(2))
    model.beta_params[:] = [[0.5, 0.5], [3.0, 2.0]]

    _, log, _ = model.time_weights()

    assert np.all(np.isfinite(log))


def test_moment_matching():
    # topic 0 holds two tokens at t=0.2 and two at t=0.6
    _, stats = stats_for([[0, 1], [1, 2]], [[0, 0], [0, 0]])
    model = TimeStructuredModel([0.2, 0.6], np.ones(2))

    model.sample_betaparam(stats)

    mean = 0.4
    var = np.var([0.2, 0.2, 0.6, 0.6], ddof=1)
    common = mean * (1.0 - mean) / var - 1.0
    np.testing.assert_allclose(model.beta_params[0], [mean * common, (1.0 - mean) * common])
    # topic 1 has no tokens
    np.testing.assert_array_equal(model.beta_params[1], [1.0, 1.0])


def test_zero_variance_leaves_parameters_unchanged():
    _, stats = stats_for([[0, 1, 2]], [[0, 0, 0]])
    model = TimeStructuredModel([0.2], np.ones(2), beta_param_init=0.8)

    with np.errstate(divide="raise", invalid="raise"):
        model.sample_betaparam(stats)

    np.testing.assert_array_equal(model.beta_params, [[0.8, 0.8], [0.8, 0.8]])


def test_single_token_topic_is_left_unchanged():
    _, stats = stats_for([[0, 1], [2]], [[0, 0], [1]])
    model = TimeStructuredModel([0.3, 0.9], np.ones(2))

    model.sample_betaparam(stats)

    np.testing.assert_array_equal(model.beta_params[1], [1.0, 1.0])


def test_overdispersed_topic_is_left_unchanged():
    # variance above mean * (1 - mean) has no Beta solution
    _, stats = stats_for([[0] * 50, [1] * 50], [[0] * 50, [0] * 50])
    model = TimeStructuredModel([0.0, 1.0], np.ones(2), beta_param_init=0.5)

    model.sample_betaparam(stats)

    np.testing.assert_array_equal(model.beta_params[0], [0.5, 0.5])


def test_slice_method_keeps_parameters_in_bounds():
    corpus, stats = stats_for([[0, 1, 1], [1, 2], [2, 2, 0]], [[0, 0, 1], [0, 1], [1, 1, 1]])
    model = TimeStructuredModel([0.1, 0.4, 0.9], np.ones(2), beta_param_method="slice", max_v=50.0)
    rng = np.random.default_rng(6)

    for _ in range(10):
        model.sample(stats, corpus, rng)

    assert np.all((model.beta_params >= 1e-9) & (model.beta_params <= 50.0))
    assert not np.array_equal(model.beta_params, np.ones((2, 2)))


def test_sample_alpha_stays_in_bounds():
    corpus, stats = stats_for([[0, 1, 1], [1, 2], [2, 2, 0]], [[0, 0, 1], [0, 1], [1, 1, 1]])
    model = TimeStructuredModel([0.1, 0.4, 0.9], np.array([0.5, 2.0]), ts_g1=1.5, ts_g2=2.0)
    rng = np.random.default_rng(8)

    for _ in range(20):
        model.sample_alpha(stats, corpus, rng)

    assert np.all((model.alpha > 0) & (model.alpha <= 100.0))
    assert not np.array_equal(model.alpha, [0.5, 2.0])
    np.testing.assert_array_equal(model.beta_params, np.ones((2, 2)))
    state = model.state()
    assert set(state) == {"alpha", "beta_params"}


def test_prior_loglik_includes_time_term():
    corpus, stats = stats_for([[0, 1], [2]], [[0, 1], [1]])
    model = TimeStructuredModel([0.3, 0.7], np.ones(2))
    uniform = model.prior_loglik(stats, corpus)

    model.beta_params[:] = [[2.0, 2.0], [2.0, 2.0]]
    peaked = model.prior_loglik(stats, corpus)

    expected = np.sum(stats.doc_topic * st.beta.logpdf(np.array([0.3, 0.7])[:, None], 2.0, 2.0))
    assert peaked - uniform == pytest.approx(expected)


def test_rejects_unnormalized_timestamps():
    with pytest.raises(ConfigurationError):
        TimeStructuredModel([0.1, 1.5], np.ones(2))
    with pytest.raises(ConfigurationError):
        TimeStructuredModel([[0.1, 0.5]], np.ones(2))
