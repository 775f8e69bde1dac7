'''
Unit tests for `atm_src.resamplers`: the single-token collapsed Gibbs
update, full sweeps, the time-weighted variants and the keyword variant.
'''

import numpy as np
import pytest
from scipy import stats as st

from atm_src.corpus import Corpus
from atm_src.exceptions import NumericalDegeneracyError
from atm_src.resamplers import (
    BaseTokenResampler,
    KeywordTokenResampler,
    TimeLogTokenResampler,
    TimeTokenResampler,
)
from atm_src.numba_gibbs import sweep_time_log_nb, sweep_time_nb
from atm_src.statistics import KeywordStatistics, SufficientStatistics


class FixedRNG:
    '''Stand-in for numpy's Generator returning pre-set uniform draws.'''

    def __init__(self, *values):
        self.values = list(values)

    def random(self):
        return self.values.pop(0)


class FixedTimeModel:
    '''Provides constant topic-time weights to the time resamplers.'''

    def __init__(self, direct, use_log=None):
        self.direct = np.asarray(direct, dtype=np.float64)
        with np.errstate(divide="ignore"):
            self.log = np.log(self.direct)
        if use_log is None:
            use_log = np.zeros(self.direct.shape[0], dtype=np.bool_)
        self.use_log = np.asarray(use_log, dtype=np.bool_)

    def time_weights(self):
        return self.direct, self.log, self.use_log


def two_doc_state():
    corpus = Corpus([[0, 1, 0], [2, 2, 1]], [[0, 1, 0], [1, 1, 0]], num_vocab=3)
    stats = SufficientStatistics.from_corpus(corpus, 2, np.ones(3))
    return corpus, stats


def conditional(stats, doc, word, alpha, beta):
    vbeta = stats.num_vocab * beta
    weights = (beta + stats.topic_word[:, word]) * (stats.doc_topic[doc] + alpha) / (vbeta + stats.topic_total)
    return weights / weights.sum()


def test_single_resample_is_deterministic_given_seed():
    corpus, stats = two_doc_state()
    alpha = np.array([1.0, 1.0])
    resampler = BaseTokenResampler(beta=0.1)

    # weights after removing token 0 of document 0 (word 0, topic 0)
    w0 = (0.1 + 1.0) * (1.0 + 1.0) / (0.3 + 2.0)
    w1 = (0.1 + 0.0) * (1.0 + 1.0) / (0.3 + 3.0)
    u = np.random.default_rng(42).random()
    expected = 0 if u * (w0 + w1) < w0 else 1

    new_z = resampler.resample(stats, 0, 0, 0, alpha, np.random.default_rng(42))

    assert new_z == expected
    reference = SufficientStatistics.from_corpus(
        Corpus([[0, 1, 0], [2, 2, 1]], [[new_z, 1, 0], [1, 1, 0]], num_vocab=3), 2, np.ones(3))
    np.testing.assert_array_equal(stats.topic_word, reference.topic_word)
    np.testing.assert_array_equal(stats.doc_topic, reference.doc_topic)


def test_single_resample_updates_exact_entries():
    _, stats = two_doc_state()
    resampler = BaseTokenResampler(beta=0.1)

    # 0.99 lands past the cumulative weight of topic 0
    new_z = resampler.resample(stats, 0, 0, 0, np.array([1.0, 1.0]), FixedRNG(0.99))

    assert new_z == 1
    np.testing.assert_array_equal(stats.topic_word, [[1, 1, 0], [1, 1, 2]])
    np.testing.assert_array_equal(stats.doc_topic, [[1, 2], [1, 2]])
    np.testing.assert_array_equal(stats.topic_total, [2, 4])
    np.testing.assert_array_equal(stats.topic_total_unweighted, [2, 4])


def test_single_resample_can_keep_topic():
    _, stats = two_doc_state()
    before = stats.copy()

    new_z = BaseTokenResampler(beta=0.1).resample(stats, 0, 0, 0, np.array([1.0, 1.0]), FixedRNG(0.5))

    assert new_z == 0
    np.testing.assert_array_equal(stats.topic_word, before.topic_word)
    np.testing.assert_array_equal(stats.doc_topic, before.doc_topic)


def three_topic_state():
    corpus = Corpus([[0, 1, 2, 0], [1, 1, 2], [2, 0]], [[0, 1, 2, 0], [1, 2, 2], [0, 1]], num_vocab=3)
    stats = SufficientStatistics.from_corpus(corpus, 3, np.ones(3))
    return corpus, stats


def test_resample_follows_collapsed_conditional():
    _, stats = three_topic_state()
    alpha = np.array([0.5, 1.0, 1.5])
    beta = 0.5
    resampler = BaseTokenResampler(beta)

    removed = stats.copy()
    removed.remove(0, 0, 0)
    p = conditional(removed, 0, 0, alpha, beta)

    rng = np.random.default_rng(11)
    draws = 3000
    observed = np.zeros(3)
    for _ in range(draws):
        trial = stats.copy()
        observed[resampler.resample(trial, 0, 0, 0, alpha, rng)] += 1

    assert st.chisquare(observed, p * draws).pvalue > 1e-3


def test_repeated_resample_is_stationary():
    corpus, stats = three_topic_state()
    alpha = np.array([0.5, 1.0, 1.5])
    beta = 0.5
    resampler = BaseTokenResampler(beta)

    removed = stats.copy()
    removed.remove(0, 0, 0)
    p = conditional(removed, 0, 0, alpha, beta)

    rng = np.random.default_rng(5)
    draws = 3000
    observed = np.zeros(3)
    for _ in range(draws):
        trial = stats.copy()
        z1 = resampler.resample(trial, 0, 0, 0, alpha, rng)
        z2 = resampler.resample(trial, 0, 0, z1, alpha, rng)
        observed[z2] += 1

        expected = removed.copy()
        expected.add(0, z2, 0)
        np.testing.assert_allclose(trial.topic_word, expected.topic_word)
        np.testing.assert_allclose(trial.doc_topic, expected.doc_topic)

    assert st.chisquare(observed, p * draws).pvalue > 1e-3


def test_sweep_keeps_tables_consistent():
    corpus, _ = three_topic_state()
    weights = np.array([0.7, 1.3, 2.1])
    stats = SufficientStatistics.from_corpus(corpus, 3, weights)
    resampler = BaseTokenResampler(beta=0.1)
    alpha = np.tile([0.5, 1.0, 1.5], (corpus.num_doc, 1))
    rng = np.random.default_rng(3)

    for _ in range(25):
        resampler.sweep(corpus, stats, alpha, rng)
        stats.check_consistency(corpus)
        np.testing.assert_allclose(stats.doc_topic.sum(axis=1), corpus.doc_lengths)
        np.testing.assert_allclose(stats.topic_word.sum(axis=1), stats.topic_total)

    rebuilt = SufficientStatistics.from_corpus(corpus, 3, weights)
    np.testing.assert_allclose(stats.topic_word, rebuilt.topic_word, atol=1e-9)
    np.testing.assert_array_equal(stats.doc_topic, rebuilt.doc_topic)


def test_degenerate_weights_are_fatal():
    corpus, stats = two_doc_state()
    stats.topic_word[:, 0] = np.nan

    with pytest.raises(NumericalDegeneracyError):
        BaseTokenResampler(beta=0.1).resample(stats, 0, 0, 0, np.array([1.0, 1.0]), FixedRNG(0.3))
    with pytest.raises(NumericalDegeneracyError):
        BaseTokenResampler(beta=0.1).sweep(corpus, stats, np.ones((2, 2)), np.random.default_rng(0))


def test_time_weight_gates_topics():
    corpus, stats = two_doc_state()
    # topic 1 has no time mass for document 0
    resampler = TimeTokenResampler(0.1, FixedTimeModel([[1.0, 0.0], [1.0, 1.0]]))

    for u in (0.0, 0.5, 0.999):
        assert resampler.resample(stats, 0, 0, 0, np.array([1.0, 1.0]), FixedRNG(u)) == 0


def test_log_domain_matches_direct_domain():
    time_model = FixedTimeModel([[0.2, 3.0], [1.5, 0.5]])
    direct = TimeTokenResampler(0.1, time_model)
    log = TimeLogTokenResampler(0.1, time_model)
    alpha = np.array([1.0, 1.0])

    for u in (0.05, 0.3, 0.6, 0.95):
        _, stats_direct = two_doc_state()
        _, stats_log = two_doc_state()
        assert (direct.resample(stats_direct, 0, 0, 0, alpha, FixedRNG(u))
                == log.resample(stats_log, 0, 0, 0, alpha, FixedRNG(u)))
        np.testing.assert_array_equal(stats_direct.topic_word, stats_log.topic_word)


def test_direct_and_log_sweep_kernels_agree():
    corpus, _ = two_doc_state()
    direct = np.array([[0.2, 3.0], [1.5, 0.5]])
    order = np.arange(corpus.total_words)
    uniforms = np.random.default_rng(3).random(corpus.total_words)
    alpha = np.ones((2, 2))

    results = []
    for kernel, weights in ((sweep_time_nb, direct), (sweep_time_log_nb, np.log(direct))):
        topics = corpus.topic_ids.copy()
        stats = SufficientStatistics.from_corpus(corpus, 2, np.ones(3))
        status = kernel(order, corpus.doc_ids, corpus.word_ids, topics, alpha, 0.1, stats.vocab_weights,
                        *stats.arrays(), weights, uniforms)
        assert status == -1
        results.append((topics, stats))

    np.testing.assert_array_equal(results[0][0], results[1][0])
    np.testing.assert_allclose(results[0][1].topic_word, results[1][1].topic_word)


def test_log_domain_survives_underflow():
    corpus, stats = two_doc_state()
    # densities far below the smallest double, only meaningful in log space
    time_model = FixedTimeModel([[0.0, 0.0], [0.0, 0.0]], use_log=[True, True])
    time_model.log = np.array([[-2000.0, -2001.0], [-1500.0, -1400.0]])
    resampler = TimeTokenResampler(0.1, time_model)
    rng = np.random.default_rng(0)

    for _ in range(10):
        resampler.sweep(corpus, stats, np.ones((2, 2)), rng)
        stats.check_consistency(corpus)


def test_time_sweep_mixes_direct_and_log_documents():
    corpus, stats = two_doc_state()
    time_model = FixedTimeModel([[1.0, 0.0], [0.0, 0.0]], use_log=[False, True])
    time_model.log = np.array([[0.0, -np.inf], [-np.inf, -700.0]])
    rng = np.random.default_rng(1)

    TimeTokenResampler(0.1, time_model).sweep(corpus, stats, np.ones((2, 2)), rng)

    np.testing.assert_array_equal(corpus.assignments()[0], [0, 0, 0])
    np.testing.assert_array_equal(corpus.assignments()[1], [1, 1, 1])
    stats.check_consistency(corpus)


def keyword_state():
    # topic 0 is seeded with word 0, topic 1 is free
    is_keyword = np.array([[True, False, False]])
    corpus = Corpus([[0, 1, 0, 2], [0, 2, 2]], [[0, 1, 0, 1], [0, 1, 0]], num_vocab=3,
                    switches=[[1, 0, 0, 0], [1, 0, 0]])
    stats = KeywordStatistics.from_corpus(corpus, 2, np.ones(3))
    resampler = KeywordTokenResampler(0.1, 0.1, 1.0, 1.0, is_keyword)
    return corpus, stats, resampler


def test_keyword_token_stays_in_its_seeded_topic():
    _, stats, resampler = keyword_state()

    for u in (0.0, 0.5, 0.999):
        trial = stats.copy()
        new_z, _ = resampler.resample(trial, 0, 0, 0, np.array([1.0, 1.0]), FixedRNG(u, 0.5), switch=1)
        assert new_z == 0


def test_free_topic_tokens_never_switch_on():
    _, stats, resampler = keyword_state()

    new_z, new_s = resampler.resample(stats, 0, 2, 1, np.array([1.0, 1.0]), FixedRNG(0.999, 0.999), switch=0)

    assert new_z == 1
    assert new_s == 0


def test_keyword_sweep_keeps_tables_consistent():
    corpus, stats, resampler = keyword_state()
    rng = np.random.default_rng(9)
    alpha = np.ones((corpus.num_doc, 2))

    for _ in range(25):
        resampler.sweep(corpus, stats, alpha, rng)
        stats.check_consistency(corpus)

    on = corpus.switch_ids == 1
    assert np.all(corpus.topic_ids[on] == 0)
    assert np.all(corpus.word_ids[on] == 0)
    rebuilt = KeywordStatistics.from_corpus(corpus, 2, np.ones(3))
    np.testing.assert_allclose(stats.topic_word, rebuilt.topic_word)
    np.testing.assert_allclose(stats.keyword_topic_word, rebuilt.keyword_topic_word)
    np.testing.assert_array_equal(stats.doc_topic, rebuilt.doc_topic)


def test_keyword_word_loglik_is_finite():
    _, stats, resampler = keyword_state()

    assert np.isfinite(resampler.word_loglik(stats))
