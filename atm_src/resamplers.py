from abc import ABC, abstractmethod

import numpy as np
from scipy.special import gammaln

from atm_src.exceptions import NumericalDegeneracyError
from atm_src.numba_gibbs import (
    sample_s_keyword_nb,
    sample_z_keyword_nb,
    sample_z_nb,
    sample_z_time_log_nb,
    sample_z_time_nb,
    sweep_base_nb,
    sweep_keyword_nb,
    sweep_time_log_nb,
    sweep_time_nb,
)


def topic_word_loglik(topic_word, topic_total, beta, support=None) -> float:
    '''
    Dirichlet-multinomial log-likelihood of the topic-word counts. support
    is the number of words each topic can emit (the whole vocabulary if None).
    '''
    if support is None:
        support = topic_word.shape[1]
    loglik = np.sum(gammaln(support * beta) - gammaln(support * beta + topic_total))
    loglik += np.sum(gammaln(beta + topic_word) - gammaln(beta))
    return float(loglik)


def _degenerate(corpus, pos):
    d = int(corpus.doc_ids[pos])
    return NumericalDegeneracyError(
        f"candidate topic weights of token {pos - corpus.doc_offsets[d]} in document {d} "
        f"do not sum to a positive finite value")


class TokenResampler(ABC):
    '''
    Collapsed Gibbs update of topic assignments. resample() moves a single
    token, sweep() moves every token of the corpus once.
    '''

    def __init__(self, beta: float) -> None:
        self.beta = beta

    @abstractmethod
    def resample(self, stats, doc, word, topic, alpha, rng):
        pass

    @abstractmethod
    def sweep(self, corpus, stats, alpha, rng):
        pass

    def word_loglik(self, stats) -> float:
        '''Log-likelihood of the words given the topic assignments, phi integrated out.'''
        return topic_word_loglik(stats.topic_word, stats.topic_total, self.beta)


class BaseTokenResampler(TokenResampler):
    '''
    Scores topic k for a token of word w in document d as

        (beta + n_kv[k, w]) * (n_dk[d, k] + alpha[k]) / (V * beta + n_k[k])

    with the token's own contribution removed from the counts.
    '''

    def resample(self, stats, doc, word, topic, alpha, rng):
        '''
        :param stats: SufficientStatistics, updated in place
        :param doc: document index
        :param word: word index of the token
        :param topic: current topic of the token
        :param alpha: topic prior of the document, length num_topics
        :param rng: numpy Generator
        :return: the new topic
        '''
        n_kv, n_dk, n_k, n_k_nw = stats.arrays()
        probs = np.empty(stats.num_topics)
        new_z = sample_z_nb(doc, word, topic, np.asarray(alpha, dtype=np.float64), self.beta,
                            stats.vocab_weights[word], n_kv, n_dk, n_k, n_k_nw, probs, rng.random())
        if new_z < 0:
            raise NumericalDegeneracyError(f"candidate topic weights in document {doc} do not sum to a positive finite value")
        return int(new_z)

    def sweep(self, corpus, stats, alpha, rng):
        order = corpus.sweep_order(rng)
        uniforms = rng.random(order.shape[0])
        status = sweep_base_nb(order, corpus.doc_ids, corpus.word_ids, corpus.topic_ids, alpha, self.beta,
                               stats.vocab_weights, *stats.arrays(), uniforms)
        if status >= 0:
            raise _degenerate(corpus, status)


class TimeTokenResampler(TokenResampler):
    '''
    Multiplies the base weight of topic k by the Beta density of the
    document's timestamp under the topic's time profile. Documents whose
    densities under- or overflow are resampled in the log domain.
    '''

    def __init__(self, beta, time_model) -> None:
        super().__init__(beta)
        self.time_model = time_model

    def time_weights(self):
        return self.time_model.time_weights()

    def resample(self, stats, doc, word, topic, alpha, rng):
        direct, log, use_log = self.time_weights()
        n_kv, n_dk, n_k, n_k_nw = stats.arrays()
        probs = np.empty(stats.num_topics)
        alpha = np.asarray(alpha, dtype=np.float64)
        if use_log[doc]:
            new_z = sample_z_time_log_nb(doc, word, topic, alpha, self.beta, stats.vocab_weights[word],
                                         n_kv, n_dk, n_k, n_k_nw, log[doc], probs, rng.random())
        else:
            new_z = sample_z_time_nb(doc, word, topic, alpha, self.beta, stats.vocab_weights[word],
                                     n_kv, n_dk, n_k, n_k_nw, direct[doc], probs, rng.random())
        if new_z < 0:
            raise NumericalDegeneracyError(f"candidate topic weights in document {doc} do not sum to a positive finite value")
        return int(new_z)

    def sweep(self, corpus, stats, alpha, rng):
        direct, log, use_log = self.time_weights()
        order = corpus.sweep_order(rng)
        # the domain is fixed per document for the whole sweep
        in_log = use_log[corpus.doc_ids[order]]
        for kernel, weights, part in ((sweep_time_nb, direct, order[~in_log]),
                                      (sweep_time_log_nb, log, order[in_log])):
            if part.shape[0] == 0:
                continue
            uniforms = rng.random(part.shape[0])
            status = kernel(part, corpus.doc_ids, corpus.word_ids, corpus.topic_ids, alpha, self.beta,
                            stats.vocab_weights, *stats.arrays(), weights, uniforms)
            if status >= 0:
                raise _degenerate(corpus, status)


class TimeLogTokenResampler(TimeTokenResampler):
    '''Same as TimeTokenResampler, always in the log domain.'''

    def time_weights(self):
        direct, log, use_log = self.time_model.time_weights()
        return direct, log, np.ones_like(use_log)


class KeywordTokenResampler(TokenResampler):
    '''
    Keyword-seeded topics. The first is_keyword.shape[0] topics own a set of
    keywords; a token assigned to one of them with switch 1 is drawn from the
    topic's keyword distribution (smoothed by beta_s), with switch 0 from its
    regular word distribution. The switch has a Beta(gamma_1, gamma_2) prior.
    '''

    def __init__(self, beta, beta_s, gamma_1, gamma_2, is_keyword) -> None:
        super().__init__(beta)
        self.beta_s = beta_s
        self.gamma_1 = gamma_1
        self.gamma_2 = gamma_2
        self.is_keyword = np.asarray(is_keyword, dtype=np.bool_)
        self.keywords_num = self.is_keyword.sum(axis=1).astype(np.float64)

    def resample(self, stats, doc, word, topic, alpha, rng, switch=0):
        '''
        :return: (new topic, new switch)
        '''
        (n0_kv, n1_kv, n0_k, n1_k, n0_k_nw, n1_k_nw, n_dk) = stats.arrays()
        probs = np.empty(stats.num_topics)
        weight = stats.vocab_weights[word]
        new_z = sample_z_keyword_nb(doc, word, topic, switch, np.asarray(alpha, dtype=np.float64), self.beta,
                                    self.beta_s, self.gamma_1, self.gamma_2, self.is_keyword, self.keywords_num,
                                    weight, n0_kv, n1_kv, n0_k, n1_k, n0_k_nw, n1_k_nw, n_dk, probs, rng.random())
        if new_z < 0:
            raise NumericalDegeneracyError(f"candidate topic weights in document {doc} do not sum to a positive finite value")
        new_s = sample_s_keyword_nb(word, new_z, switch, self.beta, self.beta_s, self.gamma_1, self.gamma_2,
                                    self.is_keyword, self.keywords_num, weight, n0_kv, n1_kv, n0_k, n1_k,
                                    n0_k_nw, n1_k_nw, rng.random())
        if new_s < 0:
            raise NumericalDegeneracyError(f"switch weights in document {doc} do not sum to a positive finite value")
        return int(new_z), int(new_s)

    def sweep(self, corpus, stats, alpha, rng):
        order = corpus.sweep_order(rng)
        uniforms = rng.random((order.shape[0], 2))
        status = sweep_keyword_nb(order, corpus.doc_ids, corpus.word_ids, corpus.topic_ids, corpus.switch_ids,
                                  alpha, self.beta, self.beta_s, self.gamma_1, self.gamma_2, self.is_keyword,
                                  self.keywords_num, stats.vocab_weights, *stats.arrays(), uniforms)
        if status >= 0:
            raise _degenerate(corpus, status)

    def word_loglik(self, stats):
        loglik = topic_word_loglik(stats.topic_word, stats.topic_total, self.beta)

        num_keyword_topics = self.is_keyword.shape[0]
        if num_keyword_topics == 0:
            return loglik
        n1_kv = stats.keyword_topic_word[:num_keyword_topics]
        n1_k = stats.keyword_topic_total[:num_keyword_topics]
        n0_k = stats.topic_total[:num_keyword_topics]
        loglik += topic_word_loglik(n1_kv, n1_k, self.beta_s, support=self.keywords_num)

        # switch
        g1, g2 = self.gamma_1, self.gamma_2
        loglik += float(np.sum(gammaln(g1 + g2) - gammaln(g1) - gammaln(g2)
                               + gammaln(n1_k + g1) + gammaln(n0_k + g2) - gammaln(n1_k + n0_k + g1 + g2)))
        return loglik
