import logging
from abc import ABC, abstractmethod

import numpy as np
from scipy.special import betaln, gammaln

from atm_src.slice_sampler import slice_sample

logger = logging.getLogger(__name__)


def dirichlet_multinomial_loglik(alpha, doc_topic, doc_lengths) -> float:
    '''
    Log-likelihood of the document-topic counts with the topic proportions
    integrated out.

    :param alpha: (num_topics,) shared prior or (num_doc, num_topics) per-document priors
    :param doc_topic: (num_doc, num_topics) counts
    :param doc_lengths: (num_doc,) document lengths
    '''
    alpha = np.broadcast_to(alpha, doc_topic.shape)
    alpha_sum = alpha.sum(axis=1)
    loglik = np.sum(gammaln(alpha_sum) - gammaln(doc_lengths + alpha_sum))
    loglik += np.sum(gammaln(doc_topic + alpha) - gammaln(alpha))
    return float(loglik)


def gamma_logpdf(x, shape, rate):
    return shape * np.log(rate) - gammaln(shape) + (shape - 1.0) * np.log(x) - rate * x


def beta_logpdf(t, a, b):
    return (a - 1.0) * np.log(t) + (b - 1.0) * np.log1p(-t) - betaln(a, b)


class HyperparameterSampler(ABC):
    '''
    Owns the document-topic prior of a model and updates its own parameters
    once per iteration, after the token sweep.
    '''

    @abstractmethod
    def alpha_matrix(self, num_doc: int) -> np.ndarray:
        '''Per-document topic priors, shape (num_doc, num_topics).'''

    def sample(self, stats, corpus, rng):
        pass

    def state(self) -> dict:
        '''Copies of the sampled parameters, keyed by name.'''
        return {}

    def prior_loglik(self, stats, corpus) -> float:
        '''Log-likelihood of the topic assignments given the current priors.'''
        return dirichlet_multinomial_loglik(self.alpha_matrix(corpus.num_doc), stats.doc_topic, corpus.doc_lengths)


class FixedAlpha(HyperparameterSampler):

    def __init__(self, alpha: np.ndarray) -> None:
        self.alpha = np.asarray(alpha, dtype=np.float64)

    def alpha_matrix(self, num_doc):
        return np.tile(self.alpha, (num_doc, 1))

    def state(self):
        return {"alpha": self.alpha.copy()}


class DirichletAlphaSampler(FixedAlpha):
    '''
    Slice-samples every topic's prior concentration alpha[k] in turn, under
    the Dirichlet-multinomial likelihood of the current document-topic counts
    and a Gamma(prior_shape[k], prior_rate[k]) prior.
    '''

    def __init__(self, alpha, prior_shape, prior_rate, min_v=1e-9, max_v=100.0, width=1.0,
                 max_step_out=50, max_shrink_time=200) -> None:
        super().__init__(alpha)
        num_topics = self.alpha.shape[0]
        self.prior_shape = np.broadcast_to(np.asarray(prior_shape, dtype=np.float64), (num_topics,)).copy()
        self.prior_rate = np.broadcast_to(np.asarray(prior_rate, dtype=np.float64), (num_topics,)).copy()
        self.min_v = min_v
        self.max_v = max_v
        self.width = width
        self.max_step_out = max_step_out
        self.max_shrink_time = max_shrink_time

    def alpha_loglik(self, alpha, stats, corpus):
        loglik = dirichlet_multinomial_loglik(alpha, stats.doc_topic, corpus.doc_lengths)
        return loglik + float(np.sum(gamma_logpdf(alpha, self.prior_shape, self.prior_rate)))

    def sample(self, stats, corpus, rng):
        self.sample_alpha(stats, corpus, rng)

    def sample_alpha(self, stats, corpus, rng):
        for k in rng.permutation(self.alpha.shape[0]):
            def loglik(value, k=k):
                candidate = self.alpha.copy()
                candidate[k] = value
                return self.alpha_loglik(candidate, stats, corpus)

            self.alpha[k] = slice_sample(self.alpha[k], loglik, rng, self.min_v, self.max_v, self.width,
                                         self.max_step_out, self.max_shrink_time)
        logger.debug("sampled alpha %s", self.alpha)
