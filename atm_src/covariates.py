import logging
import math

import numpy as np
from scipy.special import gammaln

from atm_src.exceptions import ConfigurationError, NumericalDegeneracyError
from atm_src.hyperparameters import HyperparameterSampler
from atm_src.slice_sampler import slice_sample

logger = logging.getLogger(__name__)


class CovariateAlphaModel(HyperparameterSampler):
    '''
    Document-topic priors driven by document covariates through a log-linear
    link:

        alpha[d] = exp(C[d] . Lambda^T)

    The coefficients Lambda (num_topics x num_cov) get a Gaussian prior
    N(mu, sigma^2) and are updated one at a time, every iteration, either by
    random-walk Metropolis-Hastings or by slice sampling.
    '''

    def __init__(self, covariates, num_topics: int, rng, mu: float = 0.0, sigma: float = 1.0,
                 mh_use: bool = False, mh_sigma: float = 0.4, lambda_min: float = -5.0,
                 lambda_max: float = 5.0, init_sd: float = 0.3, width: float = 1.0,
                 max_step_out: int = 50, max_shrink_time: int = 200, lambda_=None) -> None:
        self.C = np.asarray(covariates, dtype=np.float64)
        if self.C.ndim != 2 or self.C.shape[1] == 0:
            raise ConfigurationError(f"covariates must be a (num_doc, num_cov) matrix, got shape {self.C.shape}")
        if not np.all(np.isfinite(self.C)):
            raise ConfigurationError("covariates must be finite")

        self.num_topics = num_topics
        self.num_cov = self.C.shape[1]
        self.mu = mu
        self.sigma = sigma
        self.mh_use = mh_use
        self.mh_sigma = mh_sigma
        self.lambda_min = lambda_min
        self.lambda_max = lambda_max
        self.width = width
        self.max_step_out = max_step_out
        self.max_shrink_time = max_shrink_time

        if lambda_ is None:
            lambda_ = np.clip(rng.normal(0.0, init_sd, size=(num_topics, self.num_cov)), lambda_min, lambda_max)
        self.Lambda = np.array(lambda_, dtype=np.float64)
        if self.Lambda.shape != (num_topics, self.num_cov):
            raise ConfigurationError(
                f"Lambda must have shape {(num_topics, self.num_cov)}, got {self.Lambda.shape}")
        if not mh_use and np.any((self.Lambda < lambda_min) | (self.Lambda > lambda_max)):
            raise ConfigurationError(f"Lambda must lie in [{lambda_min}, {lambda_max}] for slice sampling")
        with np.errstate(over="ignore", under="ignore"):
            alpha = self.alpha_matrix()
        if not np.all(np.isfinite(alpha) & (alpha > 0.0)):
            raise ConfigurationError("exp(C . Lambda^T) must be finite and positive for every document, "
                                     "standardize the covariates or pass a smaller Lambda")

    def alpha_matrix(self, num_doc=None):
        return np.exp(self.C @ self.Lambda.T)

    def state(self):
        return {"lambda_": self.Lambda.copy()}

    def likelihood_lambda(self, k, t, stats, corpus):
        '''
        Log-likelihood of the document-topic counts as a function of
        Lambda[k, t]: the Dirichlet-multinomial terms that depend on topic k's
        prior, plus the Gaussian log-prior of the coefficient.
        '''
        # non-finite when alpha over- or underflows
        with np.errstate(over="ignore", under="ignore", invalid="ignore", divide="ignore"):
            alpha = self.alpha_matrix()
            alpha_sum = alpha.sum(axis=1)
            loglik = np.sum(gammaln(alpha_sum) - gammaln(corpus.doc_lengths + alpha_sum))
            loglik += np.sum(gammaln(stats.doc_topic[:, k] + alpha[:, k]) - gammaln(alpha[:, k]))

        # prior
        loglik += -0.5 * math.log(2.0 * math.pi * self.sigma ** 2)
        loglik -= (self.Lambda[k, t] - self.mu) ** 2 / (2.0 * self.sigma ** 2)
        return float(loglik)

    def sample(self, stats, corpus, rng):
        if self.mh_use:
            self.sample_lambda_mh(stats, corpus, rng)
        else:
            self.sample_lambda_slice(stats, corpus, rng)

    def sample_lambda_mh(self, stats, corpus, rng):
        accepted = 0
        for k in rng.permutation(self.num_topics):
            for t in rng.permutation(self.num_cov):
                lambda_current = self.Lambda[k, t]
                llk_current = self.likelihood_lambda(k, t, stats, corpus)
                if not np.isfinite(llk_current):
                    raise NumericalDegeneracyError(
                        f"log-likelihood of Lambda[{k}, {t}] = {lambda_current} is not finite")

                self.Lambda[k, t] += rng.normal(0.0, self.mh_sigma)
                llk_proposal = self.likelihood_lambda(k, t, stats, corpus)

                # proposals where alpha over- or underflows are rejected
                r = min(0.0, llk_proposal - llk_current) if np.isfinite(llk_proposal) else -np.inf
                if np.log(rng.random()) < r:
                    accepted += 1
                else:
                    # put back original value
                    self.Lambda[k, t] = lambda_current
        logger.debug("Lambda MH acceptance %i/%i", accepted, self.num_topics * self.num_cov)

    def sample_lambda_slice(self, stats, corpus, rng):
        for k in rng.permutation(self.num_topics):
            for t in rng.permutation(self.num_cov):
                def loglik(value, k=k, t=t):
                    self.Lambda[k, t] = value
                    return self.likelihood_lambda(k, t, stats, corpus)

                current = self.Lambda[k, t]
                self.Lambda[k, t] = slice_sample(current, loglik, rng, self.lambda_min, self.lambda_max,
                                                 self.width, self.max_step_out, self.max_shrink_time)
