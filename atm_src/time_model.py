import logging

import numpy as np
from scipy.special import gamma

from atm_src.exceptions import ConfigurationError
from atm_src.hyperparameters import DirichletAlphaSampler, beta_logpdf, gamma_logpdf
from atm_src.slice_sampler import slice_sample

logger = logging.getLogger(__name__)

# timestamps are kept this far from 0 and 1 so every Beta density is finite
TIME_EPS = 1e-6
# topic-time variances below this are treated as zero
MIN_VARIANCE = 1e-10


class TimeStructuredModel(DirichletAlphaSampler):
    '''
    Topics over time. Topic k owns a Beta(a_k, b_k) profile over normalized
    document time, and a token's weight for topic k is multiplied by the
    density of its document's timestamp under that profile. After every sweep
    the shared topic prior alpha is slice-sampled under a Gamma(ts_g1, ts_g2)
    prior and the Beta parameters are refitted.
    '''

    def __init__(self, timestamps, alpha, ts_g1=1.5, ts_g2=2.0, beta_param_method="moment",
                 beta_param_init=1.0, min_v=1e-9, max_v=100.0, width=1.0, max_step_out=50,
                 max_shrink_time=1000) -> None:
        super().__init__(alpha, ts_g1, ts_g2, min_v, max_v, width, max_step_out, max_shrink_time)
        timestamps = np.asarray(timestamps, dtype=np.float64)
        if timestamps.ndim != 1:
            raise ConfigurationError(f"timestamps must be a vector, got shape {timestamps.shape}")
        if not np.all(np.isfinite(timestamps)) or np.any((timestamps < 0.0) | (timestamps > 1.0)):
            raise ConfigurationError("timestamps must be normalized to [0, 1]")

        self.ts_g1 = ts_g1
        self.ts_g2 = ts_g2
        self.beta_param_method = beta_param_method
        self.timestamps = np.clip(timestamps, TIME_EPS, 1.0 - TIME_EPS)
        self.beta_params = np.full((self.alpha.shape[0], 2), float(beta_param_init))

    def state(self):
        state = super().state()
        state["beta_params"] = self.beta_params.copy()
        return state

    def prior_loglik(self, stats, corpus):
        loglik = super().prior_loglik(stats, corpus)
        _, log_density, _ = self.time_weights()
        return loglik + float(np.sum(stats.doc_topic * log_density))

    def time_weights(self):
        '''
        Beta densities of every document's timestamp under every topic.

        :return: direct densities (num_doc, num_topics), log densities
            (num_doc, num_topics), and a per-document flag telling whether the
            direct densities of that document under- or overflowed
        '''
        a = self.beta_params[:, 0]
        b = self.beta_params[:, 1]
        t = self.timestamps[:, None]
        log_density = beta_logpdf(t, a, b)

        with np.errstate(over="ignore", under="ignore", invalid="ignore", divide="ignore"):
            density = gamma(a + b) / (gamma(a) * gamma(b)) * t ** (a - 1.0) * (1.0 - t) ** (b - 1.0)
        unreliable = ~np.isfinite(density) | (density < np.finfo(np.float64).tiny)
        use_log = unreliable.any(axis=1)
        if use_log.any():
            logger.debug("%i documents resampled in the log domain", int(use_log.sum()))
        return np.where(unreliable, 0.0, density), log_density, use_log

    def sample(self, stats, corpus, rng):
        self.sample_alpha(stats, corpus, rng)
        if self.beta_param_method == "slice":
            self.sample_betaparam_slice(stats, rng)
        else:
            self.sample_betaparam(stats)

    def sample_betaparam(self, stats):
        '''
        Moment-matches each topic's Beta parameters to the timestamps of the
        tokens currently assigned to it. Topics with fewer than two tokens or
        (numerically) zero variance keep their parameters.
        '''
        counts = stats.doc_topic
        totals = counts.sum(axis=0)
        t = self.timestamps
        for k in range(self.beta_params.shape[0]):
            if totals[k] < 2:
                continue
            mean = counts[:, k] @ t / totals[k]
            var = counts[:, k] @ (t - mean) ** 2 / (totals[k] - 1.0)
            if var < MIN_VARIANCE:
                continue
            common = mean * (1.0 - mean) / var - 1.0
            if common <= 0.0:
                continue
            self.beta_params[k, 0] = mean * common
            self.beta_params[k, 1] = (1.0 - mean) * common

    def beta_loglik(self, k, stats):
        return float(stats.doc_topic[:, k] @ beta_logpdf(self.timestamps, self.beta_params[k, 0],
                                                          self.beta_params[k, 1]))

    def sample_betaparam_slice(self, stats, rng):
        for k in rng.permutation(self.beta_params.shape[0]):
            for i in range(2):
                def loglik(value, k=k, i=i):
                    self.beta_params[k, i] = value
                    return self.beta_loglik(k, stats) + gamma_logpdf(value, self.ts_g1, self.ts_g2)

                current = self.beta_params[k, i]
                self.beta_params[k, i] = slice_sample(current, loglik, rng, self.min_v, self.max_v, self.width,
                                                      self.max_step_out, self.max_shrink_time)
