import math
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

import numpy as np

from atm_src.exceptions import ConfigurationError

MODEL_TYPES = ("base", "keyword", "covariates", "time")
BETA_PARAM_METHODS = ("moment", "slice")


def _check_positive(name, value):
    if not (isinstance(value, (int, float)) and math.isfinite(value) and value > 0):
        raise ConfigurationError(f"{name} must be a positive finite number, got {value!r}")


@dataclass
class Priors:
    '''
    Prior hyperparameters. Every value must be strictly positive except the
    mean of the Gaussian prior on the covariate coefficients.

    :param beta: word-topic smoothing
    :param beta_s: smoothing of the keyword distributions (keyword model)
    :param alpha: topic-prior concentration, scalar or one value per topic
    :param gamma_1: Beta prior of the keyword switch, keyword side
    :param gamma_2: Beta prior of the keyword switch, regular side
    :param eta_1: Gamma shape of alpha for keyword topics
    :param eta_2: Gamma rate of alpha for keyword topics
    :param eta_1_regular: Gamma shape of alpha for free topics
    :param eta_2_regular: Gamma rate of alpha for free topics
    :param lambda_mu: Gaussian prior mean of the covariate coefficients
    :param lambda_sigma: Gaussian prior standard deviation of the covariate coefficients
    :param ts_g1: Gamma shape used by the time model
    :param ts_g2: Gamma rate used by the time model
    '''
    beta: float = 0.01
    beta_s: float = 0.1
    alpha: Union[float, Sequence[float]] = 1.0
    gamma_1: float = 1.0
    gamma_2: float = 1.0
    eta_1: float = 1.0
    eta_2: float = 1.0
    eta_1_regular: float = 2.0
    eta_2_regular: float = 1.0
    lambda_mu: float = 0.0
    lambda_sigma: float = 1.0
    ts_g1: float = 1.5
    ts_g2: float = 2.0

    def validate(self):
        for name in ("beta", "beta_s", "gamma_1", "gamma_2", "eta_1", "eta_2",
                     "eta_1_regular", "eta_2_regular", "lambda_sigma", "ts_g1", "ts_g2"):
            _check_positive(name, getattr(self, name))
        if not (isinstance(self.lambda_mu, (int, float)) and math.isfinite(self.lambda_mu)):
            raise ConfigurationError(f"lambda_mu must be finite, got {self.lambda_mu!r}")
        alpha = np.atleast_1d(np.asarray(self.alpha, dtype=np.float64))
        if alpha.ndim != 1 or alpha.size == 0 or not np.all(np.isfinite(alpha)) or np.any(alpha <= 0):
            raise ConfigurationError("alpha must be a positive scalar or a non-empty vector of positive values")

    def alpha_vector(self, num_topics: int) -> np.ndarray:
        '''
        Broadcasts the configured alpha to one value per topic.
        '''
        alpha = np.atleast_1d(np.asarray(self.alpha, dtype=np.float64))
        if alpha.size == 1:
            return np.full(num_topics, alpha[0])
        if alpha.size != num_topics:
            raise ConfigurationError(f"alpha has {alpha.size} entries but the model has {num_topics} topics")
        return alpha.copy()


@dataclass
class Options:
    '''
    Sampler options. The slice_* values bound the concentration parameters,
    the lambda_* values bound the covariate coefficients.
    '''
    use_weights: bool = True
    estimate_alpha: bool = False
    store_theta: bool = False
    thinning: int = 5
    random_state: Optional[int] = None
    verbose: bool = False

    # slice sampling of concentration parameters
    slice_min: float = 1e-9
    slice_max: float = 100.0
    slice_width: float = 1.0
    max_shrink_time: int = 200
    max_step_out: int = 50

    # covariate model
    mh_use: bool = False
    mh_sigma: float = 0.4
    lambda_min: float = -5.0
    lambda_max: float = 5.0
    lambda_init_sd: float = 0.3

    # time model
    use_log: bool = False
    beta_param_method: str = "moment"
    beta_param_init: float = 1.0
    time_max_shrink_time: int = 1000

    def validate(self):
        if not isinstance(self.thinning, int) or self.thinning < 1:
            raise ConfigurationError(f"thinning must be a positive integer, got {self.thinning!r}")
        for name in ("max_shrink_time", "max_step_out", "time_max_shrink_time"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
        for name in ("slice_min", "slice_width", "mh_sigma", "lambda_init_sd", "beta_param_init"):
            _check_positive(name, getattr(self, name))
        if not self.slice_min < self.slice_max:
            raise ConfigurationError("slice_min must be smaller than slice_max")
        if not self.lambda_min < self.lambda_max:
            raise ConfigurationError("lambda_min must be smaller than lambda_max")
        if self.beta_param_method not in BETA_PARAM_METHODS:
            raise ConfigurationError(
                f"beta_param_method can only be one of {BETA_PARAM_METHODS}, got {self.beta_param_method!r}")


@dataclass
class ModelConfig:
    '''
    Everything the sampler needs besides the corpus and the side information.

    :param model_type: one of 'base', 'keyword', 'covariates', 'time'
    :param num_topics: number of free (non-keyword) topics
    '''
    model_type: str = "base"
    num_topics: int = 10
    priors: Priors = field(default_factory=Priors)
    options: Options = field(default_factory=Options)

    def validate(self):
        if self.model_type not in MODEL_TYPES:
            raise ConfigurationError(f"model_type can only be one of {MODEL_TYPES}, got {self.model_type!r}")
        if not isinstance(self.num_topics, int) or self.num_topics < 0:
            raise ConfigurationError(f"num_topics must be a non-negative integer, got {self.num_topics!r}")
        self.priors.validate()
        self.options.validate()
