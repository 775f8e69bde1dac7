from atm_src.config import ModelConfig, Options, Priors
from atm_src.corpus import Corpus, vocab_weights
from atm_src.covariates import CovariateAlphaModel
from atm_src.exceptions import ATMError, ConfigurationError, ModelStateError, NumericalDegeneracyError
from atm_src.hyperparameters import DirichletAlphaSampler, FixedAlpha, HyperparameterSampler
from atm_src.model import ModelState, Snapshot, TopicModel
from atm_src.resamplers import (
    BaseTokenResampler,
    KeywordTokenResampler,
    TimeLogTokenResampler,
    TimeTokenResampler,
    TokenResampler,
)
from atm_src.slice_sampler import slice_sample
from atm_src.statistics import KeywordStatistics, SufficientStatistics
from atm_src.time_model import TimeStructuredModel
