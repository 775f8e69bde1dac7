import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import pandas as pd
from tqdm import tqdm

from atm_src.config import ModelConfig
from atm_src.corpus import Corpus, vocab_weights
from atm_src.covariates import CovariateAlphaModel
from atm_src.exceptions import ConfigurationError, ModelStateError
from atm_src.hyperparameters import DirichletAlphaSampler, FixedAlpha
from atm_src.resamplers import (
    BaseTokenResampler,
    KeywordTokenResampler,
    TimeLogTokenResampler,
    TimeTokenResampler,
)
from atm_src.statistics import KeywordStatistics, SufficientStatistics
from atm_src.time_model import TimeStructuredModel

logger = logging.getLogger(__name__)

INITIALIZED = "initialized"
FINALIZED = "finalized"


@dataclass
class Snapshot:
    '''Sampled parameters and fit statistics stored at a thinned iteration.'''
    iteration: int
    loglik: float
    perplexity: float
    alpha: Optional[np.ndarray] = None
    lambda_: Optional[np.ndarray] = None
    beta_params: Optional[np.ndarray] = None
    theta: Optional[np.ndarray] = None


@dataclass
class ModelState:
    '''
    Output of a fit: final assignments, the count tables they induce, the
    fitted hyperparameters and the thinned snapshots.
    '''
    iterations: int
    assignments: List[np.ndarray]
    statistics: SufficientStatistics
    theta: np.ndarray
    phi: np.ndarray
    switches: Optional[List[np.ndarray]] = None
    alpha: Optional[np.ndarray] = None
    lambda_: Optional[np.ndarray] = None
    beta_params: Optional[np.ndarray] = None
    snapshots: List[Snapshot] = field(default_factory=list)
    model_fit: Optional[pd.DataFrame] = None
    diagnostics: List[str] = field(default_factory=list)


class TopicModel(object):
    '''
    Collapsed Gibbs sampler for LDA-type topic models. A model is one token
    resampler (base, keyword or time-weighted) and one hyperparameter sampler
    (fixed alpha, alpha slice sampling, covariate regression or topic-time
    profiles), chosen from config.model_type:

    - 'base': BaseTokenResampler with fixed alpha (sampled if options.estimate_alpha)
    - 'keyword': KeywordTokenResampler, the first len(keywords) topics are seeded
    - 'covariates': BaseTokenResampler with CovariateAlphaModel
    - 'time': TimeTokenResampler (or TimeLogTokenResampler) with TimeStructuredModel

    The corpus is the model state: fit() updates its topic (and switch)
    assignments in place.
    '''

    def __init__(self, corpus: Corpus, config: ModelConfig, covariates=None, timestamps=None,
                 keywords=None, lambda_=None) -> None:
        config.validate()
        self.corpus = corpus
        self.config = config
        self.diagnostics = []
        self.rng = np.random.default_rng(config.options.random_state)

        self.check_side_information(covariates, timestamps, keywords)
        self.is_keyword = self.keyword_matrix(keywords)
        self.num_keyword_topics = self.is_keyword.shape[0]
        self.T = self.num_keyword_topics + config.num_topics
        if self.T == 0:
            raise ConfigurationError("the model needs at least one topic")

        if config.model_type == "keyword" and corpus.switch_ids is None:
            z, w = corpus.topic_ids, corpus.word_ids
            on = z < self.num_keyword_topics
            switches = np.zeros_like(z)
            switches[on] = self.is_keyword[z[on], w[on]]
            corpus.switch_ids = switches.astype(np.int64)
        corpus.validate(self.T, self.is_keyword if config.model_type == "keyword" else None)

        self.W = corpus.num_vocab
        self.D = corpus.num_doc
        self.vocab_weights = vocab_weights(corpus, config.options.use_weights)
        if not config.options.use_weights:
            self.warn("Not using weights! Check `options.use_weights`.")

        stats_class = KeywordStatistics if config.model_type == "keyword" else SufficientStatistics
        self.stats = stats_class.from_corpus(corpus, self.T, self.vocab_weights)

        self.hyper = self.build_hyperparameter_sampler(covariates, timestamps, lambda_)
        self.resampler = self.build_resampler()

        self.status = INITIALIZED
        self.iterations = 0
        self.snapshots = []
        self.theta = None
        self.phi = None
        self.df = None

    def warn(self, message):
        logger.warning(message)
        self.diagnostics.append(message)

    def check_side_information(self, covariates, timestamps, keywords):
        '''
        Every model type takes exactly the side information it uses.
        '''
        model_type = self.config.model_type
        for name, value, owner in (("covariates", covariates, "covariates"),
                                   ("timestamps", timestamps, "time"),
                                   ("keywords", keywords, "keyword")):
            if model_type == owner and value is None:
                raise ConfigurationError(f"model_type '{owner}' needs {name}")
            if model_type != owner and value is not None:
                raise ConfigurationError(f"{name} were given but model_type is '{model_type}'")

        if covariates is not None and np.shape(covariates)[0] != self.corpus.num_doc:
            raise ConfigurationError(
                f"covariates have {np.shape(covariates)[0]} rows but the corpus has {self.corpus.num_doc} documents")
        if timestamps is not None and np.size(timestamps) != self.corpus.num_doc:
            raise ConfigurationError(
                f"got {np.size(timestamps)} timestamps but the corpus has {self.corpus.num_doc} documents")

    def keyword_matrix(self, keywords):
        '''
        (num_keyword_topics, num_vocab) indicator of the keywords of each seeded topic.
        '''
        if keywords is None:
            return np.zeros((0, self.corpus.num_vocab), dtype=np.bool_)
        if len(keywords) == 0:
            raise ConfigurationError("the keyword model needs at least one keyword topic")
        is_keyword = np.zeros((len(keywords), self.corpus.num_vocab), dtype=np.bool_)
        for k, words in enumerate(keywords):
            words = np.asarray(words, dtype=np.int64).reshape(-1)
            if words.size == 0:
                raise ConfigurationError(f"keyword topic {k} has no keywords")
            if words.min() < 0 or words.max() >= self.corpus.num_vocab:
                raise ConfigurationError(f"keywords of topic {k} must lie in [0, {self.corpus.num_vocab})")
            is_keyword[k, words] = True
        return is_keyword

    def build_hyperparameter_sampler(self, covariates, timestamps, lambda_):
        priors = self.config.priors
        options = self.config.options
        model_type = self.config.model_type

        if model_type == "covariates":
            return CovariateAlphaModel(covariates, self.T, self.rng, mu=priors.lambda_mu, sigma=priors.lambda_sigma,
                                       mh_use=options.mh_use, mh_sigma=options.mh_sigma,
                                       lambda_min=options.lambda_min, lambda_max=options.lambda_max,
                                       init_sd=options.lambda_init_sd, width=options.slice_width,
                                       max_step_out=options.max_step_out, max_shrink_time=options.max_shrink_time,
                                       lambda_=lambda_)
        if lambda_ is not None:
            raise ConfigurationError(f"lambda_ was given but model_type is '{model_type}'")

        alpha = priors.alpha_vector(self.T)
        if model_type == "time" or options.estimate_alpha:
            if np.any((alpha < options.slice_min) | (alpha > options.slice_max)):
                raise ConfigurationError(
                    f"alpha must lie in [{options.slice_min}, {options.slice_max}] when it is sampled")

        if model_type == "time":
            return TimeStructuredModel(timestamps, alpha, priors.ts_g1, priors.ts_g2,
                                       beta_param_method=options.beta_param_method,
                                       beta_param_init=options.beta_param_init, min_v=options.slice_min,
                                       max_v=options.slice_max, width=options.slice_width,
                                       max_step_out=options.max_step_out,
                                       max_shrink_time=options.time_max_shrink_time)
        if options.estimate_alpha:
            keyword_topic = np.arange(self.T) < self.num_keyword_topics
            shape = np.where(keyword_topic, priors.eta_1, priors.eta_1_regular)
            rate = np.where(keyword_topic, priors.eta_2, priors.eta_2_regular)
            return DirichletAlphaSampler(alpha, shape, rate, min_v=options.slice_min, max_v=options.slice_max,
                                         width=options.slice_width, max_step_out=options.max_step_out,
                                         max_shrink_time=options.max_shrink_time)
        return FixedAlpha(alpha)

    def build_resampler(self):
        priors = self.config.priors
        if self.config.model_type == "keyword":
            return KeywordTokenResampler(priors.beta, priors.beta_s, priors.gamma_1, priors.gamma_2, self.is_keyword)
        if self.config.model_type == "time":
            if self.config.options.use_log:
                return TimeLogTokenResampler(priors.beta, self.hyper)
            return TimeTokenResampler(priors.beta, self.hyper)
        return BaseTokenResampler(priors.beta)

    def loglik_total(self):
        '''
        Collapsed joint log-likelihood of the words and the current topic
        (and switch) assignments.
        '''
        return self.resampler.word_loglik(self.stats) + self.hyper.prior_loglik(self.stats, self.corpus)

    def perplexity(self, loglik):
        return float(np.exp(-loglik / max(self.corpus.total_words, 1)))

    def compute_theta(self):
        # topic probabilities per document
        ndk_alpha = self.stats.doc_topic + self.hyper.alpha_matrix(self.D)
        return ndk_alpha / ndk_alpha.sum(axis=1).reshape(-1, 1)

    def compute_phi(self):
        # topic probabilities per word
        topic_word = self.stats.topic_word
        if isinstance(self.stats, KeywordStatistics):
            topic_word = self.stats.combined_topic_word()
        wt_beta = topic_word + self.config.priors.beta
        return wt_beta / wt_beta.sum(axis=1).reshape(-1, 1)

    def store(self, iteration):
        self.stats.check_consistency(self.corpus)
        loglik = self.loglik_total()
        snapshot = Snapshot(iteration=iteration, loglik=loglik, perplexity=self.perplexity(loglik),
                            **self.hyper.state())
        if self.config.options.store_theta:
            snapshot.theta = self.compute_theta()
        self.snapshots.append(snapshot)
        logger.info("iteration %i: log-likelihood %.4f, perplexity %.4f", iteration, snapshot.loglik,
                    snapshot.perplexity)

    def fit(self, iterations: int) -> ModelState:
        '''
        Runs the sampler: every iteration sweeps all tokens once, then updates
        the hyperparameters once. Parameters and fit statistics are stored at
        the first iteration, every options.thinning iterations and the last.

        :param iterations: number of iterations of the collapsed gibbs sampler
        :return: ModelState
        '''
        if self.status == FINALIZED:
            raise ModelStateError("the model has already been fitted; build a new model from its state to continue")
        if not isinstance(iterations, (int, np.integer)) or iterations < 0:
            raise ConfigurationError(f"iterations must be a non-negative integer, got {iterations!r}")

        options = self.config.options
        logger.info("Starting collapsed Gibbs sampler: %s model, %i topics, %i documents, %i tokens",
                    self.config.model_type, self.T, self.D, self.corpus.total_words)

        t1 = time.time()
        for it in tqdm(range(iterations), disable=not options.verbose, desc="Gibbs sampling"):
            alpha = self.hyper.alpha_matrix(self.D)
            self.resampler.sweep(self.corpus, self.stats, alpha, self.rng)
            self.hyper.sample(self.stats, self.corpus, self.rng)

            r_index = it + 1
            if r_index % options.thinning == 0 or r_index == 1 or r_index == iterations:
                self.store(r_index)

        self.iterations = iterations
        self.status = FINALIZED
        logger.info("Completed in %.2fs", time.time() - t1)

        self.theta = self.compute_theta()
        self.phi = self.compute_phi()
        return self.state()

    def state(self) -> ModelState:
        params = self.hyper.state()
        switches = None if self.corpus.switch_ids is None else self.corpus.sequences(self.corpus.switch_ids)
        return ModelState(
            iterations=self.iterations,
            assignments=self.corpus.assignments(),
            statistics=self.stats.copy(),
            theta=self.compute_theta() if self.theta is None else self.theta,
            phi=self.compute_phi() if self.phi is None else self.phi,
            switches=switches,
            alpha=params.get("alpha"),
            lambda_=params.get("lambda_"),
            beta_params=params.get("beta_params"),
            snapshots=list(self.snapshots),
            model_fit=self.model_fit(),
            diagnostics=list(self.diagnostics),
        )

    def model_fit(self):
        return pd.DataFrame({
            "iteration": [s.iteration for s in self.snapshots],
            "log_likelihood": [s.loglik for s in self.snapshots],
            "perplexity": [s.perplexity for s in self.snapshots],
        })

    def build_topics_df(self, vocab):
        '''
        function builds dataframe for the found topics including words and associated weights
        :param vocab: vocabulary, a dict word_index: word or a sequence of words
        :return: dataframe topic-word-weight
        '''
        if self.phi is None:
            raise ModelStateError("fit the model before building the topics dataframe")
        words = list(vocab.values()) if isinstance(vocab, dict) else list(vocab)
        if len(words) != self.W:
            raise ConfigurationError(f"vocabulary has {len(words)} words but the model has {self.W}")

        df = pd.DataFrame(self.phi)
        df.columns = words
        df['topic'] = list(range(self.T))

        self.df = pd.melt(df, id_vars='topic', var_name='word', value_name='weight')
        return self.df

    def topic_results(self, topic, words=10):
        '''
        method to be called by the user to display the topics.

        :param topic: topic number
        :param words: number of words to be included in the output
        :return: dataframe with ordered words in order of importance for the selected topic
        '''
        if self.df is None:
            raise ModelStateError("call build_topics_df before topic_results")
        return self.df[self.df['topic'] == topic].sort_values(by='weight', ascending=False).head(words)
