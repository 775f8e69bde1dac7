import numpy as np

from atm_src.exceptions import ConfigurationError


class Corpus(object):
    '''
    A tokenized corpus: for every document a word-index sequence and a
    topic-index sequence of the same length. The sequences are stored flat,
    one entry per token, in the compressed format used by the sweep kernels:

    doc_ids[i], word_ids[i], topic_ids[i] describe token i, and the tokens of
    document d occupy doc_offsets[d]:doc_offsets[d + 1].
    '''

    def __init__(self, words, topics, num_vocab: int, switches=None) -> None:
        if len(words) != len(topics):
            raise ConfigurationError(f"got {len(words)} word sequences but {len(topics)} topic sequences")
        if switches is not None and len(switches) != len(words):
            raise ConfigurationError(f"got {len(words)} word sequences but {len(switches)} switch sequences")

        lengths = []
        for d in range(len(words)):
            if len(words[d]) != len(topics[d]):
                raise ConfigurationError(
                    f"document {d} has {len(words[d])} words but {len(topics[d])} topic assignments")
            if switches is not None and len(switches[d]) != len(words[d]):
                raise ConfigurationError(
                    f"document {d} has {len(words[d])} words but {len(switches[d])} switches")
            lengths.append(len(words[d]))

        self.num_vocab = int(num_vocab)
        self.doc_lengths = np.array(lengths, dtype=np.int64)
        self.doc_offsets = np.r_[0, np.cumsum(self.doc_lengths)].astype(np.int64)
        self.num_doc = len(lengths)
        self.total_words = int(self.doc_offsets[-1])

        self.doc_ids = np.repeat(np.arange(self.num_doc, dtype=np.int64), self.doc_lengths)
        self.word_ids = self._flatten(words)
        self.topic_ids = self._flatten(topics)
        self.switch_ids = None if switches is None else self._flatten(switches)

        if self.num_vocab <= 0:
            raise ConfigurationError(f"num_vocab must be positive, got {num_vocab}")
        if self.word_ids.size and (self.word_ids.min() < 0 or self.word_ids.max() >= self.num_vocab):
            raise ConfigurationError(f"word indices must lie in [0, {self.num_vocab})")

    def _flatten(self, sequences):
        if self.total_words == 0:
            return np.zeros(0, dtype=np.int64)
        flat = np.concatenate([np.asarray(seq).reshape(-1) for seq in sequences])
        if flat.size and not np.issubdtype(flat.dtype, np.integer):
            if not np.all(np.equal(np.mod(flat, 1), 0)):
                raise ConfigurationError("word, topic and switch indices must be integers")
        return flat.astype(np.int64)

    @classmethod
    def from_documents(cls, words, num_topics: int, num_vocab: int, rng=None):
        '''
        Builds a corpus with a uniformly random initial topic assignment.

        :param words: list of word-index sequences, one per document
        :param num_topics: total number of topics
        :param num_vocab: vocabulary size
        :param rng: numpy Generator (a fresh unseeded one if None)
        :return: Corpus
        '''
        rng = np.random.default_rng() if rng is None else rng
        topics = [rng.integers(0, num_topics, size=len(doc)) for doc in words]
        return cls(words, topics, num_vocab)

    def validate(self, num_topics: int, keywords=None):
        '''
        Checks the topic (and switch) sequences against the model size.
        Called once before sampling starts.
        '''
        if self.topic_ids.size and (self.topic_ids.min() < 0 or self.topic_ids.max() >= num_topics):
            raise ConfigurationError(f"topic indices must lie in [0, {num_topics})")
        if self.switch_ids is None:
            return
        if self.switch_ids.size and not np.all((self.switch_ids == 0) | (self.switch_ids == 1)):
            raise ConfigurationError("switch indicators must be 0 or 1")
        on = self.switch_ids == 1
        if not np.any(on):
            return
        if keywords is None:
            raise ConfigurationError("switch indicators are set but no keywords were given")
        z, w = self.topic_ids[on], self.word_ids[on]
        if np.any(z >= keywords.shape[0]) or not np.all(keywords[z, w]):
            raise ConfigurationError("a token has switch 1 but its word is not a keyword of its topic")

    def sequences(self, flat):
        return [flat[self.doc_offsets[d]:self.doc_offsets[d + 1]].copy() for d in range(self.num_doc)]

    def assignments(self):
        '''Per-document topic sequences.'''
        return self.sequences(self.topic_ids)

    def word_counts(self):
        return np.bincount(self.word_ids, minlength=self.num_vocab).astype(np.float64)

    def sweep_order(self, rng):
        '''
        Token positions for one sweep: documents in a random order, tokens of
        a document in a random order.
        '''
        if self.total_words == 0:
            return np.zeros(0, dtype=np.int64)
        parts = [self.doc_offsets[d] + rng.permutation(self.doc_lengths[d])
                 for d in rng.permutation(self.num_doc)]
        return np.concatenate(parts).astype(np.int64)


def vocab_weights(corpus: Corpus, use_weights: bool = True) -> np.ndarray:
    '''
    Information-content weight of every vocabulary word. Each word starts from
    a pseudo-count of 1, the corpus counts are added and normalized by the
    total, and the weight is -log2 of that probability, so rare words weigh
    more than frequent ones.

    :param corpus: Corpus
    :param use_weights: when False every weight is 1.0
    :return: array of length num_vocab
    '''
    if not use_weights:
        return np.ones(corpus.num_vocab, dtype=np.float64)

    counts = 1.0 + corpus.word_counts()
    p = counts / counts.sum()
    return -np.log2(p)
