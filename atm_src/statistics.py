import numpy as np

from atm_src.exceptions import NumericalDegeneracyError

# tolerance for the floating point bookkeeping of weighted counts
ATOL = 1e-8


class SufficientStatistics(object):
    '''
    Count tables of the collapsed sampler.

    topic_word[k, w]: weighted count of word w assigned to topic k
    doc_topic[d, k]: unweighted count of topic k in document d
    topic_total[k]: weighted total of topic k
    topic_total_unweighted[k]: unweighted total of topic k

    The tables always reflect the current assignment: a token is removed
    before its candidate topics are scored and added back under the drawn
    topic afterwards.
    '''

    def __init__(self, num_topics: int, num_vocab: int, num_doc: int, vocab_weights: np.ndarray) -> None:
        self.num_topics = num_topics
        self.num_vocab = num_vocab
        self.num_doc = num_doc
        self.vocab_weights = np.asarray(vocab_weights, dtype=np.float64)
        self.topic_word = np.zeros((num_topics, num_vocab))
        self.doc_topic = np.zeros((num_doc, num_topics))
        self.topic_total = np.zeros(num_topics)
        self.topic_total_unweighted = np.zeros(num_topics)

    @classmethod
    def from_corpus(cls, corpus, num_topics: int, vocab_weights: np.ndarray):
        stats = cls(num_topics, corpus.num_vocab, corpus.num_doc, vocab_weights)
        token_weights = stats.vocab_weights[corpus.word_ids]
        np.add.at(stats.topic_word, (corpus.topic_ids, corpus.word_ids), token_weights)
        np.add.at(stats.doc_topic, (corpus.doc_ids, corpus.topic_ids), 1.0)
        np.add.at(stats.topic_total, corpus.topic_ids, token_weights)
        np.add.at(stats.topic_total_unweighted, corpus.topic_ids, 1.0)
        return stats

    def remove(self, doc: int, topic: int, word: int):
        weight = self.vocab_weights[word]
        self.topic_word[topic, word] -= weight
        self.topic_total[topic] -= weight
        self.topic_total_unweighted[topic] -= 1.0
        self.doc_topic[doc, topic] -= 1.0

    def add(self, doc: int, topic: int, word: int):
        weight = self.vocab_weights[word]
        self.topic_word[topic, word] += weight
        self.topic_total[topic] += weight
        self.topic_total_unweighted[topic] += 1.0
        self.doc_topic[doc, topic] += 1.0

    def arrays(self):
        '''The tables in the order the sweep kernels take them.'''
        return self.topic_word, self.doc_topic, self.topic_total, self.topic_total_unweighted

    def copy(self):
        other = self.__class__.__new__(self.__class__)
        other.__dict__.update({k: (v.copy() if isinstance(v, np.ndarray) else v) for k, v in self.__dict__.items()})
        return other

    def check_consistency(self, corpus):
        '''
        Raises NumericalDegeneracyError if the tables drifted from the
        assignment they are supposed to summarize.
        '''
        if not np.allclose(self.topic_word.sum(axis=1), self.topic_total, atol=ATOL):
            raise NumericalDegeneracyError("topic totals differ from the topic-word row sums")
        if not np.allclose(self.doc_topic.sum(axis=1), corpus.doc_lengths, atol=ATOL):
            raise NumericalDegeneracyError("document-topic rows do not sum to the document lengths")
        for name in ("topic_word", "doc_topic", "topic_total", "topic_total_unweighted"):
            if np.any(getattr(self, name) < -ATOL):
                raise NumericalDegeneracyError(f"negative entry in {name}")


class KeywordStatistics(SufficientStatistics):
    '''
    Count tables of the keyword model. topic_word / topic_total hold the
    tokens drawn from the regular topic-word distributions (switch 0), the
    keyword_* tables hold the tokens drawn from the keyword distributions
    (switch 1). doc_topic counts both.
    '''

    def __init__(self, num_topics, num_vocab, num_doc, vocab_weights) -> None:
        super().__init__(num_topics, num_vocab, num_doc, vocab_weights)
        self.keyword_topic_word = np.zeros((num_topics, num_vocab))
        self.keyword_topic_total = np.zeros(num_topics)
        self.keyword_topic_total_unweighted = np.zeros(num_topics)

    @classmethod
    def from_corpus(cls, corpus, num_topics, vocab_weights):
        stats = cls(num_topics, corpus.num_vocab, corpus.num_doc, vocab_weights)
        token_weights = stats.vocab_weights[corpus.word_ids]
        np.add.at(stats.doc_topic, (corpus.doc_ids, corpus.topic_ids), 1.0)
        for s, (tw, tt, tn) in enumerate(stats._switch_tables()):
            mask = corpus.switch_ids == s
            z, w = corpus.topic_ids[mask], corpus.word_ids[mask]
            np.add.at(tw, (z, w), token_weights[mask])
            np.add.at(tt, z, token_weights[mask])
            np.add.at(tn, z, 1.0)
        return stats

    def _switch_tables(self):
        return ((self.topic_word, self.topic_total, self.topic_total_unweighted),
                (self.keyword_topic_word, self.keyword_topic_total, self.keyword_topic_total_unweighted))

    def remove(self, doc, topic, word, switch=0):
        tw, tt, tn = self._switch_tables()[switch]
        weight = self.vocab_weights[word]
        tw[topic, word] -= weight
        tt[topic] -= weight
        tn[topic] -= 1.0
        self.doc_topic[doc, topic] -= 1.0

    def add(self, doc, topic, word, switch=0):
        tw, tt, tn = self._switch_tables()[switch]
        weight = self.vocab_weights[word]
        tw[topic, word] += weight
        tt[topic] += weight
        tn[topic] += 1.0
        self.doc_topic[doc, topic] += 1.0

    def arrays(self):
        return (self.topic_word, self.keyword_topic_word, self.topic_total, self.keyword_topic_total,
                self.topic_total_unweighted, self.keyword_topic_total_unweighted, self.doc_topic)

    def combined_topic_word(self):
        return self.topic_word + self.keyword_topic_word

    def check_consistency(self, corpus):
        super().check_consistency(corpus)
        if not np.allclose(self.keyword_topic_word.sum(axis=1), self.keyword_topic_total, atol=ATOL):
            raise NumericalDegeneracyError("keyword topic totals differ from the keyword topic-word row sums")
        for name in ("keyword_topic_word", "keyword_topic_total", "keyword_topic_total_unweighted"):
            if np.any(getattr(self, name) < -ATOL):
                raise NumericalDegeneracyError(f"negative entry in {name}")
