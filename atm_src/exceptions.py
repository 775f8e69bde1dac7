class ATMError(Exception):
    '''Base class for every error raised by the sampler.'''


class ConfigurationError(ATMError, ValueError):
    '''
    Raised before any sampling starts when the corpus, the priors or the side
    information (covariates, timestamps, keywords) are malformed.
    '''


class NumericalDegeneracyError(ATMError, ArithmeticError):
    '''
    Raised when the candidate-topic weights of a token sum to a non-positive
    or non-finite value. Valid priors make this unreachable, so it always
    points to a broken count table and the run is aborted.
    '''


class ModelStateError(ATMError, RuntimeError):
    '''Raised when a finalized model is asked to run again.'''
