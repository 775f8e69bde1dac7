import logging
import math

logger = logging.getLogger(__name__)


def slice_sample(current, loglik, rng, min_v, max_v, width=1.0, max_step_out=50, max_shrink_time=200):
    '''
    Univariate slice sampling with stepping-out and shrinkage (Neal, 2003).

    A slice level is drawn below loglik(current), an interval of the given
    width is placed at random around current and stepped out until both ends
    fall below the level (or hit [min_v, max_v]), then proposals are drawn
    uniformly from the interval, shrinking it towards current after every
    rejection. If no proposal is accepted within max_shrink_time attempts the
    current value is returned unchanged.

    :param current: current value, must lie in [min_v, max_v]
    :param loglik: function returning the log-likelihood (up to a constant) of a value
    :param rng: numpy Generator
    :param min_v: lower bound of the support
    :param max_v: upper bound of the support
    :param width: initial interval width
    :param max_step_out: maximum number of stepping-out expansions
    :param max_shrink_time: maximum number of proposals
    :return: the new value
    '''
    if not min_v <= current <= max_v:
        raise ValueError(f"current value {current} lies outside [{min_v}, {max_v}]")

    level = loglik(current) - rng.exponential()

    left = current - width * rng.random()
    right = left + width
    steps_left = int(math.floor(max_step_out * rng.random()))
    steps_right = max_step_out - 1 - steps_left
    while steps_left > 0 and left > min_v and loglik(left) > level:
        left -= width
        steps_left -= 1
    while steps_right > 0 and right < max_v and loglik(right) > level:
        right += width
        steps_right -= 1
    left = max(left, min_v)
    right = min(right, max_v)

    for _ in range(max_shrink_time):
        proposal = rng.uniform(left, right)
        if loglik(proposal) > level:
            return proposal
        if proposal < current:
            left = proposal
        else:
            right = proposal

    logger.debug("slice sampler did not accept a proposal in %i steps, keeping %g", max_shrink_time, current)
    return current
