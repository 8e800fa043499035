"""
Exception classes and utility functions for the thread sampler.

"""
import numpy as np

__all__ = []


class ZeroProbError(Exception):
    pass

class StructuralZeroProb(ZeroProbError):
    pass

class NumericalZeroProb(ZeroProbError):
    pass


def array_random_choice(weights, rng=None):
    """
    Draw one index with probability proportional to its weight.

    Parameters
    ----------
    weights : 1d ndarray
        Non-negative weights, not necessarily normalized.
    rng : numpy random generator, optional
        Anything with a random() method returning a float in [0, 1).
        The global numpy random state is used by default.

    Returns
    -------
    index : integer
        The sampled index.

    """
    weights = np.asarray(weights, dtype=float)
    if not weights.size:
        raise ValueError('the weight array is empty')
    if weights.min() < 0:
        raise ValueError('expected non-negative weights')
    cumulative = np.cumsum(weights)
    total = cumulative[-1]
    if not (total > 0 and np.isfinite(total)):
        raise NumericalZeroProb('weight is not positive: %s' % total)
    if rng is None:
        x = np.random.random() * total
    else:
        x = rng.random() * total
    index = int(np.searchsorted(cumulative, x, side='right'))
    return min(index, weights.size - 1)


def get_normalized_ndarray_distn(d):
    """

    Parameters
    ----------
    d : 1d ndarray
        Non-negative weights.

    Returns
    -------
    out : 1d ndarray
        The weights divided by their sum.

    """
    if d.min() < 0:
        raise ValueError('expected non-negative entries')
    total_weight = d.sum()
    if not (total_weight > 0 and np.isfinite(total_weight)):
        raise NumericalZeroProb('the denominator is %s' % total_weight)
    return d / total_weight


def fequal(a, b, rel=1e-4, eabs=1e-12):
    """
    Elementwise approximate equality with relative and absolute tolerance.

    Two values are equal if they are within eabs of each other,
    or if their difference relative to the larger magnitude is below rel.

    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    diff = np.abs(a - b)
    dmax = np.maximum(np.abs(a), np.abs(b))
    with np.errstate(divide='ignore', invalid='ignore'):
        relative = np.where(dmax > 0, diff / dmax, 0.0)
    return (diff < eabs) | (relative < rel)


class cached_property(object):
    """
    This is from the internet.

    A read-only @property that is only evaluated once. The value is cached
    on the object itself rather than the function or class; this should prevent
    memory leakage.
    """
    def __init__(self, fget, doc=None):
        self.fget = fget
        self.__doc__ = doc or fget.__doc__
        self.__name__ = fget.__name__
        self.__module__ = fget.__module__

    def __get__(self, obj, cls):
        if obj is None:
            return self
        obj.__dict__[self.__name__] = result = self.fget(obj)
        return result
