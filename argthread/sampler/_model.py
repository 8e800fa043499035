"""
Model parameters for threading a sequence into an ARG.

The time axis is discretized into a small number of time points.
Ages of tree nodes and times of thread attachment states are
integer indices into this time grid.

"""
import math

import numpy as np


__all__ = ['ArgModel', 'get_time_points']


def get_time_points(ntimes=20, maxtime=180000, delta=.01):
    """
    Get a log-spaced grid of discrete time points.

    Parameters
    ----------
    ntimes : integer
        Number of time points.
    maxtime : float
        The last time point.
    delta : float, optional
        Controls the density of the grid near the present.
        Smaller values give a grid closer to linear spacing.

    Returns
    -------
    times : 1d ndarray
        Increasing time points starting at zero and ending at maxtime.

    """
    if ntimes < 2:
        raise ValueError('at least two time points are required')
    if maxtime <= 0 or delta <= 0:
        raise ValueError('maxtime and delta should be positive')
    scale = math.log(1 + delta * maxtime)
    return np.array([
        (math.exp(i / float(ntimes - 1) * scale) - 1) / delta
        for i in range(ntimes)], dtype=float)


class ArgModel(object):
    """
    Discretized coalescent-with-recombination model parameters.

    Parameters
    ----------
    times : sequence of floats
        Increasing discrete time points, beginning with the present.
    popsizes : float or sequence of floats
        Effective population size, either one value for all epochs
        or one value per time point.
    rho : float
        Recombination rate per site per generation.
    mu : float
        Mutation rate per site per generation.
    mintime : float, optional
        Floor applied to every branch length.
        Defaults to a tenth of the first time step.

    """
    def __init__(self, times, popsizes, rho, mu, mintime=None):
        times = np.array(times, dtype=float)
        if times.ndim != 1 or len(times) < 2:
            raise ValueError('expected at least two time points')
        if times[0] < 0:
            raise ValueError('time points should be non-negative')
        if np.any(np.diff(times) <= 0):
            raise ValueError('time points should be strictly increasing')
        ntimes = len(times)

        popsizes = np.array(popsizes, dtype=float)
        if popsizes.ndim == 0:
            popsizes = np.repeat(popsizes, ntimes)
        elif len(popsizes) == ntimes - 1:
            popsizes = np.append(popsizes, popsizes[-1])
        if popsizes.shape != (ntimes,):
            raise ValueError('expected one population size per time point '
                    'but got %d sizes for %d times' % (len(popsizes), ntimes))
        if popsizes.min() <= 0:
            raise ValueError('population sizes should be positive')

        if rho < 0 or mu < 0:
            raise ValueError('rates should be non-negative')

        if mintime is None:
            mintime = 0.1 * (times[1] - times[0])
        if mintime <= 0:
            raise ValueError('mintime should be positive')

        self.times = times
        self.popsizes = popsizes
        self.rho = float(rho)
        self.mu = float(mu)
        self.mintime = float(mintime)
        self.time_steps = np.diff(times)

    @property
    def ntimes(self):
        return len(self.times)

    def get_mintime(self):
        return self.mintime

    def get_removed_root_time(self):
        # Age index of the technical root that holds a removed branch.
        return self.ntimes + 1

    def __repr__(self):
        return 'ArgModel(ntimes=%d, rho=%g, mu=%g, mintime=%g)' % (
                self.ntimes, self.rho, self.mu, self.mintime)
