"""
Sample or maximize the path of a thread through a sequence of local trees.

These functions run the forward algorithm and a traceback.
Deriving recombination points from the path and editing the ARG
are left to the caller.

"""
import logging
import time

import numpy as np

from argthread.sampler._forward import ArgHmmMatrixList, forward_algorithm
from argthread.sampler._states import State, get_coal_states
from argthread.sampler._traceback import max_traceback, stochastic_traceback


__all__ = [
        'sample_thread_path', 'max_thread_path', 'cond_sample_thread_path',
        'sample_thread_path_internal', 'path_to_states',
        ]


logger = logging.getLogger(__name__)


def _forward(trees, model, sequences, new_chrom, internal, prior=None):
    tm = time.time()
    matrix_list = ArgHmmMatrixList(model, sequences, trees, new_chrom,
            internal=internal).setup()
    forward = forward_algorithm(trees, model, matrix_list, prior=prior)
    logger.info('forward (%3d states, %6d blocks): %.3f s',
            matrix_list[0].nstates, trees.get_num_trees(), time.time() - tm)
    return matrix_list, forward


def sample_thread_path(trees, model, sequences, new_chrom=None, sample=None):
    """
    Sample the path of a new leaf thread from the posterior.

    Parameters
    ----------
    trees : LocalTrees
        The local trees without the new leaf.
    model : ArgModel
        Model parameters.
    sequences : Sequences or 2d ndarray
        Aligned sequences of the leaves and of the new thread.
    new_chrom : integer, optional
        Sequence row of the new thread, by default the last row.
    sample : callable, optional
        Draws an index proportionally to an array of weights.

    Returns
    -------
    path : 1d ndarray of integers
        The state index of the thread at each site.

    """
    matrix_list, forward = _forward(trees, model, sequences, new_chrom, False)
    tm = time.time()
    path = stochastic_traceback(trees, matrix_list, forward, sample=sample)
    logger.info('trace: %.3f s', time.time() - tm)
    return path


def max_thread_path(trees, model, sequences, new_chrom=None):
    """
    Find the maximum posterior path of a new leaf thread.

    Parameters are as for sample_thread_path.

    """
    matrix_list, forward = _forward(trees, model, sequences, new_chrom, False)
    tm = time.time()
    path = max_traceback(trees, matrix_list, forward)
    logger.info('trace: %.3f s', time.time() - tm)
    return path


def sample_thread_path_internal(trees, model, sequences, sample=None):
    """
    Sample the path of an internal branch removed from the local trees.

    Every local tree holds the removed subtree under a technical root.

    """
    matrix_list, forward = _forward(trees, model, sequences, None, True)
    tm = time.time()
    path = stochastic_traceback(trees, matrix_list, forward, sample=sample)
    logger.info('trace: %.3f s', time.time() - tm)
    return path


def _find_state(states, state, where):
    try:
        return states.index(State(*state))
    except ValueError:
        raise ValueError('the %s state %r is not a state of the %s local tree'
                % (where, tuple(state), where))


def cond_sample_thread_path(trees, model, sequences, start_state, end_state,
        new_chrom=None, internal=False, sample=None):
    """
    Sample a thread path conditioned on its first and last states.

    Parameters
    ----------
    trees : LocalTrees
        The local trees.
    model : ArgModel
        Model parameters.
    sequences : Sequences or 2d ndarray
        Aligned sequences.
    start_state : State or None
        The (node, time) of the thread at the first site.
        None leaves the start open.
    end_state : State or None
        The (node, time) of the thread at the last site.
        None leaves the end open.
    new_chrom : integer, optional
        Sequence row of the new thread in leaf insertion mode.
    internal : bool, optional
        True when resampling an internal branch.
    sample : callable, optional
        Draws an index proportionally to an array of weights.

    Returns
    -------
    path : 1d ndarray of integers
        The state index of the thread at each site.

    """
    first = trees.blocks[0].tree
    states = get_coal_states(first, model.ntimes, internal)
    prior = None
    if not states:
        prior = np.ones(1)
    elif start_state is not None:
        prior = np.zeros(len(states))
        prior[_find_state(states, start_state, 'first')] = 1.0

    matrix_list, forward = _forward(trees, model, sequences, new_chrom,
            internal, prior=prior)

    path = np.zeros(trees.length(), dtype=int)
    last_state_given = False
    states = matrix_list[-1].states
    if not states:
        last_state_given = True
    elif end_state is not None:
        path[-1] = _find_state(states, end_state, 'last')
        last_state_given = True

    tm = time.time()
    stochastic_traceback(trees, matrix_list, forward, path=path,
            last_state_given=last_state_given, sample=sample)
    logger.info('trace: %.3f s', time.time() - tm)
    return path


def path_to_states(trees, model, path, internal=False):
    """
    Convert a path of state indices into (node, time) pairs.

    Returns
    -------
    thread : list
        The State of the thread at each site,
        or None at sites whose local tree has no states.

    """
    thread = []
    for start, end, block in trees.iter_blocks():
        states = get_coal_states(block.tree, model.ntimes, internal)
        for i in range(start - trees.start_coord, end - trees.start_coord):
            thread.append(states[path[i]] if states else None)
    return thread
