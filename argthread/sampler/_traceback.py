"""
Recover a thread path from a filled forward table.

The path is decoded from the last position backwards.
In the stochastic mode each state is sampled proportionally to
its forward probability times the transition into the next state.
In the maximization mode the state maximizing the log of that product
is chosen instead.

"""
import numpy as np

from argthread.sampler._util import StructuralZeroProb, array_random_choice


__all__ = [
        'sample_hmm_posterior', 'sample_hmm_posterior_step',
        'stochastic_traceback',
        'max_hmm_posterior', 'max_hmm_posterior_step', 'max_traceback',
        ]


def _check_transition(weight, j, k):
    if weight == 0:
        raise StructuralZeroProb(
                'decoded a zero probability transition '
                'from state %d to state %d' % (j, k))


def sample_hmm_posterior(tree, states, transmat, fw, path, sample=None):
    """
    Sample the path of one block backwards from its last state.

    Parameters
    ----------
    tree : LocalTree
        The local tree of the block.
    states : list of State
        The states of the local tree.
    transmat : TransMatrix
        Transition matrix of the block.
    fw : 2d ndarray
        Forward table of the block.
    path : 1d ndarray of integers
        Path of the block whose last entry is already set.
        The other entries are filled in place.
    sample : callable, optional
        Draws an index proportionally to an array of weights.

    """
    if sample is None:
        sample = array_random_choice
    last_k = None
    trans = None
    for i in range(len(path) - 2, -1, -1):
        k = path[i+1]

        # Recompute transition probabilities only if the next state changes.
        if k != last_k:
            trans = transmat.get_column(tree, states, k)
            last_k = k

        j = sample(fw[i] * trans)
        _check_transition(trans[j], j, k)
        path[i] = j


def sample_hmm_posterior_step(switch, col1, state2, sample=None):
    """
    Sample the last state of a block given the first state of the next block.
    """
    if sample is None:
        sample = array_random_choice
    nstates1 = max(switch.nstates1, 1)
    trans = np.array([switch.get(j, state2) for j in range(nstates1)])
    j = sample(col1 * trans)
    _check_transition(trans[j], j, state2)
    return j


def max_hmm_posterior(tree, states, transmat, fw, path):
    """
    Choose the most probable path of one block backwards from its last state.
    """
    last_k = None
    trans = None
    for i in range(len(path) - 2, -1, -1):
        k = path[i+1]
        if k != last_k:
            trans = transmat.get_log_column(tree, states, k)
            last_k = k
        with np.errstate(divide='ignore'):
            j = int(np.argmax(np.log(fw[i]) + trans))
        _check_transition(np.exp(trans[j]), j, k)
        path[i] = j


def max_hmm_posterior_step(switch, col1, state2):
    nstates1 = max(switch.nstates1, 1)
    trans = np.array([switch.get_log(j, state2) for j in range(nstates1)])
    with np.errstate(divide='ignore'):
        j = int(np.argmax(np.log(col1) + trans))
    _check_transition(np.exp(trans[j]), j, state2)
    return j


def _traceback(trees, matrix_list, forward, path, last_state_given,
        choose_last, block_step, switch_step):
    start_coord = trees.start_coord
    if path is None:
        path = np.zeros(trees.length(), dtype=int)
    if not last_state_given:
        path[-1] = choose_last(forward[trees.end_coord - 1])

    for mat in reversed(matrix_list):
        start = mat.start - start_coord
        end = mat.end - start_coord
        fw = forward.get_block(mat.start)[1]
        block_step(mat, fw, path[start:end])

        # Fill in the last position of the previous block.
        if start > 0:
            i = start - 1
            col1 = forward[mat.start - 1]
            if mat.transmat_switch is not None:
                path[i] = switch_step(mat.transmat_switch, col1, path[i+1])
            else:
                fw2 = np.vstack([col1, fw[0]])
                block_step(mat, fw2, path[i:i+2])
    return path


def stochastic_traceback(trees, matrix_list, forward,
        path=None, last_state_given=False, sample=None):
    """
    Sample a thread path from the posterior.

    Parameters
    ----------
    trees : LocalTrees
        The local trees.
    matrix_list : ArgHmmMatrixList
        Matrices of every block; emissions are not needed.
    forward : ForwardTable
        The filled forward table.
    path : 1d ndarray of integers, optional
        Output array with one entry per site, filled in place.
    last_state_given : bool, optional
        True if the last entry of path is already set.
    sample : callable, optional
        Draws an index proportionally to an array of weights.
        By default the global numpy random state is used.

    Returns
    -------
    path : 1d ndarray of integers
        The state index of the thread at each site.

    """
    if sample is None:
        sample = array_random_choice

    def block_step(mat, fw, block_path):
        sample_hmm_posterior(mat.tree, mat.states, mat.transmat,
                fw, block_path, sample)

    def switch_step(switch, col1, state2):
        return sample_hmm_posterior_step(switch, col1, state2, sample)

    return _traceback(trees, matrix_list, forward, path, last_state_given,
            sample, block_step, switch_step)


def max_traceback(trees, matrix_list, forward,
        path=None, last_state_given=False):
    """
    Choose the maximum posterior thread path.

    Parameters and return value are as for stochastic_traceback.

    """
    def choose_last(col):
        return int(np.argmax(col))

    def block_step(mat, fw, block_path):
        max_hmm_posterior(mat.tree, mat.states, mat.transmat, fw, block_path)

    return _traceback(trees, matrix_list, forward, path, last_state_given,
            choose_last, block_step, max_hmm_posterior_step)
