"""
Transition probabilities of the threading HMM.

Within a genome block the local tree is fixed and the thread moves
between states only through recombination on the thread branch
followed by recoalescence of the floating lineage.
The thread branch spans the time interval from the minimum age
(zero for a new leaf, the subtree root age for an internal branch)
up to the coalescence time of the current state.

The transition probability from a state at time index a
to a state at time index b is

    R(a) * F(a, b) / ncoals(b) + [same state] * (1 - R(a))

where R(a) is the probability of a recombination on the thread branch,
F(a, b) is the probability that the floating lineage recoalesces at b,
and ncoals(b) is the number of states at time b.
The recombination point is uniform in time along the thread branch
and recoalescence follows the discretized coalescent with forced
coalescence at the last time index.

At a block boundary where the local tree changes,
the transition is described by a TransMatrixSwitch instead.

"""
import numpy as np

from argthread.sampler._states import get_coal_time_matrix, get_subtree_roots


__all__ = [
        'TransMatrix', 'calc_transition_probs', 'TransMatrixSwitch',
        ]


class TransMatrix(object):
    """
    Compressed within-block transition probabilities.

    Entries depend on the states only through their time indices,
    except for the extra mass of staying in the same state.

    Parameters
    ----------
    ntimes : integer
        Number of time points of the model.
    nstates : integer
        Number of states of the local tree.
    recoal : 2d ndarray
        Entry (a, b) is the probability of recombining on a thread branch
        that ends at time index a and recoalescing at time index b.
    norecombs : 1d ndarray
        Probability of no recombination on a thread branch ending at a.
    ncoals : 1d ndarray
        Number of states at each time index.
    minage : integer, optional
        Time index at which the thread branch begins.
    internal : bool, optional
        True when resampling an internal branch.

    """
    def __init__(self, ntimes, nstates, recoal, norecombs, ncoals,
            minage=0, internal=False):
        self.ntimes = ntimes
        self.nstates = nstates
        self.recoal = recoal
        self.norecombs = norecombs
        self.ncoals = np.maximum(np.asarray(ncoals[:ntimes-1]), 1)
        self.minage = minage
        self.internal = internal

    def get_time(self, a, b, same_branch=False):
        """
        Transition probability between states at time indices a and b.

        With same_branch the states share their node,
        which for equal time indices means they are the same state.

        """
        p = self.recoal[a, b] / self.ncoals[b]
        if same_branch and a == b:
            p += self.norecombs[a]
        return p

    def get_time_matrix(self):
        """
        Baseline transition probabilities between all pairs of time indices.
        """
        return self.recoal / self.ncoals[np.newaxis, :]

    def get(self, tree, states, j, k):
        if not states:
            return 1.0
        state1 = states[j]
        state2 = states[k]
        return self.get_time(state1.time, state2.time,
                state1.node == state2.node)

    def get_log(self, tree, states, j, k):
        with np.errstate(divide='ignore'):
            return np.log(self.get(tree, states, j, k))

    def get_column(self, tree, states, k):
        """
        Transition probabilities from every state into state k.
        """
        if not states:
            return np.ones(1, dtype=float)
        b = states[k].time
        ages = np.array([state.time for state in states], dtype=int)
        col = self.recoal[ages, b] / self.ncoals[b]
        col[k] += self.norecombs[b]
        return col

    def get_log_column(self, tree, states, k):
        with np.errstate(divide='ignore'):
            return np.log(self.get_column(tree, states, k))

    def get_dense(self, tree, states):
        """
        The full nstates x nstates transition matrix.
        """
        if not states:
            return np.ones((1, 1), dtype=float)
        ages = np.array([state.time for state in states], dtype=int)
        P = self.recoal[np.ix_(ages, ages)] / self.ncoals[ages][np.newaxis, :]
        P[np.diag_indices_from(P)] += self.norecombs[ages]
        return P


def calc_transition_probs(tree, model, states, lineages, internal=False):
    """
    Build the transition matrix of one genome block.

    Parameters
    ----------
    tree : LocalTree
        The local tree of the block.
    model : ArgModel
        Model parameters.
    states : list of State
        The states of the local tree.
    lineages : LineageCounts
        Lineage counts of the local tree.
    internal : bool, optional
        True when resampling an internal branch.

    Returns
    -------
    transmat : TransMatrix
        The transition matrix.

    """
    ntimes = model.ntimes
    times = model.times
    ncoal_times = ntimes - 1

    minage = 0
    if internal:
        subtree_root, maintree_root = get_subtree_roots(tree)
        minage = min(tree.ages[subtree_root], ncoal_times - 1)

    # Distribution of the recombination time given the state time.
    Q = np.zeros((ncoal_times, ncoal_times))
    for a in range(ncoal_times):
        if a <= minage:
            Q[a, a] = 1.0
        else:
            span = times[a] - times[minage]
            Q[a, minage:a] = model.time_steps[minage:a] / span

    # Recoalescence time given the state time.
    C = get_coal_time_matrix(model, lineages.nbranches)
    F = Q.dot(C)

    blen = np.maximum(times[:ncoal_times] - times[minage], model.mintime)
    recombs = -np.expm1(-model.rho * blen)
    recoal = recombs[:, np.newaxis] * F
    norecombs = 1.0 - recombs

    return TransMatrix(ntimes, len(states), recoal, norecombs,
            lineages.ncoals, minage=minage, internal=internal)


class TransMatrixSwitch(object):
    """
    Transition structure across a change of local tree.

    Most states of the previous tree map deterministically onto one state
    of the next tree.
    Two source states, the one containing the recombination point and the one
    onto which the recombined lineage was coalesced, have a full row of
    transition probabilities.

    Parameters
    ----------
    nstates1 : integer
        Number of states of the previous tree.
    nstates2 : integer
        Number of states of the next tree.
    recombsrc : integer
        The recombination source state, or -1.
    recoalsrc : integer
        The recoalescence source state, or -1.
    determ : sequence of integers
        Destination of each previous state, or -1 for no destination.
    determprob : sequence of floats
        Log probability of each deterministic transition.
    recombrow : sequence of floats
        Log probabilities out of the recombination source state.
    recoalrow : sequence of floats
        Log probabilities out of the recoalescence source state.

    Notes
    -----
    A side with zero states is treated as having one implicit state.

    """
    def __init__(self, nstates1, nstates2, recombsrc, recoalsrc,
            determ, determprob, recombrow, recoalrow):
        self.nstates1 = nstates1
        self.nstates2 = nstates2
        self.recombsrc = recombsrc
        self.recoalsrc = recoalsrc
        self.determ = np.asarray(determ, dtype=int)
        self.determprob = np.asarray(determprob, dtype=float)
        self.recombrow = np.asarray(recombrow, dtype=float)
        self.recoalrow = np.asarray(recoalrow, dtype=float)
        n1 = max(nstates1, 1)
        n2 = max(nstates2, 1)
        if self.determ.shape != (n1,) or self.determprob.shape != (n1,):
            raise ValueError('expected one deterministic transition '
                    'per source state')
        if recombsrc != -1 and self.recombrow.shape != (n2,):
            raise ValueError('expected one recombination transition '
                    'per destination state')
        if recoalsrc != -1 and self.recoalrow.shape != (n2,):
            raise ValueError('expected one recoalescence transition '
                    'per destination state')

    def get_log(self, j, k):
        logs = []
        if j == self.recombsrc:
            logs.append(self.recombrow[k])
        if j == self.recoalsrc:
            logs.append(self.recoalrow[k])
        if logs:
            return np.logaddexp.reduce(logs)
        if self.determ[j] == k:
            return self.determprob[j]
        return -np.inf

    def get(self, j, k):
        return np.exp(self.get_log(j, k))

    def get_dense(self):
        n1 = max(self.nstates1, 1)
        n2 = max(self.nstates2, 1)
        return np.array([[self.get(j, k) for k in range(n2)]
            for j in range(n1)])
