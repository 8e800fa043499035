"""
Hidden states of the threading HMM and the lineage bookkeeping behind them.

A state (node, time) means that the new lineage coalesces
onto the branch above node at the discrete time index time.
States are enumerated branch by branch with contiguous, increasing times,
which the compressed forward algorithm relies on.

"""
from collections import namedtuple

import numpy as np


__all__ = [
        'State', 'get_coal_states', 'get_num_coal_states',
        'NodeStateLookup', 'LineageCounts',
        'get_coal_time_matrix', 'calc_state_priors',
        ]


State = namedtuple('State', ['node', 'time'])


def get_subtree_roots(tree):
    """
    Get the roots of the removed subtree and of the main tree.

    For internal branch resampling the root of the local tree is
    a technical node whose first child is the subtree being rethreaded
    and whose second child is the root of the main tree.

    """
    subtree_root, maintree_root = tree.children[tree.root]
    return subtree_root, maintree_root


def get_coal_states(tree, ntimes, internal=False):
    """
    Enumerate the states of the threading HMM for one local tree.

    Parameters
    ----------
    tree : LocalTree
        The local tree.
    ntimes : integer
        Number of time points of the model.
        The new lineage may coalesce at time indices 0..ntimes-2.
    internal : bool, optional
        True if the tree carries a removed subtree under a technical root,
        in which case only branches of the main tree are candidates
        and coalescence cannot happen below the age of the subtree root.

    Returns
    -------
    states : list of State
        The states, grouped by node and increasing in time within a node.

    """
    maxtime = ntimes - 2
    states = []
    if internal:
        subtree_root, maintree_root = get_subtree_roots(tree)
        minage = tree.ages[subtree_root]
        nodes = sorted(tree.get_preorder(maintree_root))
        top = maintree_root
    else:
        minage = 0
        nodes = range(tree.nnodes)
        top = tree.root

    for node in nodes:
        time = max(tree.ages[node], minage)
        if node == top:
            # No parent, allow coalescing up the basal branch.
            last = maxtime
        else:
            last = min(tree.ages[tree.parents[node]], maxtime)
        for t in range(time, last + 1):
            states.append(State(node, t))
    return states


def get_num_coal_states(tree, ntimes, internal=False):
    return len(get_coal_states(tree, ntimes, internal))


class NodeStateLookup(object):
    """
    Map a (node, time) pair to its state index.
    """
    def __init__(self, states, nnodes):
        self.nnodes = nnodes
        self._index = dict((state, i) for i, state in enumerate(states))

    def lookup(self, node, time):
        return self._index.get(State(node, time), -1)


class LineageCounts(object):
    """
    Count lineages of a local tree at each time index.

    Attributes
    ----------
    nbranches : 1d ndarray
        Number of branches spanning the interval that begins
        at each time index.
    ncoals : 1d ndarray
        Number of coalescence points at each time index,
        which is the number of states with that time.

    """
    def __init__(self, ntimes):
        self.ntimes = ntimes
        self.nbranches = np.zeros(ntimes, dtype=int)
        self.ncoals = np.zeros(ntimes, dtype=int)

    def count(self, tree, internal=False):
        ntimes = self.ntimes
        maxtime = ntimes - 2
        self.nbranches[:] = 0
        self.ncoals[:] = 0
        if internal:
            subtree_root, top = get_subtree_roots(tree)
            nodes = tree.get_preorder(top)
        else:
            top = tree.root
            nodes = tree.get_preorder()

        for node in nodes:
            age = tree.ages[node]
            if node == top:
                self.nbranches[age:ntimes-1] += 1
                self.ncoals[age:maxtime+1] += 1
            else:
                parent_age = tree.ages[tree.parents[node]]
                self.nbranches[age:parent_age] += 1
                self.ncoals[age:min(parent_age, maxtime)+1] += 1
        return self


def get_coal_time_matrix(model, nbranches):
    """
    Distribution of the coalescence time of a floating lineage.

    Parameters
    ----------
    model : ArgModel
        Model parameters.
    nbranches : 1d ndarray
        Number of branches available in each time interval.

    Returns
    -------
    C : 2d ndarray
        Entry (k, b) is the probability that a lineage starting at
        time index k coalesces at time index b.
        Coalescence is forced at the last coalescence time index,
        so each row sums to one.

    """
    ncoal_times = model.ntimes - 1
    time_steps = model.time_steps
    rates = time_steps * nbranches[:ncoal_times] / (
            2.0 * model.popsizes[:ncoal_times])
    coal_probs = -np.expm1(-rates)
    coal_probs[-1] = 1.0

    # Log survival from the start of the grid to each time index.
    cum = np.concatenate(([0.0], np.cumsum(rates[:-1])))
    k = np.arange(ncoal_times)[:, np.newaxis]
    b = np.arange(ncoal_times)[np.newaxis, :]
    with np.errstate(over='ignore'):
        surv = np.exp(-(cum[b] - cum[k]))
    return np.where(k <= b, surv * coal_probs[b], 0.0)


def calc_state_priors(states, lineages, model, minage=0):
    """
    Prior probability of each state for the first site of a thread.

    Parameters
    ----------
    states : list of State
        The states of the first local tree.
    lineages : LineageCounts
        Lineage counts of the first local tree.
    model : ArgModel
        Model parameters.
    minage : integer, optional
        Time index at which the new lineage begins.

    Returns
    -------
    priors : 1d ndarray
        Prior probability for each state.
        If there are no states then the single implicit state
        gets probability one.

    """
    if not states:
        return np.ones(1, dtype=float)
    minage = min(minage, model.ntimes - 2)
    C = get_coal_time_matrix(model, lineages.nbranches)
    ncoals = np.maximum(lineages.ncoals, 1)
    times = np.array([state.time for state in states], dtype=int)
    return C[minage, times] / ncoals[times]
