"""
Emission probabilities of the threading HMM.

The emission of a state at a site is the likelihood of the observed bases
at that site on the local tree augmented by the thread at that state.

Two strategies are provided.
For adding a new leaf, each state is grafted onto a scratch copy of the
local tree and the pruning recursion is rerun over the augmented tree.
For resampling an internal branch, inner and outer tables are computed once
for the fixed tree and each state combines three branch segments that meet
at the coalescence time.

Sites at which all sequences carry the same unambiguous base
use the closed form .25 * exp(-mu * max(treelen, mintime))
where treelen is the total branch length of the augmented tree.

"""
import logging

import numpy as np

from argthread.sampler._likelihood import (
        LikelihoodTable, calc_inner, calc_inner_outer, get_branch_probs,
        get_invariant_likelihood, mix_branch, prob_tree_mutation)
from argthread.sampler._model import ArgModel
from argthread.sampler._seq import (
        encode_seqs, find_invariant_sites, get_leaf_likelihoods)
from argthread.sampler._states import State, get_subtree_roots
from argthread.sampler._tree import LocalTree, ScratchTree


__all__ = [
        'get_leaf_rows', 'calc_emissions', 'calc_emissions_internal',
        'new_emissions',
        ]


logger = logging.getLogger(__name__)


def get_leaf_rows(tree, seqids=None, new_row=None, nslots=None):
    """
    Map the node slots of a tree to sequence rows.

    Parameters
    ----------
    tree : LocalTree
        The local tree.
    seqids : sequence of integers, optional
        Sequence row of each leaf node, by default
        the rows of LocalTree.get_leaf_seqids.
    new_row : integer, optional
        Sequence row of the new leaf slot that follows the tree nodes.
    nslots : integer, optional
        Total number of node slots, by default the number of tree nodes.

    Returns
    -------
    rows : 1d ndarray of integers
        Sequence row of each slot, or 0 for internal nodes.

    """
    if nslots is None:
        nslots = tree.nnodes
    rows = np.zeros(nslots, dtype=int)
    if seqids is None:
        seqids = tree.get_leaf_seqids()
    for leaf in range(tree.nnodes):
        if tree.is_leaf(leaf):
            rows[leaf] = seqids[leaf]
    if new_row is not None:
        rows[tree.nnodes] = new_row
    return rows


def _get_used_rows(tree, rows):
    return sorted(set(rows[n] for n in range(tree.nnodes) if tree.is_leaf(n)))


def calc_emissions(states, tree, codes, model,
        seqids=None, new_row=None, incremental=False):
    """
    Compute emissions for threading a new leaf into a local tree.

    Parameters
    ----------
    states : sequence of State
        The states of the local tree.
    tree : LocalTree
        The local tree, without the new leaf.
    codes : 2d ndarray
        Encoded sequences of one genome block, one row per sequence.
    model : ArgModel
        Model parameters.
    seqids : sequence of integers, optional
        Sequence row of each leaf node, by default
        the rows of LocalTree.get_leaf_seqids.
    new_row : integer, optional
        Sequence row of the new leaf, by default the number of leaves.
    incremental : bool, optional
        Only recompute inner likelihoods on the paths between
        consecutive graft points instead of over the whole tree.

    Returns
    -------
    emit : 2d ndarray
        Emission probabilities with one row per site and one column per state.

    """
    codes = np.asarray(codes)
    seqlen = codes.shape[1]
    nstates = len(states)
    if new_row is None:
        new_row = tree.nleaves

    scratch = ScratchTree(tree)
    rows = get_leaf_rows(tree, seqids, new_row, tree.nnodes + 2)
    used_rows = _get_used_rows(tree, rows) + [new_row]

    invariant = find_invariant_sites(codes[used_rows])
    variant = np.flatnonzero(~invariant)
    leaf_lk = get_leaf_likelihoods(codes[:, variant])
    table = LikelihoodTable(variant.size, scratch.nnodes).data

    emit = np.empty((seqlen, nstates), dtype=float)
    prev_node = None
    for j, (node, time) in enumerate(states):
        scratch.push_branch(node, time)
        muts, nomuts, dists = prob_tree_mutation(scratch, model)

        if invariant.any():
            treelen = np.nansum(dists)
            emit[invariant, j] = get_invariant_likelihood(treelen, model)

        if variant.size:
            if incremental and prev_node is not None and prev_node != -1:
                order = scratch.get_partial_postorder(prev_node, node)
            else:
                order = scratch.get_postorder()
            calc_inner(scratch, leaf_lk, rows, order, muts, nomuts, table)
            emit[variant, j] = .25 * table[:, scratch.root].sum(axis=1)

        scratch.pop_branch()
        prev_node = scratch.parents[node]

    return emit


def calc_emissions_internal(states, tree, codes, model, seqids=None):
    """
    Compute emissions for resampling the attachment of an internal branch.

    Parameters
    ----------
    states : sequence of State
        The internal states of the local tree.
    tree : LocalTree
        The local tree with a technical root whose first child is the
        removed subtree and whose second child is the main tree root.
    codes : 2d ndarray
        Encoded sequences of one genome block, one row per sequence.
    model : ArgModel
        Model parameters.
    seqids : sequence of integers, optional
        Sequence row of each leaf node, by default
        the rows of LocalTree.get_leaf_seqids.

    Returns
    -------
    emit : 2d ndarray
        Emission probabilities with one row per site and one column per state.
        If there are no states the tree is fully specified and a single
        column of ones is returned.

    """
    codes = np.asarray(codes)
    seqlen = codes.shape[1]
    nstates = len(states)
    if not nstates:
        return np.ones((seqlen, 1), dtype=float)

    times = model.times
    mintime = model.mintime
    subtree_root, maintree_root = get_subtree_roots(tree)

    rows = get_leaf_rows(tree, seqids)
    invariant = find_invariant_sites(codes[_get_used_rows(tree, rows)])
    variant = np.flatnonzero(~invariant)
    leaf_lk = get_leaf_likelihoods(codes[:, variant])
    inner, outer, muts, nomuts = calc_inner_outer(tree, model, leaf_lk, rows)

    maintreelen = tree.get_treelen(times, mintime, maintree_root)
    subtreelen = tree.get_treelen(times, mintime, subtree_root)
    time1 = times[tree.ages[subtree_root]]

    emit = np.empty((seqlen, nstates), dtype=float)
    for j, (node2, coal_age) in enumerate(states):
        coal_time = times[coal_age]
        time2 = times[tree.ages[node2]]
        dist1 = max(coal_time - time1, mintime)
        dist2 = max(coal_time - time2, mintime)
        mut1, nomut1 = get_branch_probs(dist1, model.mu)
        mut2, nomut2 = get_branch_probs(dist2, model.mu)

        # The branch above node2 is split at the coalescence point.
        treelen = maintreelen + subtreelen + dist1 + dist2
        if node2 != maintree_root:
            parent_time = times[tree.ages[tree.parents[node2]]]
            dist3 = max(parent_time - coal_time, mintime)
            mut3, nomut3 = get_branch_probs(dist3, model.mu)
            treelen += dist3 - max(parent_time - time2, mintime)

        if invariant.any():
            emit[invariant, j] = get_invariant_likelihood(treelen, model)

        if variant.size:
            p = mix_branch(inner[:, subtree_root], mut1, nomut1)
            p *= mix_branch(inner[:, node2], mut2, nomut2)
            if node2 != maintree_root:
                p *= mix_branch(outer[:, node2], mut3, nomut3)
            emit[variant, j] = .25 * p.sum(axis=1)

    return emit


def new_emissions(istates, parents, ages, seqs, times, mu):
    """
    Compute a leaf insertion emission table from plain arrays.

    Parameters
    ----------
    istates : sequence of pairs
        The (node, time index) of each state.
    parents : sequence of integers
        Parent of each node of the local tree, or -1 for the root.
    ages : sequence of integers
        Age index of each node of the local tree.
    seqs : sequence of strings
        Aligned sequences, one per leaf in increasing node order
        followed by the new sequence.
    times : sequence of floats
        The discrete time points.
    mu : float
        Mutation rate.

    Returns
    -------
    emit : 2d ndarray
        Emission probabilities with one row per site and one column per state.

    """
    states = [State(int(node), int(time)) for node, time in istates]
    tree = LocalTree(parents, ages)
    model = ArgModel(times, 1.0, 0.0, mu)
    codes = encode_seqs(seqs)
    logger.debug('emissions for %d states and %d sites',
            len(states), codes.shape[1])
    return calc_emissions(states, tree, codes, model)
