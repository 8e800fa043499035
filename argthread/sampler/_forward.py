"""
Forward algorithm of the threading HMM over a sequence of local trees.

Within a block the transition matrix is applied in compressed form.
The previous column is first collapsed into per-time sums,
these are pushed through the time-to-time transition matrix,
and a per-branch correction adds the extra mass of staying in place.
Each column is normalized to sum to one.

At a block boundary with a change of local tree a switch matrix
is applied for exactly one step.

"""
import bisect
import logging

import numpy as np

from argthread.sampler._emit import calc_emissions, calc_emissions_internal
from argthread.sampler._seq import Sequences
from argthread.sampler._states import (
        LineageCounts, NodeStateLookup, calc_state_priors,
        get_coal_states, get_subtree_roots)
from argthread.sampler._trans import calc_transition_probs
from argthread.sampler._util import NumericalZeroProb, get_normalized_ndarray_distn


__all__ = [
        'ForwardTable', 'normalize_column',
        'forward_block', 'forward_block_naive', 'forward_switch',
        'ArgHmmMatrices', 'ArgHmmMatrixList', 'forward_algorithm',
        ]


logger = logging.getLogger(__name__)


class ForwardTable(object):
    """
    Forward probabilities stored block by block.

    Each block is a 2d array with one row per genome position
    and one column per state of the local tree of that block.

    Parameters
    ----------
    start_coord : integer
        Genome position of the first site.
    length : integer
        Number of sites.

    """
    def __init__(self, start_coord, length):
        self.start_coord = start_coord
        self.length = length
        self._starts = []
        self._blocks = []

    @property
    def end_coord(self):
        return self.start_coord + self.length

    def new_block(self, start, end, nstates):
        """
        Allocate the table of the block covering positions start..end-1.
        """
        if start < self.start_coord or end > self.end_coord or end <= start:
            raise ValueError('block %d-%d is outside the table' % (start, end))
        i = bisect.bisect_left(self._starts, start)
        if i < len(self._starts) and self._starts[i] == start:
            raise ValueError('block at %d already exists' % start)
        fw = np.zeros((end - start, max(nstates, 1)), dtype=float)
        self._starts.insert(i, start)
        self._blocks.insert(i, fw)
        return fw

    def get_block(self, pos):
        """
        Return the (start, table) pair of the block containing a position.
        """
        i = bisect.bisect_right(self._starts, pos) - 1
        if i < 0:
            raise KeyError(pos)
        start = self._starts[i]
        fw = self._blocks[i]
        if pos >= start + len(fw):
            raise KeyError(pos)
        return start, fw

    def __getitem__(self, pos):
        start, fw = self.get_block(pos)
        return fw[pos - start]

    def __len__(self):
        return self.length


def normalize_column(col):
    return get_normalized_ndarray_distn(col)


def _get_branch_ages(tree, states, ntimes, internal):
    # First and last state time of each branch.
    maxtime = ntimes - 2
    minage = 0
    top = tree.root
    if internal:
        subtree_root, top = get_subtree_roots(tree)
        minage = tree.ages[subtree_root]
    ages1 = {}
    ages2 = {}
    for node in set(state.node for state in states):
        ages1[node] = max(tree.ages[node], minage)
        if node == top:
            ages2[node] = maxtime
        else:
            ages2[node] = min(tree.ages[tree.parents[node]], maxtime)
    return ages1, ages2


def get_branch_pairs(tree, states, transmat, internal=False):
    """
    Source, destination and weight of the same-branch corrections.

    Returns
    -------
    src, dst : 1d ndarrays of integers
        State index pairs that lie on the same branch.
    weights : 1d ndarray
        Transition mass of each pair beyond the time-to-time baseline.

    """
    lookup = NodeStateLookup(states, tree.nnodes)
    ages1, ages2 = _get_branch_ages(tree, states, transmat.ntimes, internal)
    src = []
    dst = []
    weights = []
    for k, (node, b) in enumerate(states):
        j1 = lookup.lookup(node, ages1[node])
        for j, a in enumerate(range(ages1[node], ages2[node] + 1), j1):
            w = (transmat.get_time(a, b, True) -
                    transmat.get_time(a, b, False))
            if w:
                src.append(j)
                dst.append(k)
                weights.append(w)
    return (np.array(src, dtype=int), np.array(dst, dtype=int),
            np.array(weights, dtype=float))


def forward_block(tree, states, transmat, emit, fw, internal=False):
    """
    Fill one block of the forward table with compressed transitions.

    Parameters
    ----------
    tree : LocalTree
        The local tree of the block.
    states : list of State
        The states of the local tree.
    transmat : TransMatrix
        Transition matrix of the block.
    emit : 2d ndarray
        Emissions of the block, one row per position.
    fw : 2d ndarray
        Forward table of the block whose first row is already filled.
        The remaining rows are filled in place.

    """
    blocklen = len(fw)
    nstates = len(states)
    if not nstates:
        # Fully specified tree, a single implicit state.
        fw[1:, 0] = fw[0, 0]
        return

    tmatrix = transmat.get_time_matrix()
    ncoal_times = tmatrix.shape[0]
    state_times = np.array([state.time for state in states], dtype=int)
    src, dst, weights = get_branch_pairs(tree, states, transmat, internal)

    for i in range(1, blocklen):
        col1 = fw[i-1]

        # Collapse the previous column into per-time sums.
        fgroups = np.bincount(state_times, weights=col1,
                minlength=ncoal_times)
        tmatrix_fgroups = fgroups.dot(tmatrix)

        col2 = tmatrix_fgroups[state_times]
        col2 += np.bincount(dst, weights=weights * col1[src],
                minlength=nstates)
        col2 *= emit[i]
        fw[i] = normalize_column(col2)


def forward_block_naive(tree, states, transmat, emit, fw):
    """
    Fill one block of the forward table with the dense transition matrix.

    This is a reference implementation for testing forward_block.

    """
    P = transmat.get_dense(tree, states)
    for i in range(1, len(fw)):
        fw[i] = normalize_column(fw[i-1].dot(P) * emit[i])


def forward_switch(col1, switch, emit):
    """
    Advance the forward recursion across a change of local tree.

    Parameters
    ----------
    col1 : 1d ndarray
        Last forward column of the previous block.
    switch : TransMatrixSwitch
        Transitions between the state spaces of the two trees.
    emit : 1d ndarray
        Emissions of the first position of the next block.

    Returns
    -------
    col2 : 1d ndarray
        The normalized first forward column of the next block.

    """
    nstates1 = max(switch.nstates1, 1)
    nstates2 = max(switch.nstates2, 1)
    col2 = np.zeros(nstates2, dtype=float)

    # Deterministic transitions.
    sources = np.arange(nstates1)
    mask = ((switch.determ != -1) &
            (sources != switch.recombsrc) &
            (sources != switch.recoalsrc))
    np.add.at(col2, switch.determ[mask],
            col1[mask] * np.exp(switch.determprob[mask]))

    # Full rows out of the recombination and recoalescence states.
    if switch.recombsrc != -1:
        col2 += col1[switch.recombsrc] * np.exp(switch.recombrow)
    if switch.recoalsrc != -1:
        col2 += col1[switch.recoalsrc] * np.exp(switch.recoalrow)

    col2 *= emit
    if not col2.max() > 0:
        raise NumericalZeroProb('no mass after switching local trees')
    return normalize_column(col2)


def get_codes(sequences):
    if isinstance(sequences, Sequences):
        return sequences.codes
    return np.asarray(sequences)


class ArgHmmMatrices(object):
    """
    Everything the HMM needs for one genome block.

    Attributes
    ----------
    start, end : integers
        The genome positions covered by the block.
    tree : LocalTree
        The local tree.
    states : list of State
        The states of the local tree.
    lineages : LineageCounts
        Lineage counts of the local tree.
    transmat : TransMatrix
        The within-block transition matrix.
    transmat_switch : TransMatrixSwitch or None
        The switch into this block from the previous one.
    emit : 2d ndarray or None
        The emissions, when sequences were provided.

    """
    def __init__(self, start, end, tree, states, lineages,
            transmat, transmat_switch=None, emit=None):
        self.start = start
        self.end = end
        self.tree = tree
        self.states = states
        self.lineages = lineages
        self.transmat = transmat
        self.transmat_switch = transmat_switch
        self.emit = emit

    @property
    def blocklen(self):
        return self.end - self.start

    @property
    def nstates(self):
        return len(self.states)


class ArgHmmMatrixList(object):
    """
    The per-block HMM matrices of a sequence of local trees.

    Parameters
    ----------
    model : ArgModel
        Model parameters.
    sequences : Sequences or 2d ndarray, optional
        Aligned sequences, or None if emissions are not needed.
        Column 0 is the first site of the local trees.
    trees : LocalTrees
        The local trees.
    new_chrom : integer, optional
        Sequence row of the new leaf, by default the last row.
    internal : bool, optional
        True when resampling an internal branch.
    incremental : bool, optional
        Use incremental emission updates for leaf insertion.

    """
    def __init__(self, model, sequences, trees, new_chrom=None,
            internal=False, incremental=False):
        self.model = model
        self.codes = None if sequences is None else get_codes(sequences)
        self.trees = trees
        if new_chrom is None and self.codes is not None:
            new_chrom = self.codes.shape[0] - 1
        self.new_chrom = new_chrom
        self.internal = internal
        self.incremental = incremental
        self.matrices = []

    def setup(self):
        model = self.model
        trees = self.trees
        self.matrices = []
        for start, end, block in trees.iter_blocks():
            tree = block.tree
            states = get_coal_states(tree, model.ntimes, self.internal)
            lineages = LineageCounts(model.ntimes).count(tree, self.internal)
            transmat = calc_transition_probs(
                    tree, model, states, lineages, self.internal)
            emit = None
            if self.codes is not None:
                subcodes = self.codes[:,
                        start - trees.start_coord:end - trees.start_coord]
                if self.internal:
                    emit = calc_emissions_internal(states, tree, subcodes,
                            model, seqids=trees.seqids)
                else:
                    emit = calc_emissions(states, tree, subcodes, model,
                            seqids=trees.seqids, new_row=self.new_chrom,
                            incremental=self.incremental)
            self.matrices.append(ArgHmmMatrices(start, end, tree, states,
                lineages, transmat, block.switch, emit))
            logger.debug('block %d-%d: %d states', start, end, len(states))
        return self

    def __iter__(self):
        return iter(self.matrices)

    def __reversed__(self):
        return reversed(self.matrices)

    def __getitem__(self, index):
        return self.matrices[index]

    def __len__(self):
        return len(self.matrices)


def forward_algorithm(trees, model, matrix_list,
        forward=None, prior=None, naive=False):
    """
    Run the forward algorithm over every block.

    The first column is the prior times the emissions of the first site,
    normalized, so the data at the first site is included.
    This differs from filling the first column with the prior alone,
    which ignores the first site.

    Parameters
    ----------
    trees : LocalTrees
        The local trees.
    model : ArgModel
        Model parameters.
    matrix_list : ArgHmmMatrixList
        Matrices of every block, including emissions.
    forward : ForwardTable, optional
        Table to fill in place.
    prior : 1d ndarray, optional
        Weights of the states at the first position, before emissions.
        By default the coalescent prior of the first local tree is used.
    naive : bool, optional
        Use the dense transition matrices, for testing.

    Returns
    -------
    forward : ForwardTable
        The filled forward table.

    """
    if forward is None:
        forward = ForwardTable(trees.start_coord, trees.length())

    prev = None
    for mat in matrix_list:
        if mat.emit is None:
            raise ValueError('emissions are required for the forward pass')
        fw = forward.new_block(mat.start, mat.end, mat.nstates)
        states = mat.states
        tree = mat.tree

        if prev is None:
            if prior is None:
                minage = 0
                if matrix_list.internal and states:
                    minage = tree.ages[get_subtree_roots(tree)[0]]
                prior = calc_state_priors(
                        states, mat.lineages, model, minage)
            prior = np.asarray(prior, dtype=float)
            if prior.shape != (max(mat.nstates, 1),):
                raise ValueError('expected one prior weight per state')
            fw[0] = normalize_column(prior * mat.emit[0])
            block_fw = fw
            block_emit = mat.emit
        elif mat.transmat_switch is not None:
            fw[0] = forward_switch(forward[mat.start - 1],
                    mat.transmat_switch, mat.emit[0])
            block_fw = fw
            block_emit = mat.emit
        else:
            # Same local tree as before, continue from the previous column.
            if mat.nstates != prev.nstates:
                raise ValueError('the state space changes at %d '
                        'without a switch matrix' % mat.start)
            block_fw = np.empty((mat.blocklen + 1, fw.shape[1]))
            block_fw[0] = forward[mat.start - 1]
            block_emit = np.vstack([mat.emit[:1], mat.emit])

        if naive:
            forward_block_naive(tree, states, mat.transmat,
                    block_emit, block_fw)
        else:
            forward_block(tree, states, mat.transmat, block_emit, block_fw,
                    matrix_list.internal)
        if block_fw is not fw:
            fw[:] = block_fw[1:]
        prev = mat

    return forward
