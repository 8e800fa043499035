"""
Slow reference emission computations, used for testing.

Each state is handled by building an explicit networkx graph of the
augmented tree, for internal branches by applying an SPR move
to a copy of the local tree, and running a plain pruning recursion with dense
branch transition matrices from scipy.linalg.expm.
Nothing is cached between states or between sites.

"""
import logging

import numpy as np
import networkx as nx
import scipy.linalg

from argthread.sampler._emit import (
        calc_emissions, calc_emissions_internal, get_leaf_rows)
from argthread.sampler._seq import find_invariant_sites, get_leaf_likelihoods
from argthread.sampler._states import get_coal_states, get_subtree_roots
from argthread.sampler._tree import apply_spr
from argthread.sampler._util import fequal


__all__ = [
        'get_jukes_cantor_rate_matrix',
        'calc_emissions_naive', 'calc_emissions_internal_naive',
        'assert_emissions', 'assert_emissions_internal',
        'assert_emissions_trees',
        ]


logger = logging.getLogger(__name__)


def get_jukes_cantor_rate_matrix(mu):
    """
    Rate matrix with total substitution rate mu out of each base.
    """
    Q = np.full((4, 4), mu / 3.0)
    np.fill_diagonal(Q, -mu)
    return Q


def _get_graph_likelihoods(G, root, leaf_lk, model):
    # Site likelihoods of the variable sites, one pruning pass over G.
    Q = get_jukes_cantor_rate_matrix(model.mu)
    times = model.times
    node_to_lk = {}
    for node in nx.dfs_postorder_nodes(G, root):
        if not G.out_degree(node):
            node_to_lk[node] = leaf_lk[G.nodes[node]['row']]
            continue
        lk = np.ones((leaf_lk.shape[1], 4))
        for child in G.successors(node):
            t = times[G.nodes[node]['age']] - times[G.nodes[child]['age']]
            P = scipy.linalg.expm(Q * max(t, model.mintime))
            lk = lk * node_to_lk[child].dot(P.T)
        node_to_lk[node] = lk
    return .25 * node_to_lk[root].sum(axis=1)


def _get_graph_treelen(G, model):
    times = model.times
    return sum(max(times[G.nodes[na]['age']] - times[G.nodes[nb]['age']],
        model.mintime) for na, nb in G.edges())


def _fill_emissions(G, root, codes, invariant, model, emit, j):
    treelen = _get_graph_treelen(G, model)
    for i in np.flatnonzero(invariant):
        emit[i, j] = .25 * np.exp(-model.mu * max(treelen, model.mintime))
    variant = np.flatnonzero(~invariant)
    if variant.size:
        leaf_lk = get_leaf_likelihoods(codes[:, variant])
        emit[variant, j] = _get_graph_likelihoods(G, root, leaf_lk, model)


def _get_base_graph(tree, rows):
    G = nx.DiGraph()
    for node in range(tree.nnodes):
        G.add_node(node, age=tree.ages[node], row=rows[node])
    for node in range(tree.nnodes):
        for child in tree.children[node]:
            G.add_edge(node, child)
    return G


def calc_emissions_naive(states, tree, codes, model,
        seqids=None, new_row=None):
    """
    Reference leaf insertion emissions.
    """
    codes = np.asarray(codes)
    if new_row is None:
        new_row = tree.nleaves
    rows = get_leaf_rows(tree, seqids)
    used_rows = sorted(set(rows[n] for n in range(tree.nnodes)
        if tree.is_leaf(n))) + [new_row]
    invariant = find_invariant_sites(codes[used_rows])

    emit = np.empty((codes.shape[1], len(states)), dtype=float)
    newleaf = ('thread', 'leaf')
    newcoal = ('thread', 'coal')
    for j, (node, time) in enumerate(states):
        G = _get_base_graph(tree, rows)
        G.add_node(newleaf, age=0, row=new_row)
        G.add_node(newcoal, age=time)
        parent = tree.parents[node]
        if parent == -1:
            root = newcoal
        else:
            root = tree.root
            G.remove_edge(parent, node)
            G.add_edge(parent, newcoal)
        G.add_edge(newcoal, node)
        G.add_edge(newcoal, newleaf)
        _fill_emissions(G, root, codes, invariant, model, emit, j)
    return emit


def calc_emissions_internal_naive(states, tree, codes, model, seqids=None):
    """
    Reference internal branch emissions, regrafting the subtree per state.
    """
    codes = np.asarray(codes)
    if not states:
        return np.ones((codes.shape[1], 1), dtype=float)
    subtree_root = get_subtree_roots(tree)[0]
    rows = get_leaf_rows(tree, seqids)
    used_rows = sorted(set(rows[n] for n in range(tree.nnodes)
        if tree.is_leaf(n)))
    invariant = find_invariant_sites(codes[used_rows])

    emit = np.empty((codes.shape[1], len(states)), dtype=float)
    for j, (node, time) in enumerate(states):
        # The technical root becomes the new coalescence node.
        spr_tree = tree.copy()
        apply_spr(spr_tree, subtree_root, node, time)
        G = _get_base_graph(spr_tree, rows)
        _fill_emissions(G, spr_tree.root, codes, invariant, model, emit, j)
    return emit


def _compare_emissions(emit, emit2, rel, eabs):
    if emit.shape != emit2.shape:
        logger.warning('emission shapes differ: %s %s',
                emit.shape, emit2.shape)
        return False
    ok = fequal(emit, emit2, rel, eabs)
    if not np.all(ok):
        i, j = np.argwhere(~ok)[0]
        logger.warning('emission mismatch at site %d state %d: %e %e',
                i, j, emit[i, j], emit2[i, j])
        return False
    return True


def assert_emissions(states, tree, codes, model,
        seqids=None, new_row=None, incremental=False, rel=1e-4, eabs=1e-12):
    """
    Check the leaf insertion emissions against the reference computation.

    Returns
    -------
    ok : bool
        True if every entry agrees within the tolerances.

    """
    emit = calc_emissions(states, tree, codes, model,
            seqids=seqids, new_row=new_row, incremental=incremental)
    emit2 = calc_emissions_naive(states, tree, codes, model,
            seqids=seqids, new_row=new_row)
    return _compare_emissions(emit, emit2, rel, eabs)


def assert_emissions_internal(states, tree, codes, model,
        seqids=None, rel=1e-4, eabs=1e-12):
    """
    Check the internal branch emissions against the reference computation.

    Returns
    -------
    ok : bool
        True if every entry agrees within the tolerances.

    """
    emit = calc_emissions_internal(states, tree, codes, model, seqids=seqids)
    emit2 = calc_emissions_internal_naive(states, tree, codes, model,
            seqids=seqids)
    return _compare_emissions(emit, emit2, rel, eabs)


def assert_emissions_trees(trees, codes, model, new_row=None,
        internal=False, incremental=False):
    """
    Check emissions block by block over a whole sequence of local trees.

    Parameters
    ----------
    trees : LocalTrees
        The local trees; column 0 of codes is the first site of trees.
    codes : 2d ndarray
        Encoded sequences covering every block.
    model : ArgModel
        Model parameters.
    new_row : integer, optional
        Sequence row of the new leaf in leaf insertion mode.
    internal : bool, optional
        Check internal branch emissions instead of leaf insertion.
    incremental : bool, optional
        Use the incremental leaf insertion path.

    Returns
    -------
    ok : bool
        True if every block agrees.

    """
    codes = np.asarray(codes)
    for start, end, block in trees.iter_blocks():
        subcodes = codes[:, start - trees.start_coord:end - trees.start_coord]
        tree = block.tree
        states = get_coal_states(tree, model.ntimes, internal)
        if internal:
            ok = assert_emissions_internal(states, tree, subcodes, model,
                    seqids=trees.seqids)
        else:
            ok = assert_emissions(states, tree, subcodes, model,
                    seqids=trees.seqids, new_row=new_row,
                    incremental=incremental)
        if not ok:
            logger.warning('emissions disagree in block %d-%d', start, end)
            return False
    return True
