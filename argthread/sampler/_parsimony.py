"""
Unweighted parsimony on local trees.

This is a diagnostic for flagging sites that are incompatible
with a fixed tree topology.
It is not used when sampling threads.

"""
import numpy as np

from argthread.sampler._seq import AMBIGUOUS


__all__ = [
        'parsimony_ancestral_seq', 'parsimony_cost_seq',
        'get_parsimony_costs', 'count_noncompat', 'count_noncompat_trees',
        ]


def _lowest_base(s):
    for a in range(4):
        if s & (1 << a):
            return a
    raise ValueError('empty base set')


def parsimony_ancestral_seq(tree, codes, pos, seqids=None):
    """
    Reconstruct ancestral bases at one site by Fitch parsimony.

    Parameters
    ----------
    tree : LocalTree
        The local tree.
    codes : 2d ndarray
        Encoded sequences.
    pos : integer
        The site, as a column index of codes.
    seqids : sequence of integers, optional
        Sequence row of each leaf node, by default
        the rows of LocalTree.get_leaf_seqids.

    Returns
    -------
    ancestral : 1d ndarray of integers
        A base for every node of the tree.
        A node whose Fitch set is ambiguous takes the base of its parent
        when possible, and otherwise the lowest base of its set.

    """
    if seqids is None:
        seqids = tree.get_leaf_seqids()
    postorder = tree.get_postorder()
    sets = {}
    for node in postorder:
        if tree.is_leaf(node):
            code = codes[seqids[node], pos]
            sets[node] = 15 if code == AMBIGUOUS else 1 << int(code)
        else:
            c1, c2 = tree.children[node]
            intersect = sets[c1] & sets[c2]
            sets[node] = intersect if intersect else sets[c1] | sets[c2]

    ancestral = np.empty(tree.nnodes, dtype=int)
    for node in tree.get_preorder():
        s = sets[node]
        parent = tree.parents[node]
        if parent != -1 and s & (1 << ancestral[parent]):
            ancestral[node] = ancestral[parent]
        else:
            ancestral[node] = _lowest_base(s)
    return ancestral


def get_parsimony_costs(tree, codes, seqids=None):
    """
    Minimum number of base changes on the tree, for every site.

    Parameters
    ----------
    tree : LocalTree
        The local tree.
    codes : 2d ndarray
        Encoded sequences, one column per site.
    seqids : sequence of integers, optional
        Sequence row of each leaf node, by default
        the rows of LocalTree.get_leaf_seqids.

    Returns
    -------
    costs : 1d ndarray of integers
        The unit cost parsimony score of each site.
        Ambiguous bases cost nothing.

    """
    codes = np.asarray(codes)
    nsites = codes.shape[1]
    if seqids is None:
        seqids = tree.get_leaf_seqids()
    maxcost = tree.nnodes + 1
    node_to_costs = {}
    for node in tree.get_postorder():
        if tree.is_leaf(node):
            row = codes[seqids[node]]
            costs = np.full((nsites, 4), maxcost, dtype=int)
            known = row != AMBIGUOUS
            costs[~known] = 0
            costs[np.flatnonzero(known), row[known]] = 0
        else:
            costs = np.zeros((nsites, 4), dtype=int)
            for child in tree.children[node]:
                c = node_to_costs.pop(child)
                costs += np.minimum(c, c.min(axis=1, keepdims=True) + 1)
        node_to_costs[node] = costs
    return node_to_costs[tree.root].min(axis=1)


def parsimony_cost_seq(tree, codes, pos, seqids=None):
    codes = np.asarray(codes)
    return int(get_parsimony_costs(tree, codes[:, pos:pos+1], seqids)[0])


def count_noncompat(tree, codes, seqids=None):
    """
    Count the sites that need more than one base change on the tree.
    """
    return int(np.count_nonzero(get_parsimony_costs(tree, codes, seqids) > 1))


def count_noncompat_trees(trees, codes):
    """
    Count incompatible sites over every block of a sequence of local trees.
    """
    codes = np.asarray(codes)
    noncompat = 0
    for start, end, block in trees.iter_blocks():
        subcodes = codes[:, start - trees.start_coord:end - trees.start_coord]
        noncompat += count_noncompat(block.tree, subcodes, trees.seqids)
    return noncompat
