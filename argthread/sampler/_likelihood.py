"""
Partial likelihoods of aligned sequences on a local tree.

Branches follow the Jukes-Cantor substitution process.
Each branch contributes a pair of probabilities,
the probability of no change and the probability of a change
to one specific other base.
Inner vectors give the likelihood of the data below a node
given each of the four bases at the node.
Outer vectors give the likelihood of the data outside the subtree of a node
given each of the four bases at the parent of the node.

All recursions are vectorized over the sites of a genome block;
the partial likelihood tables have shape (nsites, nnodes, 4).

"""
import numpy as np

from argthread.sampler._seq import find_invariant_sites, get_leaf_likelihoods


__all__ = [
        'prob_branch', 'get_branch_probs', 'prob_tree_mutation',
        'LikelihoodTable', 'mix_branch',
        'calc_inner', 'calc_outer', 'calc_inner_outer',
        'get_invariant_likelihood', 'likelihood_tree',
        ]


def prob_branch(t, mu, mut):
    """
    Jukes-Cantor probability of a base at the end of a branch.

    Parameters
    ----------
    t : float
        Branch length, already floored at the minimum branch length.
    mu : float
        Mutation rate.
    mut : bool
        True for the probability of a change to one specific other base,
        False for the probability of no change.

    """
    f = 4.0 / 3.0
    if mut:
        return .25 * (1.0 - np.exp(-f * mu * t))
    else:
        return .25 * (1.0 + 3.0 * np.exp(-f * mu * t))


def get_branch_probs(t, mu):
    """
    Return the (change, no change) probability pair for branch lengths t.
    """
    return prob_branch(t, mu, True), prob_branch(t, mu, False)


def prob_tree_mutation(tree, model, nodes=None):
    """
    Get the mutation probabilities of the branches of a local tree.

    Parameters
    ----------
    tree : LocalTree
        The local tree.
    model : ArgModel
        Model parameters.
    nodes : sequence of integers, optional
        Nodes whose branches are needed.
        By default every node reachable from the root is used.

    Returns
    -------
    muts : 1d ndarray
        Probability of a change to a specific other base on each branch.
    nomuts : 1d ndarray
        Probability of no change on each branch.
    dists : 1d ndarray
        Branch lengths floored at mintime.

    Notes
    -----
    Entries are nan for the root and for children of a technical root
    that holds a removed branch.

    """
    times = model.times
    removed_root_time = model.get_removed_root_time()
    muts = np.full(tree.nnodes, np.nan)
    nomuts = np.full(tree.nnodes, np.nan)
    dists = np.full(tree.nnodes, np.nan)
    if nodes is None:
        nodes = tree.get_postorder()
    for node in nodes:
        parent = tree.parents[node]
        if parent == -1:
            continue
        parent_age = tree.ages[parent]
        if parent_age == removed_root_time:
            continue
        t = max(times[parent_age] - times[tree.ages[node]], model.mintime)
        dists[node] = t
        muts[node], nomuts[node] = get_branch_probs(t, model.mu)
    return muts, nomuts, dists


def get_invariant_likelihood(treelen, model):
    """
    Likelihood of a site at which every sequence has the same base.
    """
    return .25 * np.exp(-model.mu * max(treelen, model.mintime))


class LikelihoodTable(object):
    """
    Scratch space for partial likelihoods, reused across states of a block.

    Parameters
    ----------
    nsites : integer
        Number of sites.
    nnodes : integer
        Number of node slots.

    """
    def __init__(self, nsites, nnodes):
        self.nsites = nsites
        self.nnodes = nnodes
        self.data = np.empty((nsites, nnodes, 4), dtype=float)

    def __getitem__(self, index):
        return self.data[index]


def mix_branch(lk, mut, nomut):
    """
    Push partial likelihood vectors across one branch.

    Entry a of the output is the sum over b of lk[b] times the
    probability of changing between bases a and b along the branch.

    """
    return mut * lk.sum(axis=-1, keepdims=True) + (nomut - mut) * lk


def calc_inner(tree, leaf_lk, leaf_rows, order, muts, nomuts, inner):
    """
    Fill inner partial likelihoods for the given nodes.

    Parameters
    ----------
    tree : LocalTree
        The local tree.
    leaf_lk : 3d ndarray
        Leaf likelihood vectors indexed by (row, site, base).
    leaf_rows : sequence of integers
        Sequence row of each leaf node.
    order : sequence of integers
        Nodes to compute, children before parents.
    muts, nomuts : 1d ndarrays
        Branch mutation probabilities.
    inner : 3d ndarray
        Inner table indexed by (site, node, base), updated in place.

    """
    for node in order:
        if tree.is_leaf(node):
            inner[:, node] = leaf_lk[leaf_rows[node]]
        else:
            c1, c2 = tree.children[node]
            inner[:, node] = (
                    mix_branch(inner[:, c1], muts[c1], nomuts[c1]) *
                    mix_branch(inner[:, c2], muts[c2], nomuts[c2]))


def calc_outer(tree, maintree_root, muts, nomuts, inner, outer):
    """
    Fill outer partial likelihoods below the designated main tree root.

    The main tree root has an all-ones outer vector.
    Children of the main tree root only see their sibling subtree.

    """
    for node in tree.get_preorder(maintree_root):
        if node == maintree_root:
            outer[:, node] = 1.0
            continue
        sib = tree.get_sibling(node)
        parent = tree.parents[node]
        p1 = mix_branch(inner[:, sib], muts[sib], nomuts[sib])
        if parent != maintree_root:
            p2 = mix_branch(outer[:, parent], muts[parent], nomuts[parent])
            outer[:, node] = p1 * p2
        else:
            outer[:, node] = p1


def calc_inner_outer(tree, model, leaf_lk, leaf_rows=None):
    """
    Compute inner and outer tables for a tree carrying a removed subtree.

    The first child of the technical root is the removed subtree
    and the second child is the root of the main tree.

    Parameters
    ----------
    tree : LocalTree
        Local tree with a technical root.
    model : ArgModel
        Model parameters.
    leaf_lk : 3d ndarray
        Leaf likelihood vectors indexed by (row, site, base).
    leaf_rows : sequence of integers, optional
        Sequence row of each leaf node,
        by default the rows of LocalTree.get_leaf_seqids.

    Returns
    -------
    inner, outer : 3d ndarrays
        Partial likelihood tables indexed by (site, node, base).
    muts, nomuts : 1d ndarrays
        Branch mutation probabilities.

    """
    if leaf_rows is None:
        leaf_rows = np.maximum(tree.get_leaf_seqids(), 0)
    subtree_root, maintree_root = tree.children[tree.root]
    nsites = leaf_lk.shape[1]
    inner = LikelihoodTable(nsites, tree.nnodes).data
    outer = LikelihoodTable(nsites, tree.nnodes).data

    nodes = tree.get_postorder(subtree_root) + tree.get_postorder(maintree_root)
    muts, nomuts, dists = prob_tree_mutation(tree, model, nodes)
    calc_inner(tree, leaf_lk, leaf_rows,
            tree.get_postorder(subtree_root), muts, nomuts, inner)
    calc_inner(tree, leaf_lk, leaf_rows,
            tree.get_postorder(maintree_root), muts, nomuts, inner)
    calc_outer(tree, maintree_root, muts, nomuts, inner, outer)
    return inner, outer, muts, nomuts


def likelihood_tree(tree, model, codes, start=0, end=None):
    """
    Log likelihood of a range of sites on a fixed local tree.

    Parameters
    ----------
    tree : LocalTree
        The local tree; leaf i reads row i of codes.
    model : ArgModel
        Model parameters.
    codes : 2d ndarray
        Encoded sequences.
    start, end : integers, optional
        The range of sites.

    Returns
    -------
    lnl : float
        Sum over sites of the log site likelihoods.

    """
    codes = np.asarray(codes)
    if end is None:
        end = codes.shape[1]
    codes = codes[:, start:end]
    invariant = find_invariant_sites(codes)
    variant = np.flatnonzero(~invariant)

    order = tree.get_postorder()
    muts, nomuts, dists = prob_tree_mutation(tree, model, order)

    lnl = 0.0
    if invariant.any():
        # One value serves every invariant site of the tree.
        treelen = np.nansum(dists)
        ninvariant = np.count_nonzero(invariant)
        lnl += ninvariant * np.log(get_invariant_likelihood(treelen, model))
    if variant.size:
        leaf_lk = get_leaf_likelihoods(codes[:, variant])
        inner = LikelihoodTable(variant.size, tree.nnodes).data
        calc_inner(tree, leaf_lk, np.arange(tree.nnodes), order,
                muts, nomuts, inner)
        site_lk = .25 * inner[:, tree.root].sum(axis=1)
        lnl += np.log(site_lk).sum()
    return lnl
