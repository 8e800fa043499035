"""
Sample random local trees with discretized node ages.

These are used to build test cases for the emission and forward computations.

"""
import numpy as np
import networkx as nx

from argthread.sampler._tree import LocalTree


__all__ = [
        'get_random_local_tree', 'get_random_internal_tree',
        'get_random_seqs',
        ]


def get_random_local_tree(nleaves, ntimes):
    """
    Sample a random binary tree by merging random pairs of lineages.

    Parameters
    ----------
    nleaves : integer
        Number of leaves, which are the nodes 0..nleaves-1.
    ntimes : integer
        Number of time points of the model.
        Internal node ages are drawn between the ages of their children
        and the last coalescence time index ntimes-2.

    Returns
    -------
    tree : LocalTree
        A rooted binary tree with 2*nleaves-1 nodes.

    """
    # Check the input.
    if nleaves < 1:
        raise ValueError('nleaves should be >= 1')
    if ntimes < 2:
        raise ValueError('ntimes should be >= 2')

    # Initialize.
    G = nx.DiGraph()
    for leaf in range(nleaves):
        G.add_node(leaf, age=0)
    active = list(range(nleaves))
    maxage = ntimes - 2

    # Keep merging lineages until only the root remains.
    while len(active) > 1:
        i, j = sorted(np.random.choice(len(active), size=2, replace=False))
        nb = active.pop(j)
        na = active.pop(i)
        low = max(G.nodes[na]['age'], G.nodes[nb]['age'])
        age = np.random.randint(low, maxage + 1)
        node = len(G)
        G.add_node(node, age=age)
        G.add_edge(node, na)
        G.add_edge(node, nb)
        active.append(node)

    return LocalTree.from_networkx(G)


def get_random_internal_tree(nleaves, ntimes):
    """
    Sample a random tree whose root holds a removed subtree.

    A random tree is sampled and a random non-root branch is pruned.
    The detached parent node becomes a technical root of age ntimes+1
    whose first child is the pruned subtree
    and whose second child is the root of the remaining main tree.

    Parameters
    ----------
    nleaves : integer
        Number of leaves, at least 3.
    ntimes : integer
        Number of time points of the model.

    Returns
    -------
    tree : LocalTree
        The tree with its technical root.

    """
    if nleaves < 3:
        raise ValueError('nleaves should be >= 3')
    tree = get_random_local_tree(nleaves, ntimes)

    # Choose the subtree to prune.
    candidates = [n for n in range(tree.nnodes)
            if n != tree.root and tree.parents[n] != tree.root]
    if not candidates:
        candidates = [n for n in range(tree.nnodes) if n != tree.root]
    subtree_root = candidates[np.random.randint(len(candidates))]

    # Detach the parent of the subtree root.
    parents = list(tree.parents)
    children = [list(c) for c in tree.children]
    ages = list(tree.ages)
    broken = parents[subtree_root]
    sib = tree.get_sibling(subtree_root)
    broken_parent = parents[broken]
    parents[sib] = broken_parent
    if broken_parent == -1:
        maintree_root = sib
    else:
        siblings = children[broken_parent]
        siblings[siblings.index(broken)] = sib
        maintree_root = tree.root

    # Reuse the detached node as the technical root.
    parents[broken] = -1
    parents[maintree_root] = broken
    children[broken] = [subtree_root, maintree_root]
    ages[broken] = ntimes + 1
    return LocalTree(parents, ages, children)


def get_random_seqs(nseqs, seqlen, pvariant=0.5, pambiguous=0.05):
    """
    Sample aligned sequences with a mix of invariant and variable sites.

    Parameters
    ----------
    nseqs : integer
        Number of sequences.
    seqlen : integer
        Number of sites.
    pvariant : float, optional
        Probability that a site is variable.
    pambiguous : float, optional
        Probability that a base at a variable site is ambiguous.

    Returns
    -------
    seqs : list of strings
        The aligned sequences.

    """
    columns = []
    for i in range(seqlen):
        if np.random.rand() < pvariant:
            column = [('N' if np.random.rand() < pambiguous
                else 'ACGT'[np.random.randint(4)]) for j in range(nseqs)]
        else:
            column = ['ACGT'[np.random.randint(4)]] * nseqs
        columns.append(column)
    return [''.join(column[j] for column in columns) for j in range(nseqs)]
