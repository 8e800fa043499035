"""
Local trees of an ARG, with the editing operations used during threading.

A local tree is stored as parent, child and age arrays.
Leaves are the nodes 0..nleaves-1 and leaf i reads sequence row i.
Ages are integer indices into the model time grid.

Traversal orders are computed with networkx and cached until
the topology of the tree is edited.

"""
import networkx as nx
import numpy as np


__all__ = [
        'LocalTree', 'ScratchTree', 'apply_spr',
        'LocalTreeBlock', 'LocalTrees',
        ]


class LocalTree(object):
    """
    A rooted binary tree with discretized node ages.

    Parameters
    ----------
    parents : sequence of integers
        The parent of each node, or -1 for the root.
    ages : sequence of integers
        The age of each node as an index into the time grid.
    children : sequence of pairs, optional
        The two children of each internal node, in order.
        By default children are ordered by node index.

    """
    def __init__(self, parents, ages, children=None):
        nnodes = len(parents)
        if len(ages) != nnodes:
            raise ValueError('expected one age per node')
        self.parents = [int(p) for p in parents]
        self.ages = [int(a) for a in ages]
        roots = [i for i, p in enumerate(self.parents) if p == -1]
        if len(roots) != 1:
            raise ValueError('expected exactly one root but found %d' % (
                len(roots)))
        self.root = roots[0]
        if children is None:
            children = [[] for i in range(nnodes)]
            for node, parent in enumerate(self.parents):
                if parent != -1:
                    children[parent].append(node)
        self.children = [list(c) for c in children]
        for node, c in enumerate(self.children):
            if len(c) not in (0, 2):
                raise ValueError('node %d has %d children '
                        'but the tree should be binary' % (node, len(c)))
            for child in c:
                if self.parents[child] != node:
                    raise ValueError('inconsistent parent and child links')
        self._invalidate()

    @classmethod
    def from_networkx(cls, G):
        """
        Build a tree from a directed networkx graph.

        Nodes must be the integers 0..n-1 annotated with 'age',
        and edges are directed from parent to child.

        """
        nnodes = len(G)
        parents = [-1] * nnodes
        ages = [G.nodes[i]['age'] for i in range(nnodes)]
        children = [[] for i in range(nnodes)]
        for na in range(nnodes):
            for nb in G.successors(na):
                parents[nb] = na
                children[na].append(nb)
        return cls(parents, ages, children)

    def _invalidate(self):
        self._graph = None
        self._postorders = {}
        self._preorders = {}

    @property
    def nnodes(self):
        return len(self.parents)

    @property
    def nleaves(self):
        return sum(1 for c in self.children if not c)

    def is_leaf(self, node):
        return not self.children[node]

    def get_sibling(self, node):
        parent = self.parents[node]
        if parent == -1:
            return -1
        c1, c2 = self.children[parent]
        return c2 if c1 == node else c1

    def get_dist(self, node, times):
        parent = self.parents[node]
        if parent == -1:
            return 0.0
        return times[self.ages[parent]] - times[self.ages[node]]

    def get_treelen(self, times, mintime=0.0, root=None):
        """
        Total branch length below a root, with each branch floored at mintime.
        """
        if root is None:
            root = self.root
        return sum(max(self.get_dist(node, times), mintime)
                for node in self.get_postorder(root) if node != root)

    def to_networkx(self):
        """
        Directed networkx graph from parents to children with node ages.
        """
        G = nx.DiGraph()
        for node in self.get_preorder():
            G.add_node(node, age=self.ages[node])
            for child in self.children[node]:
                G.add_edge(node, child)
        return G

    def _get_graph(self):
        if self._graph is None:
            G = nx.DiGraph()
            stack = [self.root]
            G.add_node(self.root)
            while stack:
                node = stack.pop()
                for child in self.children[node]:
                    G.add_edge(node, child)
                    stack.append(child)
            self._graph = G
        return self._graph

    def get_postorder(self, node=None):
        """
        Nodes below and including a node, children before parents.
        """
        if node is None:
            node = self.root
        order = self._postorders.get(node)
        if order is None:
            order = list(nx.dfs_postorder_nodes(self._get_graph(), node))
            self._postorders[node] = order
        return order

    def get_preorder(self, node=None):
        """
        Nodes below and including a node, parents before children.
        """
        if node is None:
            node = self.root
        order = self._preorders.get(node)
        if order is None:
            order = list(nx.dfs_preorder_nodes(self._get_graph(), node))
            self._preorders[node] = order
        return order

    def get_leaf_seqids(self):
        """
        Default sequence row of each node.

        Leaves read rows 0..nleaves-1 in increasing node order,
        so leaf i reads row i when the leaves are the nodes 0..nleaves-1.
        Internal nodes get -1.

        """
        seqids = [-1] * self.nnodes
        leaves = [n for n in range(self.nnodes) if self.is_leaf(n)]
        for row, leaf in enumerate(leaves):
            seqids[leaf] = row
        return seqids

    def copy(self):
        return LocalTree(self.parents, self.ages, self.children)

    def __repr__(self):
        return 'LocalTree(parents=%r, ages=%r)' % (self.parents, self.ages)


class ScratchTree(LocalTree):
    """
    A reusable copy of a local tree onto which one new leaf can be grafted.

    The new leaf and the new coalescence node occupy two reserved slots
    at the end of the node arrays, so node indices of the original tree
    never change.
    Grafts are undone in the reverse order they were made.

    Parameters
    ----------
    tree : LocalTree
        The tree to copy.

    """
    def __init__(self, tree):
        n = tree.nnodes
        self.parents = list(tree.parents) + [-1, -1]
        self.ages = list(tree.ages) + [0, 0]
        self.children = [list(c) for c in tree.children] + [[], []]
        self.root = tree.root
        self.newleaf = n
        self.newcoal = n + 1
        self._undo = []
        self._invalidate()

    def push_branch(self, node, time):
        """
        Graft the new leaf onto the branch above node at the given time.
        """
        if self._undo:
            raise ValueError('only one branch can be grafted at a time')
        newleaf = self.newleaf
        newcoal = self.newcoal
        parent = self.parents[node]
        old_root = self.root

        self.ages[newleaf] = 0
        self.ages[newcoal] = time
        self.parents[newleaf] = newcoal
        self.parents[newcoal] = parent
        self.children[newcoal] = [node, newleaf]
        self.parents[node] = newcoal
        if parent == -1:
            self.root = newcoal
        else:
            siblings = self.children[parent]
            siblings[siblings.index(node)] = newcoal

        self._undo.append((node, parent, old_root))
        self._invalidate()

    def pop_branch(self):
        """
        Undo the most recent graft and return the node it was grafted above.
        """
        node, parent, old_root = self._undo.pop()
        newleaf = self.newleaf
        newcoal = self.newcoal

        self.parents[node] = parent
        if parent != -1:
            siblings = self.children[parent]
            siblings[siblings.index(newcoal)] = node
        self.root = old_root
        self.parents[newleaf] = -1
        self.parents[newcoal] = -1
        self.children[newcoal] = []
        self._invalidate()
        return node

    def get_partial_postorder(self, prev_node, new_node):
        """
        Nodes whose inner likelihoods change between two consecutive grafts.

        Parameters
        ----------
        prev_node : integer
            The node whose children changed when the previous graft was
            undone, or -1 if the previous graft was above the root.
        new_node : integer
            The node above which the current graft was made.

        Returns
        -------
        order : list of integers
            A valid bottom-up order over the nodes to recompute.

        """
        dirty = set()
        node = prev_node
        while node != -1:
            dirty.add(node)
            node = self.parents[node]

        order = []
        node = new_node
        while node != -1 and node not in dirty:
            order.append(node)
            node = self.parents[node]
        node = prev_node
        while node != -1:
            order.append(node)
            node = self.parents[node]
        return order


def apply_spr(tree, recomb_node, coal_node, coal_time):
    """
    Prune the branch above recomb_node and regraft it above coal_node.

    The parent of recomb_node is detached from its current position,
    its other child taking its place, and is reinserted
    on the branch above coal_node at coal_time.
    The tree is edited in place.

    Child lists keep their slots: the sibling replaces the detached node
    in the child list of its old parent, the reinserted node replaces
    coal_node in the child list of the parent of coal_node,
    and the children of the reinserted node are [recomb_node, coal_node].
    Parameters
    ----------
    tree : LocalTree
        The tree to edit.
    recomb_node : integer
        The root of the pruned subtree.
    coal_node : integer
        The node whose branch receives the pruned subtree.
    coal_time : integer
        Age index of the regrafting point.

    """
    broken = tree.parents[recomb_node]
    if broken == -1:
        raise ValueError('cannot prune the branch above the root')
    if coal_node in (broken, recomb_node):
        raise ValueError('cannot regraft a branch onto itself')
    sib = tree.get_sibling(recomb_node)
    broken_parent = tree.parents[broken]

    # Detach the broken node, letting the sibling take its place.
    tree.parents[sib] = broken_parent
    if broken_parent == -1:
        tree.root = sib
    else:
        siblings = tree.children[broken_parent]
        siblings[siblings.index(broken)] = sib

    # Reinsert the broken node above the coalescing node.
    coal_parent = tree.parents[coal_node]
    tree.parents[broken] = coal_parent
    if coal_parent == -1:
        tree.root = broken
    else:
        siblings = tree.children[coal_parent]
        siblings[siblings.index(coal_node)] = broken
    tree.parents[coal_node] = broken
    tree.children[broken] = [recomb_node, coal_node]
    tree.ages[broken] = coal_time
    tree._invalidate()


class LocalTreeBlock(object):
    """
    A local tree together with the genome block it spans.

    Parameters
    ----------
    tree : LocalTree
        The local tree.
    blocklen : integer
        Number of sites in the block.
    switch : TransMatrixSwitch, optional
        Transition structure from the last site of the previous block
        into the first site of this block, when the topology changes there.

    """
    def __init__(self, tree, blocklen, switch=None):
        if blocklen < 1:
            raise ValueError('blocks should contain at least one site')
        self.tree = tree
        self.blocklen = int(blocklen)
        self.switch = switch


class LocalTrees(object):
    """
    The sequence of local trees of an ARG along the genome.

    Parameters
    ----------
    blocks : sequence of LocalTreeBlock
        Blocks in genome order.
    start_coord : integer, optional
        Genome position of the first site of the first block.
    seqids : sequence of integers, optional
        Sequence row read by each leaf.
        By default leaf i reads row i.

    """
    def __init__(self, blocks, start_coord=0, seqids=None):
        self.blocks = list(blocks)
        if not self.blocks:
            raise ValueError('expected at least one local tree')
        self.start_coord = int(start_coord)
        if seqids is None:
            seqids = range(self.blocks[0].tree.nleaves)
        self.seqids = list(seqids)

    @property
    def end_coord(self):
        return self.start_coord + self.length()

    def length(self):
        return sum(block.blocklen for block in self.blocks)

    def get_num_trees(self):
        return len(self.blocks)

    def iter_blocks(self):
        """
        Yield (start, end, block) triples in genome order.
        """
        end = self.start_coord
        for block in self.blocks:
            start = end
            end = start + block.blocklen
            yield start, end, block

    def __iter__(self):
        return iter(self.blocks)

    def __len__(self):
        return len(self.blocks)
