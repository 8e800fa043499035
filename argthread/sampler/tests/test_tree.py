"""
Test local trees and their editing operations.

"""
import unittest
from unittest import TestCase

import numpy as np

from numpy.testing import assert_equal, assert_allclose, assert_, assert_raises

from argthread.sampler._tree import (
        LocalTree, ScratchTree, apply_spr, LocalTreeBlock, LocalTrees)
from argthread.sampler._sample_tree import (
        get_random_local_tree, get_random_internal_tree)


def _get_small_tree():
    # ((0, 1)3, 2)4
    return LocalTree([3, 3, 4, 4, -1], [0, 0, 0, 1, 2])


def _check_order(tree, postorder):
    seen = set()
    for node in postorder:
        for child in tree.children[node]:
            assert_(child in seen)
        seen.add(node)


class TestLocalTree(TestCase):

    def test_structure(self):
        tree = _get_small_tree()
        assert_equal(tree.root, 4)
        assert_equal(tree.nnodes, 5)
        assert_equal(tree.nleaves, 3)
        assert_equal(tree.children[3], [0, 1])
        assert_equal(tree.get_sibling(0), 1)
        assert_equal(tree.get_sibling(2), 3)
        assert_equal(tree.get_sibling(4), -1)

    def test_orders(self):
        tree = _get_small_tree()
        postorder = tree.get_postorder()
        assert_equal(sorted(postorder), list(range(5)))
        assert_equal(postorder[-1], 4)
        _check_order(tree, postorder)
        assert_equal(tree.get_preorder()[0], 4)
        assert_equal(sorted(tree.get_postorder(3)), [0, 1, 3])

    def test_leaf_seqids(self):
        assert_equal(_get_small_tree().get_leaf_seqids(), [0, 1, 2, -1, -1])
        tree = LocalTree([-1, 0, 0, 2, 2], [2, 0, 1, 0, 0])
        assert_equal(tree.get_leaf_seqids(), [-1, 0, -1, 1, 2])

    def test_treelen(self):
        tree = _get_small_tree()
        times = [0.0, 1.0, 3.0]
        assert_allclose(tree.get_treelen(times), 1 + 1 + 3 + 2)
        assert_allclose(tree.get_treelen(times, mintime=1.5), 1.5*2 + 3 + 2)
        assert_allclose(tree.get_treelen(times, root=3), 2)

    def test_networkx_round_trip(self):
        np.random.seed(1234)
        for i in range(5):
            tree = get_random_local_tree(6, 8)
            tree2 = LocalTree.from_networkx(tree.to_networkx())
            assert_equal(tree2.parents, tree.parents)
            assert_equal(tree2.ages, tree.ages)

    def test_invalid(self):
        assert_raises(ValueError, LocalTree, [-1, -1], [0, 0])
        assert_raises(ValueError, LocalTree, [2, -1, -1], [0, 0, 1])
        assert_raises(ValueError, LocalTree, [1, -1], [0, 1, 2])


class TestScratchTree(TestCase):

    def test_push_pop_inverse(self):
        np.random.seed(1234)
        ntimes = 6
        for i in range(10):
            tree = get_random_local_tree(5, ntimes)
            scratch = ScratchTree(tree)
            parents = list(scratch.parents)
            children = [list(c) for c in scratch.children]
            for node in range(tree.nnodes):
                scratch.push_branch(node, ntimes - 2)
                assert_equal(scratch.parents[scratch.newleaf],
                        scratch.newcoal)
                assert_equal(scratch.parents[node], scratch.newcoal)
                _check_order(scratch, scratch.get_postorder())
                assert_equal(len(scratch.get_postorder()), tree.nnodes + 2)
                assert_equal(scratch.pop_branch(), node)
                assert_equal(scratch.parents, parents)
                assert_equal(scratch.children, children)
                assert_equal(scratch.root, tree.root)

    def test_graft_above_root(self):
        tree = _get_small_tree()
        scratch = ScratchTree(tree)
        scratch.push_branch(4, 2)
        assert_equal(scratch.root, scratch.newcoal)
        assert_equal(scratch.children[scratch.newcoal], [4, scratch.newleaf])
        scratch.pop_branch()
        assert_equal(scratch.root, 4)

    def test_one_graft_at_a_time(self):
        scratch = ScratchTree(_get_small_tree())
        scratch.push_branch(0, 0)
        assert_raises(ValueError, scratch.push_branch, 1, 0)


class TestSpr(TestCase):

    def test_apply_spr(self):
        tree = _get_small_tree()
        apply_spr(tree, 0, 2, 1)
        assert_equal(tree.parents, [3, 4, 3, 4, -1])
        assert_equal(tree.children[4], [3, 1])
        assert_equal(tree.children[3], [0, 2])
        assert_equal(tree.ages[3], 1)
        _check_order(tree, tree.get_postorder())

    def test_apply_spr_new_root(self):
        tree = _get_small_tree()
        apply_spr(tree, 0, 4, 2)
        assert_equal(tree.root, 3)
        assert_equal(tree.parents, [3, 4, 4, -1, 3])
        assert_equal(tree.children[3], [0, 4])
        assert_equal(tree.children[4], [2, 1])
        apply_spr(tree, 4, 0, 1)
        assert_equal(tree.root, 3)
        assert_equal(sorted(tree.get_postorder()), list(range(5)))
        _check_order(tree, tree.get_postorder())

    def test_regraft_removed_subtree(self):
        np.random.seed(1234)
        tree = get_random_internal_tree(5, 6)
        removed = tree.root
        subtree_root, maintree_root = tree.children[removed]
        for node in range(tree.nnodes):
            if node in (removed, subtree_root) or node in tree.get_postorder(
                    subtree_root):
                continue
            spr_tree = tree.copy()
            apply_spr(spr_tree, subtree_root, node, 4)
            assert_equal(spr_tree.children[removed], [subtree_root, node])
            assert_equal(spr_tree.ages[removed], 4)
            assert_equal(sorted(spr_tree.get_postorder()),
                    list(range(tree.nnodes)))
            if node == maintree_root:
                assert_equal(spr_tree.root, removed)
            else:
                assert_equal(spr_tree.root, maintree_root)
        assert_equal(tree.children[removed], [subtree_root, maintree_root])

    def test_bad_spr(self):
        tree = _get_small_tree()
        assert_raises(ValueError, apply_spr, tree, 4, 0, 1)
        assert_raises(ValueError, apply_spr, tree, 0, 3, 1)


class TestRandomTrees(TestCase):

    def test_random_internal_tree(self):
        np.random.seed(1234)
        ntimes = 6
        for i in range(10):
            tree = get_random_internal_tree(5, ntimes)
            assert_equal(tree.ages[tree.root], ntimes + 1)
            subtree_root, maintree_root = tree.children[tree.root]
            nodes = (set(tree.get_postorder(subtree_root)) |
                    set(tree.get_postorder(maintree_root)))
            assert_equal(len(nodes), tree.nnodes - 1)


class TestLocalTrees(TestCase):

    def test_blocks(self):
        tree = _get_small_tree()
        trees = LocalTrees([
            LocalTreeBlock(tree, 3),
            LocalTreeBlock(tree.copy(), 4)], start_coord=10)
        assert_equal(trees.length(), 7)
        assert_equal(trees.end_coord, 17)
        assert_equal(trees.get_num_trees(), 2)
        assert_equal(trees.seqids, [0, 1, 2])
        coords = [(start, end) for start, end, block in trees.iter_blocks()]
        assert_equal(coords, [(10, 13), (13, 17)])

    def test_empty_block(self):
        assert_raises(ValueError, LocalTreeBlock, _get_small_tree(), 0)
        assert_raises(ValueError, LocalTrees, [])


if __name__ == '__main__':
    unittest.main()
