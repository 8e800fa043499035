"""
Test branch mutation probabilities and partial likelihoods.

"""
import unittest
from unittest import TestCase

import numpy as np
import scipy.linalg

from numpy.testing import assert_equal, assert_allclose, assert_

from argthread.sampler._model import ArgModel, get_time_points
from argthread.sampler._seq import encode_seqs, get_leaf_likelihoods
from argthread.sampler._tree import LocalTree
from argthread.sampler._sample_tree import (
        get_random_internal_tree, get_random_seqs)
from argthread.sampler._likelihood import (
        prob_branch, get_branch_probs, prob_tree_mutation, mix_branch,
        calc_inner_outer, likelihood_tree)


def _get_jc_matrix(mu, t):
    Q = np.full((4, 4), mu / 3.0)
    np.fill_diagonal(Q, -mu)
    return scipy.linalg.expm(Q * t)


class TestMutationProbs(TestCase):

    def test_expm_agreement(self):
        mu = 2.5e-3
        for t in np.logspace(-2, 4, 10):
            P = _get_jc_matrix(mu, t)
            mut, nomut = get_branch_probs(t, mu)
            assert_allclose(np.diag(P), nomut)
            assert_allclose(P[0, 1:], mut)
            assert_allclose(nomut + 3 * mut, 1)

    def test_limits(self):
        assert_allclose(prob_branch(0, 1.0, False), 1)
        assert_allclose(prob_branch(0, 1.0, True), 0)
        assert_allclose(prob_branch(1e6, 1.0, False), .25)
        assert_allclose(prob_branch(1e6, 1.0, True), .25)

    def test_mix_branch(self):
        np.random.seed(1234)
        mu = 1e-3
        t = 300.0
        lk = np.random.rand(7, 4)
        mut, nomut = get_branch_probs(t, mu)
        assert_allclose(mix_branch(lk, mut, nomut),
                lk.dot(_get_jc_matrix(mu, t).T))

    def test_tree_mutation_floors_branches(self):
        times = [0.0, 10.0, 20.0]
        model = ArgModel(times, 1e4, 0.0, 1e-3, mintime=5.0)
        tree = LocalTree([2, 2, -1], [0, 0, 0])
        muts, nomuts, dists = prob_tree_mutation(tree, model)
        assert_allclose(dists[:2], 5.0)
        assert_(np.isnan(dists[2]))
        assert_allclose(nomuts[0], prob_branch(5.0, 1e-3, False))


class TestLikelihoodTree(TestCase):

    def test_two_leaves(self):
        times = [0.0, 10.0, 20.0]
        mu = 1e-2
        model = ArgModel(times, 1e4, 0.0, mu)
        tree = LocalTree([2, 2, -1], [0, 0, 1])
        codes = encode_seqs(['AC', 'AG'])
        mut, nomut = get_branch_probs(10.0, mu)
        invariant = .25 * np.exp(-mu * 20.0)
        variable = .25 * (2 * nomut * mut + 2 * mut * mut)
        expected = np.log(invariant) + np.log(variable)
        assert_allclose(likelihood_tree(tree, model, codes), expected)
        assert_allclose(likelihood_tree(tree, model, codes, 1, 2),
                np.log(variable))


class TestInnerOuter(TestCase):

    def test_outer_consistency(self):
        # Every branch of the main tree recovers the main tree likelihood.
        np.random.seed(1234)
        times = get_time_points(ntimes=6, maxtime=1000)
        model = ArgModel(times, 1e4, 0.0, 1e-3)
        for i in range(5):
            tree = get_random_internal_tree(5, 6)
            seqs = get_random_seqs(5, 20, pvariant=1.0)
            leaf_lk = get_leaf_likelihoods(encode_seqs(seqs))
            inner, outer, muts, nomuts = calc_inner_outer(
                    tree, model, leaf_lk)
            subtree_root, maintree_root = tree.children[tree.root]
            expected = .25 * inner[:, maintree_root].sum(axis=1)
            for node in tree.get_postorder(maintree_root):
                if node == maintree_root:
                    continue
                below = mix_branch(inner[:, node], muts[node], nomuts[node])
                observed = .25 * (outer[:, node] * below).sum(axis=1)
                assert_allclose(observed, expected)


if __name__ == '__main__':
    unittest.main()
