"""
Test thread path decoding and the thread sampling entry points.

"""
import unittest
from unittest import TestCase

import numpy as np

from numpy.testing import assert_equal, assert_, assert_raises

from argthread.sampler._model import ArgModel, get_time_points
from argthread.sampler._seq import Sequences, encode_seqs
from argthread.sampler._tree import LocalTree, LocalTreeBlock, LocalTrees
from argthread.sampler._sample_tree import (
        get_random_local_tree, get_random_internal_tree, get_random_seqs)
from argthread.sampler._states import State, get_coal_states
from argthread.sampler._trans import TransMatrixSwitch
from argthread.sampler._forward import ArgHmmMatrixList, forward_algorithm
from argthread.sampler._traceback import (
        sample_hmm_posterior, sample_hmm_posterior_step,
        max_hmm_posterior, max_hmm_posterior_step,
        stochastic_traceback, max_traceback)
from argthread.sampler._thread import (
        sample_thread_path, max_thread_path, cond_sample_thread_path,
        sample_thread_path_internal, path_to_states)
from argthread.sampler._util import StructuralZeroProb


def _get_model(ntimes=5):
    times = get_time_points(ntimes=ntimes, maxtime=1000)
    return ArgModel(times, 1e3, 1e-4, 1e-3)


def _get_trees(model):
    tree_a = LocalTree([3, 3, 4, 4, -1], [0, 0, 0, 1, 2])
    tree_b = LocalTree([3, 3, 4, 4, -1], [0, 0, 0, 2, 3])
    n1 = len(get_coal_states(tree_a, model.ntimes))
    n2 = len(get_coal_states(tree_b, model.ntimes))
    uniform = np.log(np.ones(n2) / n2)
    switch = TransMatrixSwitch(n1, n2,
            recombsrc=0, recoalsrc=1,
            determ=np.arange(n1) % n2, determprob=np.zeros(n1),
            recombrow=uniform, recoalrow=uniform)
    blocks = [
            LocalTreeBlock(tree_a, 6),
            LocalTreeBlock(tree_a, 4),
            LocalTreeBlock(tree_b, 7, switch)]
    return LocalTrees(blocks, start_coord=20)


def _check_path(trees, matrix_list, path):
    # Every decoded transition has positive probability.
    nsites = trees.length()
    assert_equal(path.shape, (nsites,))
    prev = None
    for mat in matrix_list:
        start = mat.start - trees.start_coord
        end = mat.end - trees.start_coord
        for i in range(start, end):
            assert_(0 <= path[i] < max(mat.nstates, 1))
            if i == start and prev is not None:
                if mat.transmat_switch is not None:
                    p = mat.transmat_switch.get(path[i-1], path[i])
                else:
                    p = mat.transmat.get(mat.tree, mat.states,
                            path[i-1], path[i])
                assert_(p > 0)
            elif i > start:
                p = mat.transmat.get(mat.tree, mat.states, path[i-1], path[i])
                assert_(p > 0)
        prev = mat


class TestStochasticTraceback(TestCase):

    def test_positive_transitions(self):
        np.random.seed(1234)
        model = _get_model()
        trees = _get_trees(model)
        codes = encode_seqs(get_random_seqs(4, trees.length()))
        matrix_list = ArgHmmMatrixList(model, codes, trees).setup()
        forward = forward_algorithm(trees, model, matrix_list)
        for i in range(5):
            path = stochastic_traceback(trees, matrix_list, forward)
            _check_path(trees, matrix_list, path)

    def test_reproducible(self):
        model = _get_model()
        trees = _get_trees(model)
        np.random.seed(1234)
        seqs = get_random_seqs(4, trees.length())
        np.random.seed(42)
        path = sample_thread_path(trees, model, Sequences(seqs))
        np.random.seed(42)
        path2 = sample_thread_path(trees, model, Sequences(seqs))
        assert_equal(path, path2)

    def test_injected_sampler(self):
        np.random.seed(1234)
        model = _get_model()
        trees = _get_trees(model)
        codes = encode_seqs(get_random_seqs(4, trees.length()))

        def sample(weights):
            return int(np.argmax(weights))

        path = sample_thread_path(trees, model, codes, sample=sample)
        path2 = sample_thread_path(trees, model, codes, sample=sample)
        assert_equal(path, path2)

    def test_zero_transition_is_fatal(self):
        model = ArgModel(get_time_points(ntimes=5, maxtime=1000), 1e3, 0.0, 1e-3)
        tree = LocalTree([3, 3, 4, 4, -1], [0, 0, 0, 1, 2])
        trees = LocalTrees([LocalTreeBlock(tree, 3)])
        codes = encode_seqs(['AAA'] * 4)
        matrix_list = ArgHmmMatrixList(model, codes, trees).setup()
        mat = matrix_list[0]
        fw = np.ones((3, mat.nstates)) / mat.nstates
        path = np.array([0, 0, 1])

        # Without recombination only staying in place is possible.
        def sample(weights):
            return 0

        assert_raises(StructuralZeroProb, sample_hmm_posterior,
                mat.tree, mat.states, mat.transmat, fw, path, sample)

    def test_switch_step(self):
        switch = TransMatrixSwitch(3, 2,
                recombsrc=-1, recoalsrc=-1,
                determ=[0, 1, 1], determprob=[0.0, 0.0, 0.0],
                recombrow=[], recoalrow=[])
        col1 = np.array([0.2, 0.3, 0.5])
        for i in range(10):
            assert_(sample_hmm_posterior_step(switch, col1, 1) in (1, 2))
        assert_equal(sample_hmm_posterior_step(switch, col1, 0), 0)
        assert_raises(StructuralZeroProb, sample_hmm_posterior_step,
                switch, col1, 0, lambda weights: 2)

    def test_unreachable_state(self):
        switch = TransMatrixSwitch(2, 2,
                recombsrc=-1, recoalsrc=-1,
                determ=[0, 0], determprob=[0.0, 0.0],
                recombrow=[], recoalrow=[])
        col1 = np.array([0.5, 0.5])
        assert_raises(StructuralZeroProb, sample_hmm_posterior_step,
                switch, col1, 1, lambda weights: 0)
        assert_raises(StructuralZeroProb, max_hmm_posterior_step,
                switch, col1, 1)


class TestMaxTraceback(TestCase):

    def test_zero_transition_is_fatal(self):
        model = ArgModel(get_time_points(ntimes=5, maxtime=1000), 1e3, 0.0, 1e-3)
        tree = LocalTree([3, 3, 4, 4, -1], [0, 0, 0, 1, 2])
        trees = LocalTrees([LocalTreeBlock(tree, 3)])
        codes = encode_seqs(['AAA'] * 4)
        mat = ArgHmmMatrixList(model, codes, trees).setup()[0]
        fw = np.zeros((3, mat.nstates))
        fw[:, 0] = 1.0

        # Without recombination state 0 cannot move to state 1.
        path = np.array([0, 0, 1])
        assert_raises(StructuralZeroProb, max_hmm_posterior,
                mat.tree, mat.states, mat.transmat, fw, path)

        # Staying in place is always allowed.
        path = np.array([0, 0, 0])
        max_hmm_posterior(mat.tree, mat.states, mat.transmat, fw, path)
        assert_equal(path, [0, 0, 0])


    def test_max_path(self):
        np.random.seed(1234)
        model = _get_model()
        trees = _get_trees(model)
        codes = encode_seqs(get_random_seqs(4, trees.length()))
        path = max_thread_path(trees, model, codes)
        matrix_list = ArgHmmMatrixList(model, codes, trees).setup()
        forward = forward_algorithm(trees, model, matrix_list)
        assert_equal(path[-1], np.argmax(forward[trees.end_coord - 1]))
        assert_equal(max_traceback(trees, matrix_list, forward), path)
        _check_path(trees, matrix_list, path)


class TestConditionalSampling(TestCase):

    def test_end_states(self):
        np.random.seed(1234)
        model = _get_model()
        trees = _get_trees(model)
        codes = encode_seqs(get_random_seqs(4, trees.length()))
        first = get_coal_states(trees.blocks[0].tree, model.ntimes)
        last = get_coal_states(trees.blocks[-1].tree, model.ntimes)
        start_state = State(2, 1)
        end_state = State(4, 3)
        path = cond_sample_thread_path(trees, model, codes,
                start_state, end_state)
        assert_equal(first[path[0]], start_state)
        assert_equal(last[path[-1]], end_state)
        thread = path_to_states(trees, model, path)
        assert_equal(len(thread), trees.length())
        assert_equal(thread[0], start_state)
        assert_equal(thread[-1], end_state)

    def test_open_ends(self):
        np.random.seed(1234)
        model = _get_model()
        trees = _get_trees(model)
        codes = encode_seqs(get_random_seqs(4, trees.length()))
        path = cond_sample_thread_path(trees, model, codes, None, None)
        assert_equal(path.shape, (trees.length(),))

    def test_unknown_state(self):
        np.random.seed(1234)
        model = _get_model()
        trees = _get_trees(model)
        codes = encode_seqs(get_random_seqs(4, trees.length()))
        assert_raises(ValueError, cond_sample_thread_path,
                trees, model, codes, State(0, 3), None)


class TestInternalSampling(TestCase):

    def test_fully_determined_tree(self):
        # The removed subtree is older than the last coalescence time,
        # so it can only rejoin above the main tree root.
        model = _get_model(ntimes=4)
        tree = LocalTree([3, 3, 4, 4, -1], [0, 0, 0, 3, 5],
                children=[[], [], [], [0, 1], [3, 2]])
        assert_equal(get_coal_states(tree, model.ntimes, internal=True), [])
        trees = LocalTrees([LocalTreeBlock(tree, 4), LocalTreeBlock(tree, 3)])
        codes = encode_seqs(['ACGTACG', 'ACGTACC', 'TCGAACG'])

        matrix_list = ArgHmmMatrixList(model, codes, trees,
                internal=True).setup()
        for mat in matrix_list:
            assert_equal(mat.nstates, 0)
            assert_equal(mat.emit, np.ones((mat.blocklen, 1)))
        forward = forward_algorithm(trees, model, matrix_list)
        for pos in range(trees.length()):
            assert_equal(forward[pos], [1.0])

        np.random.seed(1234)
        path = sample_thread_path_internal(trees, model, codes)
        assert_equal(path, np.zeros(7, dtype=int))
        thread = path_to_states(trees, model, path, internal=True)
        assert_equal(thread, [None] * 7)


    def test_internal_path(self):
        np.random.seed(1234)
        model = _get_model(ntimes=6)
        tree = get_random_internal_tree(5, model.ntimes)
        trees = LocalTrees([LocalTreeBlock(tree, 8), LocalTreeBlock(tree, 5)])
        codes = encode_seqs(get_random_seqs(5, trees.length()))
        path = sample_thread_path_internal(trees, model, codes)
        states = get_coal_states(tree, model.ntimes, internal=True)
        thread = path_to_states(trees, model, path, internal=True)
        assert_equal(len(thread), 13)
        for state in thread:
            assert_(state in states)


if __name__ == '__main__':
    unittest.main()
