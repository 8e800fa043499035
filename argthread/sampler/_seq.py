"""
Nucleotide alphabet encoding and aligned sequence containers.

Bases are encoded as integers 0..3.
The ambiguous character N is encoded as -1 and is represented
by an all-ones partial likelihood vector,
so that it acts as a multiplicative identity in the pruning recursion.

"""
from enum import IntEnum

import numpy as np

from argthread.sampler._util import cached_property


__all__ = [
        'Base', 'AMBIGUOUS',
        'encode_base', 'decode_base', 'encode_seqs',
        'get_leaf_likelihoods', 'find_invariant_sites',
        'Sequences',
        ]


class Base(IntEnum):
    A = 0
    C = 1
    G = 2
    T = 3


AMBIGUOUS = -1

_CHAR_TO_CODE = {
        'A': 0, 'C': 1, 'G': 2, 'T': 3,
        'a': 0, 'c': 1, 'g': 2, 't': 3,
        'N': AMBIGUOUS, 'n': AMBIGUOUS,
        }

_CODE_TO_CHAR = 'ACGT'


def encode_base(c):
    try:
        return _CHAR_TO_CODE[c]
    except KeyError:
        raise ValueError('unrecognized base character: %r' % c)


def decode_base(code):
    if code == AMBIGUOUS:
        return 'N'
    return _CODE_TO_CHAR[code]


def encode_seqs(seqs):
    """
    Encode aligned sequences as a 2d integer array.

    Parameters
    ----------
    seqs : sequence of strings
        Aligned sequences of equal length.

    Returns
    -------
    codes : 2d ndarray of integers
        One row per sequence and one column per site.
        Ambiguous bases are encoded as -1.

    """
    seqs = list(seqs)
    if not seqs:
        return np.zeros((0, 0), dtype=np.int8)
    seqlen = len(seqs[0])
    codes = np.empty((len(seqs), seqlen), dtype=np.int8)
    for i, seq in enumerate(seqs):
        if len(seq) != seqlen:
            raise ValueError('sequence %d has length %d '
                    'but expected length %d' % (i, len(seq), seqlen))
        codes[i] = [encode_base(c) for c in seq]
    return codes


def get_leaf_likelihoods(codes):
    """
    Get the leaf partial likelihood vectors for encoded bases.

    Parameters
    ----------
    codes : ndarray of integers
        Encoded bases, with -1 for ambiguous bases.

    Returns
    -------
    lk : ndarray
        An array with one extra trailing axis of length 4.
        Observed bases give indicator vectors
        and ambiguous bases give all-ones vectors.

    """
    codes = np.asarray(codes)
    lk = np.ones(codes.shape + (4,), dtype=float)
    known = codes != AMBIGUOUS
    lk[known] = np.eye(4)[codes[known]]
    return lk


def find_invariant_sites(codes):
    """
    Flag the sites at which all sequences carry the same unambiguous base.

    Parameters
    ----------
    codes : 2d ndarray of integers
        Encoded sequences, one row per sequence.

    Returns
    -------
    invariant : 1d ndarray of bools
        True for invariant sites.

    """
    codes = np.asarray(codes)
    if not codes.shape[0]:
        return np.zeros(codes.shape[1], dtype=bool)
    first = codes[0]
    same = np.all(codes == first, axis=0)
    return same & (first != AMBIGUOUS)


class Sequences(object):
    """
    A set of aligned sequences.

    Parameters
    ----------
    seqs : sequence of strings
        Aligned sequences of equal length.
    names : sequence of strings, optional
        Sequence names.

    """
    def __init__(self, seqs, names=None):
        self.seqs = list(seqs)
        if names is None:
            names = ['n%d' % i for i in range(len(self.seqs))]
        self.names = list(names)
        if len(self.names) != len(self.seqs):
            raise ValueError('expected one name per sequence')
        if self.seqs:
            seqlen = len(self.seqs[0])
            for seq in self.seqs:
                if len(seq) != seqlen:
                    raise ValueError('sequences are not aligned')

    @property
    def nseqs(self):
        return len(self.seqs)

    def length(self):
        if not self.seqs:
            return 0
        return len(self.seqs[0])

    @cached_property
    def codes(self):
        return encode_seqs(self.seqs)
