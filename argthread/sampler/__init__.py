"""
Thread a sequence into the local trees of an ancestral recombination graph.

"""
from ._model import *
from ._seq import *
from ._tree import *
from ._states import *
from ._emit import *
from ._parsimony import *
from ._trans import *
from ._forward import *
from ._thread import *
from ._util import ZeroProbError, StructuralZeroProb, NumericalZeroProb

__all__ = [s for s in dir() if not s.startswith('_')]
