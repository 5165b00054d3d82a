'''
Typing
------

Count data arrives in many shapes: plain Python lists, numpy arrays, pandas series and frames, and
scipy sparse matrices of various formats. These all *almost* behave the same, which is exactly the
problem - code that works on a numpy array will silently do the wrong thing given a pandas series
or a sparse matrix.

We therefore define a small set of (mostly ``mypy``-only) types, and conversion functions which turn
whatever we are given into a 'proper' type we can safely process:

* :py:const:`Matrix` is any 2D data. A :py:const:`ProperMatrix` is either a dense
  :py:const:`NumpyMatrix` or a sparse :py:const:`CompressedMatrix` (CSR or CSC).

* :py:const:`Vector` is any 1D data. The only proper vector is a :py:const:`NumpyVector`.

Downsampling works on columns, so the efficient layouts are ``column_major`` (Fortran order for
dense data, CSC for sparse data); row-major data still works, just slower.
'''

from typing import Any, Collection, Optional, Protocol, Tuple, Union

import numpy as np
import pandas as pd  # type: ignore
import scipy.sparse as sp  # type: ignore

import downsampling.utilities.documentation as utd

__all__ = [
    'NumpyMatrix',
    'NumpyVector',
    'CompressedMatrix',
    'ProperMatrix',
    'Matrix',
    'Vector',
    'is_2d',
    'maybe_numpy_matrix',
    'maybe_sparse_matrix',
    'maybe_compressed_matrix',
    'maybe_pandas_frame',
    'mustbe_numpy_vector',
    'mustbe_numpy_matrix',
    'to_proper_matrix',
    'to_proper_matrices',
    'to_numpy_vector',
    'to_pandas_frame',
    'matrix_layout',
    'shaped_dtype',
    'frozen',
    'freeze',
    'LAYOUT_OF_AXIS',
    'SPARSE_FAST_FORMAT',
]


#: Numpy 2-dimensional data (never a ``numpy.matrix``).
NumpyMatrix = np.ndarray

#: Numpy 1-dimensional data.
NumpyVector = np.ndarray


# pylint: disable=missing-function-docstring


class CompressedMatrix(Protocol):
    '''
    A ``mypy`` type for sparse CSR/CSC 2-dimensional data.
    '''

    ndim: int
    shape: Tuple[int, int]
    nnz: int
    indices: np.ndarray
    indptr: np.ndarray
    data: np.ndarray
    has_sorted_indices: bool
    has_canonical_format: bool

    def getformat(self) -> str:
        ...

    def toarray(self, order: Optional[str] = None) -> NumpyMatrix:
        ...

    def transpose(self) -> 'CompressedMatrix':
        ...


# pylint: enable=missing-function-docstring


#: A ``mypy`` type for 'proper' 2-dimensional data, which we can directly process.
ProperMatrix = Union[NumpyMatrix, CompressedMatrix]

#: A ``mypy`` type for any 2-dimensional data.
Matrix = Union[ProperMatrix, Any]

#: A ``mypy`` type for any 1-dimensional data.
Vector = Union[NumpyVector, Collection[int], Collection[float], Any]

#: The layout by the ``axis`` parameter.
LAYOUT_OF_AXIS = ('row_major', 'column_major')

#: Which sparse format is efficient for each layout.
SPARSE_FAST_FORMAT = dict(row_major='csr', column_major='csc')

#: Which dense flag indicates each layout.
DENSE_FAST_FLAG = dict(row_major='C_CONTIGUOUS', column_major='F_CONTIGUOUS')


def is_2d(shaped: Any) -> bool:
    '''
    Test whether the ``shaped`` is 2-dimensional.
    '''
    return hasattr(shaped, 'ndim') and getattr(shaped, 'ndim') == 2


def maybe_numpy_matrix(shaped: Any) -> Optional[NumpyMatrix]:
    '''
    Return the ``shaped`` as a :py:const:`NumpyMatrix`, if it is one.

    .. note::

        A ``numpy.matrix`` is **not** accepted; it is deprecated and its operations subtly differ
        from those of a 2-dimensional ``numpy.ndarray``.
    '''
    if isinstance(shaped, np.ndarray) and shaped.ndim == 2 and not isinstance(shaped, np.matrix):
        return shaped
    return None


def maybe_sparse_matrix(shaped: Any) -> Optional[Any]:
    '''
    Return ``shaped`` if it is any kind of scipy sparse matrix.
    '''
    if sp.issparse(shaped):
        return shaped
    return None


def maybe_compressed_matrix(shaped: Any) -> Optional[CompressedMatrix]:
    '''
    Return ``shaped`` as a :py:const:`CompressedMatrix`, if it is one.
    '''
    if sp.issparse(shaped) and shaped.format in ('csr', 'csc'):
        return shaped
    return None


def maybe_pandas_frame(shaped: Any) -> Optional[pd.DataFrame]:
    '''
    Return ``shaped`` as a pandas data frame, if it is one.
    '''
    if isinstance(shaped, pd.DataFrame):
        return shaped
    return None


def mustbe_numpy_vector(shaped: Any) -> NumpyVector:
    '''
    Return ``shaped`` as a :py:const:`NumpyVector`, asserting it must be one.
    '''
    assert isinstance(shaped, np.ndarray) and shaped.ndim == 1
    return shaped


def mustbe_numpy_matrix(shaped: Any) -> NumpyMatrix:
    '''
    Return ``shaped`` as a :py:const:`NumpyMatrix`, asserting it must be one.
    '''
    assert isinstance(shaped, np.ndarray) and shaped.ndim == 2 and not isinstance(shaped, np.matrix)
    return shaped


@utd.expand_doc()
def to_proper_matrix(matrix: Matrix, *, default_layout: str = 'column_major') -> ProperMatrix:
    '''
    Given some 2D ``matrix``, return it in a :py:const:`ProperMatrix` format we can safely process.

    Pandas frames are unwrapped, and ``numpy.matrix`` data is converted to a plain array. If the
    data is in some strange sparse format (COO, LIL, ...), use ``default_layout`` (default:
    {default_layout}) to decide whether to convert it to ``row_major`` (CSR) or ``column_major``
    (CSC) layout.
    '''
    if default_layout not in LAYOUT_OF_AXIS:
        raise ValueError(f'invalid default layout: {default_layout}')

    frame = maybe_pandas_frame(matrix)
    if frame is not None:
        if hasattr(frame, 'sparse') and all(isinstance(dtype, pd.SparseDtype) for dtype in frame.dtypes):
            matrix = frame.sparse.to_coo()
        else:
            matrix = frame.values

    compressed = maybe_compressed_matrix(matrix)
    if compressed is not None:
        return compressed

    sparse = maybe_sparse_matrix(matrix)
    if sparse is not None:
        if default_layout == 'column_major':
            return sparse.tocsc()
        return sparse.tocsr()

    dense = maybe_numpy_matrix(matrix)
    if dense is None:
        dense = np.asarray(matrix)
    if dense.ndim != 2:
        raise ValueError(f'data is {dense.ndim}-dimensional, expected 2-dimensional')

    return dense


def to_proper_matrices(
    matrix: Matrix, *, default_layout: str = 'column_major'
) -> Tuple[ProperMatrix, Optional[NumpyMatrix], Optional[CompressedMatrix]]:
    '''
    Similar to :py:func:`to_proper_matrix` but return a tuple with the proper matrix and also its
    :py:const:`NumpyMatrix` representation and its :py:const:`CompressedMatrix` representation.
    Exactly one of these two representations will be ``None``.

    This is used to pick between dense and compressed code paths:

    .. code:: python

        proper, dense, compressed = to_proper_matrices(matrix)

        if dense is not None:
            ... dense code path ...
        else:
            assert compressed is not None
            ... compressed code path ...
    '''
    proper = to_proper_matrix(matrix, default_layout=default_layout)
    dense = maybe_numpy_matrix(proper)
    compressed = maybe_compressed_matrix(proper)
    assert (dense is None) != (compressed is None)
    return (proper, dense, compressed)


@utd.expand_doc()
def to_numpy_vector(shaped: Vector, *, copy: bool = False) -> NumpyVector:
    '''
    Convert any :py:const:`Vector` (list, tuple, pandas series, numpy array, or a matrix where one of
    the dimensions has size one) to a :py:const:`NumpyVector`.

    If ``copy`` (default: {copy}), a copy of the data is returned even if no conversion needed to be
    done.

    A scalar is converted to a vector of a single element.
    '''
    if isinstance(shaped, (pd.Series, pd.Index)):
        shaped = shaped.values
        if isinstance(shaped, pd.Categorical):
            shaped = np.asarray(shaped)

    if is_2d(shaped):
        assert shaped.shape[0] == 1 or shaped.shape[1] == 1  # type: ignore
        sparse = maybe_sparse_matrix(shaped)
        if sparse is not None:
            shaped = sparse.toarray()
        dense = np.reshape(np.asarray(shaped), -1)
    else:
        dense = np.asarray(shaped)
        if dense.ndim == 0:
            dense = np.reshape(dense, 1)

    if copy and dense is shaped:
        dense = np.copy(dense)

    return mustbe_numpy_vector(dense)


def to_pandas_frame(
    matrix: Matrix, *, index: Optional[Vector] = None, columns: Optional[Vector] = None
) -> pd.DataFrame:
    '''
    Construct a pandas frame from any :py:const:`Matrix`.
    '''
    sparse = maybe_sparse_matrix(matrix)
    if sparse is not None:
        return pd.DataFrame.sparse.from_spmatrix(sparse, index=index, columns=columns)

    return pd.DataFrame(to_proper_matrix(matrix), index=index, columns=columns)


def matrix_layout(matrix: Matrix) -> Optional[str]:
    '''
    Return which layout the ``matrix`` is arranged by (``row_major`` or ``column_major``).

    If the data is in some strange sparse format, or strided in some strange way, returns ``None``.
    '''
    sparse = maybe_sparse_matrix(matrix)
    if sparse is not None:
        for layout, sparse_format in SPARSE_FAST_FORMAT.items():
            if sparse.format == sparse_format:
                return layout
        return None

    dense = mustbe_numpy_matrix(to_proper_matrix(matrix))
    for layout in ('column_major', 'row_major'):
        if dense.flags[DENSE_FAST_FLAG[layout]]:
            return layout

    return None


def shaped_dtype(shaped: Any) -> str:
    '''
    Return the data type of the elements of shaped data.
    '''
    frame = maybe_pandas_frame(shaped)
    if frame is not None:
        shaped = frame.values

    compressed = maybe_compressed_matrix(shaped)
    if compressed is not None:
        shaped = compressed.data

    if isinstance(shaped, pd.Series):
        shaped = shaped.values

    if hasattr(shaped, 'dtype'):
        return str(shaped.dtype)

    raise AssertionError(f'unexpected shaped type: {shaped.__class__.__qualname__}')


def frozen(proper: Union[ProperMatrix, NumpyVector]) -> bool:
    '''
    Test whether the ``proper`` data is protected against future modification.
    '''
    compressed = maybe_compressed_matrix(proper)
    if compressed is not None:
        return not compressed.data.flags.writeable

    assert isinstance(proper, np.ndarray)
    return not proper.flags.writeable


def freeze(proper: Union[ProperMatrix, NumpyVector]) -> None:
    '''
    Protect the ``proper`` data against future modification.
    '''
    compressed = maybe_compressed_matrix(proper)
    if compressed is not None:
        compressed.indices.setflags(write=False)
        compressed.indptr.setflags(write=False)
        compressed.data.setflags(write=False)
        return

    assert isinstance(proper, np.ndarray)
    proper.setflags(write=False)
