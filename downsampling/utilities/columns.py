'''
Columns
-------

The matrix downsampling only needs three capabilities of the matrix: iterating on the values of each
column in order, knowing the row indices of these values for sparse data, and writing the
downsampled values back into an output matrix with the same structure.

A column is therefore one of two variants:

* A :py:class:`DenseColumn` holds all the values of the column (one per row).

* A :py:class:`SparseColumn` holds only the stored entries of the column, and their row indices.

Both have ``index`` and ``values`` fields, so code that only needs to iterate on the values need not
care which variant it was given.
'''

from typing import Iterator, NamedTuple, Union

import numpy as np

import downsampling.utilities.typing as utt

__all__ = [
    'DenseColumn',
    'SparseColumn',
    'Column',
    'columns_of',
    'ColumnsSink',
]


class DenseColumn(NamedTuple):
    '''
    All the values of a column of a dense matrix.
    '''

    #: The index of the column in the matrix.
    index: int

    #: The value of each row of the column.
    values: utt.NumpyVector


class SparseColumn(NamedTuple):
    '''
    The stored entries of a column of a sparse matrix.
    '''

    #: The index of the column in the matrix.
    index: int

    #: The stored values of the column.
    values: utt.NumpyVector

    #: The row index of each of the stored values.
    indices: utt.NumpyVector


#: Either variant of a column.
Column = Union[DenseColumn, SparseColumn]


def columns_of(matrix: utt.ProperMatrix) -> Iterator[Column]:
    '''
    Iterate on the columns of a proper ``matrix``, in order.

    A sparse matrix must be in CSC format; its columns are slices of the compressed data, so this
    does not copy anything.
    '''
    compressed = utt.maybe_compressed_matrix(matrix)
    if compressed is None:
        dense = utt.mustbe_numpy_matrix(matrix)
        for index in range(dense.shape[1]):
            yield DenseColumn(index=index, values=dense[:, index])
        return

    assert compressed.format == 'csc'
    for index in range(compressed.shape[1]):
        start = compressed.indptr[index]
        stop = compressed.indptr[index + 1]
        yield SparseColumn(index=index, values=compressed.data[start:stop], indices=compressed.indices[start:stop])


class ColumnsSink:
    '''
    Collect downsampled columns into an output matrix with the same shape, storage class, data type
    and (for sparse data) structure as the ``matrix``.

    For sparse data, the ``matrix`` must be in CSC format; if ``result_format`` is some other sparse
    format (e.g., ``csr`` or ``coo``), the completed matrix is converted to it when it is yielded.
    '''

    def __init__(self, matrix: utt.ProperMatrix, *, result_format: str = 'csc') -> None:
        self._compressed = utt.maybe_compressed_matrix(matrix)
        self._result_format = result_format
        self._dense = None
        self._data = None

        if self._compressed is None:
            dense = utt.mustbe_numpy_matrix(matrix)
            order = 'C' if utt.matrix_layout(dense) == 'row_major' else 'F'
            self._dense = np.zeros(dense.shape, dtype=dense.dtype, order=order)
        else:
            assert self._compressed.format == 'csc'
            self._data = np.zeros_like(self._compressed.data)

    def set_column(self, column: Column, output: utt.NumpyVector) -> None:
        '''
        Write the ``output`` values of the ``column``.

        For a :py:class:`DenseColumn` this writes all the rows of the column; for a
        :py:class:`SparseColumn`, this writes only the originally stored entries.
        '''
        assert output.size == column.values.size

        if isinstance(column, SparseColumn):
            assert self._compressed is not None and self._data is not None
            start = self._compressed.indptr[column.index]
            self._data[start : start + output.size] = output
        else:
            assert self._dense is not None
            self._dense[:, column.index] = output

    def yield_matrix(self) -> utt.ProperMatrix:
        '''
        Return the completed output matrix.
        '''
        if self._dense is not None:
            return self._dense

        assert self._compressed is not None and self._data is not None
        result = self._compressed.__class__(
            (self._data, np.copy(self._compressed.indices), np.copy(self._compressed.indptr)),
            shape=self._compressed.shape,
        )
        result.has_sorted_indices = self._compressed.has_sorted_indices
        if self._result_format != 'csc':
            result = result.asformat(self._result_format)
        return result
