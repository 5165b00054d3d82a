'''
Computation
-----------

The top-level downsampling operations, which drive the :py:class:`downsampling.utilities.sampling.Sampler`
over the units of some data:

* :py:func:`downsample_matrix` downsamples each column of a (dense or sparse) matrix.

* :py:func:`downsample_runs` downsamples each run of a flat vector, where the runs are given by a
  vector of run lengths.

Both operations work either in 'global' mode, where a single proportion applies to the total of all
the units (so the expected total of each unit is reduced by the same factor, but the exact number of
events kept from each unit varies), or in 'per-unit' mode, where each unit has its own proportion and
exactly ``round(proportion * unit_total)`` of its events are kept.

All the arguments are validated before any sampling is done, and each operation uses its own scoped
random generator (see :py:func:`downsampling.utilities.random.random_generator`).
'''

import numpy as np

import downsampling.utilities.columns as utk
import downsampling.utilities.documentation as utd
import downsampling.utilities.logging as utl
import downsampling.utilities.random as utr
import downsampling.utilities.sampling as uts
import downsampling.utilities.timing as utm
import downsampling.utilities.typing as utt
import downsampling.utilities.validation as utv

__all__ = [
    'downsample_matrix',
    'downsample_runs',
]


@utl.logged()
@utm.timed_call()
@utd.expand_doc()
def downsample_matrix(
    matrix: utt.Matrix,
    proportion: utt.Vector,
    *,
    per_column: bool = False,
    random_seed: int = 0,
) -> utt.Matrix:
    '''
    Downsample the counts in each column of the ``matrix`` (without replacement).

    **Input**

    A matrix of non-negative counts (e.g., UMIs where the rows are genes and the columns are cells).
    This may be a dense numpy array or a sparse scipy matrix (or a pandas frame wrapping either). Real
    values are truncated to integer counts.

    **Returns**

    A new matrix of the same shape, with the same storage class (dense numpy array, sparse matrix of
    the same format, or a pandas frame with the same index and columns) and data type. For CSR and CSC
    data, the result has exactly the same structure as the input (entries whose count was sampled
    down to zero are kept as explicit zeros). Other sparse formats are processed as CSC (which sums
    any duplicate entries) and converted back to their original format. A ``numpy.matrix`` is
    returned as a plain 2-dimensional numpy array.

    **Computation Parameters**

    1. If ``per_column`` (default: {per_column}), then ``proportion`` must contain one value per
       column, and each column is independently downsampled to exactly ``round(proportion * total)``
       counts, where ``total`` is the sum of the column.

    2. Otherwise, ``proportion`` is a single value. A budget of ``round(proportion * total)`` counts
       is sampled out of the ``total`` of the whole matrix, so the expected sum of each column is its
       original sum times the ``proportion``.

    3. A non-zero ``random_seed`` (default: {random_seed}) makes the operation replicable.

    Raises a :py:class:`downsampling.utilities.validation.ShapeMismatchError` if the number of
    proportions does not match the number of columns, or a
    :py:class:`downsampling.utilities.validation.RangeViolationError` if a proportion is outside
    ``[0, 1]`` or a count is negative.
    '''
    if not hasattr(matrix, 'ndim'):
        matrix = np.asarray(matrix)
    if not utt.is_2d(matrix):
        raise utv.ShapeMismatchError(f'data is {matrix.ndim}-dimensional, expected 2-dimensional')

    frame = utt.maybe_pandas_frame(matrix)
    sparse = utt.maybe_sparse_matrix(matrix)
    result_format = 'csc' if sparse is None else sparse.format

    proper, dense, compressed = utt.to_proper_matrices(matrix, default_layout='column_major')
    rows_count, columns_count = proper.shape

    per_column, proportions = utv.downsampling_mode(columns_count, proportion, per_column)
    utl.log_calc('per_column', per_column)

    if compressed is not None and compressed.format != 'csc':
        with utm.timed_step('.tocsc'):
            utm.timed_parameters(rows=rows_count, columns=columns_count, nnz=compressed.nnz)
            proper = compressed.tocsc()

    values = proper.data if dense is None else dense
    if values.size > 0 and np.min(values) < 0:
        raise utv.RangeViolationError(f'counts must not be negative, got: {np.min(values)}')

    utm.timed_parameters(rows=rows_count, columns=columns_count, sparse=dense is None)
    sink = utk.ColumnsSink(proper, result_format=result_format)

    with utr.random_generator(random_seed) as generator:
        sampler = uts.Sampler(generator)

        if not per_column:
            grand_total = 0
            for column in utk.columns_of(proper):
                grand_total += uts.wide_sum(column.values)
            utl.log_calc('total events', grand_total)
            sampler.set_global(grand_total, float(proportions[0]))

        if dense is None:
            buffer_size = int(np.max(np.diff(proper.indptr))) if columns_count > 0 else 0
        else:
            buffer_size = rows_count
        outgoing = np.zeros(buffer_size, dtype='int64')
        for column in utk.columns_of(proper):
            output = outgoing[: column.values.size]
            if per_column:
                sampler.apply_single(column.values, output, float(proportions[column.index]))
            else:
                sampler.apply(column.values, output)
            sink.set_column(column, output)
            output[:] = 0

    result = sink.yield_matrix()
    assert result.shape == proper.shape

    if frame is not None:
        return utt.to_pandas_frame(result, index=frame.index, columns=frame.columns)
    return result


@utl.logged()
@utm.timed_call()
@utd.expand_doc()
def downsample_runs(
    run_lengths: utt.Vector,
    values: utt.Vector,
    proportion: utt.Vector,
    *,
    per_run: bool = False,
    random_seed: int = 0,
) -> utt.NumpyVector:
    '''
    Downsample the counts in each run of the flat ``values`` vector (without replacement).

    **Input**

    The ``run_lengths`` partition the ``values`` into consecutive, non-overlapping runs, so their sum
    must be equal to the number of ``values``. For example, the ``values`` may be the number of reads
    of each molecule, where the molecules are sorted by their cell, and the ``run_lengths`` are the
    number of molecules of each cell.

    **Returns**

    An ``int32`` numpy vector of the same length as the ``values``, holding the downsampled counts.

    **Computation Parameters**

    1. If ``per_run`` (default: {per_run}), then ``proportion`` must contain one value per run, and
       each run is independently downsampled to exactly ``round(proportion * total)`` counts, where
       ``total`` is the sum of the run's values.

    2. Otherwise, ``proportion`` is a single value, and a budget of ``round(proportion * total)``
       counts is sampled out of the ``total`` of all the values.

    3. A non-zero ``random_seed`` (default: {random_seed}) makes the operation replicable.

    Raises a :py:class:`downsampling.utilities.validation.ShapeMismatchError` if the sum of the run
    lengths is not the number of values or the number of proportions does not match the number of
    runs, or a :py:class:`downsampling.utilities.validation.RangeViolationError` if a proportion is
    outside ``[0, 1]`` or a run length or a count is negative.
    '''
    lengths = uts.as_counts(run_lengths)
    counts = uts.as_counts(values)

    if lengths.size > 0 and np.min(lengths) < 0:
        raise utv.RangeViolationError(f'run lengths must not be negative, got: {np.min(lengths)}')
    molecules_count = uts.wide_sum(lengths)
    if molecules_count != counts.size:
        raise utv.ShapeMismatchError(
            f'length of values: {counts.size} should be equal to the sum of the run lengths: {molecules_count}'
        )

    per_run, proportions = utv.downsampling_mode(lengths.size, proportion, per_run)
    utl.log_calc('per_run', per_run)

    total = uts.wide_sum(counts)
    utm.timed_parameters(runs=lengths.size, values=counts.size, total=total)
    output = np.zeros(counts.size, dtype='int32')

    with utr.random_generator(random_seed) as generator:
        sampler = uts.Sampler(generator)

        if not per_run:
            utl.log_calc('total events', total)
            sampler.set_global(total, float(proportions[0]))

        start = 0
        for run_index, run_length in enumerate(lengths.tolist()):
            stop = start + run_length
            if per_run:
                sampler.apply_single(counts[start:stop], output[start:stop], float(proportions[run_index]))
            else:
                sampler.apply(counts[start:stop], output[start:stop])
            start = stop

    return output
