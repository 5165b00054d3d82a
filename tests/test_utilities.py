'''
Test the utility functions.
'''

import time
import tracemalloc
from typing import Any

import numpy as np
import pandas as pd  # type: ignore
import pytest  # type: ignore
from scipy import sparse  # type: ignore
from scipy import stats

import downsampling.utilities as ut
import downsampling.utilities.logging as utl

# pylint: disable=missing-function-docstring


def test_expand_doc() -> None:
    @ut.expand_doc(foo=7)
    def bar(baz: Any, vaz: int = 5) -> None:  # pylint: disable=blacklisted-name,unused-argument
        '''
        Bar with {foo} foos and parameter vaz (default: {vaz}).
        '''

    assert bar.__doc__ == '''
        Bar with 7 foos and parameter vaz (default: 5).
        '''


def test_expand_doc_unknown_key() -> None:
    with pytest.raises(RuntimeError):

        @ut.expand_doc()
        def bar() -> None:  # pylint: disable=blacklisted-name,unused-variable
            '''
            Bar with {foo} foos.
            '''


def test_wide_sum() -> None:
    assert ut.wide_sum([]) == 0
    assert ut.wide_sum([1, 2, 3]) == 6
    assert ut.wide_sum(np.array([2.9, 1.1])) == 3

    big = np.full(4, 2 ** 31 - 1, dtype='int32')
    assert ut.wide_sum(big) == 4 * (2 ** 31 - 1)

    with pytest.raises(ut.RangeViolationError):
        ut.wide_sum([1, -1])


def test_rounded_budget() -> None:
    assert ut.rounded_budget(10, 0.5) == 5
    assert ut.rounded_budget(5, 0.5) == 3
    assert ut.rounded_budget(3, 0.5) == 2
    assert ut.rounded_budget(7, 0) == 0
    assert ut.rounded_budget(7, 1) == 7
    assert ut.rounded_budget(0, 0.5) == 0


def test_sampler_exact_budget() -> None:
    frequencies = np.array([3, 0, 5, 2, 10])
    for random_seed in (1, 2, 3):
        with ut.random_generator(random_seed) as generator:
            sampler = ut.Sampler(generator)
            output = np.zeros(frequencies.size, dtype='int64')
            sampler.apply_single(frequencies, output, 0.5)

        assert np.sum(output) == 10
        assert np.all(output <= frequencies)
        assert np.all(output >= 0)
        assert output[1] == 0
        assert sampler.exhausted
        assert sampler.remaining == 0


def test_sampler_extremes() -> None:
    frequencies = np.array([4, 1, 0, 7])

    with ut.random_generator(123456) as generator:
        sampler = ut.Sampler(generator)

        output = np.zeros(frequencies.size, dtype='int64')
        sampler.apply_single(frequencies, output, 1.0)
        assert np.all(output == frequencies)

        output = np.zeros(frequencies.size, dtype='int64')
        sampler.apply_single(frequencies, output, 0.0)
        assert np.all(output == 0)
        assert sampler.num_processed == 0


def test_sampler_global_resumption() -> None:
    first = np.array([5, 5])
    second = np.array([0, 10])

    with ut.random_generator(123456) as generator:
        sampler = ut.Sampler(generator)
        sampler.set_global(20, 0.25)
        assert sampler.num_sample == 5

        first_output = np.zeros(2, dtype='int64')
        second_output = np.zeros(2, dtype='int64')
        sampler.apply(first, first_output)
        sampler.apply(second, second_output)

    assert np.sum(first_output) + np.sum(second_output) == 5
    assert np.all(first_output <= first)
    assert np.all(second_output <= second)
    assert sampler.num_selected == 5


def test_sampler_with_given_total() -> None:
    frequencies = np.array([1, 2, 3])
    output = np.zeros(3, dtype='int64')
    with ut.random_generator(7) as generator:
        ut.Sampler(generator).apply_single(frequencies, output, 0.5, total=6)
    assert np.sum(output) == 3


def test_sampler_is_unbiased() -> None:
    frequencies = np.array([10, 30, 60])
    kept = np.zeros(3, dtype='int64')
    with ut.random_generator(123456) as generator:
        sampler = ut.Sampler(generator)
        for _ in range(200):
            output = np.zeros(3, dtype='int64')
            sampler.apply_single(frequencies, output, 0.5)
            kept += output
    fractions = kept / kept.sum()
    assert np.allclose(fractions, [0.1, 0.3, 0.6], atol=0.02)


def test_random_generator() -> None:
    with ut.random_generator(5) as generator:
        first = generator.random(10)
    with ut.random_generator(5) as generator:
        second = generator.random(10)
    assert np.all(first == second)

    with pytest.raises(ValueError):
        with ut.random_generator(-1):
            pass


def test_downsampling_mode() -> None:
    per_unit, proportions = ut.downsampling_mode(3, 0.5, False)
    assert not per_unit
    assert list(proportions) == [0.5]

    per_unit, proportions = ut.downsampling_mode(3, [0.1, 0.2, 1.0], True)
    assert per_unit
    assert list(proportions) == [0.1, 0.2, 1.0]

    with pytest.raises(ut.ShapeMismatchError):
        ut.downsampling_mode(3, [0.1, 0.2], True)

    with pytest.raises(ut.ShapeMismatchError):
        ut.downsampling_mode(3, [0.1, 0.2], False)

    for proportion in (1.5, -0.1, np.nan):
        with pytest.raises(ut.RangeViolationError):
            ut.downsampling_mode(3, proportion, False)

    with pytest.raises(ut.RangeViolationError):
        ut.downsampling_mode(3, 'half', False)

    assert issubclass(ut.ShapeMismatchError, ValueError)
    assert issubclass(ut.RangeViolationError, ValueError)


def test_downsample_matrix_zeros() -> None:
    matrix = np.zeros((2, 2), dtype='int32')
    result = ut.downsample_matrix(matrix, 0.5, random_seed=123456)
    assert result.shape == (2, 2)
    assert np.all(result == 0)


def test_downsample_matrix_per_column() -> None:
    rvs = stats.poisson(10, loc=10).rvs
    matrix = sparse.random(100, 50, format='csc', dtype='int32', random_state=123456, data_rvs=rvs)
    column_sums = np.asarray(matrix.sum(axis=0)).reshape(-1)
    proportions = np.linspace(0, 1, 50)

    result = ut.downsample_matrix(matrix, proportions, per_column=True, random_seed=123456)

    assert result.format == 'csc'
    assert result.dtype == matrix.dtype
    assert result.nnz == matrix.nnz
    assert np.all(result.indptr == matrix.indptr)
    assert np.all(result.indices == matrix.indices)
    assert np.all(result.data <= matrix.data)

    new_column_sums = np.asarray(result.sum(axis=0)).reshape(-1)
    expected_sums = [ut.rounded_budget(int(total), proportion) for total, proportion in zip(column_sums, proportions)]
    assert list(new_column_sums) == expected_sums

    dense = matrix.toarray()
    result = ut.downsample_matrix(dense, proportions, per_column=True, random_seed=123456)
    assert isinstance(result, np.ndarray)
    assert result.dtype == dense.dtype
    assert np.all(result <= dense)
    assert list(result.sum(axis=0)) == expected_sums


def test_downsample_matrix_global() -> None:
    rvs = stats.poisson(10, loc=10).rvs
    matrix = sparse.random(100, 50, format='csr', dtype='int32', random_state=123456, data_rvs=rvs)
    total = int(matrix.sum())

    result = ut.downsample_matrix(matrix, 0.3, random_seed=123456)

    assert result.format == 'csr'
    assert result.shape == matrix.shape
    assert result.nnz == matrix.nnz
    assert np.all(result.toarray() <= matrix.toarray())
    assert int(result.sum()) == ut.rounded_budget(total, 0.3)


def test_downsample_matrix_reproducible() -> None:
    matrix = np.arange(60).reshape(6, 10)
    first = ut.downsample_matrix(matrix, 0.5, random_seed=17)
    second = ut.downsample_matrix(matrix, 0.5, random_seed=17)
    assert np.all(first == second)


def test_downsample_matrix_truncates_reals() -> None:
    matrix = np.array([[2.7, 0.5], [1.2, 3.9]])
    result = ut.downsample_matrix(matrix, 1.0, random_seed=123456)
    assert result.dtype == matrix.dtype
    assert np.all(result == np.array([[2, 0], [1, 3]]))


def test_downsample_matrix_explicit_zeros() -> None:
    data = np.array([0, 4, 0, 2], dtype='int32')
    indices = np.array([0, 2, 1, 2])
    indptr = np.array([0, 2, 4])
    matrix = sparse.csc_matrix((data, indices, indptr), shape=(3, 2))
    assert matrix.nnz == 4

    result = ut.downsample_matrix(matrix, [1.0, 0.0], per_column=True, random_seed=123456)

    assert result.nnz == 4
    assert list(result.data) == [0, 4, 0, 0]


def test_downsample_matrix_errors() -> None:
    matrix = np.ones((3, 4), dtype='int32')

    with pytest.raises(ut.ShapeMismatchError):
        ut.downsample_matrix(matrix, [0.5, 0.5], per_column=True)

    with pytest.raises(ut.RangeViolationError):
        ut.downsample_matrix(matrix, 1.5)

    with pytest.raises(ut.ShapeMismatchError):
        ut.downsample_matrix(np.ones(4), 0.5)

    with pytest.raises(ut.RangeViolationError):
        ut.downsample_matrix(-matrix, 0.5)


def test_downsample_runs_per_run() -> None:
    run_lengths = [2, 3]
    values = [4, 0, 1, 1, 1]

    result = ut.downsample_runs(run_lengths, values, [0.5, 1.0], per_run=True, random_seed=123456)

    assert result.dtype == 'int32'
    assert result.size == 5
    assert result[1] == 0
    assert result[0] == 2
    assert list(result[2:]) == [1, 1, 1]


def test_downsample_runs_global() -> None:
    run_lengths = np.array([3, 0, 4, 1])
    values = np.array([5, 2, 8, 0, 1, 6, 3, 9])

    result = ut.downsample_runs(run_lengths, values, 0.4, random_seed=123456)

    assert np.all(result <= values)
    assert np.sum(result) == ut.rounded_budget(34, 0.4)

    assert np.all(ut.downsample_runs(run_lengths, values, 0.0) == 0)
    assert np.all(ut.downsample_runs(run_lengths, values, 1.0) == values)


def test_downsample_runs_errors() -> None:
    with pytest.raises(ut.ShapeMismatchError):
        ut.downsample_runs([2, 2], [1, 2, 3], 0.5)

    with pytest.raises(ut.ShapeMismatchError):
        ut.downsample_runs([1, 2], [1, 2, 3], [0.5], per_run=True)

    with pytest.raises(ut.RangeViolationError):
        ut.downsample_runs([1, 2], [1, -2, 3], 0.5)

    with pytest.raises(ut.RangeViolationError):
        ut.downsample_runs([1, 2], [1, 2, 3], [0.5, -0.5], per_run=True)


def test_columns_of() -> None:
    dense = np.arange(6).reshape(2, 3)
    columns = list(ut.columns_of(dense))
    assert len(columns) == 3
    assert all(isinstance(column, ut.DenseColumn) for column in columns)
    assert list(columns[1].values) == [1, 4]

    compressed = sparse.csc_matrix(dense)
    columns = list(ut.columns_of(compressed))
    assert all(isinstance(column, ut.SparseColumn) for column in columns)
    assert list(columns[0].values) == [3]
    assert list(columns[0].indices) == [1]


def test_downsample_runs_all_kept() -> None:
    result = ut.downsample_runs([2, 3], [1, 1, 1, 1, 1], 1.0, per_run=False)
    assert list(result) == [1, 1, 1, 1, 1]


def test_sampler_split_budget() -> None:
    with ut.random_generator(123456) as generator:
        sampler = ut.Sampler(generator)
        sampler.set_global(10, 0.5)
        first_output = np.zeros(1, dtype='int64')
        second_output = np.zeros(2, dtype='int64')
        sampler.apply([5], first_output)
        sampler.apply([3, 2], second_output)

    assert np.sum(first_output) + np.sum(second_output) == 5


def test_collect_timing(tmp_path: Any) -> None:
    path = str(tmp_path / 'timing.csv')
    ut.collect_timing(True, path, 'w')
    try:
        ut.downsample_matrix(sparse.csr_matrix(np.eye(4, dtype='int32')), 0.5, random_seed=123456)
        ut.flush_timing()
        with open(path, encoding='utf8') as file:
            lines = file.read().splitlines()
    finally:
        ut.collect_timing(False, path)

    assert any(line.startswith('downsample_matrix;.tocsc,elapsed_ns,') for line in lines)
    top_lines = [line for line in lines if line.startswith('downsample_matrix,elapsed_ns,')]
    assert len(top_lines) == 1
    assert ',rows,4,columns,4,' in top_lines[0]


@pytest.mark.parametrize('proportion', [1.5, -0.1])
@pytest.mark.parametrize('per_column', [False, True])
def test_downsample_matrix_proportion_out_of_range(proportion: float, per_column: bool) -> None:
    matrix = np.ones((3, 4), dtype='int32')
    proportions = [0.5, proportion, 0.5, 0.5] if per_column else proportion

    with pytest.raises(ut.RangeViolationError):
        ut.downsample_matrix(matrix, proportions, per_column=per_column)


@pytest.mark.parametrize('proportion', [1.5, -0.1])
@pytest.mark.parametrize('per_run', [False, True])
def test_downsample_runs_proportion_out_of_range(proportion: float, per_run: bool) -> None:
    proportions = [0.5, proportion] if per_run else proportion

    with pytest.raises(ut.RangeViolationError):
        ut.downsample_runs([1, 2], [1, 2, 3], proportions, per_run=per_run)


@pytest.mark.parametrize('sparse_format', ['coo', 'lil', 'dok'])
def test_downsample_matrix_keeps_sparse_format(sparse_format: str) -> None:
    matrix = sparse.csc_matrix(np.arange(200, dtype='int32').reshape(20, 10) % 7).asformat(sparse_format)

    result = ut.downsample_matrix(matrix, 0.5, random_seed=123456)

    assert result.format == sparse_format
    assert result.shape == matrix.shape
    dense = result.toarray()
    assert np.all(dense <= matrix.toarray())
    assert np.sum(dense) == ut.rounded_budget(int(np.sum(matrix.toarray())), 0.5)


def test_downsample_matrix_keeps_frame() -> None:
    frame = pd.DataFrame(
        np.arange(12, dtype='int32').reshape(3, 4),
        index=['a', 'b', 'c'],
        columns=['w', 'x', 'y', 'z'],
    )

    result = ut.downsample_matrix(frame, 1.0)
    assert isinstance(result, pd.DataFrame)
    assert list(result.index) == ['a', 'b', 'c']
    assert list(result.columns) == ['w', 'x', 'y', 'z']
    assert np.all(result.values == frame.values)

    result = ut.downsample_matrix(frame, [0.5, 0.5, 0.5, 0.5], per_column=True, random_seed=123456)
    assert isinstance(result, pd.DataFrame)
    assert list(np.sum(result.values, axis=0)) == [
        ut.rounded_budget(int(total), 0.5) for total in np.sum(frame.values, axis=0)
    ]


def test_downsample_runs_huge_count() -> None:
    ut.downsample_runs([1], [10], 0.5, random_seed=123456)

    result = ut.downsample_runs([1], [2**30], 1.0)
    assert list(result) == [2**30]

    events_count = 2**26
    tracemalloc.start()
    try:
        result = ut.downsample_runs([1], [events_count], 0.5, random_seed=123456)
        peak = tracemalloc.get_traced_memory()[1]
    finally:
        tracemalloc.stop()

    assert list(result) == [ut.rounded_budget(events_count, 0.5)]
    assert peak < events_count


def test_downsample_matrix_many_events() -> None:
    ut.downsample_matrix(np.ones((2, 2), dtype='int32'), 0.5, random_seed=123456)

    matrix = stats.poisson.rvs(10, size=(2000, 500), random_state=123456).astype('int32')
    total = int(np.sum(matrix))

    start = time.perf_counter()
    result = ut.downsample_matrix(matrix, 0.5, random_seed=123456)
    elapsed = time.perf_counter() - start

    assert np.sum(result) == ut.rounded_budget(total, 0.5)
    assert elapsed < 5


def test_vector_description() -> None:
    assert utl._vector_description([1, 2, 3], 'sizes') == '3 int64s with mean 2'
    assert utl._vector_description([0.25, 0.75], 'proportion') == '2 float64s with mean 0.5 (50%)'
    assert utl._vector_description(np.array([], dtype='int32'), 'sizes') == '0 int32s'
