'''
Sampling
--------

Sampling events without replacement from a frequency vector.

A frequency vector does not list the events themselves; instead, each of its entries is the number
of indistinguishable events at that position (e.g., the number of UMIs of some gene in some cell).
Downsampling keeps a fixed number of these events, chosen uniformly at random, and reports how many
of the events of each position were kept.

The :py:class:`Sampler` uses the classical sequential selection scheme (see John D. Cook,
https://stackoverflow.com/a/311716/15485): each event in turn is selected with probability equal
to the number of events still to be selected divided by the number of events still to be
processed. This is exact and unbiased, and requires a single pass over the data.

The sampler state may span several frequency vectors. This allows sampling a single budget of
events out of the total of several columns or runs ('global' mode), by calling
:py:meth:`Sampler.set_global` once and then :py:meth:`Sampler.apply` for each of them in turn.
'''

from math import floor
from typing import Optional, Tuple

import numba  # type: ignore
import numpy as np

import downsampling.utilities.logging as utl
import downsampling.utilities.typing as utt
import downsampling.utilities.validation as utv

__all__ = [
    'as_counts',
    'wide_sum',
    'rounded_budget',
    'Sampler',
]


def as_counts(values: utt.Vector) -> utt.NumpyVector:
    '''
    Return the ``values`` as a numpy vector of ``int64`` event counts.

    Real values are truncated toward zero.
    '''
    vector = utt.to_numpy_vector(values)
    if vector.dtype.kind == 'f':
        vector = np.trunc(vector)
    return vector.astype('int64', copy=False)


def wide_sum(values: utt.Vector) -> int:
    '''
    Sum non-negative event counts without any risk of silently wrapping around.

    The counts are accumulated in an unsigned 64-bit integer, which is enough for summing many
    millions of counts each as large as ``2**31``. The result is returned as a Python ``int``.

    Raises a :py:class:`downsampling.utilities.validation.RangeViolationError` if any of the counts
    is negative.
    '''
    counts = as_counts(values)
    if counts.size == 0:
        return 0
    if np.min(counts) < 0:
        raise utv.RangeViolationError(f'counts must not be negative, got: {np.min(counts)}')
    return int(np.sum(counts, dtype='uint64'))


def rounded_budget(total: int, proportion: float) -> int:
    '''
    Return the number of events to keep out of ``total`` events given the ``proportion``.

    Rounds half away from zero, so ``rounded_budget(5, 0.5)`` is ``3``.
    '''
    assert total >= 0
    assert 0 <= proportion <= 1
    return min(total, int(floor(proportion * total + 0.5)))


class Sampler:
    '''
    Select events without replacement out of a sequence of frequency vectors.

    The sampler draws its uniform random values from the ``generator``, which should be acquired using
    :py:func:`downsampling.utilities.random.random_generator` for the duration of a single top-level
    operation.

    The state consists of the total number of events (``num_total``), the number of events to select
    out of them (``num_sample``), and the number of events processed and selected so far
    (``num_processed`` and ``num_selected``). It is owned by a single operation and must not be
    shared between operations.
    '''

    def __init__(self, generator: np.random.Generator) -> None:
        #: The source of the uniform random values.
        self.generator = generator

        #: The total number of events in all the frequency vectors sharing the budget.
        self.num_total = 0

        #: The number of events to select (the budget).
        self.num_sample = 0

        #: The number of events considered for selection so far.
        self.num_processed = 0

        #: The number of events selected so far.
        self.num_selected = 0

    @property
    def remaining(self) -> int:
        '''
        The number of events that still need to be selected.
        '''
        return self.num_sample - self.num_selected

    @property
    def exhausted(self) -> bool:
        '''
        Whether the budget was fully used, so no more events will be selected.
        '''
        return self.num_selected >= self.num_sample

    def set_global(self, total: int, proportion: float) -> None:
        '''
        Establish a budget of ``round(proportion * total)`` events out of ``total`` events, which
        will be spread across the following calls to :py:meth:`apply`.
        '''
        self.num_total = int(total)
        self.num_sample = rounded_budget(self.num_total, proportion)
        self.num_processed = 0
        self.num_selected = 0
        utl.log_calc('sample events', utl.ratio_description(self.num_total, 'event', self.num_sample, 'sampled'))

    def apply(self, frequencies: utt.Vector, output: utt.NumpyVector) -> None:
        '''
        Select events out of the ``frequencies`` of one unit, under the budget established by
        :py:meth:`set_global`, accumulating the number of selected events of each position into the
        ``output`` vector (which must be of the same size and should start as all zeros).

        The events are considered in order; each is selected if ``(num_total - num_processed) * u <
        (num_sample - num_selected)`` for a uniform random ``u`` in ``[0, 1)``. Once the budget is
        exhausted, the rest of the positions are skipped (and their output is left as-is).
        '''
        counts = as_counts(frequencies)
        assert output.shape == counts.shape

        if self.exhausted:
            return

        events_count = int(np.sum(counts, dtype='uint64'))
        assert self.num_processed + events_count <= self.num_total, (
            f'frequencies contain {events_count} events '
            f'but only {self.num_total - self.num_processed} events remain to be processed'
        )
        if events_count == 0:
            return

        self.num_processed, self.num_selected = _select_events(
            counts, output, self.num_total, self.num_sample, self.num_processed, self.num_selected, self.generator
        )
        self._assert_invariants()

    def apply_single(
        self, frequencies: utt.Vector, output: utt.NumpyVector, proportion: float, *, total: Optional[int] = None
    ) -> None:
        '''
        Select ``round(proportion * total)`` events out of the ``frequencies`` of a single unit,
        independently of any other unit, accumulating the results into the ``output`` vector.

        This resets the state of the sampler. The ``total`` is computed from the ``frequencies``
        unless it was already computed by the caller.
        '''
        if total is None:
            total = wide_sum(frequencies)
        self.num_total = int(total)
        self.num_sample = rounded_budget(self.num_total, proportion)
        self.num_processed = 0
        self.num_selected = 0
        self.apply(frequencies, output)

    def _assert_invariants(self) -> None:
        assert 0 <= self.num_processed <= self.num_total
        assert 0 <= self.num_selected <= self.num_sample <= self.num_total


@numba.njit
def _select_events(
    counts: utt.NumpyVector,
    output: utt.NumpyVector,
    num_total: int,
    num_sample: int,
    num_processed: int,
    num_selected: int,
    generator: np.random.Generator,
) -> Tuple[int, int]:
    for position in range(counts.size):
        if num_selected >= num_sample:
            break

        frequency = counts[position]
        selected_here = 0

        for event in range(frequency):
            if num_selected >= num_sample:
                break

            # All the remaining events must be selected.
            if num_sample - num_selected == num_total - num_processed:
                rest = frequency - event
                selected_here += rest
                num_selected += rest
                num_processed += rest
                break

            # Same as: uniform < still-to-select / still-to-process, without the division.
            if (num_total - num_processed) * generator.random() < num_sample - num_selected:
                selected_here += 1
                num_selected += 1
            num_processed += 1

        output[position] += selected_here

    return num_processed, num_selected
