'''
Validation
----------

All the arguments of a downsampling operation are validated before any sampling work begins, so a
bad argument never results in partial output. Validation failures are reported as one of two
``ValueError`` sub-classes, allowing callers to tell apart the kind of problem:

* :py:class:`ShapeMismatchError` when lengths disagree (e.g., the number of proportions differs
  from the number of columns).

* :py:class:`RangeViolationError` when a value is out of its allowed range (e.g., a proportion
  outside ``[0, 1]`` or a negative count).
'''

from typing import Any, Tuple

import numpy as np

import downsampling.utilities.typing as utt

__all__ = [
    'ShapeMismatchError',
    'RangeViolationError',
    'downsampling_mode',
]


class ShapeMismatchError(ValueError):
    '''
    The length of some data does not match the length it is required to have.
    '''


class RangeViolationError(ValueError):
    '''
    Some value lies outside its allowed range.
    '''


def downsampling_mode(units_count: int, proportion: Any, per_unit: bool) -> Tuple[bool, utt.NumpyVector]:
    '''
    Choose between global downsampling and per-unit (column or run) downsampling.

    If ``per_unit``, the ``proportion`` must contain exactly ``units_count`` values, one for each
    unit. Otherwise, it must be a single value (a sequence of a single value is also accepted). Each
    value must lie in the closed interval ``[0, 1]``; out-of-range values are never clamped.

    Returns whether we are downsampling per unit, and the proportion(s) as a ``float64`` numpy
    vector (containing ``units_count`` values if ``per_unit``, or a single value otherwise).
    '''
    per_unit = bool(per_unit)
    try:
        proportions = utt.to_numpy_vector(proportion).astype('float64')
    except (TypeError, ValueError) as exception:
        raise RangeViolationError(f'downsampling proportion must be numeric: {proportion!r}') from exception

    if per_unit:
        if proportions.size != units_count:
            raise ShapeMismatchError(
                f'number of proportions: {proportions.size} should be equal to the number of units: {units_count}'
            )
    elif proportions.size != 1:
        raise ShapeMismatchError(f'expected a single downsampling proportion, got: {proportions.size}')

    if not np.all((proportions >= 0) & (proportions <= 1)):
        bad_proportion = proportions[~((proportions >= 0) & (proportions <= 1))][0]
        raise RangeViolationError(f'downsampling proportion: {bad_proportion} must lie in [0, 1]')

    return per_unit, proportions
