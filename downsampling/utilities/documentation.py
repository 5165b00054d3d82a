'''
Documentation
-------------

Keep the documented default values of function parameters in sync with the code.
'''

from inspect import Parameter, signature
from typing import Any, Callable, Dict, TypeVar
from warnings import warn

__all__ = [
    'expand_doc',
]


CALLABLE = TypeVar('CALLABLE')


def expand_doc(**kwargs: Any) -> Callable[[CALLABLE], CALLABLE]:
    '''
    Format the keyword arguments and the default parameter values of the decorated function into its
    document string.

    That is, given:

    .. code:: python

        @expand_doc(units='columns')
        def downsample(data, proportion=0.5):
            """
            Downsample the {units} of the data to the ``proportion`` (default: {proportion}).
            """

    Then ``help(downsample)`` will show:

    .. code:: text

        Downsample the columns of the data to the ``proportion`` (default: 0.5).

    An ``expand_doc`` which changes nothing is probably a mistake, so it triggers a warning.
    '''

    def documented(function: Callable) -> Callable:
        values: Dict[str, Any] = dict(kwargs)
        for parameter in signature(function).parameters.values():
            if parameter.default is not Parameter.empty:
                values.setdefault(parameter.name, parameter.default)

        assert function.__doc__ is not None
        try:
            expanded_doc = function.__doc__.format_map(values)
        except KeyError as exception:
            raise RuntimeError(  # pylint: disable=raise-missing-from
                f'unknown key {exception} in the documentation of the function: '
                f'{function.__module__}.{function.__qualname__}'
            )

        if expanded_doc == function.__doc__:
            warn(f'expand_doc had no effect on the function: {function.__module__}.{function.__qualname__}')

        function.__doc__ = expanded_doc
        return function

    return documented  # type: ignore
