'''
Logging
-------

This provides a formatter with millisecond-resolution time, and a set of utility functions for
logging downsampling operations at a level of detail the user controls.

Most of the messages are generated automatically by wrapping the entry point functions with
:py:func:`logged`, and by the :py:mod:`downsampling.utilities.annotation` accessors which log the
setting and getting of ``AnnData`` data; notable intermediate values (totals, budgets, the chosen
mode) are logged explicitly using :py:func:`log_calc`.

The log levels are:

* ``INFO`` logs only setting of the final results into the top-level ``AnnData`` object(s).

* ``STEP`` also logs the invocation of the top-level functions.

* ``PARAM`` also logs the parameters of these invocations (proportions, seeds, data sizes).

* ``CALC`` also logs notable intermediate results, such as the total number of events and the
  number of events the sampling budget allows to keep.

* ``DEBUG`` logs all the above for nested calls as well.
'''

import logging
import sys
from contextlib import contextmanager
from datetime import datetime
from functools import wraps
from inspect import Parameter, signature
from logging import DEBUG, INFO, Formatter, Logger, LogRecord, StreamHandler, getLogger
from typing import IO, Any, Callable, Iterator, List, Optional, Tuple, TypeVar

import numpy as np
from anndata import AnnData  # type: ignore

import downsampling.utilities.documentation as utd
import downsampling.utilities.typing as utt

__all__ = [
    'setup_logger',
    'logger',
    'STEP',
    'PARAM',
    'CALC',
    'logged',
    'log_calc',
    'log_step',
    'log_set',
    'log_get',
    'ratio_description',
    'fraction_description',
]


class LoggingFormatter(Formatter):
    '''
    A formatter that uses a decimal point for milliseconds.
    '''

    def formatTime(self, record: Any, datefmt: Optional[str] = None) -> str:
        '''
        Format the time.
        '''
        record_datetime = datetime.fromtimestamp(record.created)
        if datefmt is not None:
            return record_datetime.strftime(datefmt)

        seconds = record_datetime.strftime('%Y-%m-%d %H:%M:%S')
        msecs = round(record.msecs)
        return f'{seconds}.{msecs:03d}'


#: The log level for tracing top-level invocations.
STEP = (1 * DEBUG + 3 * INFO) // 4

#: The log level for tracing the parameters of top-level invocations.
PARAM = (2 * DEBUG + 2 * INFO) // 4

#: The log level for tracing intermediate calculations.
CALC = (3 * DEBUG + 1 * INFO) // 4

logging.addLevelName(STEP, 'STEP')
logging.addLevelName(PARAM, 'PARAM')
logging.addLevelName(CALC, 'CALC')


class ShortLoggingFormatter(LoggingFormatter):
    '''
    Provide fixed-width short level names.
    '''

    #: Map the long level names to the fixed-width short level names.
    SHORT_LEVEL_NAMES = dict(
        CRITICAL='CRT',
        ERROR='ERR',
        WARNING='WRN',
        INFO='INF',
        STEP='STP',
        PARAM='PRM',
        CALC='CLC',
        DEBUG='DBG',
        NOTSET='NOT',
    )

    def format(self, record: LogRecord) -> Any:
        record.levelname = self.SHORT_LEVEL_NAMES.get(record.levelname, record.levelname)
        return LoggingFormatter.format(self, record)


# Global logger object.
LOG: Optional[Logger] = None


@utd.expand_doc()
def setup_logger(
    *,
    level: int = logging.INFO,
    to: IO = sys.stderr,
    time: bool = False,
    name: Optional[str] = None,
    long_level_names: Optional[bool] = None,
) -> Logger:
    '''
    Setup the global :py:func:`logger`.

    .. note::

        A second call will fail as the logger will already be set up.

    If ``level`` is not specified, only ``INFO`` messages (setting results in the annotated data)
    will be logged.

    If ``to`` is not specified, the output is sent to ``sys.stderr``.

    If ``time`` (default: {time}), include a millisecond-resolution timestamp in each message.

    If ``name`` (default: {name}) is specified, it is added to each message.

    If ``long_level_names`` (default: {long_level_names}), includes the log level in each message.
    If it is ``False``, the log level names are shortened to three characters, for consistent
    formatting of indented (nested) log messages. If it is ``None``, no level names are logged at
    all.
    '''
    global LOG
    assert LOG is None

    if long_level_names is not None:
        log_format = '%(levelname)s - %(message)s'
    else:
        log_format = '%(message)s'

    if name is not None:
        log_format = name + ' - ' + log_format
    if time:
        log_format = '%(asctime)s - ' + log_format

    handler = StreamHandler(to)
    if long_level_names is False:
        handler.setFormatter(ShortLoggingFormatter(log_format))
    else:
        handler.setFormatter(LoggingFormatter(log_format))

    LOG = getLogger('downsampling')
    LOG.addHandler(handler)
    LOG.setLevel(level)
    return LOG


def logger() -> Logger:
    '''
    Access the global logger.

    If :py:func:`setup_logger` has not been called yet, this will call it using the default flags.
    You should therefore call :py:func:`setup_logger` as early as possible to ensure you don't end
    up with a misconfigured logger.
    '''
    global LOG
    if LOG is None:
        LOG = setup_logger()
    return LOG


CALLABLE = TypeVar('CALLABLE')

CALL_LEVEL = 0
INDENT_LEVEL = 0
INDENT_SPACES = '  ' * 1000
IS_TOP_LEVEL = True


def logged(**kwargs: Callable[[Any], Any]) -> Callable[[CALLABLE], CALLABLE]:
    '''
    Automatically log each invocation of the decorated function. Top-level calls are logged using the
    :py:const:`STEP` log level, with parameters logged at the :py:const:`PARAM` log level. Nested
    calls are logged at the ``DEBUG`` log level.

    By default parameters are logged by converting them to a short description (vectors and matrices
    are summarized, fractions are also shown as percents). You can override this by specifying
    ``parameter_name=convert_value_to_logged_value`` for the specific parameter.

    Expected usage is:

    .. code:: python

        @ut.logged()
        def some_function(...):
            ...
    '''
    formatter_by_name = kwargs

    def wrap(function: Callable) -> Callable:
        parameters = signature(function).parameters
        for name in formatter_by_name:
            if name not in parameters:
                raise RuntimeError(
                    f'formatter specified for the unknown parameter: {name} '
                    f'for the function: {function.__module__}.{function.__qualname__}'
                )
        ordered_parameters = list(parameters.values())

        @wraps(function)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            global CALL_LEVEL
            global INDENT_LEVEL
            global IS_TOP_LEVEL

            old_is_top_level = IS_TOP_LEVEL
            IS_TOP_LEVEL = CALL_LEVEL == 0

            if IS_TOP_LEVEL:
                step_level = STEP
                param_level = PARAM
            else:
                step_level = DEBUG
                param_level = DEBUG

            is_stepping = logger().isEnabledFor(step_level)
            try:
                if is_stepping:
                    logger().log(step_level, '%scall %s:', INDENT_SPACES[: 2 * INDENT_LEVEL], function.__qualname__)
                    INDENT_LEVEL += 1
                CALL_LEVEL += 1

                if logger().isEnabledFor(param_level):
                    for name, value in _collect_parameters(ordered_parameters, *args, **kwargs):
                        log_value = _format_value(value, name, formatter_by_name.get(name))
                        if log_value is not None:
                            logger().log(param_level, '%swith %s: %s', INDENT_SPACES[: 2 * INDENT_LEVEL], name, log_value)

                return function(*args, **kwargs)

            finally:
                if is_stepping:
                    INDENT_LEVEL -= 1
                CALL_LEVEL -= 1
                IS_TOP_LEVEL = old_is_top_level

        return wrapper

    return wrap  # type: ignore


def _collect_parameters(parameters: List[Parameter], *args: Any, **kwargs: Any) -> List[Tuple[str, Any]]:
    collected: List[Tuple[str, Any]] = []

    for value, parameter in zip(args, parameters):
        collected.append((parameter.name, value))

    for parameter in parameters[len(args) :]:
        collected.append((parameter.name, kwargs.get(parameter.name, parameter.default)))

    return collected


def _format_value(  # pylint: disable=too-many-return-statements
    value: Any, name: str, formatter: Optional[Callable[[Any], Any]] = None
) -> Optional[str]:
    if value is Parameter.empty:
        return None

    if formatter is not None:
        value = formatter(value)
        if value is None:
            return None

    if isinstance(value, AnnData):
        data_name = value.uns.get('__name__', 'unnamed')
        return f'{data_name} annotated data with {value.n_obs} X {value.n_vars} {utt.shaped_dtype(value.X)}s'

    if isinstance(value, (bool, np.bool_, str, type(None))):
        return str(value)

    if isinstance(value, (int, float, np.integer, np.floating)):
        if 'random_seed' in name:
            if value == 0:
                return '0 (time)'
            return f'{value} (reproducible)'
        if 'proportion' in name or 'fraction' in name:
            return fraction_description(float(value))
        return f'{float(value):g}'

    if hasattr(value, 'ndim'):
        if value.ndim == 2:
            return f'{value.__class__.__name__} {value.shape[0]} X {value.shape[1]} {utt.shaped_dtype(value)}s'
        if value.ndim == 1:
            return _vector_description(value, name)

    if isinstance(value, (list, tuple)):
        if ('proportion' in name or 'fraction' in name) and len(value) > 0:
            return _vector_description(value, name)
        if len(value) > 100:
            return f'{len(value)} {value[0].__class__.__name__}s'
        return '[ ' + ', '.join(str(element) for element in value) + ' ]'

    if hasattr(value, '__qualname__'):
        return getattr(value, '__qualname__')

    return f'{value.__class__.__name__}'


def log_calc(name: str, value: Any = None, *, formatter: Optional[Callable[[Any], Any]] = None) -> bool:
    '''
    Log an intermediate calculated ``value`` with some ``name``.

    If ``formatter`` is specified, use it to override the default logged value formatting.

    Returns whether the message was actually logged.
    '''
    return _log_value(name, value, 'calc', None, CALC, formatter)


@contextmanager
def log_step(name: str, value: Any = None, *, formatter: Optional[Callable[[Any], Any]] = None) -> Iterator[None]:
    '''
    Same as :py:func:`log_calc`, but also further indent all the log messages inside the ``with``
    statement body.
    '''
    global INDENT_LEVEL

    delta = 1 if log_calc(name, value, formatter=formatter) else 0

    INDENT_LEVEL += delta
    try:
        yield
    finally:
        INDENT_LEVEL -= delta


def log_set(adata: AnnData, name: str, value: Any, *, formatter: Optional[Callable[[Any], Any]] = None) -> bool:
    '''
    Log setting some per-observation-per-variable annotated data.
    '''
    return _log_value(_data_name(adata, name), value, 'set', IS_TOP_LEVEL, INFO, formatter)


def log_get(adata: AnnData, name: Any, value: Any, *, formatter: Optional[Callable[[Any], Any]] = None) -> bool:
    '''
    Log getting some per-observation-per-variable annotated data.
    '''
    if not isinstance(name, str):
        name = '<data>'
    return _log_value(_data_name(adata, name), value, 'get', IS_TOP_LEVEL, CALC, formatter)


def _data_name(adata: AnnData, name: str) -> str:
    adata_name = adata.uns.get('__name__', 'unnamed')
    if name == '__x__':
        return f'{adata_name}.X'
    return f'{adata_name}.layers[{name}]'


def _log_value(
    name: str,
    value: Any,
    kind: str,
    is_top_level: Optional[bool],
    top_log_level: int,
    formatter: Optional[Callable[[Any], Any]] = None,
) -> bool:
    if is_top_level is None:
        is_top_level = IS_TOP_LEVEL

    level = top_log_level if is_top_level else DEBUG
    if not logger().isEnabledFor(level):
        return False

    if value is None:
        logger().log(level, '%s%s', INDENT_SPACES[: 2 * INDENT_LEVEL], name)
    else:
        log_value = _format_value(value, name, formatter)
        logger().log(level, '%s%s %s: %s', INDENT_SPACES[: 2 * INDENT_LEVEL], kind, name, log_value)

    return True


def _vector_description(value: utt.Vector, name: str) -> str:
    vector = utt.to_numpy_vector(value)
    if vector.size == 0 or vector.dtype.kind not in 'iuf':
        return f'{vector.size} {vector.dtype}s'
    mean = np.mean(vector)
    if 'proportion' in name or 'fraction' in name:
        return f'{vector.size} {vector.dtype}s with mean {mean:.4g} ({mean * 100:.4g}%)'
    return f'{vector.size} {vector.dtype}s with mean {mean:.4g}'


def ratio_description(denominator: float, element: str, numerator: float, condition: str) -> str:
    '''
    Return a string for describing a ratio (including a percent representation).
    '''
    assert numerator >= 0
    assert denominator >= 0

    if int(numerator) == numerator:
        numerator = int(numerator)
    if int(denominator) == denominator:
        denominator = int(denominator)

    if denominator == 0:
        return f'{numerator} {condition} out of {denominator} {element}s'

    percent = (numerator * 100) / denominator
    return f'{numerator} {condition} ({percent:.4g}%) out of {denominator} {element}s'


def fraction_description(fraction: Optional[float]) -> str:
    '''
    Return a string for describing a fraction (including a percent representation).
    '''
    if fraction is None:
        return 'None'
    return f'{fraction:.4g} ({fraction * 100:.4g}%)'
