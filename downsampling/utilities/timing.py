'''
Timing
------

Downsampling large matrices takes time linear in the total number of counts, which for deep
sequencing data can be considerable. The functions here allow collecting timing information about
the relevant functions, or steps within functions, with low overhead.

Collection is off by default. Turn it on by setting the ``DOWNSAMPLING_COLLECT_TIMING`` environment
variable to ``true``, or by invoking :py:func:`collect_timing`.
'''

import os
import sys
from contextlib import contextmanager
from functools import wraps
from threading import local as thread_local
from time import perf_counter_ns, process_time_ns
from typing import IO, Any, Callable, Iterator, List, Optional, TypeVar

import downsampling.utilities.documentation as utd

__all__ = [
    'collect_timing',
    'flush_timing',
    'timed_step',
    'timed_call',
    'timed_parameters',
    'current_step',
    'StepTiming',
    'Counters',
]

COLLECT_TIMING = False

TIMING_PATH = 'timing.csv'
TIMING_MODE = 'a'
TIMING_FILE: Optional[IO] = None

THREAD_LOCAL = thread_local()


@utd.expand_doc()
def collect_timing(
    collect: bool,
    path: str = TIMING_PATH,  # pylint: disable=used-prior-global-declaration
    mode: str = TIMING_MODE,  # pylint: disable=used-prior-global-declaration
) -> None:
    '''
    Specify whether, where and how to collect timing information.

    By default, the data is written to the ``path`` (default: {path}), which is opened with the
    ``mode`` (default: {mode}). Override this by setting the ``DOWNSAMPLING_TIMING_CSV`` and/or the
    ``DOWNSAMPLING_TIMING_MODE`` environment variables, or by invoking this function.

    This will flush and close the previous timing file, if any.

    The file is written in CSV format (without headers). Each line starts with the invocation
    context (a ``;``-separated path of the nested step names), followed by ``elapsed_ns,<ns>`` and
    ``cpu_ns,<ns>`` (not counting the time of nested steps), followed by ``name,value`` pairs of any
    parameters of interest (data sizes, number of sampled events, etc.).
    '''
    global TIMING_PATH
    global TIMING_MODE
    global TIMING_FILE
    global COLLECT_TIMING

    if not path.endswith('.csv'):
        raise ValueError(f'the timing path: {path} does not end with: .csv')

    TIMING_PATH = path
    TIMING_MODE = mode

    if TIMING_FILE is not None:
        flush_timing()
        TIMING_FILE.close()
        TIMING_FILE = None

    if collect:
        TIMING_FILE = open(TIMING_PATH, TIMING_MODE, buffering=1, encoding='utf8')  # pylint: disable=consider-using-with

    COLLECT_TIMING = collect


def flush_timing() -> None:
    '''
    Flush the timing information, if we are collecting it.
    '''
    if TIMING_FILE is not None:
        TIMING_FILE.flush()


if 'sphinx' not in sys.argv[0]:
    TIMING_PATH = os.environ.get('DOWNSAMPLING_TIMING_CSV', TIMING_PATH)
    TIMING_MODE = os.environ.get('DOWNSAMPLING_TIMING_MODE', TIMING_MODE)
    collect_timing(
        {'true': True, 'false': False}[os.environ.get('DOWNSAMPLING_COLLECT_TIMING', str(COLLECT_TIMING)).lower()],
        TIMING_PATH,
        TIMING_MODE,
    )


class Counters:
    '''
    The elapsed and CPU time counters, in nanoseconds.
    '''

    def __init__(self, *, elapsed_ns: int = 0, cpu_ns: int = 0) -> None:
        self.elapsed_ns = elapsed_ns  #: Elapsed time counter.
        self.cpu_ns = cpu_ns  #: CPU time counter.

    @staticmethod
    def now() -> 'Counters':
        '''
        Return the current value of the counters.
        '''
        return Counters(elapsed_ns=perf_counter_ns(), cpu_ns=process_time_ns())

    def __add__(self, other: 'Counters') -> 'Counters':
        return Counters(elapsed_ns=self.elapsed_ns + other.elapsed_ns, cpu_ns=self.cpu_ns + other.cpu_ns)

    def __sub__(self, other: 'Counters') -> 'Counters':
        return Counters(elapsed_ns=self.elapsed_ns - other.elapsed_ns, cpu_ns=self.cpu_ns - other.cpu_ns)


class StepTiming:
    '''
    Timing information for some named processing step (e.g., one call of ``downsample_matrix``, or
    the conversion of its input to CSC format).
    '''

    def __init__(self, name: str, parent: Optional['StepTiming']) -> None:
        #: The full ``;``-separated path of the step names leading to this step.
        self.context: str = name if parent is None else f'{parent.context};{name}'

        #: The ``name,value`` fields appended to the step's line.
        self.parameters: List[str] = []

        #: The time spent in nested steps, which is not counted as part of this step.
        self.nested = Counters()

        self._parent = parent
        self._start = Counters.now()

    def finish(self) -> None:
        '''
        Write the timing line of the step, and account for its time in the parent step (if any).
        '''
        total = Counters.now() - self._start
        if self._parent is not None:
            self._parent.nested = self._parent.nested + total

        own = total - self.nested
        fields = [self.context, 'elapsed_ns', str(own.elapsed_ns), 'cpu_ns', str(own.cpu_ns)] + self.parameters
        _timing_file().write(','.join(fields) + '\n')


def _steps_stack() -> List[StepTiming]:
    steps_stack = getattr(THREAD_LOCAL, 'steps_stack', None)
    if steps_stack is None:
        steps_stack = THREAD_LOCAL.steps_stack = []
    return steps_stack


def _timing_file() -> IO:
    global TIMING_FILE
    if TIMING_FILE is None:
        TIMING_FILE = open(TIMING_PATH, 'a', buffering=1, encoding='utf8')  # pylint: disable=consider-using-with
    return TIMING_FILE


@contextmanager
def timed_step(name: str) -> Iterator[None]:
    '''
    Collect timing information for a computation step.

    Expected usage is:

    .. code:: python

        with ut.timed_step('.tocsc'):
            compressed = compressed.tocsc()

    If we are collecting timing information, each invocation appends a line similar to
    ``downsample_matrix;.tocsc,elapsed_ns,123,cpu_ns,456`` to the timing file. Additional fields can
    be appended to the line using :py:func:`timed_parameters`.
    '''
    if not COLLECT_TIMING:
        yield None
        return

    steps_stack = _steps_stack()
    step_timing = StepTiming(name, steps_stack[-1] if steps_stack else None)
    steps_stack.append(step_timing)
    try:
        yield None
    finally:
        steps_stack.pop()
        step_timing.finish()


def timed_parameters(**kwargs: Any) -> None:
    '''
    Associate relevant timing parameters to the innermost :py:func:`timed_step`.

    For example, ``timed_parameters(columns=2, events=3)`` would append ``columns,2,events,3`` to the
    line of the step.
    '''
    step_timing = current_step()
    if step_timing is None:
        return
    for name, value in kwargs.items():
        step_timing.parameters += [name, str(value)]


CALLABLE = TypeVar('CALLABLE')


def timed_call(name: Optional[str] = None) -> Callable[[CALLABLE], CALLABLE]:
    '''
    Automatically wrap each invocation of the decorated function with :py:func:`timed_step` using
    the ``name`` (by default, the function's ``__qualname__``).

    Expected usage is:

    .. code:: python

        @ut.timed_call()
        def some_function(...):
            ...
    '''

    def wrap(function: Callable) -> Callable:
        step_name = name or function.__qualname__

        @wraps(function)
        def timed(*args: Any, **kwargs: Any) -> Any:
            if not COLLECT_TIMING:
                return function(*args, **kwargs)
            with timed_step(step_name):
                return function(*args, **kwargs)

        return timed

    return wrap  # type: ignore


def current_step() -> Optional[StepTiming]:
    '''
    The timing collector of the innermost (current) :py:func:`timed_step`, if we are collecting
    timing information.
    '''
    if not COLLECT_TIMING:
        return None
    steps_stack = _steps_stack()
    return steps_stack[-1] if steps_stack else None
