'''
Random
------

Each top-level downsampling operation draws its uniform random values from a single generator that
lives exactly as long as the operation. This ensures consecutive operations draw independent streams
(or, given the same non-zero seed, identical streams), and that no generator state leaks from one
operation to the next.
'''

from contextlib import contextmanager
from typing import Iterator

import numpy as np

import downsampling.utilities.logging as utl

__all__ = [
    'random_generator',
]


@contextmanager
def random_generator(random_seed: int = 0) -> Iterator[np.random.Generator]:
    '''
    Acquire a fresh random generator for the duration of a ``with`` statement.

    A zero ``random_seed`` seeds the generator from the operating system entropy, so the results are
    not reproducible. A non-zero ``random_seed`` makes the results replicable.

    The generator is released when the ``with`` statement exits, including when it exits due to an
    exception.

    Expected usage is:

    .. code:: python

        with ut.random_generator(random_seed) as generator:
            sampler = ut.Sampler(generator)
            ...
    '''
    if random_seed < 0:
        raise ValueError(f'random seed: {random_seed} must not be negative')

    generator = np.random.default_rng(None if random_seed == 0 else random_seed)
    utl.logger().debug('acquired random generator (seed: %s)', random_seed)
    try:
        yield generator
    finally:
        del generator
        utl.logger().debug('released random generator (seed: %s)', random_seed)
