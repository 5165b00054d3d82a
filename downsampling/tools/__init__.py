'''
Functions for analysis tools.

Tools take as input some annotated data (or a table of molecules) and either write the downsampled
results as new annotations within the same data, or return them as new annotated data.

All the functions included here are exported under ``downsampling.tl``.
'''

from .downsample import *
from .reads import *
