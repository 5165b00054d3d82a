'''
Unbiased downsampling without replacement of sequencing count data.
'''

__version__ = '0.1.0'

# pylint: disable=wrong-import-position

from . import tools as tl, utilities as ut
