'''
Generic utilities used by the downsampling code.

All the functions included here are exported under ``downsampling.ut``.
'''

from .annotation import *
from .columns import *
from .computation import *
from .documentation import *
from .logging import *
from .random import *
from .sampling import *
from .timing import *
from .typing import *
from .validation import *
