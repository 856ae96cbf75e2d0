"""
Built-in native handlers.

Importing this package registers every built-in handler into
`Handler.BUILTINS` via import side effects.
"""

from ._arithmetic import *
from ._sources import *
from ._arithmetic import __all__ as _arithmetic_all
from ._sources import __all__ as _sources_all

__all__ = [*_arithmetic_all, *_sources_all]
