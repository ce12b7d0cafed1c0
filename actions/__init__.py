"""
Actions Package
Request-level operations for AroundUs
"""

from . import discover
from . import search
from . import explore
from . import history
from . import saved_places
from . import search_title
from . import form_mapping

__all__ = [
    'discover',
    'search',
    'explore',
    'history',
    'saved_places',
    'search_title',
    'form_mapping',
]
