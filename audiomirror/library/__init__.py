"""
Library package
Directory snapshots and statistics
"""

from .database import Database, Entry, EntryType, read_library
from .stats import LibraryStats, runtime_lines, tree_lines

__all__ = [
    'Database',
    'Entry',
    'EntryType',
    'read_library',
    'LibraryStats',
    'runtime_lines',
    'tree_lines',
]
