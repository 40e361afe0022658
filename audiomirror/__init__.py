"""
audiomirror - keep a transcoded mirror of a music library in sync

The sync engine is made of a library snapshot (library.database), a policy
that decides and performs actions (sync.operator), the planner that walks
source and destination together (sync.planner) and a bounded worker pool for
transcoding (sync.pool).
"""

__version__ = "0.4.0"

from .library.database import Database, Entry, EntryType, read_library
from .sync.operator import AudioOperation, Operator, PolicyKind, create_operator
from .sync.planner import Planner
from .sync.pool import WorkerPool

__all__ = [
    '__version__',
    'Database',
    'Entry',
    'EntryType',
    'read_library',
    'AudioOperation',
    'Operator',
    'PolicyKind',
    'create_operator',
    'Planner',
    'WorkerPool',
]
