"""
Sync package
Policies, planner and worker pool
"""

from .operator import (
    AudioOperation,
    DryRunner,
    Operator,
    PolicyKind,
    Runner,
    create_encoder,
    create_operator,
    policy_kind,
)
from .planner import Planner
from .pool import WorkerPool

__all__ = [
    'AudioOperation',
    'DryRunner',
    'Operator',
    'PolicyKind',
    'Runner',
    'create_encoder',
    'create_operator',
    'policy_kind',
    'Planner',
    'WorkerPool',
]
