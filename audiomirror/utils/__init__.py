"""
Utilities package
Logging, console output and small helpers
"""

from .logger import (
    get_logger,
    configure_from_settings,
    setup_logging,
    OperationLogger,
    create_operation_logger,
    log_performance
)
from .helpers import (
    format_duration,
    format_file_size,
    format_elapsed,
    replace_extension,
    RunningStat
)
from .console import Console

__all__ = [
    # Logger exports
    'get_logger',
    'configure_from_settings',
    'setup_logging',
    'OperationLogger',
    'create_operation_logger',
    'log_performance',

    # Helper exports
    'format_duration',
    'format_file_size',
    'format_elapsed',
    'replace_extension',
    'RunningStat',

    'Console',
]
