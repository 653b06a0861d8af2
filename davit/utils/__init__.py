"""Utility functions and helpers"""

from .parsers import *
from .formatters import *
from .validators import *

__all__ = [
    'split_image_reference',
    'image_base',
    'short_digest',
    'parse_timestamp',
    'parse_pod_event',
    'parse_log_line',
    'format_table',
    'format_age',
    'format_since',
    'format_log_event',
    'validate_resource_name',
    'validate_image_tag',
    'validate_label_selector',
]
