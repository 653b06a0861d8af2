"""Import all command modules to register them"""

from . import config
from . import deploy

__all__ = [
    'config',
    'deploy',
]
