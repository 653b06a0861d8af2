"""Error taxonomy and process exit codes"""
from enum import Enum, IntEnum
from pathlib import Path
from typing import Optional


class ExitCode(IntEnum):
    SUCCESS = 0
    ABORTED = 1
    FAILED = 2
    FATAL = 3


class DavitError(Exception):
    """Base class for every error the deploy flow reports"""

    exit_code = ExitCode.FAILED


class ConfigError(DavitError):
    """Configuration file missing, unreadable or invalid"""


class ResolutionError(DavitError):
    """No match, or an ambiguity the user did not settle"""

    exit_code = ExitCode.ABORTED


class RegistryError(DavitError):
    """Image listing failed or returned data we cannot read"""


class PatchErrorKind(Enum):
    TARGET_NOT_FOUND = "target-not-found"
    AMBIGUOUS_TARGET = "ambiguous-target"
    PARSE_FAILURE = "parse-failure"


class PatchError(DavitError):
    """The manifest could not be patched; nothing was written"""

    def __init__(self, kind: PatchErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class ClusterError(DavitError):
    """Apply failure, watch-stream failure or rollout timeout"""


class RevertError(DavitError):
    """Restoring the original manifest failed; manual recovery needed"""

    exit_code = ExitCode.FATAL

    def __init__(self, path: Path, original: bytes, cause: Optional[BaseException] = None):
        super().__init__(f"Failed to restore {path}: {cause}")
        self.path = path
        self.original = original
        self.cause = cause


class AuditError(DavitError):
    """The git add/commit/push step failed after a successful rollout"""

    exit_code = ExitCode.SUCCESS
