"""Snapshot and restore of the manifest file being deployed"""
import os
import signal
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from davit.core.errors import RevertError
from davit.core.logger import Logger


@dataclass
class RevertToken:
    """Pre-patch bytes of one file; the only authority to restore it"""
    path: Path
    original: bytes
    applied: bool = False
    restored: bool = False
    discarded: bool = False

    @property
    def live(self) -> bool:
        return not (self.restored or self.discarded)


@contextmanager
def deferred_interrupt():
    """Hold SIGINT until the block finishes, then deliver it"""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    received = []
    previous = signal.signal(signal.SIGINT, lambda signum, frame: received.append(signum))
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)
        if received:
            signal.raise_signal(signal.SIGINT)


def atomic_write(path: Path, data: bytes):
    """Write data to path via a temp file and rename, keeping the file mode"""
    mode = None
    if path.exists():
        mode = path.stat().st_mode & 0o7777

    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp, mode)
        with deferred_interrupt():
            os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


class RevertManager:
    """Owns the RevertToken for the lifetime of one run"""

    def snapshot(self, path: Path) -> RevertToken:
        """Capture the file's bytes before anything is written"""
        path = Path(path)
        token = RevertToken(path=path, original=path.read_bytes())
        Logger.verbose_log(f"Snapshot taken of {path} ({len(token.original)} bytes)")
        return token

    def write(self, token: RevertToken, patched: bytes):
        """Write the patched bytes; the write is all-or-nothing"""
        if not token.live:
            raise ValueError(f"Revert token for {token.path} is no longer live")
        with deferred_interrupt():
            atomic_write(token.path, patched)
            token.applied = True
        Logger.verbose_log(f"Wrote patched manifest to {token.path}")

    def restore(self, token: RevertToken):
        """
        Put the original bytes back verbatim

        Idempotent: once restored, further calls do nothing. A failure is
        raised as RevertError, which callers must treat as fatal.
        """
        if token.restored:
            return
        if token.discarded:
            raise ValueError(f"Revert token for {token.path} was already discarded")

        try:
            atomic_write(token.path, token.original)
        except OSError as e:
            raise RevertError(token.path, token.original, e) from e

        token.applied = False
        token.restored = True
        Logger.info(f"Restored original {token.path}")

    def discard(self, token: RevertToken):
        """Drop the token once the change is committed"""
        token.discarded = True
        Logger.verbose_log(f"Revert token for {token.path} discarded")


class RevertGuard:
    """
    Scope around "the patched file is on disk"

    Leaving the block restores the snapshot unless keep() was called,
    whatever the exit path (return, error, KeyboardInterrupt).
    """

    def __init__(self, manager: RevertManager, token: RevertToken):
        self.manager = manager
        self.token = token
        self.kept = False

    def keep(self):
        self.kept = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        # A failed restore is not retried here; it is reported as is
        if exc_type is not None and issubclass(exc_type, RevertError):
            return False
        if not self.kept and self.token.live:
            with deferred_interrupt():
                self.manager.restore(self.token)
        return False
