"""
Advisory whole-file locking shared between filter readers and writers.
"""
import fcntl
import time
from contextlib import contextmanager
from typing import BinaryIO, Iterator, Optional

from pwnedkeys_filter.errors import LockTimeoutError


POLL_INTERVAL = 0.01


@contextmanager
def file_lock(
    fd: BinaryIO,
    exclusive: bool = False,
    timeout: Optional[float] = None,
) -> Iterator[None]:
    """
    Hold an advisory lock on an open file for the duration of a block.

    Args:
        fd: Open file to lock
        exclusive: Take a writer lock instead of a shared reader lock
        timeout: Seconds to wait for the lock; ``None`` waits forever

    Raises:
        LockTimeoutError: If ``timeout`` elapses before the lock is granted
    """
    operation = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH

    if timeout is None:
        fcntl.flock(fd.fileno(), operation)
    else:
        deadline = time.monotonic() + timeout
        while True:
            try:
                fcntl.flock(fd.fileno(), operation | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    kind = "exclusive" if exclusive else "shared"
                    raise LockTimeoutError(
                        f"Could not acquire {kind} lock within {timeout}s"
                    )
                time.sleep(POLL_INTERVAL)

    try:
        yield
    finally:
        fcntl.flock(fd.fileno(), fcntl.LOCK_UN)
