"""
Error translation between backing filesystems and FUSE.
"""
import errno
import io
import logging
from contextlib import contextmanager
from typing import Optional

log = logging.getLogger(__name__)


class FSError(OSError):
    """
    An error that already carries a FUSE errno.

    Backends raise it when they want exact control over the code the kernel
    sees; the translator passes it through untouched.
    """
    def __init__(self, code: int, message: Optional[str] = None):
        super().__init__(code, message or errno.errorcode.get(code, str(code)))


class FileClosedError(ValueError):
    """Operation on a file or handle that was already closed."""


class CrossedBoundaryError(ValueError):
    """A path tried to escape the root of the backing filesystem."""


class NotSupportedError(Exception):
    """The backing filesystem does not support this particular call."""


def _errno_of(err: BaseException) -> Optional[int]:
    if isinstance(err, OSError):
        return err.errno
    return None


def convert_error(err: Optional[BaseException]) -> Optional[FSError]:
    """
    Map an error produced by a backing filesystem to a FUSE error.

    Args:
        err: The error to translate, or None

    Returns:
        None for no error, otherwise an FSError with the matching errno
    """
    if err is None:
        return None
    if isinstance(err, FSError):
        return err

    code = _errno_of(err)
    if isinstance(err, FileExistsError) or code in (errno.EEXIST, errno.ENOTEMPTY):
        return FSError(errno.EEXIST)
    if isinstance(err, FileNotFoundError) or code == errno.ENOENT:
        return FSError(errno.ENOENT)
    if isinstance(err, PermissionError) or code in (errno.EACCES, errno.EPERM):
        return FSError(errno.EPERM)
    if isinstance(err, ValueError) and not isinstance(err, io.UnsupportedOperation):
        return FSError(errno.EINVAL)
    if code in (errno.EINVAL, errno.EBADF):
        return FSError(errno.EINVAL)
    if isinstance(err, (NotSupportedError, io.UnsupportedOperation)) \
            or code in (errno.ENOTSUP, errno.EOPNOTSUPP):
        return FSError(errno.ENOTSUP)

    log.debug("Unclassified backend error", exc_info=err)
    return FSError(errno.EIO)


@contextmanager
def translate_errors():
    """Re-raise anything escaping the block as the matching FSError."""
    try:
        yield
    except FSError:
        raise
    except Exception as e:
        raise convert_error(e) from e
