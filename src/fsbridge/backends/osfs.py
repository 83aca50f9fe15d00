"""
Backing filesystem rooted at a directory of the host filesystem.
"""
import os
from typing import List, Optional, Tuple

from ..errors import CrossedBoundaryError, FileClosedError
from .memory import clean


class OSFS:
    """
    Passes every call to the os module, confined to basepath.

    Paths are relative to basepath; anything that normalizes to a location
    above it raises CrossedBoundaryError. Symlink targets are stored as given
    and are not confined.
    """
    def __init__(self, basepath: str):
        self.basepath = os.path.realpath(basepath)

    def _real(self, path: str) -> str:
        rel = clean(path)
        return os.path.join(self.basepath, rel) if rel else self.basepath

    # -- Basic

    def stat(self, path: str) -> os.stat_result:
        return os.stat(self._real(path))

    def open_file(self, path: str, flags: int, mode: int) -> "OSFile":
        real = self._real(path)
        fd = os.open(real, flags | getattr(os, "O_CLOEXEC", 0), mode)
        return OSFile(fd, real)

    def remove(self, path: str) -> None:
        real = self._real(path)
        if real == self.basepath:
            raise PermissionError(f"cannot remove the root of {self.basepath}")
        if os.path.isdir(real) and not os.path.islink(real):
            os.rmdir(real)
        else:
            os.remove(real)

    def rename(self, old_path: str, new_path: str) -> None:
        os.rename(self._real(old_path), self._real(new_path))

    # -- Dir

    def mkdir_all(self, path: str, mode: int) -> None:
        os.makedirs(self._real(path), mode, exist_ok=True)

    def read_dir(self, path: str) -> List[Tuple[str, os.stat_result]]:
        with os.scandir(self._real(path)) as it:
            return [(entry.name, entry.stat(follow_symlinks=False)) for entry in it]

    # -- Symlink

    def lstat(self, path: str) -> os.stat_result:
        return os.lstat(self._real(path))

    def symlink(self, target: str, link: str) -> None:
        os.symlink(target, self._real(link))

    def readlink(self, path: str) -> str:
        return os.readlink(self._real(path))

    # -- Change

    def chmod(self, path: str, mode: int) -> None:
        os.chmod(self._real(path), mode)

    def lchown(self, path: str, uid: int, gid: int) -> None:
        os.lchown(self._real(path), uid, gid)

    def chtimes(self, path: str, atime: float, mtime: float) -> None:
        os.utime(self._real(path), (atime, mtime))


class OSFile:
    """A raw file descriptor with positioned reads and writes."""

    def __init__(self, fd: int, name: str):
        self.fd: Optional[int] = fd
        self.name = name

    def _fd(self) -> int:
        if self.fd is None:
            raise FileClosedError(f"{self.name}: file already closed")
        return self.fd

    def read_at(self, buf: bytearray, offset: int) -> int:
        data = os.pread(self._fd(), len(buf), offset)
        buf[:len(data)] = data
        return len(data)

    def write_at(self, data: bytes, offset: int) -> int:
        return os.pwrite(self._fd(), data, offset)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        return os.lseek(self._fd(), offset, whence)

    def write(self, data: bytes) -> int:
        return os.write(self._fd(), data)

    def truncate(self, size: int) -> None:
        os.ftruncate(self._fd(), size)

    def close(self) -> None:
        fd, self.fd = self._fd(), None
        os.close(fd)
