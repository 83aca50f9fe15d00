"""
Open file and directory handles.
"""
import errno
import os
import threading
from typing import List, Optional

from .attributes import Dirent, dirent_type
from .capabilities import Dir, File, WriterAt
from .errors import FSError, FileClosedError, convert_error, translate_errors
from .root import Op, Root


class Handle:
    """
    An open file. Owns the backing file until release().

    Writes go through write_at when the backing file has it. Otherwise they
    seek and write under a per-handle lock, so a single write never lands
    interleaved with another one on the same handle.
    """
    root: Root
    fh: Optional[File]
    write_lock: threading.Lock

    def __init__(self, root: Root, fh: File):
        self.root = root
        self.fh = fh
        self.write_lock = threading.Lock()
        if isinstance(fh, WriterAt):
            self._write = self._write_at
        else:
            self._write = self._write_locked

    def _file(self) -> File:
        fh = self.fh
        if fh is None:
            raise convert_error(FileClosedError("operation on a released handle"))
        return fh

    def read(self, offset: int, size: int) -> bytes:
        """
        Read up to size bytes at offset.

        Reading at or past the end of the file returns a short, possibly
        empty, result.
        """
        self.root.check(Op.READ, offset=offset, size=size)
        fh = self._file()
        buf = bytearray(size)
        with translate_errors():
            try:
                n = fh.read_at(buf, offset)
            except EOFError:
                n = 0
        return bytes(buf[:n])

    def write(self, offset: int, data: bytes) -> int:
        """Write data at offset and return the number of bytes written."""
        self.root.check(Op.WRITE, offset=offset, size=len(data))
        fh = self._file()
        with translate_errors():
            return self._write(fh, offset, data)

    def _write_at(self, fh: File, offset: int, data: bytes) -> int:
        return fh.write_at(data, offset)

    def _write_locked(self, fh: File, offset: int, data: bytes) -> int:
        with self.write_lock:
            fh.seek(offset, os.SEEK_SET)
            return fh.write(data)

    def release(self) -> None:
        """
        Close the backing file. A second release fails with EINVAL.

        If the call hook vetoes the release the file stays open and the
        handle can be released again later.
        """
        self.root.check(Op.RELEASE)
        with self.write_lock:
            fh, self.fh = self.fh, None
        if fh is None:
            raise FSError(errno.EINVAL, "handle already released")
        with translate_errors():
            fh.close()


class DirHandle:
    """An open directory. Holds no cursor, every listing hits the backend."""
    root: Root
    path: str

    def __init__(self, root: Root, path: str):
        self.root = root
        self.path = path

    def read_dir_all(self) -> List[Dirent]:
        self.root.check(Op.READDIR, path=self.path)
        dfs = self.root.underlying
        if not isinstance(dfs, Dir):
            raise FSError(errno.ENOSYS)
        with translate_errors():
            entries = dfs.read_dir(self.path)
        return [Dirent(name, dirent_type(info.st_mode)) for name, info in entries]
