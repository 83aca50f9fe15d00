"""
Capability contracts a backing filesystem can satisfy.

Every backend implements Basic. Dir, Symlink and Change are optional and are
probed with isinstance() at the point of use; a missing capability only
disables the operations that need it.
"""
from typing import Any, Iterable, Protocol, Tuple, runtime_checkable


@runtime_checkable
class File(Protocol):
    """An open file of a backing filesystem."""

    def read_at(self, buf: bytearray, offset: int) -> int:
        """
        Read into buf starting at offset.

        Returns the number of bytes read. A count smaller than len(buf), or
        an EOFError, means end of file was reached.
        """
        ...

    def seek(self, offset: int, whence: int = 0) -> int: ...

    def write(self, data: bytes) -> int: ...

    def truncate(self, size: int) -> Any: ...

    def close(self) -> None: ...


@runtime_checkable
class WriterAt(Protocol):
    """Files that can write at an offset without moving a shared cursor."""

    def write_at(self, data: bytes, offset: int) -> int: ...


@runtime_checkable
class Basic(Protocol):
    def stat(self, path: str) -> Any: ...

    def open_file(self, path: str, flags: int, mode: int) -> File: ...

    def remove(self, path: str) -> None: ...

    def rename(self, old_path: str, new_path: str) -> None: ...


@runtime_checkable
class Dir(Protocol):
    def mkdir_all(self, path: str, mode: int) -> None: ...

    def read_dir(self, path: str) -> Iterable[Tuple[str, Any]]: ...


@runtime_checkable
class Symlink(Protocol):
    def lstat(self, path: str) -> Any: ...

    def symlink(self, target: str, link: str) -> None: ...

    def readlink(self, path: str) -> str: ...


@runtime_checkable
class Change(Protocol):
    def chmod(self, path: str, mode: int) -> None: ...

    def lchown(self, path: str, uid: int, gid: int) -> None: ...

    def chtimes(self, path: str, atime: float, mtime: float) -> None: ...
