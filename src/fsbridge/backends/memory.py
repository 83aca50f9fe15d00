"""
In-memory backing filesystem.

Implements the Basic, Dir, Symlink and Change capabilities. Its files only
support sequential writes, which makes handles on it take the locked write
path.
"""
import errno
import os
import posixpath
import stat
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..errors import CrossedBoundaryError, FileClosedError

MAX_SYMLINKS = 40


@dataclass
class Metadata:
    """File, directory or symlink metadata."""
    mode: int = stat.S_IFREG | 0o644
    uid: int = 0
    gid: int = 0
    atime: float = 0.0  # Access time
    mtime: float = 0.0  # Modification time
    ctime: float = 0.0  # Change time
    data: bytearray = field(default_factory=bytearray)
    target: str = ""  # Symlink target


@dataclass(frozen=True)
class StatResult:
    st_mode: int
    st_size: int
    st_uid: int
    st_gid: int
    st_atime: float
    st_mtime: float
    st_ctime: float


def clean(path: str) -> str:
    """
    Normalize a path relative to the filesystem root.

    Returns "" for the root itself. Raises CrossedBoundaryError if the path
    climbs above the root.
    """
    parts: List[str] = []
    for part in path.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if not parts:
                raise CrossedBoundaryError(f"{path!r} escapes the filesystem root")
            parts.pop()
            continue
        parts.append(part)
    return "/".join(parts)


class MemoryFS:
    """
    A thread-safe filesystem kept entirely in a dict of path -> Metadata.
    """
    def __init__(self):
        self.lock = threading.RLock()
        now = time.time()
        self.entries: Dict[str, Metadata] = {
            "": Metadata(mode=stat.S_IFDIR | 0o755, atime=now, mtime=now, ctime=now)
        }

    # -- path resolution

    def _resolve(self, path: str, follow: bool = True) -> str:
        """Resolve symlinks in every component (and the last one if follow)."""
        parts = [p for p in clean(path).split("/") if p]
        resolved = ""
        hops = 0
        while parts:
            part = parts.pop(0)
            candidate = posixpath.join(resolved, part) if resolved else part
            entry = self.entries.get(candidate)
            if entry is not None and stat.S_ISLNK(entry.mode) and (parts or follow):
                hops += 1
                if hops > MAX_SYMLINKS:
                    raise OSError(errno.ELOOP, "Too many levels of symbolic links", path)
                base = "" if entry.target.startswith("/") else resolved
                parts = clean(posixpath.join(base, entry.target)).split("/") + parts
                parts = [p for p in parts if p]
                resolved = ""
                continue
            resolved = candidate
        return resolved

    def _get(self, path: str, follow: bool = True) -> Tuple[str, Metadata]:
        key = self._resolve(path, follow)
        entry = self.entries.get(key)
        if entry is None:
            raise FileNotFoundError(errno.ENOENT, "No such file or directory", path)
        return key, entry

    def _parent(self, key: str, path: str) -> Metadata:
        parent = self.entries.get(posixpath.dirname(key))
        if parent is None:
            raise FileNotFoundError(errno.ENOENT, "No such file or directory", path)
        if not stat.S_ISDIR(parent.mode):
            raise NotADirectoryError(errno.ENOTDIR, "Not a directory", path)
        return parent

    def _children(self, key: str) -> List[str]:
        prefix = key + "/" if key else ""
        return [k for k in self.entries if k != key and k.startswith(prefix) and "/" not in k[len(prefix):]]

    @staticmethod
    def _stat(entry: Metadata) -> StatResult:
        size = len(entry.target) if stat.S_ISLNK(entry.mode) else len(entry.data)
        return StatResult(entry.mode, size, entry.uid, entry.gid, entry.atime, entry.mtime, entry.ctime)

    # -- Basic

    def stat(self, path: str) -> StatResult:
        with self.lock:
            return self._stat(self._get(path)[1])

    def open_file(self, path: str, flags: int, mode: int) -> "MemoryFile":
        with self.lock:
            key = self._resolve(path)
            entry = self.entries.get(key)
            if entry is None:
                if not flags & os.O_CREAT:
                    raise FileNotFoundError(errno.ENOENT, "No such file or directory", path)
                self._parent(key, path)
                now = time.time()
                entry = Metadata(mode=stat.S_IFREG | (mode & 0o7777), atime=now, mtime=now, ctime=now)
                self.entries[key] = entry
            elif flags & os.O_CREAT and flags & os.O_EXCL:
                raise FileExistsError(errno.EEXIST, "File exists", path)
            elif stat.S_ISDIR(entry.mode) and flags & (os.O_WRONLY | os.O_RDWR):
                raise IsADirectoryError(errno.EISDIR, "Is a directory", path)
            if flags & os.O_TRUNC and flags & (os.O_WRONLY | os.O_RDWR):
                del entry.data[:]
                entry.mtime = time.time()
            return MemoryFile(self, key, entry, flags)

    def remove(self, path: str) -> None:
        with self.lock:
            key = self._resolve(path, follow=False)
            entry = self.entries.get(key)
            if entry is None:
                raise FileNotFoundError(errno.ENOENT, "No such file or directory", path)
            if key == "":
                raise PermissionError(errno.EPERM, "Cannot remove the root", path)
            if stat.S_ISDIR(entry.mode) and self._children(key):
                raise OSError(errno.ENOTEMPTY, "Directory not empty", path)
            del self.entries[key]

    def rename(self, old_path: str, new_path: str) -> None:
        with self.lock:
            old = self._resolve(old_path, follow=False)
            new = self._resolve(new_path, follow=False)
            entry = self.entries.get(old)
            if entry is None:
                raise FileNotFoundError(errno.ENOENT, "No such file or directory", old_path)
            if old == "" or new == "":
                raise PermissionError(errno.EPERM, "Cannot rename the root", old_path)
            if old == new:
                return
            if new.startswith(old + "/"):
                raise OSError(errno.EINVAL, "Cannot move a directory into itself", new_path)
            self._parent(new, new_path)
            existing = self.entries.get(new)
            if existing is not None:
                if stat.S_ISDIR(existing.mode) and not stat.S_ISDIR(entry.mode):
                    raise IsADirectoryError(errno.EISDIR, "Is a directory", new_path)
                if stat.S_ISDIR(existing.mode) and self._children(new):
                    raise OSError(errno.ENOTEMPTY, "Directory not empty", new_path)
                if stat.S_ISDIR(entry.mode) and not stat.S_ISDIR(existing.mode):
                    raise NotADirectoryError(errno.ENOTDIR, "Not a directory", new_path)
            moved = {k: v for k, v in self.entries.items() if k == old or k.startswith(old + "/")}
            for k in moved:
                del self.entries[k]
            for k, v in moved.items():
                self.entries[new + k[len(old):]] = v

    # -- Dir

    def mkdir_all(self, path: str, mode: int) -> None:
        with self.lock:
            key = ""
            for part in clean(path).split("/"):
                if not part:
                    continue
                key = posixpath.join(key, part) if key else part
                key = self._resolve(key)
                entry = self.entries.get(key)
                if entry is None:
                    now = time.time()
                    self.entries[key] = Metadata(mode=stat.S_IFDIR | (mode & 0o7777), atime=now, mtime=now, ctime=now)
                elif not stat.S_ISDIR(entry.mode):
                    raise NotADirectoryError(errno.ENOTDIR, "Not a directory", path)

    def read_dir(self, path: str) -> List[Tuple[str, StatResult]]:
        with self.lock:
            key, entry = self._get(path)
            if not stat.S_ISDIR(entry.mode):
                raise NotADirectoryError(errno.ENOTDIR, "Not a directory", path)
            return [(posixpath.basename(k), self._stat(self.entries[k])) for k in sorted(self._children(key))]

    # -- Symlink

    def lstat(self, path: str) -> StatResult:
        with self.lock:
            return self._stat(self._get(path, follow=False)[1])

    def symlink(self, target: str, link: str) -> None:
        with self.lock:
            key = self._resolve(link, follow=False)
            if key in self.entries:
                raise FileExistsError(errno.EEXIST, "File exists", link)
            self._parent(key, link)
            now = time.time()
            self.entries[key] = Metadata(mode=stat.S_IFLNK | 0o777, atime=now, mtime=now, ctime=now, target=target)

    def readlink(self, path: str) -> str:
        with self.lock:
            _, entry = self._get(path, follow=False)
            if not stat.S_ISLNK(entry.mode):
                raise OSError(errno.EINVAL, "Not a symbolic link", path)
            return entry.target

    # -- Change

    def chmod(self, path: str, mode: int) -> None:
        with self.lock:
            _, entry = self._get(path)
            entry.mode = stat.S_IFMT(entry.mode) | (mode & 0o7777)
            entry.ctime = time.time()

    def lchown(self, path: str, uid: int, gid: int) -> None:
        with self.lock:
            _, entry = self._get(path, follow=False)
            if uid != -1:
                entry.uid = uid
            if gid != -1:
                entry.gid = gid
            entry.ctime = time.time()

    def chtimes(self, path: str, atime: float, mtime: float) -> None:
        with self.lock:
            _, entry = self._get(path)
            entry.atime = atime
            entry.mtime = mtime


class MemoryFile:
    """
    An open MemoryFS file with a private cursor.

    Writes land directly in the shared Metadata, so every open file on the
    same path sees them immediately.
    """
    def __init__(self, fs: MemoryFS, path: str, entry: Metadata, flags: int):
        self.fs = fs
        self.path = path
        self.entry: Optional[Metadata] = entry
        self.position = 0
        accmode = flags & (os.O_RDONLY | os.O_WRONLY | os.O_RDWR)
        self.readable = accmode in (os.O_RDONLY, os.O_RDWR)
        self.writable = accmode in (os.O_WRONLY, os.O_RDWR)
        self.append = bool(flags & os.O_APPEND)

    def _open_entry(self) -> Metadata:
        if self.entry is None:
            raise FileClosedError(f"{self.path}: file already closed")
        return self.entry

    def read_at(self, buf: bytearray, offset: int) -> int:
        with self.fs.lock:
            entry = self._open_entry()
            if not self.readable:
                raise OSError(errno.EBADF, "File not open for reading", self.path)
            if offset < 0:
                raise ValueError("negative offset")
            chunk = entry.data[offset:offset + len(buf)]
            buf[:len(chunk)] = chunk
            entry.atime = time.time()
            if buf and not chunk:
                raise EOFError
            return len(chunk)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        with self.fs.lock:
            entry = self._open_entry()
            if whence == os.SEEK_SET:
                base = 0
            elif whence == os.SEEK_CUR:
                base = self.position
            elif whence == os.SEEK_END:
                base = len(entry.data)
            else:
                raise ValueError(f"invalid whence {whence}")
            if base + offset < 0:
                raise ValueError("negative seek position")
            self.position = base + offset
            return self.position

    def write(self, data: bytes) -> int:
        with self.fs.lock:
            entry = self._open_entry()
            if not self.writable:
                raise OSError(errno.EBADF, "File not open for writing", self.path)
            if self.append:
                self.position = len(entry.data)
            end = self.position + len(data)
            if self.position > len(entry.data):
                entry.data.extend(bytes(self.position - len(entry.data)))
            entry.data[self.position:end] = data
            self.position = end
            entry.mtime = time.time()
            return len(data)

    def truncate(self, size: int) -> None:
        with self.fs.lock:
            entry = self._open_entry()
            if not self.writable:
                raise OSError(errno.EBADF, "File not open for writing", self.path)
            if size < 0:
                raise ValueError("negative size")
            if size < len(entry.data):
                del entry.data[size:]
            else:
                entry.data.extend(bytes(size - len(entry.data)))
            entry.mtime = time.time()

    def close(self) -> None:
        with self.fs.lock:
            self._open_entry()
            self.entry = None
