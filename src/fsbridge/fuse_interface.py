"""
Path based FUSE interface built on fusepy.
"""
import errno
import itertools
import os
import threading
from typing import Any, Dict, List, Optional, Tuple, Union

from fuse import FUSE, FuseOSError, LoggingMixIn, Operations

from .attributes import Attr
from .handle import DirHandle, Handle
from .node import Node, SetattrRequest, SetattrValid
from .root import Root

AnyHandle = Union[Handle, DirHandle]


def attr_to_stat(attr: Attr) -> Dict[str, Any]:
    return {
        'st_mode': attr.mode,
        'st_size': attr.size,
        'st_mtime': attr.mtime,
        'st_atime': attr.atime,
        'st_ctime': attr.ctime,
        'st_uid': attr.uid,
        'st_gid': attr.gid,
        'st_nlink': attr.nlink,
    }


class FuseInterface(LoggingMixIn, Operations):
    """
    FUSE interface that translates fusepy's path based calls into Node and
    Handle operations.

    Every path is resolved from the mount root through Node.lookup, so no
    tree of nodes is kept between calls. Open files and directories live in
    a table keyed by the fh number handed to the kernel.
    """
    root: Root
    handles: Dict[int, AnyHandle]

    def __init__(self, root: Root):
        self.root = root
        self.handles = {}
        self.fh_counter = itertools.count(1)
        self.lock = threading.Lock()

    # -- helpers

    def _resolve(self, path: str) -> Node:
        node = self.root.node()
        for part in path.split('/'):
            if part:
                node = node.lookup(part)
        return node

    def _parent(self, path: str) -> Tuple[Node, str]:
        dirname, name = os.path.split(path.rstrip('/'))
        return self._resolve(dirname), name

    def _add_handle(self, handle: AnyHandle) -> int:
        with self.lock:
            fh = next(self.fh_counter)
            self.handles[fh] = handle
            return fh

    def _get_handle(self, fh: int) -> AnyHandle:
        with self.lock:
            handle = self.handles.get(fh)
        if handle is None:
            raise FuseOSError(errno.EBADF)
        return handle

    def _drop_handle(self, fh: int) -> None:
        with self.lock:
            self.handles.pop(fh, None)

    def _file(self, fh: int) -> Handle:
        handle = self._get_handle(fh)
        if not isinstance(handle, Handle):
            raise FuseOSError(errno.EISDIR)
        return handle

    def _dir(self, fh: int) -> DirHandle:
        handle = self._get_handle(fh)
        if not isinstance(handle, DirHandle):
            raise FuseOSError(errno.ENOTDIR)
        return handle

    def _setattr(self, path: str, req: SetattrRequest) -> None:
        self._resolve(path).setattr(req)

    # -- handleless ops

    def getattr(self, path: str, fh: Any = None) -> Dict[str, Any]:
        """Get file attributes."""
        return attr_to_stat(self._resolve(path).attr())

    def readlink(self, path: str) -> str:
        return self._resolve(path).readlink()

    def mkdir(self, path: str, mode: int) -> None:
        """Create a directory, including missing parents."""
        parent, name = self._parent(path)
        parent.mkdir(name, mode)

    def rmdir(self, path: str) -> None:
        """Remove a directory."""
        parent, name = self._parent(path)
        parent.remove(name)

    def unlink(self, path: str) -> None:
        """Remove a file."""
        parent, name = self._parent(path)
        parent.remove(name)

    def symlink(self, target: str, source: str) -> None:
        """Create the link target pointing at source (ln -s source target)."""
        parent, name = self._parent(target)
        parent.symlink(source, name)

    def rename(self, old: str, new: str) -> None:
        """Rename a file or directory."""
        old_parent, old_name = self._parent(old)
        new_parent, new_name = self._parent(new)
        old_parent.rename(old_name, new_parent, new_name)

    def chmod(self, path: str, mode: int) -> None:
        self._setattr(path, SetattrRequest(valid=SetattrValid.MODE, mode=mode))

    def chown(self, path: str, uid: int, gid: int) -> None:
        # fusepy passes -1 for the side that should stay unchanged
        valid = SetattrValid(0)
        if uid != -1:
            valid |= SetattrValid.UID
        if gid != -1:
            valid |= SetattrValid.GID
        if valid:
            self._setattr(path, SetattrRequest(valid=valid, uid=uid, gid=gid))

    def utimens(self, path: str, times: Optional[Tuple[float, float]] = None) -> None:
        if times is None:
            req = SetattrRequest(valid=SetattrValid.ATIME_NOW | SetattrValid.MTIME_NOW)
        else:
            atime, mtime = times
            req = SetattrRequest(valid=SetattrValid.ATIME | SetattrValid.MTIME, atime=atime, mtime=mtime)
        self._setattr(path, req)

    def truncate(self, path: str, length: int, fh: Any = None) -> None:
        """Truncate a file."""
        self._setattr(path, SetattrRequest(valid=SetattrValid.SIZE, size=length))

    # -- file handle ops

    def create(self, path: str, mode: int, fi: Any = None) -> int:
        """Create a file and open it for reading and writing."""
        parent, name = self._parent(path)
        _, handle = parent.create(name, os.O_CREAT | os.O_RDWR, mode)
        return self._add_handle(handle)

    def open(self, path: str, flags: int) -> int:
        return self._add_handle(self._resolve(path).open(flags))

    def read(self, path: str, size: int, offset: int, fh: int) -> bytes:
        """Read from a file."""
        return self._file(fh).read(offset, size)

    def write(self, path: str, data: bytes, offset: int, fh: int) -> int:
        """Write to a file."""
        return self._file(fh).write(offset, data)

    def release(self, path: str, fh: int) -> None:
        """Release an open file. The fh stays valid until its file is closed."""
        handle = self._file(fh)
        handle.release()
        self._drop_handle(fh)

    def flush(self, path: str, fh: int) -> None:
        """Flush cached data."""
        # No-op: nothing is buffered on this side
        pass

    def fsync(self, path: str, datasync: bool, fh: int) -> None:
        pass

    # -- directory handle ops

    def opendir(self, path: str) -> int:
        return self._add_handle(self._resolve(path).open(os.O_RDONLY, is_dir=True))

    def readdir(self, path: str, fh: int) -> List[str]:
        """Read directory entries."""
        return ['.', '..'] + [entry.name for entry in self._dir(fh).read_dir_all()]

    def releasedir(self, path: str, fh: int) -> None:
        self._drop_handle(fh)


def mount(root: Root, mountpoint: str, foreground: bool = True, **kwargs: Any) -> None:
    """
    Mount the filesystem at the specified mountpoint.

    Args:
        root: Root wrapping the backing filesystem
        mountpoint: Directory to mount the filesystem at
        foreground: Stay attached to the terminal
        **kwargs: Additional arguments to pass to FUSE
    """
    FUSE(
        FuseInterface(root),
        mountpoint,
        foreground=foreground,
        nothreads=False,
        **kwargs
    )
