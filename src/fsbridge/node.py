"""
Path-addressed nodes of the mounted tree.

A Node is nothing more than a normalized path plus the Root it belongs to.
Nodes are built on demand for every request and never cached, so two
lookups of the same name give two equal but distinct Node values.
"""
import errno
import logging
import os
import time
from dataclasses import dataclass, field
from enum import IntFlag
from typing import Tuple, Union

from .attributes import Attr, file_info_to_attr
from .capabilities import Change, Dir, Symlink
from .errors import FSError, translate_errors
from .handle import DirHandle, Handle
from .root import Op, Root

log = logging.getLogger(__name__)

DEFAULT_PERM = 0o777


class SetattrValid(IntFlag):
    """Which fields of a SetattrRequest should be applied."""
    MODE = 1 << 0
    UID = 1 << 1
    GID = 1 << 2
    SIZE = 1 << 3
    ATIME = 1 << 4
    MTIME = 1 << 5
    HANDLE = 1 << 6
    ATIME_NOW = 1 << 7
    MTIME_NOW = 1 << 8
    LOCK_OWNER = 1 << 9


METADATA_FIELDS = SetattrValid.MODE | SetattrValid.UID | SetattrValid.GID | SetattrValid.ATIME | SetattrValid.MTIME
UNSUPPORTED_FIELDS = SetattrValid.HANDLE | SetattrValid.LOCK_OWNER


@dataclass
class SetattrRequest:
    valid: SetattrValid = SetattrValid(0)
    mode: int = 0
    uid: int = 0
    gid: int = 0
    size: int = 0
    atime: float = 0.0
    mtime: float = 0.0


def join(parent: str, name: str) -> str:
    """Join a single name component onto a node path."""
    if not name or name in (".", "..") or "/" in name or "\0" in name:
        raise FSError(errno.EINVAL, f"invalid name {name!r}")
    return f"{parent}/{name}" if parent else name


@dataclass(frozen=True)
class Node:
    root: Root = field(compare=False, repr=False)
    path: str

    def _child(self, path: str) -> "Node":
        return Node(self.root, path)

    def attr(self) -> Attr:
        """Stat this node. Symlinks are reported as links when the backend can tell."""
        self.root.check(Op.GETATTR, path=self.path)
        fs = self.root.underlying
        with translate_errors():
            if isinstance(fs, Symlink):
                info = fs.lstat(self.path)
            else:
                info = fs.stat(self.path)
        return file_info_to_attr(info)

    def lookup(self, name: str) -> "Node":
        """
        Return the child called name.

        The child is not checked for existence here; the first attr() on it
        reports ENOENT if it is missing.
        """
        self.root.check(Op.LOOKUP, path=self.path, name=name)
        return self._child(join(self.path, name))

    def mkdir(self, name: str, mode: int) -> "Node":
        self.root.check(Op.MKDIR, path=self.path, name=name, mode=mode)
        dfs = self.root.underlying
        if not isinstance(dfs, Dir):
            raise FSError(errno.ENOSYS)
        fn = join(self.path, name)
        with translate_errors():
            dfs.mkdir_all(fn, mode)
        return self._child(fn)

    def remove(self, name: str) -> None:
        """Remove a file or directory; the backend decides what it accepts."""
        self.root.check(Op.REMOVE, path=self.path, name=name)
        fn = join(self.path, name)
        with translate_errors():
            self.root.underlying.remove(fn)

    def symlink(self, target: str, new_name: str) -> "Node":
        self.root.check(Op.SYMLINK, path=self.path, target=target, name=new_name)
        sfs = self.root.underlying
        if not isinstance(sfs, Symlink):
            raise FSError(errno.ENOSYS)
        fn = join(self.path, new_name)
        with translate_errors():
            sfs.symlink(target, fn)
        return self._child(fn)

    def readlink(self) -> str:
        self.root.check(Op.READLINK, path=self.path)
        sfs = self.root.underlying
        if not isinstance(sfs, Symlink):
            raise FSError(errno.ENOSYS)
        with translate_errors():
            return sfs.readlink(self.path)

    def rename(self, old_name: str, new_dir: "Node", new_name: str) -> None:
        self.root.check(Op.RENAME, path=self.path, old_name=old_name,
                        new_path=new_dir.path, new_name=new_name)
        old_path = join(self.path, old_name)
        new_path = join(new_dir.path, new_name)
        with translate_errors():
            self.root.underlying.rename(old_path, new_path)

    def setattr(self, req: SetattrRequest) -> None:
        """
        Apply the flagged fields of req.

        Mode, owner and times need the Change capability and fail with
        ENOTSUP without it. Size is applied by truncating through a freshly
        opened file. Steps run in order and stop at the first error, earlier
        steps are kept.
        """
        self.root.check(Op.SETATTR, path=self.path, valid=req.valid)
        valid = req.valid
        if valid & UNSUPPORTED_FIELDS:
            log.warning("setattr on %r: unsupported fields %s", self.path, valid & UNSUPPORTED_FIELDS)
            raise FSError(errno.ENOTSUP, "setattr by handle or lock owner is not supported")

        now = time.time()
        atime, mtime = req.atime, req.mtime
        if valid & SetattrValid.ATIME_NOW:
            valid |= SetattrValid.ATIME
            atime = now
        if valid & SetattrValid.MTIME_NOW:
            valid |= SetattrValid.MTIME
            mtime = now

        fs = self.root.underlying
        if valid & METADATA_FIELDS and not isinstance(fs, Change):
            raise FSError(errno.ENOTSUP)
        with translate_errors():
            if valid & SetattrValid.MODE:
                fs.chmod(self.path, req.mode)
            if valid & (SetattrValid.UID | SetattrValid.GID):
                uid = req.uid if valid & SetattrValid.UID else -1
                gid = req.gid if valid & SetattrValid.GID else -1
                fs.lchown(self.path, uid, gid)
            if valid & (SetattrValid.ATIME | SetattrValid.MTIME):
                if not valid & SetattrValid.ATIME or not valid & SetattrValid.MTIME:
                    info = fs.stat(self.path)
                    if not valid & SetattrValid.ATIME:
                        atime = getattr(info, "st_atime", info.st_mtime)
                    if not valid & SetattrValid.MTIME:
                        mtime = info.st_mtime
                fs.chtimes(self.path, atime, mtime)
            if valid & SetattrValid.SIZE:
                fh = fs.open_file(self.path, os.O_WRONLY, DEFAULT_PERM)
                try:
                    fh.truncate(req.size)
                finally:
                    fh.close()

    def create(self, name: str, flags: int, mode: int) -> Tuple["Node", Handle]:
        self.root.check(Op.CREATE, path=self.path, name=name, flags=flags, mode=mode)
        fn = join(self.path, name)
        with translate_errors():
            fh = self.root.underlying.open_file(fn, flags, mode)
        return self._child(fn), Handle(self.root, fh)

    def open(self, flags: int, is_dir: bool = False) -> Union[Handle, DirHandle]:
        """Open this node. Directories are not touched until they are listed."""
        self.root.check(Op.OPEN, path=self.path, flags=flags, dir=is_dir)
        if is_dir:
            return DirHandle(self.root, self.path)
        with translate_errors():
            fh = self.root.underlying.open_file(self.path, flags, DEFAULT_PERM)
        return Handle(self.root, fh)
