"""
Inode based FUSE binding built on pyfuse3.

pyfuse3 handlers run on the trio event loop; every call that reaches the
backing filesystem is pushed to a worker thread so a slow backend never
stalls other requests.
"""
import errno
import functools
import logging
import os
import stat
from typing import Dict, Iterable, Tuple, Union

import pyfuse3
import trio

from .attributes import Attr
from .errors import FSError
from .handle import DirHandle, Handle
from .node import Node, SetattrRequest, SetattrValid, join
from .root import Root

log = logging.getLogger(__name__)


class FuseOps(pyfuse3.Operations):
    """
    Keeps the inode table the kernel expects and forwards everything else
    to Nodes and Handles.

    The table maps inode numbers to Nodes and counts lookups so forget()
    can drop entries. Table updates only happen on the event loop thread.
    """
    root: Root
    inodes: Dict[int, Node]
    paths: Dict[str, int]
    lookups: Dict[int, int]
    handles: Dict[int, Union[Handle, DirHandle]]
    next_inode: int
    next_fh: int

    def __init__(self, root: Root, *args):
        super().__init__(*args)
        self.root = root
        top = root.node()
        self.inodes = {pyfuse3.ROOT_INODE: top}
        self.paths = {top.path: pyfuse3.ROOT_INODE}
        self.lookups = {pyfuse3.ROOT_INODE: 1}
        self.handles = {}
        self.next_inode = pyfuse3.ROOT_INODE + 1
        self.next_fh = 1

    # -- tables

    async def _call(self, fn, *args):
        try:
            return await trio.to_thread.run_sync(functools.partial(fn, *args))
        except FSError as e:
            raise pyfuse3.FUSEError(e.errno) from e

    def _node(self, inode: int) -> Node:
        try:
            return self.inodes[inode]
        except KeyError:
            raise pyfuse3.FUSEError(errno.ENOENT)

    def _inode(self, node: Node) -> int:
        """Return the inode for node's path, allocating one with no lookups yet."""
        inode = self.paths.get(node.path)
        if inode is None:
            inode = self.next_inode
            self.next_inode += 1
            self.paths[node.path] = inode
            self.inodes[inode] = node
            self.lookups[inode] = 0
        return inode

    def _remember(self, node: Node) -> int:
        inode = self._inode(node)
        self.lookups[inode] += 1
        return inode

    def _drop_unused(self, inode: int) -> None:
        if self.lookups.get(inode) == 0:
            del self.lookups[inode]
            node = self.inodes.pop(inode)
            if self.paths.get(node.path) == inode:
                del self.paths[node.path]

    def _unlink_path(self, path: str) -> None:
        # the inode stays valid until the kernel forgets it
        self.paths.pop(path, None)

    def _move(self, old: str, new: str) -> None:
        self._unlink_path(new)
        prefix = old + "/"
        moved = [(p, i) for p, i in self.paths.items() if p == old or p.startswith(prefix)]
        for path, inode in moved:
            del self.paths[path]
        for path, inode in moved:
            new_path = new + path[len(old):]
            self.paths[new_path] = inode
            self.inodes[inode] = Node(self.root, new_path)

    def _add_handle(self, handle: Union[Handle, DirHandle]) -> int:
        fh = self.next_fh
        self.next_fh += 1
        self.handles[fh] = handle
        return fh

    def _handle(self, fh: int) -> Union[Handle, DirHandle]:
        try:
            return self.handles[fh]
        except KeyError:
            raise pyfuse3.FUSEError(errno.EBADF)

    def _entry(self, inode: int, attr: Attr) -> pyfuse3.EntryAttributes:
        entry = pyfuse3.EntryAttributes()
        entry.st_ino = inode
        entry.st_mode = attr.mode
        entry.st_size = attr.size
        entry.st_nlink = attr.nlink
        entry.st_uid = attr.uid
        entry.st_gid = attr.gid
        entry.st_mtime_ns = int(attr.mtime * 1e9)
        entry.st_atime_ns = int(attr.atime * 1e9)
        entry.st_ctime_ns = int(attr.ctime * 1e9)
        # nothing is cached on the kernel side either
        entry.entry_timeout = 0
        entry.attr_timeout = 0
        return entry

    async def _entry_for(self, node: Node) -> pyfuse3.EntryAttributes:
        attr = await self._call(node.attr)
        return self._entry(self._remember(node), attr)

    # -- handleless ops

    async def lookup(self, parent_inode: int, name: bytes, ctx=None) -> pyfuse3.EntryAttributes:
        parent = self._node(parent_inode)
        child = await self._call(parent.lookup, os.fsdecode(name))
        return await self._entry_for(child)

    async def forget(self, inode_list: Iterable[Tuple[int, int]]) -> None:
        for inode, nlookup in inode_list:
            if inode == pyfuse3.ROOT_INODE or inode not in self.lookups:
                continue
            self.lookups[inode] = max(0, self.lookups[inode] - nlookup)
            self._drop_unused(inode)

    async def getattr(self, inode: int, ctx=None) -> pyfuse3.EntryAttributes:
        node = self._node(inode)
        return self._entry(inode, await self._call(node.attr))

    async def setattr(self, inode: int, attr: pyfuse3.EntryAttributes, fields: pyfuse3.SetattrFields,
                      fh: int, ctx=None) -> pyfuse3.EntryAttributes:
        node = self._node(inode)
        req = SetattrRequest()
        if fields.update_mode:
            req.valid |= SetattrValid.MODE
            req.mode = stat.S_IMODE(attr.st_mode)
        if fields.update_uid:
            req.valid |= SetattrValid.UID
            req.uid = attr.st_uid
        if fields.update_gid:
            req.valid |= SetattrValid.GID
            req.gid = attr.st_gid
        if fields.update_size:
            req.valid |= SetattrValid.SIZE
            req.size = attr.st_size
        if fields.update_atime:
            req.valid |= SetattrValid.ATIME
            req.atime = attr.st_atime_ns / 1e9
        if fields.update_mtime:
            req.valid |= SetattrValid.MTIME
            req.mtime = attr.st_mtime_ns / 1e9
        await self._call(node.setattr, req)
        return await self.getattr(inode, ctx)

    async def readlink(self, inode: int, ctx=None) -> bytes:
        node = self._node(inode)
        return os.fsencode(await self._call(node.readlink))

    async def mkdir(self, parent_inode: int, name: bytes, mode: int, ctx=None) -> pyfuse3.EntryAttributes:
        """Create a directory."""
        parent = self._node(parent_inode)
        child = await self._call(parent.mkdir, os.fsdecode(name), mode)
        return await self._entry_for(child)

    async def unlink(self, parent_inode: int, name: bytes, ctx=None) -> None:
        """Remove a (possibly special) file."""
        parent = self._node(parent_inode)
        name = os.fsdecode(name)
        await self._call(parent.remove, name)
        self._unlink_path(join(parent.path, name))

    async def rmdir(self, parent_inode: int, name: bytes, ctx=None) -> None:
        """Remove directory name."""
        await self.unlink(parent_inode, name, ctx)

    async def symlink(self, parent_inode: int, name: bytes, target: bytes, ctx=None) -> pyfuse3.EntryAttributes:
        parent = self._node(parent_inode)
        child = await self._call(parent.symlink, os.fsdecode(target), os.fsdecode(name))
        return await self._entry_for(child)

    async def rename(self, parent_inode_old: int, name_old: bytes, parent_inode_new: int,
                     name_new: bytes, flags: int, ctx=None) -> None:
        """Rename a directory entry."""
        if flags:
            # RENAME_EXCHANGE and RENAME_NOREPLACE have no backend counterpart
            raise pyfuse3.FUSEError(errno.EINVAL)
        old_parent = self._node(parent_inode_old)
        new_parent = self._node(parent_inode_new)
        name_old, name_new = os.fsdecode(name_old), os.fsdecode(name_new)
        await self._call(old_parent.rename, name_old, new_parent, name_new)
        self._move(join(old_parent.path, name_old), join(new_parent.path, name_new))

    # -- file handle ops

    async def open(self, inode: int, flags: int, ctx=None) -> pyfuse3.FileInfo:
        node = self._node(inode)
        handle = await self._call(node.open, flags)
        return pyfuse3.FileInfo(fh=self._add_handle(handle), keep_cache=False)

    async def create(self, parent_inode: int, name: bytes, mode: int, flags: int,
                     ctx=None) -> Tuple[pyfuse3.FileInfo, pyfuse3.EntryAttributes]:
        """Create a file with permissions mode and open it with flags."""
        parent = self._node(parent_inode)
        child, handle = await self._call(parent.create, os.fsdecode(name), flags, mode)
        fi = pyfuse3.FileInfo(fh=self._add_handle(handle), keep_cache=False)
        return fi, await self._entry_for(child)

    async def read(self, fh: int, off: int, size: int) -> bytes:
        """Read size bytes from fh at position off."""
        handle = self._handle(fh)
        return await self._call(handle.read, off, size)

    async def write(self, fh: int, off: int, buf: bytes) -> int:
        """Write buf into fh at off."""
        handle = self._handle(fh)
        return await self._call(handle.write, off, buf)

    async def release(self, fh: int) -> None:
        # the handle stays in the table until the backing file is closed
        handle = self._handle(fh)
        await self._call(handle.release)
        self.handles.pop(fh, None)

    # -- directory handle ops

    async def opendir(self, inode: int, ctx=None) -> int:
        """Open the directory with inode."""
        node = self._node(inode)
        return self._add_handle(await self._call(node.open, os.O_RDONLY, True))

    async def readdir(self, fh: int, start_id: int, token) -> None:
        """Read entries in open directory fh."""
        handle = self._handle(fh)
        entries = await self._call(handle.read_dir_all)
        for i in range(start_id, len(entries)):
            entry = entries[i]
            child = Node(self.root, join(handle.path, entry.name))
            try:
                attr = await self._call(child.attr)
            except pyfuse3.FUSEError as e:
                if e.errno != errno.ENOENT:
                    raise
                # removed since the listing was taken
                continue
            inode = self._inode(child)
            # every accepted entry counts as a lookup on the kernel side
            if not pyfuse3.readdir_reply(token, os.fsencode(entry.name), self._entry(inode, attr), i + 1):
                self._drop_unused(inode)
                return
            self.lookups[inode] += 1

    async def releasedir(self, fh: int) -> None:
        self.handles.pop(fh, None)


def mount(root: Root, mountpoint: str, debug: bool = False, allow_other: bool = False) -> None:
    """
    Mount through pyfuse3 and serve requests until unmounted.
    """
    options = set(pyfuse3.default_options)
    options.add("fsname=fsbridge")
    if debug:
        options.add("debug")
    if allow_other:
        options.add("allow_other")
    pyfuse3.init(FuseOps(root), mountpoint, options)
    try:
        trio.run(pyfuse3.main)
    finally:
        log.info("Unmounting %s", mountpoint)
        pyfuse3.close()
