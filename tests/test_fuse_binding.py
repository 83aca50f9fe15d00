import errno
import os
import stat
from types import SimpleNamespace

import pytest

pyfuse3 = pytest.importorskip("pyfuse3")
trio = pytest.importorskip("trio")

from conftest import read_file, write_file
from fsbridge.backends import BasicOnly
from fsbridge.fuse_binding import FuseOps
from fsbridge.root import Op, Root

ROOT = pyfuse3.ROOT_INODE


def run(fn, *args):
    async def inner():
        return await fn(*args)
    return trio.run(inner)


@pytest.fixture
def ops(memfs):
    return FuseOps(Root(memfs))


def fields(**flags):
    names = ("update_atime", "update_mtime", "update_ctime", "update_mode",
             "update_uid", "update_gid", "update_size")
    return SimpleNamespace(**{n: flags.get(n, False) for n in names})


def test_root_inode(ops):
    attr = run(ops.getattr, ROOT)
    assert attr.st_ino == ROOT
    assert stat.S_ISDIR(attr.st_mode)
    assert attr.attr_timeout == 0


def test_lookup_assigns_stable_inodes(memfs, ops):
    write_file(memfs, "f", b"abc")
    first = run(ops.lookup, ROOT, b"f")
    second = run(ops.lookup, ROOT, b"f")
    assert first.st_ino == second.st_ino != ROOT
    assert first.st_size == 3
    assert ops.lookups[first.st_ino] == 2


def test_lookup_missing(ops):
    with pytest.raises(pyfuse3.FUSEError) as excinfo:
        run(ops.lookup, ROOT, b"missing")
    assert excinfo.value.errno == errno.ENOENT
    assert "missing" not in ops.paths


def test_forget(memfs, ops):
    write_file(memfs, "f")
    inode = run(ops.lookup, ROOT, b"f").st_ino
    run(ops.lookup, ROOT, b"f")
    run(ops.forget, [(inode, 1)])
    assert inode in ops.inodes
    run(ops.forget, [(inode, 1), (ROOT, 1)])
    assert inode not in ops.inodes
    assert "f" not in ops.paths
    assert ROOT in ops.inodes


def test_create_write_read(memfs, ops):
    fi, attr = run(ops.create, ROOT, b"new", 0o644, os.O_CREAT | os.O_RDWR)
    assert stat.S_ISREG(attr.st_mode)
    assert run(ops.write, fi.fh, 0, b"hello") == 5
    assert run(ops.read, fi.fh, 1, 10) == b"ello"
    run(ops.release, fi.fh)
    assert read_file(memfs, "new") == b"hello"
    with pytest.raises(pyfuse3.FUSEError) as excinfo:
        run(ops.read, fi.fh, 0, 1)
    assert excinfo.value.errno == errno.EBADF


def test_open(memfs, ops):
    write_file(memfs, "f", b"data")
    inode = run(ops.lookup, ROOT, b"f").st_ino
    fi = run(ops.open, inode, os.O_RDONLY)
    assert run(ops.read, fi.fh, 0, 100) == b"data"
    run(ops.release, fi.fh)


def test_mkdir_and_readdir(memfs, ops, monkeypatch):
    d = run(ops.mkdir, ROOT, b"d", 0o755)
    assert stat.S_ISDIR(d.st_mode)
    write_file(memfs, "d/f", b"abc", 0o640)
    memfs.symlink("f", "d/l")
    known = run(ops.lookup, d.st_ino, b"f")

    replies = []

    def readdir_reply(token, name, attr, next_id):
        replies.append((name, attr, next_id))
        return True

    monkeypatch.setattr(pyfuse3, "readdir_reply", readdir_reply)
    fh = run(ops.opendir, d.st_ino)
    run(ops.readdir, fh, 0, None)
    assert [(name, next_id) for name, _, next_id in replies] == [(b"f", 1), (b"l", 2)]
    f_attr, l_attr = replies[0][1], replies[1][1]
    assert f_attr.st_ino == known.st_ino
    assert f_attr.st_mode == stat.S_IFREG | 0o640
    assert f_attr.st_size == 3
    assert stat.S_ISLNK(l_attr.st_mode)
    assert l_attr.st_ino == ops.paths["d/l"]
    for _, attr, _ in replies:
        assert attr.entry_timeout == attr.attr_timeout == 0
    assert ops.lookups[known.st_ino] == 2
    assert ops.lookups[l_attr.st_ino] == 1

    replies.clear()
    run(ops.readdir, fh, 1, None)
    assert [name for name, _, _ in replies] == [b"l"]
    assert ops.lookups[l_attr.st_ino] == 2
    run(ops.releasedir, fh)
    assert fh not in ops.handles


def test_readdir_entries_survive_forget(memfs, ops, monkeypatch):
    write_file(memfs, "f", b"abc")
    inode = run(ops.lookup, ROOT, b"f").st_ino
    monkeypatch.setattr(pyfuse3, "readdir_reply", lambda *args: True)
    run(ops.readdir, run(ops.opendir, ROOT), 0, None)

    run(ops.forget, [(inode, 1)])
    assert run(ops.getattr, inode).st_size == 3
    run(ops.forget, [(inode, 1)])
    assert inode not in ops.inodes


def test_readdir_stops_when_buffer_full(memfs, ops, monkeypatch):
    for name in ("a", "b", "c"):
        write_file(memfs, name)
    calls = []
    monkeypatch.setattr(pyfuse3, "readdir_reply", lambda *args: calls.append(args) and False)
    run(ops.readdir, run(ops.opendir, ROOT), 0, None)
    assert len(calls) == 1
    assert "a" not in ops.paths
    assert set(ops.inodes) == {ROOT}


def test_unlink_and_rmdir(memfs, ops):
    run(ops.mkdir, ROOT, b"d", 0o755)
    run(ops.create, ROOT, b"f", 0o644, os.O_CREAT | os.O_WRONLY)
    run(ops.unlink, ROOT, b"f")
    run(ops.rmdir, ROOT, b"d")
    assert set(memfs.entries) == {""}
    assert "f" not in ops.paths and "d" not in ops.paths


def test_rename_rewrites_inode_table(memfs, ops):
    d = run(ops.mkdir, ROOT, b"a", 0o755)
    write_file(memfs, "a/f", b"x")
    f = run(ops.lookup, d.st_ino, b"f")
    run(ops.rename, ROOT, b"a", ROOT, b"b", 0)
    assert ops.inodes[d.st_ino].path == "b"
    assert ops.inodes[f.st_ino].path == "b/f"
    assert run(ops.getattr, f.st_ino).st_size == 1


def test_rename_flags_are_refused(memfs, ops):
    write_file(memfs, "f")
    with pytest.raises(pyfuse3.FUSEError) as excinfo:
        run(ops.rename, ROOT, b"f", ROOT, b"g", 1)
    assert excinfo.value.errno == errno.EINVAL


def test_symlink_and_readlink(ops):
    attr = run(ops.symlink, ROOT, b"l", b"some/where")
    assert stat.S_ISLNK(attr.st_mode)
    assert run(ops.readlink, attr.st_ino) == b"some/where"


def test_setattr(memfs, ops):
    write_file(memfs, "f", b"0123456789")
    inode = run(ops.lookup, ROOT, b"f").st_ino
    attr = pyfuse3.EntryAttributes()
    attr.st_mode = stat.S_IFREG | 0o600
    attr.st_size = 4
    attr.st_mtime_ns = 5 * 10 ** 9
    result = run(ops.setattr, inode, attr, fields(update_mode=True, update_size=True), None)
    assert stat.S_IMODE(result.st_mode) == 0o600
    assert result.st_size == 4

    run(ops.setattr, inode, attr, fields(update_mtime=True), None)
    assert memfs.stat("f").st_mtime == 5.0


def test_errors_become_fuse_errors(memfs):
    ops = FuseOps(Root(BasicOnly(memfs)))
    with pytest.raises(pyfuse3.FUSEError) as excinfo:
        run(ops.mkdir, ROOT, b"d", 0o755)
    assert excinfo.value.errno == errno.ENOSYS
    with pytest.raises(pyfuse3.FUSEError) as excinfo:
        run(ops.getattr, 999)
    assert excinfo.value.errno == errno.ENOENT


def test_vetoed_release_keeps_handle(memfs):
    refuse = [True]

    def hook(op, params):
        if op is Op.RELEASE and refuse[0]:
            return PermissionError("not now")
        return None

    ops = FuseOps(Root(memfs, hook))
    fi, _ = run(ops.create, ROOT, b"f", 0o644, os.O_CREAT | os.O_RDWR)
    with pytest.raises(pyfuse3.FUSEError) as excinfo:
        run(ops.release, fi.fh)
    assert excinfo.value.errno == errno.EPERM
    assert ops.handles[fi.fh].fh is not None

    refuse[0] = False
    run(ops.release, fi.fh)
    assert fi.fh not in ops.handles
