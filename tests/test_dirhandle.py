import errno
import os
import stat

import pytest

from conftest import write_file
from fsbridge.attributes import Dirent, DirentType
from fsbridge.backends import MemoryFS
from fsbridge.errors import FSError
from fsbridge.root import Root


def list_dir(node):
    return node.open(os.O_RDONLY, is_dir=True).read_dir_all()


def test_classifies_entries(memfs, top):
    top.mkdir("sub", 0o755)
    write_file(memfs, "file", b"x")
    memfs.symlink("file", "link")
    memfs.symlink("sub", "dirlink")
    assert list_dir(top) == [
        Dirent("dirlink", DirentType.LINK),
        Dirent("file", DirentType.FILE),
        Dirent("link", DirentType.LINK),
        Dirent("sub", DirentType.DIR),
    ]


def test_empty_directory(top):
    assert list_dir(top.mkdir("d", 0o755)) == []


def test_subdirectory(memfs, top):
    d = top.mkdir("d", 0o755)
    write_file(memfs, "d/inner")
    write_file(memfs, "outer")
    assert [e.name for e in list_dir(d)] == ["inner"]


def test_rereads_on_every_call(memfs, top):
    handle = top.open(os.O_RDONLY, is_dir=True)
    assert handle.read_dir_all() == []
    write_file(memfs, "late")
    assert handle.read_dir_all() == [Dirent("late", DirentType.FILE)]


def test_keeps_backend_order(memfs):
    class Reversed(MemoryFS):
        def read_dir(self, path):
            return list(reversed(super().read_dir(path)))

    fs = Reversed()
    for name in ("a", "b", "c"):
        write_file(fs, name)
    assert [e.name for e in list_dir(Root(fs).node())] == ["c", "b", "a"]


def test_other_file_types_are_files(memfs):
    class Fifo:
        st_mode = stat.S_IFIFO | 0o644

    class WithFifo(MemoryFS):
        def read_dir(self, path):
            return [("pipe", Fifo())]

    assert list_dir(Root(WithFifo()).node()) == [Dirent("pipe", DirentType.FILE)]


def test_missing_directory(top):
    with pytest.raises(FSError) as excinfo:
        list_dir(top.lookup("nope"))
    assert excinfo.value.errno == errno.ENOENT


def test_without_dir_capability(basic_root):
    with pytest.raises(FSError) as excinfo:
        list_dir(basic_root.node())
    assert excinfo.value.errno == errno.ENOSYS


def test_through_osfs(osfs):
    top = Root(osfs).node()
    top.mkdir("d", 0o755)
    top.create("f", os.O_CREAT | os.O_WRONLY, 0o644)[1].release()
    top.symlink("f", "l")
    entries = sorted(list_dir(top))
    assert entries == [
        Dirent("d", DirentType.DIR),
        Dirent("f", DirentType.FILE),
        Dirent("l", DirentType.LINK),
    ]
