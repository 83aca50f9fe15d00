import os

import pytest

from fsbridge.backends import OSFS, BasicOnly, MemoryFS
from fsbridge.root import Root


@pytest.fixture
def memfs():
    return MemoryFS()


@pytest.fixture
def root(memfs):
    return Root(memfs)


@pytest.fixture
def top(root):
    return root.node()


@pytest.fixture
def basic_root(memfs):
    """A mount whose backend only offers the Basic contract."""
    return Root(BasicOnly(memfs))


@pytest.fixture
def osfs(tmp_path):
    base = tmp_path / "base"
    base.mkdir()
    return OSFS(str(base))


def write_file(memfs, path, data=b"", mode=0o644):
    fh = memfs.open_file(path, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, mode)
    try:
        fh.write(data)
    finally:
        fh.close()


def read_file(memfs, path):
    fh = memfs.open_file(path, os.O_RDONLY, 0)
    try:
        buf = bytearray(1 << 16)
        try:
            n = fh.read_at(buf, 0)
        except EOFError:
            n = 0
        return bytes(buf[:n])
    finally:
        fh.close()
