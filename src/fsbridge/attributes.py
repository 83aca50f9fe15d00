"""
Attribute records handed back to FUSE.
"""
import stat
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, NamedTuple

MAX_SIZE = 2 ** 64 - 1


@dataclass
class Attr:
    """
    File attributes as reported to the kernel.

    Only mode, size and mtime are filled from backend metadata, the rest
    keep their defaults since not every backend can report them.
    """
    mode: int = 0
    size: int = 0
    mtime: float = 0.0
    atime: float = 0.0
    ctime: float = 0.0
    uid: int = 0
    gid: int = 0
    ino: int = 0
    nlink: int = 0
    blocks: int = 0

    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.mode)

    def is_link(self) -> bool:
        return stat.S_ISLNK(self.mode)


def file_info_to_attr(info: Any) -> Attr:
    """Build an Attr from a stat-like object (st_mode, st_size, st_mtime)."""
    size = min(max(int(info.st_size), 0), MAX_SIZE)
    return Attr(mode=info.st_mode, size=size, mtime=float(info.st_mtime))


class DirentType(IntEnum):
    """Directory entry types, numbered like the DT_* constants."""
    FILE = 8
    DIR = 4
    LINK = 10


class Dirent(NamedTuple):
    name: str
    type: DirentType


def dirent_type(mode: int) -> DirentType:
    if stat.S_ISDIR(mode):
        return DirentType.DIR
    if stat.S_ISLNK(mode):
        return DirentType.LINK
    return DirentType.FILE
