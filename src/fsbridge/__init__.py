"""
FUSE adapter for pluggable filesystems.
This package translates FUSE requests into calls on a backing filesystem that
implements the contracts in fsbridge.capabilities.
"""

from .attributes import Attr, Dirent, DirentType
from .errors import FSError, convert_error
from .handle import DirHandle, Handle
from .node import Node, SetattrRequest, SetattrValid
from .root import CallHook, Op, Root

__all__ = ['Attr', 'Dirent', 'DirentType', 'FSError', 'convert_error', 'DirHandle', 'Handle',
           'Node', 'SetattrRequest', 'SetattrValid', 'CallHook', 'Op', 'Root']
