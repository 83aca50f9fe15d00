"""
Mount root: owns the backing filesystem and the call hook.
"""
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from .capabilities import Basic
from .errors import translate_errors


class Op(str, Enum):
    """Kinds of requests passed to the call hook."""
    GETATTR = "getattr"
    LOOKUP = "lookup"
    MKDIR = "mkdir"
    REMOVE = "remove"
    SYMLINK = "symlink"
    READLINK = "readlink"
    RENAME = "rename"
    SETATTR = "setattr"
    CREATE = "create"
    OPEN = "open"
    READ = "read"
    WRITE = "write"
    RELEASE = "release"
    READDIR = "readdir"


CallHook = Callable[[Op, Mapping[str, Any]], Optional[BaseException]]


class Root:
    """
    Entry point of a mounted tree.

    The backing filesystem is never reassigned after construction, so every
    Node and Handle derived from one Root shares it without locking.
    """
    underlying: Basic
    call_hook: Optional[CallHook]

    def __init__(self, underlying: Basic, call_hook: Optional[CallHook] = None):
        if not isinstance(underlying, Basic):
            raise TypeError(f"{type(underlying).__name__} does not implement the Basic filesystem contract")
        self.underlying = underlying
        self.call_hook = call_hook

    def node(self):
        """Return the Node for the top of the mount."""
        from .node import Node
        return Node(self, "")

    def check(self, op: Op, **params: Any) -> None:
        """Run the call hook, raising its translated error if it vetoes."""
        if self.call_hook is None:
            return
        with translate_errors():
            err = self.call_hook(op, params)
            if err is not None:
                raise err
