"""
Reference backing filesystems.
"""

from .memory import MemoryFS, MemoryFile
from .osfs import OSFS, OSFile
from .wrappers import BasicOnly

BACKENDS = ("os", "memory")


def open_backend(name: str, basepath: str = ""):
    """
    Build a backend by name.

    Args:
        name: "os" for a directory of the host filesystem, "memory" for a
            throwaway in-memory tree
        basepath: Directory served by the "os" backend

    Returns:
        The backend object
    """
    if name == "memory":
        return MemoryFS()
    if name == "os":
        if not basepath:
            raise ValueError("the os backend needs a basepath")
        return OSFS(basepath)
    raise ValueError(f"unknown backend {name!r}, expected one of {', '.join(BACKENDS)}")


__all__ = ['MemoryFS', 'MemoryFile', 'OSFS', 'OSFile', 'BasicOnly', 'open_backend']
