"""
Ready-made call hooks.

A call hook sees every request before the backing filesystem does and may
veto it by returning an exception, which is translated like any backend
error.
"""
import logging
from typing import Any, Mapping, Optional

from .root import CallHook, Op

MUTATING_OPS = frozenset({
    Op.MKDIR, Op.REMOVE, Op.SYMLINK, Op.RENAME, Op.SETATTR, Op.CREATE, Op.WRITE,
})

WRITE_FLAGS = 0o3  # O_WRONLY | O_RDWR


def read_only(op: Op, params: Mapping[str, Any]) -> Optional[BaseException]:
    """Refuse everything that would modify the tree."""
    if op in MUTATING_OPS:
        return PermissionError(f"{op.value}: filesystem is mounted read-only")
    if op is Op.OPEN and params.get("flags", 0) & WRITE_FLAGS:
        return PermissionError("open for writing: filesystem is mounted read-only")
    return None


def audit(logger: Optional[logging.Logger] = None) -> CallHook:
    """Log every request. Never vetoes."""
    logger = logger or logging.getLogger("fsbridge.audit")

    def hook(op: Op, params: Mapping[str, Any]) -> Optional[BaseException]:
        logger.info("%s %s", op.value, ", ".join(f"{k}={v!r}" for k, v in params.items()))
        return None
    return hook


def chain(*hooks: Optional[CallHook]) -> Optional[CallHook]:
    """Combine hooks; the first one returning an error wins."""
    active = [h for h in hooks if h is not None]
    if not active:
        return None
    if len(active) == 1:
        return active[0]

    def hook(op: Op, params: Mapping[str, Any]) -> Optional[BaseException]:
        for h in active:
            err = h(op, params)
            if err is not None:
                return err
        return None
    return hook
