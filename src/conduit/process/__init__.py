"""Process pool and handles for CLI children."""

from conduit.process.handle import ProcessHandle, ProcessKind, PtyHandle, StdioHandle
from conduit.process.pool import PoolHealth, PoolStats, ProcessPool

__all__ = [
    "PoolHealth",
    "PoolStats",
    "ProcessHandle",
    "ProcessKind",
    "ProcessPool",
    "PtyHandle",
    "StdioHandle",
]
