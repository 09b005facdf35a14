"""Versionr integration for vsrkit.

This package drives the external ``vsr`` tool: it runs commands as
subprocesses, classifies their failures, and parses their output into
typed records.
"""

from vsrkit.vsr.classifier import get_error_code
from vsrkit.vsr.models import (
    Branch,
    Change,
    Commit,
    ConfigEntry,
    FileStatus,
    ForcePushMode,
    LsFilesElement,
    LsTreeElement,
    ObjectDetails,
    ObjectType,
    Ref,
    RefType,
    Remote,
    RepositoryHandle,
    Stash,
    Status,
    StatusResult,
    Submodule,
    Upstream,
    VsrInfo,
)
from vsrkit.vsr.output import OutputChannel, forward_to_logger
from vsrkit.vsr.repository import Repository
from vsrkit.vsr.runner import (
    CancellationToken,
    ExecutionResult,
    Vsr,
    VsrProcess,
    find_vsr,
)
from vsrkit.vsr.utils import (
    Limiter,
    find_repository_root,
    is_repository,
    sanitize_path,
    split_in_chunks,
)

__all__ = [
    # Runner
    "Vsr",
    "VsrProcess",
    "ExecutionResult",
    "CancellationToken",
    "find_vsr",
    # Facade
    "Repository",
    # Observability
    "OutputChannel",
    "forward_to_logger",
    # Classification
    "get_error_code",
    # Data classes
    "Branch",
    "Change",
    "Commit",
    "ConfigEntry",
    "FileStatus",
    "ForcePushMode",
    "LsFilesElement",
    "LsTreeElement",
    "ObjectDetails",
    "ObjectType",
    "Ref",
    "RefType",
    "Remote",
    "RepositoryHandle",
    "Stash",
    "Status",
    "StatusResult",
    "Submodule",
    "Upstream",
    "VsrInfo",
    # Utility functions
    "Limiter",
    "find_repository_root",
    "is_repository",
    "sanitize_path",
    "split_in_chunks",
]
