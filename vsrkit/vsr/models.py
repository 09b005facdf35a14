"""Structured records produced from vsr output."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from pathlib import Path
from typing import Optional


class Status(IntEnum):
    """Kind of change reported for a resource in a diff."""

    MODIFIED = 0
    ADDED = 1
    DELETED = 2
    RENAMED = 3
    UNTRACKED = 4


class RefType(IntEnum):
    """Kind of reference."""

    HEAD = 0
    REMOTE_HEAD = 1
    TAG = 2


class ForcePushMode(Enum):
    """How a push may overwrite the remote branch."""

    FORCE = "force"
    FORCE_WITH_LEASE = "force-with-lease"


@dataclass(frozen=True)
class VsrInfo:
    """A located vsr binary."""

    path: str
    version: str


@dataclass
class Commit:
    """A commit as emitted by the log command."""

    hash: str
    message: str
    parents: list[str] = field(default_factory=list)
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    author_date: Optional[datetime] = None
    commit_date: Optional[datetime] = None

    @property
    def short_hash(self) -> str:
        return self.hash[:7]

    def one_line(self) -> str:
        """Get a one-line representation."""
        subject = self.message.split("\n", 1)[0]
        return f"{self.short_hash} {subject[:60]}{'...' if len(subject) > 60 else ''}"


@dataclass
class FileStatus:
    """Status of one changed, untracked or ignored resource.

    ``x`` is the index (staged) state and ``y`` the working tree state,
    each a single status letter or an empty string.
    """

    x: str
    y: str
    path: str
    rename: Optional[str] = None
    renamed_from: Optional[str] = None


@dataclass
class Change:
    """A file-level change between two trees."""

    uri: Path
    original_uri: Path
    rename_uri: Optional[Path]
    status: Status


@dataclass
class Upstream:
    """Remote tracking information of a branch."""

    remote: str
    name: str


@dataclass
class Ref:
    """A branch, remote branch or tag."""

    type: RefType
    name: Optional[str] = None
    commit: Optional[str] = None
    remote: Optional[str] = None


@dataclass
class Branch(Ref):
    """A branch with optional upstream and divergence counts."""

    upstream: Optional[Upstream] = None
    ahead: Optional[int] = None
    behind: Optional[int] = None


@dataclass
class Remote:
    """A configured remote."""

    name: str
    fetch_url: Optional[str] = None
    push_url: Optional[str] = None
    is_read_only: bool = False


@dataclass
class Stash:
    """An entry of the stash list."""

    index: int
    description: str

    def one_line(self) -> str:
        return f"stash@{{{self.index}}}:{self.description}"


@dataclass
class Submodule:
    """A submodule declared in the modules file."""

    name: str
    path: str
    url: str


@dataclass
class LsTreeElement:
    """One row of a tree listing."""

    mode: str
    type: str
    object: str
    size: str
    file: str


@dataclass
class LsFilesElement:
    """One row of an index listing."""

    mode: str
    object: str
    stage: str
    file: str


@dataclass
class ObjectDetails:
    """Mode, object id and size of a versioned file."""

    mode: str
    object: str
    size: int


@dataclass
class ObjectType:
    """Best-effort content type of a stored object."""

    mimetype: str
    encoding: Optional[str] = None


@dataclass
class StatusResult:
    """File statuses and whether they were truncated."""

    status: list[FileStatus]
    did_hit_limit: bool = False


@dataclass
class ConfigEntry:
    """A key/value pair from a config listing."""

    key: str
    value: str


@dataclass(frozen=True)
class RepositoryHandle:
    """Root of a working copy and its control directory."""

    root: Path
    dot_dir: Path
