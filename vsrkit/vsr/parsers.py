"""Parsers for vsr command output.

Every function here is a pure function of the raw text it is given. Parsers
for best-effort data (tree listings, name-status diffs, modules files)
degrade to partial or empty results; parsers for structurally required data
(status JSON, HEAD and branch info) raise instead.
"""

from __future__ import annotations

import json
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vsrkit.errors import ParseError
from vsrkit.vsr.models import (
    Branch,
    Change,
    Commit,
    ConfigEntry,
    FileStatus,
    LsFilesElement,
    LsTreeElement,
    Ref,
    RefType,
    Remote,
    Stash,
    Status,
    Submodule,
    Upstream,
)

# %H %aN %aE %at %ct %P %B, one field per line, NUL after each record
COMMIT_FORMAT = "%H%n%aN%n%aE%n%at%n%ct%n%P%n%B"

_COMMIT_RE = re.compile(
    r"([0-9a-f]{40})\n(.*)\n(.*)\n(.*)\n(.*)\n(.*)(?:\n([\s\S]*?))?(?:\x00)",
    re.MULTILINE,
)
_VERSION_RE = re.compile(r"\(Versionr v([\d.]+)\s")
_LS_TREE_RE = re.compile(r"^(\S+)\s+(\S+)\s+(\S+)\s+(\S+)\s+(.*)$")
_LS_FILES_RE = re.compile(r"^(\S+)\s+(\S+)\s+(\S+)\s+(.*)$")
_SUBMODULE_SECTION_RE = re.compile(r'^\s*\[submodule "([^"]+)"\]\s*$')
_SUBMODULE_PROPERTY_RE = re.compile(r"^\s*(\w+)\s+=\s+(.*)$")
_HEAD_RE = re.compile(r'Version (\S+) on branch "(\S+)"')
_BRANCH_RE = re.compile(r"(\S+)\s-\s(\S+).*")
_CONNECTED_REMOTE_RE = re.compile(r"Connected to Remote:\s(\S+).*")
_NO_PROVIDER_RE = re.compile(r"No provider connected to remote URL")
_UPSTREAM_STATUS_RE = re.compile(r"Remote\s-\s(\S+)\s+-\sVersion:\s(\S+)\s\((\S+)\).*")
_STASH_RE = re.compile(r"^stash@\{(\d+)\}:(.+)$")
_REMOTE_RE = re.compile(r'^Remote\s+"(\S+)"\s+is\s+(vsr://.*)$')
_REF_HEAD_RE = re.compile(r"^refs/heads/([^ ]+) ([0-9a-f]{40})$")
_REF_REMOTE_RE = re.compile(r"^refs/remotes/([^/]+)/([^ ]+) ([0-9a-f]{40})$")
_REF_TAG_RE = re.compile(r"^refs/tags/([^ ]+) ([0-9a-f]{40})$")
_COMMENT_LINE_RE = re.compile(r"^\s*#.*$\n?", re.MULTILINE)


def parse_version(raw: str) -> str:
    """Extract the tool version from ``vsr --version`` output."""
    match = _VERSION_RE.search(raw)
    if match:
        return match.group(1)
    return "?"


def _timestamp(value: str) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def parse_commits(data: str) -> list[Commit]:
    """Parse log output produced with COMMIT_FORMAT.

    Args:
        data: Raw log output, one NUL-terminated record per commit.

    Returns:
        Commits in the order they appear in the output.
    """
    commits = []

    for match in _COMMIT_RE.finditer(data):
        ref, author_name, author_email, author_date, commit_date, parents, message = match.groups()
        message = message or ""

        if message.endswith("\n"):
            message = message[:-1]

        commits.append(
            Commit(
                hash=ref,
                message=message,
                parents=parents.split(" ") if parents else [],
                author_name=author_name,
                author_email=author_email,
                author_date=_timestamp(author_date),
                commit_date=_timestamp(commit_date),
            )
        )

    return commits


# =============================================================================
# Status JSON
# =============================================================================

_STAGED_CODES = {
    "modified": "M",
    "added": "A",
    "deleted": "D",
    "copied": "C",
    "renamed": "R",
}

_UNSTAGED_CODES = {
    "changed": ("", "M"),
    "added": ("", "A"),
    "deleted": ("", "D"),
    "copied": ("", "C"),
    "unversioned": ("?", "?"),
    "ignored": ("!", "!"),
}


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class JsonHead(_WireModel):
    """A head of the current branch."""

    id: Optional[str] = Field(default="", alias="ID")
    name: Optional[str] = Field(default="", alias="Name")
    timestamp: Optional[str] = Field(default="", alias="Timestamp")
    author: Optional[str] = Field(default="", alias="Author")


class JsonBranch(_WireModel):
    """Branch section of the status document."""

    name: Optional[str] = Field(default="", alias="Name")
    revision: Optional[int] = Field(default=0, alias="Revision")
    is_terminus: Optional[bool] = Field(default=False, alias="IsTerminus")
    heads: list[JsonHead] = Field(alias="Heads")


class JsonResource(_WireModel):
    """One resource entry of the status document."""

    staged: bool = Field(default=False, alias="Staged")
    status: str = Field(default="", alias="Status")
    status_code: Optional[str] = Field(default="", alias="StatusCode")
    read_only: Optional[bool] = Field(default=False, alias="ReadOnly")
    current_name: str = Field(default="", alias="CurrentName")
    canonical_name: str = Field(default="", alias="CanonicalName")
    is_file: Optional[bool] = Field(default=False, alias="IsFile")
    is_directory: Optional[bool] = Field(default=False, alias="IsDirectory")
    hash: Optional[str] = Field(default="", alias="Hash")
    length: Optional[int] = Field(default=0, alias="Length")
    removed: Optional[bool] = Field(default=False, alias="Removed")

    def to_file_status(self) -> FileStatus:
        """Map the staged flag and status keyword to index/work tree codes."""
        x = ""
        y = ""

        if self.staged:
            x = _STAGED_CODES.get(self.status, "")
        else:
            x, y = _UNSTAGED_CODES.get(self.status, ("", ""))

        # Copies and renames both surface as a name change
        renamed = self.current_name != self.canonical_name

        return FileStatus(
            x=x,
            y=y,
            path=self.current_name,
            rename=self.current_name if renamed else None,
            renamed_from=self.canonical_name if renamed else None,
        )


class JsonStatus(_WireModel):
    """The document printed by ``vsr status -j``."""

    version: Optional[str] = Field(default="", alias="Version")
    branch: JsonBranch = Field(alias="Branch")
    resources: list[JsonResource] = Field(alias="Resources")

    @property
    def file_statuses(self) -> list[FileStatus]:
        return [resource.to_file_status() for resource in self.resources]


def parse_status(raw: str) -> JsonStatus:
    """Parse ``status -j`` output.

    Empty output is a status with no resources.

    Raises:
        ParseError: If the output is not valid JSON or required sections
            are missing.
    """
    if not raw.strip():
        return JsonStatus.model_validate({"Branch": {"Heads": []}, "Resources": []})

    try:
        return JsonStatus.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ParseError("Error parsing status", raw) from e


# =============================================================================
# Diffs and listings
# =============================================================================

def _resolve(root: Path, resource_path: str) -> Path:
    if os.path.isabs(resource_path):
        return Path(resource_path)
    return Path(root) / resource_path


def parse_name_status(raw: str, root: Path | str) -> list[Change]:
    """Parse NUL-separated ``diff --name-status`` output.

    Parsing stops at the first unknown status letter or incomplete record.
    """
    root = Path(root)
    entries = raw.split("\x00")
    index = 0
    result: list[Change] = []

    while index < len(entries) - 1:
        change = entries[index]
        resource_path = entries[index + 1]
        index += 2

        if not change or not resource_path:
            break

        original_uri = _resolve(root, resource_path)

        # Rename and copy letters carry a score, e.g. 'R100'
        letter = change[0]

        if letter == "R":
            if index >= len(entries):
                break

            new_path = entries[index]
            index += 1

            if not new_path:
                break

            uri = _resolve(root, new_path)
            result.append(Change(uri=uri, original_uri=original_uri, rename_uri=uri, status=Status.RENAMED))
            continue

        if letter == "M":
            status = Status.MODIFIED
        elif letter == "A":
            status = Status.ADDED
        elif letter == "D":
            status = Status.DELETED
        else:
            break

        result.append(Change(uri=original_uri, original_uri=original_uri, rename_uri=original_uri, status=status))

    return result


def parse_ls_tree(raw: str) -> list[LsTreeElement]:
    """Parse ``ls-tree -l`` output, dropping malformed lines."""
    result = []
    for line in raw.split("\n"):
        match = _LS_TREE_RE.match(line) if line else None
        if match:
            mode, type_, obj, size, file = match.groups()
            result.append(LsTreeElement(mode=mode, type=type_, object=obj, size=size, file=file))
    return result


def parse_ls_files(raw: str) -> list[LsFilesElement]:
    """Parse ``ls-files --stage`` output, dropping malformed lines."""
    result = []
    for line in raw.split("\n"):
        match = _LS_FILES_RE.match(line) if line else None
        if match:
            mode, obj, stage, file = match.groups()
            result.append(LsFilesElement(mode=mode, object=obj, stage=stage, file=file))
    return result


def parse_submodules(raw: str) -> list[Submodule]:
    """Parse a ``.gitmodules``-style file.

    A record is only emitted once it has a name, a path and a url.
    """
    result: list[Submodule] = []
    current: dict[str, str] = {}

    def flush() -> None:
        if current.get("name") and current.get("path") and current.get("url"):
            result.append(Submodule(name=current["name"], path=current["path"], url=current["url"]))

    for line in re.split(r"\r?\n", raw):
        section = _SUBMODULE_SECTION_RE.match(line)

        if section:
            flush()
            current = {"name": section.group(1)}
            continue

        prop = _SUBMODULE_PROPERTY_RE.match(line)
        if not prop:
            continue

        key, value = prop.groups()
        if key in ("path", "url"):
            current[key] = value

    flush()
    return result


# =============================================================================
# Refs, branches and remotes
# =============================================================================

def parse_head(raw: str) -> Branch:
    """Parse ``vsr info`` output into the HEAD branch.

    Example input::

        Version deeff0de-8df7-4267-bf4e-0c058f541e9c on branch "master" (rev 4)

    Raises:
        ParseError: If the output does not describe a version on a branch.
    """
    if not raw:
        raise ParseError("Not in a branch")

    match = _HEAD_RE.search(raw)
    if not match:
        raise ParseError("Error parsing HEAD", raw)

    return Branch(type=RefType.HEAD, name=match.group(2), commit=match.group(1).strip())


def parse_branch_commit(raw: str) -> str:
    """Extract the head version from ``list-branches -p <name>`` output.

    Raises:
        ParseError: If no ``<name> - <version>`` line is present.
    """
    match = _BRANCH_RE.search(raw)
    if not match:
        raise ParseError("Error parsing branch info", raw)
    return match.group(2).strip()


def parse_upstream(raw: str, name: str) -> Optional[tuple[Upstream, int, int]]:
    """Parse ``ahead --branch <name>`` output.

    Returns:
        (upstream, ahead, behind), or None when no remote is connected.

    Raises:
        ParseError: If neither a connected remote nor the no-provider notice
            is found, or the final status line cannot be read.
    """
    lines = raw.strip().split("\n")
    first_line = lines[0]
    status_line = lines[-1]

    match = _CONNECTED_REMOTE_RE.search(first_line)
    if not match:
        if _NO_PROVIDER_RE.search(first_line):
            return None
        raise ParseError(f"Could not parse upstream branch: {name}", raw)

    remote = match.group(1)

    status = _UPSTREAM_STATUS_RE.search(status_line)
    if not status:
        raise ParseError(f"Could not parse upstream branch status: {name}", raw)

    # The tool reports direction only, not a count
    ahead = 1 if status.group(3) == "ahead" else 0
    behind = 1 if status.group(3) == "behind" else 0

    return Upstream(remote=remote, name=name), ahead, behind


def parse_refs(raw: str) -> list[Ref]:
    """Parse ``for-each-ref --format '%(refname) %(objectname)'`` output."""
    refs: list[Ref] = []

    for line in raw.strip().split("\n"):
        if not line:
            continue

        match = _REF_HEAD_RE.match(line)
        if match:
            refs.append(Ref(type=RefType.HEAD, name=match.group(1), commit=match.group(2)))
            continue

        match = _REF_REMOTE_RE.match(line)
        if match:
            refs.append(
                Ref(
                    type=RefType.REMOTE_HEAD,
                    name=f"{match.group(1)}/{match.group(2)}",
                    commit=match.group(3),
                    remote=match.group(1),
                )
            )
            continue

        match = _REF_TAG_RE.match(line)
        if match:
            refs.append(Ref(type=RefType.TAG, name=match.group(1), commit=match.group(2)))

    return refs


def parse_tracking_branches(raw: str, upstream_branch: str) -> list[Branch]:
    """Select local branches whose upstream is ``upstream_branch``.

    Input lines are ``<branch>\\0<upstream>``.
    """
    result = []
    for line in raw.strip().split("\n"):
        parts = line.strip().split("\x00")
        if len(parts) > 1 and parts[1] == upstream_branch:
            result.append(Branch(type=RefType.HEAD, name=parts[0]))
    return result


def parse_stashes(raw: str) -> list[Stash]:
    """Parse ``stash list`` output."""
    stashes = []
    for line in raw.strip().split("\n"):
        match = _STASH_RE.match(line) if line else None
        if match:
            stashes.append(Stash(index=int(match.group(1)), description=match.group(2)))
    return stashes


def parse_remotes(raw: str) -> list[Remote]:
    """Parse ``list-remotes`` output."""
    remotes = []
    for line in raw.strip().split("\n"):
        match = _REMOTE_RE.match(line) if line else None
        if match:
            remotes.append(Remote(name=match.group(1), push_url=match.group(2), is_read_only=False))
    return remotes


def parse_configs(raw: str) -> list[ConfigEntry]:
    """Parse ``config -l`` output into key/value pairs."""
    entries = []
    for line in re.split(r"\r\n|\r|\n", raw.strip()):
        if not line:
            continue
        key, _, value = line.partition("=")
        entries.append(ConfigEntry(key=key, value=value))
    return entries


def strip_commit_message_comments(message: str) -> str:
    """Remove ``#`` comment lines from a commit message."""
    return _COMMENT_LINE_RE.sub("", message).strip()
