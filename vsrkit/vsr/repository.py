"""Vsr repository operations for vsrkit."""

from __future__ import annotations

import asyncio
import logging
import os
import posixpath
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Sequence

import filetype

from vsrkit.errors import ErrorCode, ParseError, VsrError
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
    StatusResult,
    Submodule,
)
from vsrkit.vsr.parsers import (
    COMMIT_FORMAT,
    parse_branch_commit,
    parse_commits,
    parse_configs,
    parse_head,
    parse_ls_files,
    parse_ls_tree,
    parse_name_status,
    parse_refs,
    parse_remotes,
    parse_stashes,
    parse_status,
    parse_submodules,
    parse_tracking_branches,
    parse_upstream,
    strip_commit_message_comments,
)
from vsrkit.vsr.runner import CancellationToken, ExecutionResult
from vsrkit.vsr.utils import (
    Limiter,
    decode,
    detect_unicode_encoding,
    group_by,
    sanitize_path,
    split_in_chunks,
)

if TYPE_CHECKING:
    from vsrkit.vsr.runner import Vsr

logger = logging.getLogger(__name__)

__all__ = ["Repository"]

DEFAULT_LOG_ENTRIES = 32
OBJECT_SNIFF_BYTES = 4100
DEFAULT_MODE = "100644"

_UNMERGED_COMMIT_RE = re.compile(r"unmerged files")
_DIRTY_TREE_RE = re.compile(r"Please,? commit your changes or stash them")
_REMOTE_CONNECTION_RE = re.compile(r"Could not read from remote repository")
_PULL_DIRTY_RE = re.compile(
    r"Pull is not possible because you have unmerged files"
    r"|Cannot pull with rebase: You have unstaged changes"
    r"|Your local changes to the following files would be overwritten"
    r"|Please, commit your changes before you can merge",
    re.IGNORECASE,
)


class Repository:
    """A vsr working copy with one method per command.

    Each method builds an argument list, runs it through the owning Vsr,
    refines the error code of failures where the command gives more
    context, and parses successful output into records.
    """

    def __init__(self, vsr: "Vsr", root: Path | str, dot_dir: Path | str):
        """Initialize a Repository.

        Args:
            vsr: Runner used for every command.
            root: Working copy root.
            dot_dir: Control directory of the working copy.
        """
        self._vsr = vsr
        self.handle = RepositoryHandle(root=Path(root), dot_dir=Path(dot_dir))

    @property
    def vsr(self) -> "Vsr":
        return self._vsr

    @property
    def root(self) -> Path:
        return self.handle.root

    @property
    def dot_dir(self) -> Path:
        return self.handle.dot_dir

    async def run(self, args: Sequence[str], **kwargs: Any) -> ExecutionResult:
        """Run a vsr command in this repository.

        Args:
            args: Vsr command arguments.
            **kwargs: Additional arguments to Vsr.exec.

        Returns:
            The execution result.
        """
        return await self._vsr.exec(self.root, list(args), **kwargs)

    def _chunks(self, paths: Sequence[str]) -> list[list[str]]:
        return list(split_in_chunks([sanitize_path(p) for p in paths], self._vsr.max_cli_length))

    # =========================================================================
    # Configuration
    # =========================================================================

    async def config(self, scope: Optional[str], key: str, value: Optional[str] = None, **kwargs: Any) -> str:
        args = ["config"]

        if scope:
            args.append(f"--{scope}")

        args.append(key)

        if value:
            args.append(value)

        result = await self.run(args, **kwargs)
        return result.stdout.strip()

    async def get_configs(self, scope: Optional[str] = None) -> list[ConfigEntry]:
        args = ["config"]

        if scope:
            args.append(f"--{scope}")

        args.append("-l")

        result = await self.run(args)
        return parse_configs(result.stdout)

    # =========================================================================
    # History
    # =========================================================================

    async def log(self, max_entries: Optional[int] = None, path: Optional[str] = None) -> list[Commit]:
        """Get commit history.

        Args:
            max_entries: Maximum number of commits.
            path: Restrict history to a path.

        Returns:
            Commits newest first, or an empty list for an empty repository.
        """
        entries = max_entries if max_entries is not None else DEFAULT_LOG_ENTRIES
        args = ["log", f"-n{entries}", f"--format={COMMIT_FORMAT}", "-l", "--"]

        if path:
            args.append(sanitize_path(path))

        result = await self.run(args, check=False)
        if result.exit_code:
            return []

        return parse_commits(result.stdout)

    async def log_file(
        self,
        path: Path | str,
        max_entries: Optional[int] = None,
        hash: Optional[str] = None,
        reverse: bool = False,
        sort_by_author_date: bool = False,
    ) -> list[Commit]:
        """Get the history of a single file.

        Args:
            path: File path.
            max_entries: Maximum number of commits (ignored when reversing).
            hash: Start from this commit.
            reverse: Walk forward from ``hash`` to HEAD.
            sort_by_author_date: Order by author date.

        Returns:
            Commits, or an empty list when the file has no history.
        """
        args = ["log", f"--format={COMMIT_FORMAT}", "-j"]

        if max_entries and not reverse:
            args.append(f"-n{max_entries}")

        if hash:
            if reverse:
                args.extend(["--reverse", "--ancestry-path", f"{hash}..HEAD"])
            else:
                args.append(hash)

        if sort_by_author_date:
            args.append("--author-date-order")

        args.extend(["--", sanitize_path(str(path))])

        result = await self.run(args, check=False)
        if result.exit_code:
            return []

        return parse_commits(result.stdout)

    async def get_commit(self, ref: str) -> Commit:
        """Get a single commit.

        Raises:
            ParseError: If the output holds no commit record.
        """
        result = await self.run(["show", "-s", f"--format={COMMIT_FORMAT}", "-j", ref])
        commits = parse_commits(result.stdout)
        if not commits:
            raise ParseError("bad commit format", result.stdout)
        return commits[0]

    async def blame(self, path: str) -> str:
        try:
            result = await self.run(["blame", sanitize_path(path)])
            return result.stdout.strip()
        except VsrError as err:
            if re.search(r"^fatal: no such path", err.stderr or "", re.MULTILINE):
                err.error_code = ErrorCode.NO_PATH_FOUND
            raise

    # =========================================================================
    # Objects
    # =========================================================================

    async def buffer(self, object: str) -> bytes:
        """Get the raw content of a file at a version.

        Args:
            object: ``<version>:<path>``; an empty version means the working copy.

        Raises:
            VsrError: If the object cannot be shown.
        """
        args = ["show", "-d"]

        version, _, file_path = object.partition(":")
        if version:
            args.extend(["-v", version])
        args.append(file_path)

        result = await self._vsr.exec_buffer(self.root, args)

        if result.exit_code:
            err = VsrError(message="Could not show object.", exit_code=result.exit_code, stderr=result.stderr, command="show")
            if re.search(r"exists on disk, but not in", result.stderr):
                err.error_code = ErrorCode.WRONG_CASE
            raise err

        return result.stdout

    async def buffer_string(self, object: str, encoding: str = "utf-8", auto_guess_encoding: bool = False) -> str:
        stdout = await self.buffer(object)

        if auto_guess_encoding:
            encoding = detect_unicode_encoding(stdout) or encoding

        return decode(stdout, encoding)

    async def get_object_details(self, treeish: str, path: str) -> ObjectDetails:
        """Get mode, object id and size of a file.

        Raises:
            VsrError: With UnknownPath if vsr does not know the path.
        """
        result = await self.run(["status", "-j", "-a", sanitize_path(path)])
        status = parse_status(result.stdout)

        if not status.resources:
            raise VsrError(message="Path not known by vsr", error_code=ErrorCode.UNKNOWN_PATH)

        resource = status.resources[0]
        # vsr does not report file modes
        return ObjectDetails(mode=DEFAULT_MODE, object=resource.hash or "", size=resource.length or 0)

    async def lstree(self, treeish: str, path: str) -> list[LsTreeElement]:
        result = await self.run(["ls-tree", "-l", treeish, "--", sanitize_path(path)])
        return parse_ls_tree(result.stdout)

    async def lsfiles(self, path: str) -> list[LsFilesElement]:
        result = await self.run(["ls-files", "--stage", "--", sanitize_path(path)])
        return parse_ls_files(result.stdout)

    async def get_relative_path(self, ref: Optional[str], relative_path: str) -> str:
        """Find the stored spelling of a path, matching case-insensitively."""
        lowercase = relative_path.lower()
        dirname = posixpath.dirname(relative_path) or "."
        dirname += "/"

        elements: Sequence[LsTreeElement | LsFilesElement]
        if ref:
            elements = await self.lstree(ref, dirname)
        else:
            elements = await self.lsfiles(dirname)

        for element in elements:
            if element.file.lower() == lowercase:
                return element.file

        raise VsrError(message="Vsr relative path not found.")

    async def detect_object_type(self, object: str) -> ObjectType:
        """Guess the MIME type and text encoding of a stored object.

        Only the first few kilobytes are read. A NUL byte outside UTF-16
        content marks the object as binary.
        """
        buffer = await self._vsr.read_bytes(self.root, ["show", object], OBJECT_SNIFF_BYTES)

        encoding = detect_unicode_encoding(buffer)
        is_text = True

        if encoding not in ("utf-16le", "utf-16be"):
            is_text = b"\x00" not in buffer

        if not is_text:
            kind = filetype.guess(buffer)
            if kind is None:
                return ObjectType(mimetype="application/octet-stream")
            return ObjectType(mimetype=kind.mime)

        return ObjectType(mimetype="text/plain", encoding=encoding)

    async def hash_object(self, data: str) -> str:
        result = await self.run(["hash-object", "-w", "--stdin"], input=data)
        return result.stdout.strip()

    # =========================================================================
    # Diffs
    # =========================================================================

    async def apply(self, patch: str, reverse: bool = False) -> None:
        args = ["apply", patch]

        if reverse:
            args.append("-R")

        try:
            await self.run(args)
        except VsrError as err:
            if re.search(r"patch does not apply", err.stderr or ""):
                err.error_code = ErrorCode.PATCH_DOES_NOT_APPLY
            raise

    async def diff(self, cached: bool = False) -> str:
        args = ["diff"]

        if cached:
            args.append("--cached")

        result = await self.run(args)
        return result.stdout

    async def diff_with_head(self, path: Optional[str] = None) -> str | list[Change]:
        """Diff the working copy against HEAD.

        Returns:
            The changed files when no path is given, otherwise the patch text.
        """
        if not path:
            return await self._diff_files(False)

        result = await self.run(["diff", "--", sanitize_path(path)])
        return result.stdout

    async def diff_with(self, ref: str, path: Optional[str] = None) -> str | list[Change]:
        if not path:
            return await self._diff_files(False, ref)

        result = await self.run(["diff", ref, "--", sanitize_path(path)])
        return result.stdout

    async def diff_index_with_head(self, path: Optional[str] = None) -> str | list[Change]:
        if not path:
            return await self._diff_files(True)

        result = await self.run(["diff", "--cached", "--", sanitize_path(path)])
        return result.stdout

    async def diff_index_with(self, ref: str, path: Optional[str] = None) -> str | list[Change]:
        if not path:
            return await self._diff_files(True, ref)

        result = await self.run(["diff", "--cached", ref, "--", sanitize_path(path)])
        return result.stdout

    async def diff_blobs(self, object1: str, object2: str) -> str:
        result = await self.run(["diff", object1, object2])
        return result.stdout

    async def diff_between(self, ref1: str, ref2: str, path: Optional[str] = None) -> str | list[Change]:
        range_ = f"{ref1}...{ref2}"
        if not path:
            return await self._diff_files(False, range_)

        result = await self.run(["diff", range_, "--", sanitize_path(path)])
        return result.stdout.strip()

    async def _diff_files(self, cached: bool, ref: Optional[str] = None) -> list[Change]:
        args = ["diff", "--name-status", "-j", "--diff-filter=ADMR"]

        if cached:
            args.append("--cached")

        if ref:
            args.append(ref)

        result = await self.run(args, check=False)
        if result.exit_code:
            return []

        return parse_name_status(result.stdout, self.root)

    async def get_merge_base(self, ref1: str, ref2: str) -> str:
        result = await self.run(["merge-base", ref1, ref2])
        return result.stdout.strip()

    # =========================================================================
    # Working copy
    # =========================================================================

    async def add(self, paths: Optional[Sequence[str]] = None, update: bool = False) -> None:
        """Stage files.

        Args:
            paths: Files to add; everything when empty.
            update: Only stage files that are already tracked.
        """
        args = ["add", "-u" if update else "-A", "--"]

        if paths:
            args.extend(sanitize_path(p) for p in paths)
        else:
            args.append(".")

        await self.run(args)

    async def rm(self, paths: Sequence[str]) -> None:
        if not paths:
            return

        await self.run(["rm", "--", *(sanitize_path(p) for p in paths)])

    async def stage(self, path: str, data: str) -> None:
        """Write content to the index for a path without touching the file."""
        result = await self.run(
            ["hash-object", "--stdin", "-w", "--path", sanitize_path(path)],
            input=data,
            check=False,
        )

        if result.exit_code:
            raise VsrError(message="Could not hash object.", exit_code=result.exit_code, stderr=result.stderr)

        object_hash = result.stdout.strip()

        try:
            await self.get_commit("HEAD")
            treeish = "HEAD"
        except (VsrError, ParseError):
            treeish = ""

        add = ""
        try:
            details = await self.get_object_details(treeish, path)
            mode = details.mode
        except VsrError as err:
            if err.error_code != ErrorCode.UNKNOWN_PATH:
                raise
            mode = DEFAULT_MODE
            add = "--add"

        args = ["update-index"]
        if add:
            args.append(add)
        args.extend(["--cacheinfo", mode, object_hash, path])
        await self.run(args)

    async def checkout(self, treeish: Optional[str], paths: Optional[Sequence[str]] = None, track: bool = False) -> None:
        """Switch versions or restore paths.

        Long path lists are split across several invocations.
        """
        args = ["checkout", "-q"]

        if track:
            args.append("--track")

        if treeish:
            args.append(treeish)

        try:
            if paths:
                for chunk in self._chunks(paths):
                    await self.run([*args, "--", *chunk])
            else:
                await self.run(args)
        except VsrError as err:
            if _DIRTY_TREE_RE.search(err.stderr or ""):
                err.error_code = ErrorCode.DIRTY_WORKING_TREE
            raise

    async def clean(self, paths: Sequence[str]) -> None:
        """Delete untracked files, one batch per directory.

        At most ``clean_concurrency`` clean processes run at once. The first
        failure cancels the batches still queued or running and is re-raised.
        """
        groups = group_by([sanitize_path(p) for p in paths], os.path.dirname)
        limiter = Limiter(self._vsr.clean_concurrency)
        tasks = []

        for group in groups.values():
            for chunk in split_in_chunks(group, self._vsr.max_cli_length):
                tasks.append(
                    asyncio.ensure_future(
                        limiter.queue(lambda chunk=chunk: self.run(["clean", "-f", "-q", "--", *chunk]))
                    )
                )

        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def undo(self) -> None:
        await self.run(["clean", "-fd"])

        try:
            await self.run(["checkout", "--", "."])
        except VsrError as err:
            if re.search(r"did not match any file\(s\) known to (?:git|vsr)\.", err.stderr or ""):
                return
            raise

    async def reset(self, treeish: str, hard: bool = False) -> None:
        await self.run(["reset", "--hard" if hard else "--soft", treeish])

    async def revert(self, treeish: str, paths: Optional[Sequence[str]] = None) -> None:
        """Unstage paths, resetting them to ``treeish``."""
        result = await self.run(["branch"])

        # Without any branch there is nothing to reset to
        if not result.stdout:
            args = ["rm", "--cached", "-r", "--"]
        else:
            args = ["reset", "-q", treeish, "--"]

        if paths:
            args.extend(sanitize_path(p) for p in paths)
        else:
            args.append(".")

        try:
            await self.run(args)
        except VsrError as err:
            # Unresolved conflicts make reset print "needs merge" but succeed otherwise
            if re.search(r"([^:]+: needs merge\n)+", err.stdout or "", re.MULTILINE):
                return
            raise

    # =========================================================================
    # Commits
    # =========================================================================

    async def commit(self, message: str) -> None:
        try:
            await self.run(["commit", "-m", message])
        except VsrError as err:
            await self._handle_commit_error(err)

    async def rebase_abort(self) -> None:
        await self.run(["rebase", "--abort"])

    async def rebase_continue(self) -> None:
        try:
            await self.run(["rebase", "--continue"])
        except VsrError as err:
            await self._handle_commit_error(err)

    async def _handle_commit_error(self, commit_err: VsrError) -> None:
        """Re-raise a commit failure with the most specific code available.

        Unmerged files win outright; otherwise a missing user name or email
        replaces the original error.
        """
        if _UNMERGED_COMMIT_RE.search(commit_err.stderr or ""):
            commit_err.error_code = ErrorCode.UNMERGED_CHANGES
            raise commit_err

        try:
            await self.run(["config", "--get-all", "user.name"])
        except VsrError as err:
            err.error_code = ErrorCode.NO_USER_NAME_CONFIGURED
            raise err from commit_err

        try:
            await self.run(["config", "--get-all", "user.email"])
        except VsrError as err:
            err.error_code = ErrorCode.NO_USER_EMAIL_CONFIGURED
            raise err from commit_err

        raise commit_err

    async def get_merge_message(self) -> Optional[str]:
        merge_msg_path = self.dot_dir / "MERGE_MSG"

        try:
            raw = merge_msg_path.read_text(encoding="utf-8")
        except OSError:
            return None

        return strip_commit_message_comments(raw)

    async def get_commit_template(self) -> str:
        """Read the configured commit template, or return an empty string."""
        try:
            result = await self.run(["config", "--get", "commit.template"])
        except VsrError:
            return ""

        if not result.stdout:
            return ""

        home = os.path.expanduser("~")
        template_path = re.sub(
            r"^~([^/]*)/",
            lambda m: (os.path.join(os.path.dirname(home), m.group(1)) if m.group(1) else home) + "/",
            result.stdout.strip(),
        )

        if not os.path.isabs(template_path):
            template_path = str(self.root / template_path)

        try:
            raw = Path(template_path).read_text(encoding="utf-8")
        except OSError:
            return ""

        return strip_commit_message_comments(raw)

    # =========================================================================
    # Branches and tags
    # =========================================================================

    async def branch(self, name: str, checkout: bool, ref: Optional[str] = None) -> None:
        args = ["checkout", "-q", "-b", name, "--no-track"] if checkout else ["branch", "-q", name]

        if ref:
            args.append(ref)

        await self.run(args)

    async def delete_branch(self, name: str, force: bool = False) -> None:
        await self.run(["branch", "-D" if force else "-d", name])

    async def rename_branch(self, name: str) -> None:
        await self.run(["branch", "-m", name])

    async def set_branch_upstream(self, name: str, upstream: str) -> None:
        await self.run(["branch", "--set-upstream-to", upstream, name])

    async def delete_ref(self, ref: str) -> None:
        await self.run(["update-ref", "-d", ref])

    async def merge(self, ref: str) -> None:
        try:
            await self.run(["merge", ref])
        except VsrError as err:
            if re.search(r"^CONFLICT ", err.stdout or "", re.MULTILINE):
                err.error_code = ErrorCode.CONFLICT
            raise

    async def tag(self, name: str, message: Optional[str] = None) -> None:
        if message:
            args = ["tag", "-a", name, "-m", message]
        else:
            args = ["tag", name]

        await self.run(args)

    async def delete_tag(self, name: str) -> None:
        await self.run(["tag", "-d", name])

    async def get_head(self) -> Branch:
        """Get the current version and branch.

        Raises:
            ParseError: If ``vsr info`` output cannot be parsed.
        """
        result = await self.run(["info"])
        return parse_head(result.stdout)

    async def get_branch(self, name: str) -> Branch:
        """Get a branch with its head version and upstream state.

        Args:
            name: Branch name, or HEAD for the current branch.

        Raises:
            ParseError: If the branch does not exist or its listing or
                upstream status cannot be parsed.
        """
        if name == "HEAD":
            return await self.get_head()

        result = await self.run(["list-branches", "-p", name])

        if not result.stdout:
            raise ParseError("No such branch")

        commit = parse_branch_commit(result.stdout)

        try:
            ahead_result = await self.run(["ahead", "--branch", name])
        except VsrError:
            return Branch(type=RefType.HEAD, name=name, commit=commit)

        upstream = parse_upstream(ahead_result.stdout, name)
        if upstream is None:
            return Branch(type=RefType.HEAD, name=name, commit=commit)

        remote, ahead, behind = upstream
        return Branch(
            type=RefType.HEAD,
            name=name,
            commit=commit,
            upstream=remote,
            ahead=ahead,
            behind=behind,
        )

    async def get_refs(self, sort: Optional[str] = None, contains: Optional[str] = None) -> list[Ref]:
        """List branches, remote branches and tags.

        Args:
            sort: ``alphabetically`` (default) or ``committerdate``.
            contains: Only refs containing this commit.
        """
        args = ["for-each-ref", "--format", "%(refname) %(objectname)"]

        if sort and sort != "alphabetically":
            args.extend(["--sort", f"-{sort}"])

        if contains:
            args.extend(["--contains", contains])

        result = await self.run(args)
        return parse_refs(result.stdout)

    async def get_branches(self, remote: bool = False, contains: Optional[str] = None) -> list[Ref]:
        refs = await self.get_refs(contains=contains)
        return [ref for ref in refs if ref.type != RefType.TAG and (remote or not ref.remote)]

    async def find_tracking_branches(self, upstream_branch: str) -> list[Branch]:
        result = await self.run(
            ["for-each-ref", "--format", "%(refname:short)%00%(upstream:short)", "refs/heads"]
        )
        return parse_tracking_branches(result.stdout, upstream_branch)

    # =========================================================================
    # Remotes
    # =========================================================================

    async def add_remote(self, name: str, url: str) -> None:
        await self.run(["remote", "add", name, url])

    async def remove_remote(self, name: str) -> None:
        await self.run(["remote", "remove", name])

    async def rename_remote(self, name: str, new_name: str) -> None:
        await self.run(["remote", "rename", name, new_name])

    async def get_remotes(self) -> list[Remote]:
        result = await self.run(["list-remotes"])
        return parse_remotes(result.stdout)

    async def fetch(
        self,
        remote: Optional[str] = None,
        ref: Optional[str] = None,
        all: bool = False,
        prune: bool = False,
        depth: Optional[int] = None,
        silent: bool = False,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> None:
        """Fetch from a remote.

        Args:
            remote: Remote name; when omitted ``all`` selects every remote.
            ref: Ref to fetch from ``remote``.
            all: Fetch all remotes.
            prune: Remove stale remote branches.
            depth: Limit history depth.
            silent: Mark the invocation as a background fetch.
            cancellation_token: Kills the fetch when cancelled.
        """
        args = ["fetch"]
        env = None

        if remote:
            args.append(remote)
            if ref:
                args.append(ref)
        elif all:
            args.append("--all")

        if prune:
            args.append("--prune")

        if depth is not None:
            args.append(f"--depth={depth}")

        if silent:
            env = {"VSRKIT_FETCH_SILENT": "true"}

        try:
            await self.run(args, env=env, cancellation_token=cancellation_token)
        except VsrError as err:
            if re.search(r"No remote repository specified\.", err.stderr or ""):
                err.error_code = ErrorCode.NO_REMOTE_REPOSITORY_SPECIFIED
            elif _REMOTE_CONNECTION_RE.search(err.stderr or ""):
                err.error_code = ErrorCode.REMOTE_CONNECTION_ERROR
            raise

    async def pull(
        self,
        rebase: bool = False,
        remote: Optional[str] = None,
        branch: Optional[str] = None,
        unshallow: bool = False,
        tags: bool = False,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> None:
        args = ["pull"]

        if tags:
            args.append("--tags")

        if unshallow:
            args.append("--unshallow")

        if rebase:
            args.append("-r")

        if remote and branch:
            args.extend([remote, branch])

        try:
            await self.run(args, cancellation_token=cancellation_token)
        except VsrError as err:
            stderr = err.stderr or ""
            if re.search(r"^CONFLICT \([^)]+\): \b", err.stdout or "", re.MULTILINE):
                err.error_code = ErrorCode.CONFLICT
            elif re.search(r"Please tell me who you are\.", stderr):
                err.error_code = ErrorCode.NO_USER_NAME_CONFIGURED
            elif _REMOTE_CONNECTION_RE.search(stderr):
                err.error_code = ErrorCode.REMOTE_CONNECTION_ERROR
            elif _PULL_DIRTY_RE.search(stderr):
                err.stderr = re.sub(
                    r"Cannot pull with rebase: You have unstaged changes",
                    "Cannot pull with rebase, you have unstaged changes",
                    stderr,
                    flags=re.IGNORECASE,
                )
                err.error_code = ErrorCode.DIRTY_WORKING_TREE
            elif re.search(r"cannot lock ref|unable to update local ref", stderr, re.IGNORECASE):
                err.error_code = ErrorCode.CANT_LOCK_REF
            elif re.search(r"cannot rebase onto multiple branches", stderr, re.IGNORECASE):
                err.error_code = ErrorCode.CANT_REBASE_MULTIPLE_BRANCHES
            raise

    async def push(
        self,
        remote: Optional[str] = None,
        name: Optional[str] = None,
        set_upstream: bool = False,
        tags: bool = False,
        force_push_mode: Optional[ForcePushMode] = None,
    ) -> None:
        args = ["push"]

        if force_push_mode == ForcePushMode.FORCE_WITH_LEASE:
            args.append("--force-with-lease")
        elif force_push_mode == ForcePushMode.FORCE:
            args.append("--force")

        if set_upstream:
            args.append("-u")

        if tags:
            args.append("--follow-tags")

        if remote:
            args.append(remote)

        if name:
            args.append(name)

        try:
            await self.run(args)
        except VsrError as err:
            stderr = err.stderr or ""
            if re.search(r"^error: failed to push some refs to\b", stderr, re.MULTILINE):
                err.error_code = ErrorCode.PUSH_REJECTED
            elif _REMOTE_CONNECTION_RE.search(stderr):
                err.error_code = ErrorCode.REMOTE_CONNECTION_ERROR
            elif re.search(r"^fatal: The current branch .* has no upstream branch", stderr):
                err.error_code = ErrorCode.NO_UPSTREAM_BRANCH
            raise

    # =========================================================================
    # Stashes
    # =========================================================================

    async def create_stash(self, message: Optional[str] = None, include_untracked: bool = False) -> None:
        args = ["stash", "push"]

        if include_untracked:
            args.append("-u")

        if message:
            args.extend(["-m", message])

        try:
            await self.run(args)
        except VsrError as err:
            if re.search(r"No local changes to save", err.stderr or ""):
                err.error_code = ErrorCode.NO_LOCAL_CHANGES
            raise

    async def pop_stash(self, index: Optional[int] = None) -> None:
        await self._pop_or_apply_stash(["stash", "pop"], index)

    async def apply_stash(self, index: Optional[int] = None) -> None:
        await self._pop_or_apply_stash(["stash", "apply"], index)

    async def _pop_or_apply_stash(self, args: list[str], index: Optional[int] = None) -> None:
        if index is not None:
            args.append(f"stash@{{{index}}}")

        try:
            await self.run(args)
        except VsrError as err:
            if re.search(r"No stash found", err.stderr or ""):
                err.error_code = ErrorCode.NO_STASH_FOUND
            elif re.search(r"error: Your local changes to the following files would be overwritten", err.stderr or ""):
                err.error_code = ErrorCode.LOCAL_CHANGES_OVERWRITTEN
            elif re.search(r"^CONFLICT", err.stdout or "", re.MULTILINE):
                err.error_code = ErrorCode.STASH_CONFLICT
            raise

    async def drop_stash(self, index: Optional[int] = None) -> None:
        args = ["stash", "drop"]

        if index is not None:
            args.append(f"stash@{{{index}}}")

        try:
            await self.run(args)
        except VsrError as err:
            if re.search(r"No stash found", err.stderr or ""):
                err.error_code = ErrorCode.NO_STASH_FOUND
            raise

    async def get_stashes(self) -> list[Stash]:
        result = await self.run(["stash", "list"])
        return parse_stashes(result.stdout)

    # =========================================================================
    # Status
    # =========================================================================

    async def get_status(self, limit: Optional[int] = None) -> StatusResult:
        """Get the status of every changed, untracked or ignored resource.

        ``status -j`` prints a single JSON document, so the whole output is
        read and parsed before truncating. The limit bounds the size of the
        result, not the time or memory spent reading it.

        Args:
            limit: Maximum number of entries; defaults to the runner setting.

        Returns:
            The statuses and whether the list was truncated.
        """
        limit = limit if limit is not None else self._vsr.status_limit
        result = await self.run(["status", "-j"])
        statuses: list[FileStatus] = parse_status(result.stdout).file_statuses

        if len(statuses) > limit:
            return StatusResult(status=statuses[:limit], did_hit_limit=True)

        return StatusResult(status=statuses, did_hit_limit=False)

    # =========================================================================
    # Submodules
    # =========================================================================

    async def update_submodules(self, paths: Sequence[str]) -> None:
        for chunk in self._chunks(paths):
            await self.run(["submodule", "update", "--", *chunk])

    async def get_submodules(self) -> list[Submodule]:
        modules_path = self.root / ".gitmodules"

        try:
            raw = modules_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []

        return parse_submodules(raw)
