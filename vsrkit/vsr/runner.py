"""Process runner for the vsr command line tool.

This module spawns vsr, buffers its output, supports cooperative
cancellation, and turns failed invocations into VsrError instances.
It also locates the vsr binary on the current machine.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import re
import shutil
import sys
import time
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Mapping, Optional, Sequence, Union
from urllib.parse import quote, unquote

from vsrkit.errors import CommandCancelledError, VsrError, VsrNotFoundError
from vsrkit.vsr.classifier import get_error_code
from vsrkit.vsr.models import VsrInfo
from vsrkit.vsr.output import OutputChannel
from vsrkit.vsr.parsers import parse_version
from vsrkit.vsr.utils import DOT_DIR, decode, sanitize_path

if TYPE_CHECKING:
    from vsrkit.vsr.repository import Repository

logger = logging.getLogger(__name__)

NO_COLOURS_FLAG = "--nocolours"

# Applied on top of the inherited environment for every invocation
FIXED_ENV = {
    "LC_ALL": "en_US.UTF-8",
    "LANG": "en_US.UTF-8",
    "GIT_PAGER": "cat",
}

_READ_CHUNK = 64 * 1024


@dataclass(frozen=True)
class ExecutionResult:
    """Exit code and captured output of one invocation."""

    exit_code: int
    stdout: Union[str, bytes]
    stderr: str


class CancellationToken:
    """Cooperative cancellation signal shared between caller and runner."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def is_cancellation_requested(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


StreamListener = Callable[[bytes], None]


class VsrProcess:
    """A live vsr subprocess.

    Listeners attached with ``on_stdout``/``on_stderr`` see every chunk as
    it is read, alongside the runner's own buffering.
    """

    def __init__(self, process: asyncio.subprocess.Process, args: Sequence[str]):
        self.process = process
        self.args = list(args)
        self.started_at = time.monotonic()
        self._stdout_listeners: list[StreamListener] = []
        self._stderr_listeners: list[StreamListener] = []

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    def on_stdout(self, listener: StreamListener) -> None:
        self._stdout_listeners.append(listener)

    def on_stderr(self, listener: StreamListener) -> None:
        self._stderr_listeners.append(listener)

    def kill(self) -> None:
        """Terminate the process, ignoring failures."""
        with suppress(ProcessLookupError, OSError):
            self.process.kill()

    async def wait(self) -> int:
        return await self.process.wait()


async def _read_stream(stream: Optional[asyncio.StreamReader], listeners: list[StreamListener]) -> bytes:
    if stream is None:
        return b""

    chunks = []
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        chunks.append(chunk)
        for listener in listeners:
            try:
                listener(chunk)
            except Exception:
                logger.exception("Stream listener failed")

    return b"".join(chunks)


async def _feed_input(stdin: Optional[asyncio.StreamWriter], data: Optional[bytes]) -> None:
    if stdin is None:
        return

    try:
        if data:
            stdin.write(data)
            await stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        logger.debug("vsr closed its input before reading all of it")
    finally:
        stdin.close()


async def exec_process(
    child: VsrProcess,
    cancellation_token: Optional[CancellationToken] = None,
    input: Optional[bytes] = None,
) -> ExecutionResult:
    """Collect the exit code, stdout bytes and stderr text of a process.

    If the cancellation token fires first the process is killed and
    CommandCancelledError is raised.
    """
    command = child.args[0] if child.args else None

    if cancellation_token is not None and cancellation_token.is_cancellation_requested:
        child.kill()
        raise CommandCancelledError(command)

    async def communicate() -> ExecutionResult:
        stdout, stderr, _ = await asyncio.gather(
            _read_stream(child.process.stdout, child._stdout_listeners),
            _read_stream(child.process.stderr, child._stderr_listeners),
            _feed_input(child.process.stdin, input),
        )
        exit_code = await child.process.wait()
        return ExecutionResult(
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr.decode("utf-8", errors="replace"),
        )

    if cancellation_token is None:
        try:
            return await communicate()
        except asyncio.CancelledError:
            child.kill()
            raise

    result_task = asyncio.ensure_future(communicate())
    cancel_task = asyncio.ensure_future(cancellation_token.wait())

    try:
        done, _ = await asyncio.wait(
            {result_task, cancel_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        result_task.cancel()
        cancel_task.cancel()
        child.kill()
        raise

    if result_task in done:
        cancel_task.cancel()
        return result_task.result()

    child.kill()
    result_task.cancel()
    with suppress(asyncio.CancelledError):
        await result_task
    with suppress(asyncio.TimeoutError, ProcessLookupError):
        await asyncio.wait_for(child.wait(), timeout=5)

    raise CommandCancelledError(command)


class ProgressScraper:
    """Turn clone progress lines on stderr into percentage increments."""

    STAGES = (
        (re.compile(r"Counting objects:\s*(\d+)%", re.IGNORECASE), 0, 0.1),
        (re.compile(r"Compressing objects:\s*(\d+)%", re.IGNORECASE), 10, 0.1),
        (re.compile(r"Receiving objects:\s*(\d+)%", re.IGNORECASE), 20, 0.4),
        (re.compile(r"Resolving deltas:\s*(\d+)%", re.IGNORECASE), 60, 0.4),
    )

    def __init__(self, report: Callable[[int], None]):
        self._report = report
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self._total = 0
        self._previous = 0

    def feed(self, chunk: bytes) -> None:
        self._pending += self._decoder.decode(chunk)
        lines = re.split(r"\r\n|\r|\n", self._pending)
        self._pending = lines.pop()
        for line in lines:
            self._line(line)

    def _line(self, line: str) -> None:
        for pattern, base, weight in self.STAGES:
            match = pattern.search(line)
            if match:
                self._total = base + int(int(match.group(1)) * weight)
                break

        if self._total != self._previous:
            self._report(self._total - self._previous)
            self._previous = self._total


async def find_specific_vsr(path: str, on_lookup: Callable[[str], None]) -> VsrInfo:
    """Probe one candidate binary with ``--version``.

    Raises:
        VsrNotFoundError: If the binary is missing or exits non-zero.
    """
    on_lookup(path)

    resolved = shutil.which(path)
    if not resolved:
        raise VsrNotFoundError("Not found", path=path)

    try:
        process = await asyncio.create_subprocess_exec(
            resolved,
            "--version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
            stdin=asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        raise VsrNotFoundError("Not found", path=path) from e

    stdout, _ = await process.communicate()

    if process.returncode:
        raise VsrNotFoundError("Not found", path=path)

    return VsrInfo(path=path, version=parse_version(decode(stdout).strip()))


def candidate_paths(platform: str = sys.platform, environ: Optional[Mapping[str, str]] = None) -> list[str]:
    """Usual install locations of vsr on a platform, in probing order."""
    environ = os.environ if environ is None else environ

    if platform == "win32":
        bases = [
            environ.get("ProgramW6432"),
            environ.get("ProgramFiles(x86)"),
            environ.get("ProgramFiles"),
        ]
        if environ.get("LocalAppData"):
            bases.append(os.path.join(environ["LocalAppData"], "Programs"))
        return [os.path.join(base, "Versionr", "vsr.exe") for base in bases if base]

    return ["vsr"]


async def find_vsr(
    hint: Optional[str] = None,
    on_lookup: Optional[Callable[[str], None]] = None,
) -> VsrInfo:
    """Locate a working vsr binary.

    Candidates are probed one at a time: the hint first, then the
    platform defaults.

    Raises:
        VsrNotFoundError: If no candidate works.
    """
    on_lookup = on_lookup or (lambda path: logger.debug(f"Looking for vsr in: {path}"))
    candidates = ([hint] if hint else []) + candidate_paths()

    for candidate in candidates:
        try:
            return await find_specific_vsr(candidate, on_lookup)
        except VsrNotFoundError:
            logger.debug(f"No usable vsr at {candidate}")

    raise VsrNotFoundError()


class Vsr:
    """Entry point for running vsr commands."""

    def __init__(
        self,
        path: str,
        version: str = "?",
        env: Optional[Mapping[str, str]] = None,
        output: Optional[OutputChannel] = None,
        max_cli_length: int = 30000,
        clean_concurrency: int = 5,
        status_limit: int = 5000,
    ):
        """Initialize a Vsr runner.

        Args:
            path: Path to the vsr binary.
            version: Version string reported by the binary.
            env: Extra environment for every invocation.
            output: Sink for command echo and stderr; created if omitted.
            max_cli_length: Bound used when chunking path arguments.
            clean_concurrency: Simultaneous processes allowed by batch clean.
            status_limit: Default cap on status entries.
        """
        self.path = path
        self.version = version
        self.env = dict(env or {})
        self.output = output if output is not None else OutputChannel()
        self.max_cli_length = max_cli_length
        self.clean_concurrency = clean_concurrency
        self.status_limit = status_limit

    @classmethod
    def from_info(cls, info: VsrInfo, **kwargs) -> "Vsr":
        return cls(path=info.path, version=info.version, **kwargs)

    def open(self, repository: Path | str, dot_dir: Optional[Path | str] = None) -> "Repository":
        """Create a facade bound to a working copy root."""
        from vsrkit.vsr.repository import Repository

        root = Path(repository)
        return Repository(self, root, Path(dot_dir) if dot_dir else root / DOT_DIR)

    def dispose(self) -> None:
        """Tear down the output channel."""
        self.output.dispose()

    async def init(self, repository: Path | str) -> None:
        await self.exec(repository, ["init"])

    async def clone(
        self,
        url: str,
        parent_path: Path | str,
        progress: Optional[Callable[[int], None]] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> Path:
        """Clone a remote into a new folder below parent_path.

        Args:
            url: Remote URL.
            parent_path: Directory that receives the clone.
            progress: Called with percentage increments while cloning.
            cancellation_token: Aborts the clone when cancelled.

        Returns:
            Path of the new working copy.
        """
        parent = Path(parent_path)
        base_folder_name = re.sub(r"\.vsr$", "", re.sub(r"^.*[/\\]", "", unquote(url).rstrip("/"))) or "repository"
        folder_name = base_folder_name
        folder_path = parent / folder_name
        count = 1

        while count < 20 and folder_path.exists():
            folder_name = f"{base_folder_name}-{count}"
            count += 1
            folder_path = parent / folder_name

        parent.mkdir(parents=True, exist_ok=True)

        on_spawn = None
        if progress is not None:
            def on_spawn(child: VsrProcess) -> None:
                child.on_stderr(ProgressScraper(progress).feed)

        remote = quote(url, safe=":/?#[]@!$&'()*+,;=%~") if " " in url else url

        try:
            await self.exec(
                parent,
                ["clone", remote, str(folder_path), "--progress"],
                cancellation_token=cancellation_token,
                on_spawn=on_spawn,
            )
        except VsrError as err:
            if err.stderr:
                stderr = re.sub(r"^Cloning.+$", "", err.stderr, flags=re.MULTILINE).strip()
                err.stderr = re.sub(r"^ERROR:\s+", "", stderr).strip()
            raise

        return folder_path

    async def get_repository_root(self, repository_path: Path | str) -> Path:
        result = await self.exec(repository_path, ["root"])
        return Path(result.stdout.strip())

    async def get_repository_dot_dir(self, repository_path: Path | str) -> Path:
        root = await self.get_repository_root(repository_path)
        return Path(os.path.normpath(root / DOT_DIR))

    async def exec(
        self,
        cwd: Optional[Path | str],
        args: Sequence[str],
        *,
        input: Optional[str] = None,
        encoding: Optional[str] = None,
        log: bool = True,
        cancellation_token: Optional[CancellationToken] = None,
        on_spawn: Optional[Callable[[VsrProcess], None]] = None,
        env: Optional[Mapping[str, str]] = None,
        check: bool = True,
    ) -> ExecutionResult:
        """Run vsr and return decoded output.

        Args:
            cwd: Working directory.
            args: Arguments, starting with the verb.
            input: Text written to the process's stdin.
            encoding: Codec for stdout; unknown codecs fall back to UTF-8.
            log: Echo the invocation and stderr to the output channel.
            cancellation_token: Kills the process when cancelled.
            on_spawn: Called with the live process before output is read.
            env: Extra environment for this invocation.
            check: If True, raise VsrError on non-zero exit.

        Raises:
            VsrError: On non-zero exit (when check is set) or cancellation.
            VsrNotFoundError: If the binary cannot be resolved.
        """
        return await self._exec(
            cwd, args, input=input, log=log, cancellation_token=cancellation_token,
            on_spawn=on_spawn, env=env, check=check, encoding=encoding,
        )

    async def exec_buffer(
        self,
        cwd: Optional[Path | str],
        args: Sequence[str],
        *,
        log: bool = True,
        cancellation_token: Optional[CancellationToken] = None,
        check: bool = False,
    ) -> ExecutionResult:
        """Run vsr and return stdout as raw bytes."""
        return await self._exec(
            cwd, args, log=log, cancellation_token=cancellation_token, check=check, raw=True,
        )

    async def read_bytes(self, cwd: Optional[Path | str], args: Sequence[str], count: int) -> bytes:
        """Read at most ``count`` bytes of stdout, then terminate the process."""
        child = await self.spawn(args, cwd=cwd)
        data = b""

        try:
            stdout = child.process.stdout
            while stdout is not None and len(data) < count:
                chunk = await stdout.read(count - len(data))
                if not chunk:
                    break
                data += chunk
        finally:
            child.kill()
            with suppress(asyncio.TimeoutError, ProcessLookupError):
                await asyncio.wait_for(child.wait(), timeout=5)
            self._log_command(child)

        return data

    async def _exec(
        self,
        cwd: Optional[Path | str],
        args: Sequence[str],
        *,
        input: Optional[str] = None,
        encoding: Optional[str] = None,
        log: bool = True,
        cancellation_token: Optional[CancellationToken] = None,
        on_spawn: Optional[Callable[[VsrProcess], None]] = None,
        env: Optional[Mapping[str, str]] = None,
        check: bool = True,
        raw: bool = False,
    ) -> ExecutionResult:
        if cancellation_token is not None and cancellation_token.is_cancellation_requested:
            raise CommandCancelledError(args[0] if args else None)

        child = await self.spawn(args, cwd=cwd, env=env, stdin=input is not None)

        if on_spawn is not None:
            on_spawn(child)

        data = input.encode("utf-8") if input is not None else None

        try:
            buffer_result = await exec_process(child, cancellation_token, data)
        finally:
            if log:
                self._log_command(child)

        if log and buffer_result.stderr:
            self.log(f"{buffer_result.stderr}\n")

        stdout = buffer_result.stdout if raw else decode(buffer_result.stdout, encoding)
        result = ExecutionResult(
            exit_code=buffer_result.exit_code,
            stdout=stdout,
            stderr=buffer_result.stderr,
        )

        if result.exit_code and check:
            raise VsrError(
                message="Failed to execute vsr",
                stdout=stdout if isinstance(stdout, str) else decode(stdout),
                stderr=result.stderr,
                exit_code=result.exit_code,
                error_code=get_error_code(result.stderr),
                command=args[0] if args else None,
            )

        return result

    def _resolve_binary(self) -> str:
        if not self.path:
            raise VsrNotFoundError("vsr could not be found in the system.")

        resolved = shutil.which(self.path)
        if not resolved:
            raise VsrNotFoundError(f"vsr could not be found at {self.path}", path=self.path)

        return resolved

    def build_env(self, verb: Optional[str], env: Optional[Mapping[str, str]] = None) -> dict[str, str]:
        """Inherited environment, fixed overrides, instance env, then caller env."""
        merged = dict(os.environ)
        merged.update(FIXED_ENV)
        merged.update(self.env)
        if env:
            merged.update(env)
        if verb:
            merged["VSRKIT_COMMAND"] = verb
        return merged

    async def spawn(
        self,
        args: Sequence[str],
        cwd: Optional[Path | str] = None,
        env: Optional[Mapping[str, str]] = None,
        stdin: bool = False,
    ) -> VsrProcess:
        """Start vsr with the no-colour flag as the last argument.

        The flag appears exactly once, wherever the caller put it.

        Raises:
            VsrNotFoundError: If the binary path is empty or cannot be resolved.
        """
        binary = self._resolve_binary()
        argv = [arg for arg in args if arg != NO_COLOURS_FLAG]
        command = argv[0] if argv else None
        argv.append(NO_COLOURS_FLAG)

        logger.debug(f"Running vsr command: {' '.join(argv)}")

        try:
            process = await asyncio.create_subprocess_exec(
                binary,
                *argv,
                cwd=sanitize_path(str(cwd)) if cwd else None,
                env=self.build_env(command, env),
                stdin=asyncio.subprocess.PIPE if stdin else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise VsrError(message="Failed to execute vsr", command=command, cause=e) from e

        return VsrProcess(process, argv)

    def _log_command(self, child: VsrProcess) -> None:
        elapsed = int((time.monotonic() - child.started_at) * 1000)
        timestamp = datetime.now().strftime("%H:%M:%S")
        self.log(f"[{timestamp}] > vsr {' '.join(child.args)} [{elapsed}ms]\n")

    def log(self, output: str) -> None:
        self.output.emit(output)
