"""Pytest configuration and fixtures for vsrkit tests."""

import os
import sys
import tempfile
from pathlib import Path
from typing import Generator
from unittest.mock import AsyncMock

import pytest

from vsrkit.config import Settings, reset_settings
from vsrkit.vsr import OutputChannel, Repository, Vsr
from vsrkit.vsr.runner import ExecutionResult
from vsrkit.vsr.utils import DOT_DIR


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir: Path) -> Path:
    """Create a temporary config file."""
    config_path = temp_dir / "config.yaml"
    config_path.write_text(
        """
path: /opt/versionr/vsr

runner:
  max_cli_length: 4096
  clean_concurrency: 2
  env:
    VSR_TRACE: "1"

logging:
  level: debug
  file: "{log_file}"
""".format(log_file=str(temp_dir / "vsrkit.log").replace("\\", "/"))
    )
    return config_path


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with defaults only."""
    reset_settings()
    return Settings()


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Clean environment variables for testing."""
    original = {}
    env_vars = [
        "VSRKIT_PATH",
        "VSRKIT_RUNNER__MAX_CLI_LENGTH",
        "VSRKIT_RUNNER__STATUS_LIMIT",
        "VSRKIT_LOGGING__LEVEL",
    ]
    for var in env_vars:
        original[var] = os.environ.pop(var, None)

    reset_settings()

    yield

    for var, value in original.items():
        if value is not None:
            os.environ[var] = value
        elif var in os.environ:
            del os.environ[var]

    reset_settings()


@pytest.fixture
def working_copy(temp_dir: Path) -> Path:
    """Create a directory that looks like a vsr working copy."""
    (temp_dir / DOT_DIR).mkdir()
    return temp_dir


@pytest.fixture
def python_vsr() -> Vsr:
    """A runner that uses the current interpreter as the tool binary.

    Arguments such as ``["-c", "print(1)"]`` run a Python snippet; the
    trailing no-colour flag lands harmlessly in ``sys.argv``.
    """
    return Vsr(path=sys.executable, output=OutputChannel(history=50))


def _result(stdout: str = "", stderr: str = "", exit_code: int = 0) -> ExecutionResult:
    """Build an ExecutionResult for mocked invocations."""
    return ExecutionResult(exit_code=exit_code, stdout=stdout, stderr=stderr)


@pytest.fixture
def mock_vsr() -> Vsr:
    """A runner whose exec methods are AsyncMocks."""
    vsr = Vsr(path="vsr", max_cli_length=40, clean_concurrency=2, status_limit=3)
    vsr.exec = AsyncMock(return_value=_result())  # type: ignore[method-assign]
    vsr.exec_buffer = AsyncMock(return_value=ExecutionResult(exit_code=0, stdout=b"", stderr=""))  # type: ignore[method-assign]
    vsr.read_bytes = AsyncMock(return_value=b"")  # type: ignore[method-assign]
    return vsr


@pytest.fixture
def repo(mock_vsr: Vsr, working_copy: Path) -> Repository:
    """A repository facade backed by a mocked runner."""
    return mock_vsr.open(working_copy)
