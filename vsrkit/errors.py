"""Centralized exception hierarchy for vsrkit.

This module defines the exceptions raised by the process runner, the
output parsers and the repository facade, together with the ErrorCode
enum that classifies failures of the external vsr tool.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Known failure kinds of the vsr command line tool."""

    TOOL_NOT_FOUND = "ToolNotFound"
    NOT_A_REPOSITORY = "NotARepository"
    REPOSITORY_LOCKED = "RepositoryLocked"
    AUTHENTICATION_FAILED = "AuthenticationFailed"
    BAD_CONFIG_FILE = "BadConfigFile"
    CANT_CREATE_PIPE = "CantCreatePipe"
    CANT_ACCESS_REMOTE = "CantAccessRemote"
    REMOTE_CONNECTION_ERROR = "RemoteConnectionError"
    REMOTE_NOT_FOUND = "RemoteNotFound"
    NO_REMOTE_REPOSITORY_SPECIFIED = "NoRemoteRepositorySpecified"
    BRANCH_ALREADY_EXISTS = "BranchAlreadyExists"
    INVALID_BRANCH_NAME = "InvalidBranchName"
    BRANCH_NOT_FULLY_MERGED = "BranchNotFullyMerged"
    NO_REMOTE_REFERENCE = "NoRemoteReference"
    DIRTY_WORKING_TREE = "DirtyWorkingTree"
    UNMERGED_CHANGES = "UnmergedChanges"
    NO_USER_NAME_CONFIGURED = "NoUserNameConfigured"
    NO_USER_EMAIL_CONFIGURED = "NoUserEmailConfigured"
    CONFLICT = "Conflict"
    PATCH_DOES_NOT_APPLY = "PatchDoesNotApply"
    PUSH_REJECTED = "PushRejected"
    NO_UPSTREAM_BRANCH = "NoUpstreamBranch"
    NO_STASH_FOUND = "NoStashFound"
    STASH_CONFLICT = "StashConflict"
    LOCAL_CHANGES_OVERWRITTEN = "LocalChangesOverwritten"
    NO_LOCAL_CHANGES = "NoLocalChanges"
    CANT_LOCK_REF = "CantLockRef"
    CANT_REBASE_MULTIPLE_BRANCHES = "CantRebaseMultipleBranches"
    NO_PATH_FOUND = "NoPathFound"
    UNKNOWN_PATH = "UnknownPath"
    WRONG_CASE = "WrongCase"
    CANCELLED = "Cancelled"


class VsrKitError(Exception):
    """Base exception for all vsrkit errors.

    Attributes:
        message: Human-readable error message.
        code: Optional error code for programmatic handling.
        details: Optional dictionary with additional error context.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(VsrKitError):
    """Raised when there's a configuration problem."""
    pass


class InvalidConfigError(ConfigurationError):
    """Raised when configuration values are invalid."""

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid configuration for '{field}': {reason}",
            code="INVALID_CONFIG",
            details={"field": field, "value": str(value)[:100], "reason": reason},
        )


# =============================================================================
# Tool Errors
# =============================================================================

class VsrError(VsrKitError):
    """Raised when an invocation of the vsr tool fails.

    ``error_code`` starts out as whatever the classifier could derive from
    stderr and may be refined by the repository facade before the error
    reaches the caller.
    """

    def __init__(
        self,
        message: str = "Failed to execute vsr",
        stdout: Optional[str] = None,
        stderr: Optional[str] = None,
        exit_code: Optional[int] = None,
        error_code: Optional[ErrorCode] = None,
        command: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        if cause is not None and str(cause):
            message = str(cause)
        super().__init__(message or "Vsr error", "VSR_ERROR")
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code
        self.error_code = error_code
        self.command = command
        self.cause = cause

    def __str__(self) -> str:
        if self.error_code is not None:
            return f"[{self.error_code.value}] {self.message}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        result = super().to_dict()
        result["details"] = {
            "exit_code": self.exit_code,
            "error_code": self.error_code.value if self.error_code else None,
            "command": self.command,
            "stderr": (self.stderr or "")[:500],  # Truncate for safety
        }
        return result

    def describe(self) -> str:
        """Full description including the captured process output."""
        result = self.message + " " + json.dumps(
            {
                "exitCode": self.exit_code,
                "errorCode": self.error_code.value if self.error_code else None,
                "command": self.command,
                "stdout": self.stdout,
                "stderr": self.stderr,
            },
            indent=2,
        )
        if self.cause is not None:
            result += f"\n{type(self.cause).__name__}: {self.cause}"
        return result


class VsrNotFoundError(VsrError):
    """Raised when no usable vsr binary could be located."""

    def __init__(self, message: str = "Vsr installation not found.", path: Optional[str] = None):
        super().__init__(message=message, error_code=ErrorCode.TOOL_NOT_FOUND)
        self.path = path


class CommandCancelledError(VsrError):
    """Raised when a command is cancelled before it completes."""

    def __init__(self, command: Optional[str] = None):
        super().__init__(message="Cancelled", error_code=ErrorCode.CANCELLED, command=command)


def is_vsr_error(obj: Any) -> bool:
    """Check whether an object is a VsrError."""
    return isinstance(obj, VsrError)


# =============================================================================
# Parse Errors
# =============================================================================

class ParseError(VsrKitError):
    """Raised when structurally required tool output cannot be parsed."""

    def __init__(self, message: str, raw: Optional[str] = None):
        details = {}
        if raw:
            details["raw"] = raw[:200]
        super().__init__(message, "PARSE_ERROR", details)
