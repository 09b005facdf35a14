"""Map vsr stderr text to error codes."""

from __future__ import annotations

import re
from typing import Optional

from vsrkit.errors import ErrorCode

# Evaluated in order; the first match wins.
ERROR_RULES: tuple[tuple[re.Pattern[str], ErrorCode], ...] = (
    (
        re.compile(
            r"Another (?:git|vsr) process seems to be running in this repository"
            r"|If no other (?:git|vsr) process is currently running"
        ),
        ErrorCode.REPOSITORY_LOCKED,
    ),
    (re.compile(r"Authentication failed", re.IGNORECASE), ErrorCode.AUTHENTICATION_FAILED),
    (
        re.compile(r"Not a (?:git |vsr |versionr )?repository", re.IGNORECASE),
        ErrorCode.NOT_A_REPOSITORY,
    ),
    (re.compile(r"bad config file"), ErrorCode.BAD_CONFIG_FILE),
    (
        re.compile(r"cannot make pipe for command substitution|cannot create standard input pipe"),
        ErrorCode.CANT_CREATE_PIPE,
    ),
    (re.compile(r"Repository not found"), ErrorCode.REMOTE_NOT_FOUND),
    (re.compile(r"unable to access"), ErrorCode.CANT_ACCESS_REMOTE),
    (re.compile(r"branch '.+' is not fully merged"), ErrorCode.BRANCH_NOT_FULLY_MERGED),
    (re.compile(r"Couldn't find remote ref"), ErrorCode.NO_REMOTE_REFERENCE),
    (re.compile(r"A branch named '.+' already exists"), ErrorCode.BRANCH_ALREADY_EXISTS),
    (re.compile(r"'.+' is not a valid branch name"), ErrorCode.INVALID_BRANCH_NAME),
    (re.compile(r"Please,? commit your changes or stash them"), ErrorCode.DIRTY_WORKING_TREE),
    (re.compile(r"^error: failed to push some refs to\b", re.MULTILINE), ErrorCode.PUSH_REJECTED),
)


def get_error_code(stderr: Optional[str]) -> Optional[ErrorCode]:
    """Classify stderr text.

    Args:
        stderr: Standard error output of a failed invocation.

    Returns:
        The code of the first matching rule, or None.
    """
    if not stderr or not isinstance(stderr, str):
        return None

    for pattern, code in ERROR_RULES:
        if pattern.search(stderr):
            return code

    return None
