"""Tests for stderr classification."""

import pytest

from vsrkit.errors import ErrorCode
from vsrkit.vsr.classifier import ERROR_RULES, get_error_code


class TestGetErrorCode:
    """Tests for get_error_code."""

    def test_authentication_failed(self):
        """Test the authentication failure message."""
        stderr = "fatal: Authentication failed for 'https://example.com/repo'"
        assert get_error_code(stderr) is ErrorCode.AUTHENTICATION_FAILED

    def test_push_rejected(self):
        """Test the rejected push message."""
        stderr = "error: failed to push some refs to 'origin'"
        assert get_error_code(stderr) is ErrorCode.PUSH_REJECTED

    def test_push_rejected_needs_line_start(self):
        """Test that the push message only matches at a line start."""
        assert get_error_code("hint: error: failed to push some refs to 'origin'") is None
        assert get_error_code("To vsr://host\nerror: failed to push some refs to 'origin'") is ErrorCode.PUSH_REJECTED

    @pytest.mark.parametrize(
        "stderr,expected",
        [
            ("Another vsr process seems to be running in this repository", ErrorCode.REPOSITORY_LOCKED),
            ("fatal: Not a vsr repository (or any parent)", ErrorCode.NOT_A_REPOSITORY),
            ("Not a Versionr repository", ErrorCode.NOT_A_REPOSITORY),
            ("fatal: bad config file line 3", ErrorCode.BAD_CONFIG_FILE),
            ("cannot create standard input pipe", ErrorCode.CANT_CREATE_PIPE),
            ("ERROR: Repository not found.", ErrorCode.REMOTE_NOT_FOUND),
            ("fatal: unable to access 'https://host/'", ErrorCode.CANT_ACCESS_REMOTE),
            ("error: The branch 'topic' is not fully merged.", ErrorCode.BRANCH_NOT_FULLY_MERGED),
            ("fatal: Couldn't find remote ref feature", ErrorCode.NO_REMOTE_REFERENCE),
            ("fatal: A branch named 'main' already exists.", ErrorCode.BRANCH_ALREADY_EXISTS),
            ("fatal: 'bad..name' is not a valid branch name.", ErrorCode.INVALID_BRANCH_NAME),
            ("Please, commit your changes or stash them before you switch", ErrorCode.DIRTY_WORKING_TREE),
            ("Please commit your changes or stash them", ErrorCode.DIRTY_WORKING_TREE),
        ],
    )
    def test_rules(self, stderr, expected):
        """Test each rule against a representative message."""
        assert get_error_code(stderr) is expected

    def test_no_match(self):
        """Test that unknown messages are not classified."""
        assert get_error_code("something unexpected happened") is None

    @pytest.mark.parametrize("stderr", ["", None, 42, b"Authentication failed"])
    def test_total_on_odd_input(self, stderr):
        """Test that odd input yields None instead of raising."""
        assert get_error_code(stderr) is None

    def test_first_rule_wins(self):
        """Test that rule order decides between two matches."""
        stderr = "Authentication failed\nfatal: Not a vsr repository"
        assert get_error_code(stderr) is ErrorCode.AUTHENTICATION_FAILED

    def test_rules_are_ordered_tuple(self):
        """Test that the rule table is immutable and non-empty."""
        assert isinstance(ERROR_RULES, tuple)
        codes = [code for _, code in ERROR_RULES]
        assert codes[0] is ErrorCode.REPOSITORY_LOCKED
        assert ErrorCode.PUSH_REJECTED in codes
