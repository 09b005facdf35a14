"""Tests for vsr output parsers."""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest
from pydantic import ValidationError

from vsrkit.errors import ParseError
from vsrkit.vsr.models import RefType, Status
from vsrkit.vsr.parsers import (
    JsonResource,
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
    parse_version,
    strip_commit_message_comments,
)

HASH_A = "a" * 40
HASH_B = "b" * 40
HASH_C = "c" * 40


def commit_record(hash, parents="", message="Message\n", name="Jane Doe", email="jane@example.com"):
    return f"{hash}\n{name}\n{email}\n1700000000\n1700000100\n{parents}\n{message}\x00"


def status_document(resources, **branch):
    return json.dumps(
        {
            "Version": "0.1",
            "Branch": {
                "Name": branch.get("name", "master"),
                "Revision": 4,
                "IsTerminus": True,
                "Heads": [{"ID": "deadbeef", "Name": "master", "Timestamp": "", "Author": "jane"}],
            },
            "Resources": resources,
        }
    )


def resource(status, staged=False, current="file.txt", canonical=None):
    return {
        "Staged": staged,
        "Status": status,
        "CurrentName": current,
        "CanonicalName": canonical if canonical is not None else current,
        "Hash": "0123",
        "Length": 10,
    }


class TestParseVersion:
    """Tests for parse_version."""

    def test_version_found(self):
        """Test extracting the version number."""
        assert parse_version("Versionr CLI (Versionr v1.2.17 - Release)") == "1.2.17"

    def test_version_missing(self):
        """Test the fallback when no version is printed."""
        assert parse_version("Python 3.12.1") == "?"
        assert parse_version("") == "?"


class TestParseCommits:
    """Tests for parse_commits."""

    def test_single_commit(self):
        """Test parsing one record."""
        commits = parse_commits(commit_record(HASH_A, parents=HASH_B, message="Fix bug\n"))

        assert len(commits) == 1
        commit = commits[0]
        assert commit.hash == HASH_A
        assert commit.message == "Fix bug"
        assert commit.parents == [HASH_B]
        assert commit.author_name == "Jane Doe"
        assert commit.author_email == "jane@example.com"
        assert commit.author_date == datetime.fromtimestamp(1700000000, tz=timezone.utc)
        assert commit.commit_date == datetime.fromtimestamp(1700000100, tz=timezone.utc)

    def test_multiple_commits_in_order(self):
        """Test that records are returned in source order."""
        data = "".join(
            [
                commit_record(HASH_A, parents=f"{HASH_B} {HASH_C}"),
                commit_record(HASH_B, parents=HASH_C),
                commit_record(HASH_C),
            ]
        )
        commits = parse_commits(data)

        assert [c.hash for c in commits] == [HASH_A, HASH_B, HASH_C]
        assert commits[0].parents == [HASH_B, HASH_C]
        assert commits[2].parents == []

    def test_multiline_message(self):
        """Test that embedded newlines survive and one trailing newline is stripped."""
        commits = parse_commits(commit_record(HASH_A, message="Subject\n\nBody line\n\n"))
        assert commits[0].message == "Subject\n\nBody line\n"

    def test_empty_input(self):
        """Test that empty or whitespace input yields no commits."""
        assert parse_commits("") == []
        assert parse_commits("\n\n  ") == []

    def test_trailing_whitespace(self):
        """Test trailing newlines after the last record."""
        commits = parse_commits(commit_record(HASH_A) + "\n")
        assert len(commits) == 1

    def test_one_line(self):
        """Test one_line rendering."""
        commit = parse_commits(commit_record(HASH_A, message="Subject\nbody\n"))[0]
        assert commit.one_line() == "aaaaaaa Subject"


class TestParseStatus:
    """Tests for parse_status and the status code table."""

    @pytest.mark.parametrize(
        "staged,keyword,expected",
        [
            (True, "modified", ("M", "")),
            (True, "added", ("A", "")),
            (True, "deleted", ("D", "")),
            (True, "copied", ("C", "")),
            (True, "renamed", ("R", "")),
            (False, "changed", ("", "M")),
            (False, "added", ("", "A")),
            (False, "deleted", ("", "D")),
            (False, "copied", ("", "C")),
            (False, "unversioned", ("?", "?")),
            (False, "ignored", ("!", "!")),
        ],
    )
    def test_status_code_table(self, staged, keyword, expected):
        """Test every row of the staged/keyword mapping."""
        status = parse_status(status_document([resource(keyword, staged=staged)]))
        entry = status.file_statuses[0]
        assert (entry.x, entry.y) == expected
        assert entry.path == "file.txt"
        assert entry.rename is None
        assert entry.renamed_from is None

    def test_rename_detected_from_names(self):
        """Test that differing current and canonical names report a rename."""
        doc = status_document([resource("renamed", staged=True, current="new.txt", canonical="old.txt")])
        entry = parse_status(doc).file_statuses[0]

        assert entry.path == "new.txt"
        assert entry.rename == "new.txt"
        assert entry.renamed_from == "old.txt"

    def test_copy_also_reported_as_rename(self):
        """Test that copies share the name-change heuristic."""
        doc = status_document([resource("copied", staged=True, current="b.txt", canonical="a.txt")])
        entry = parse_status(doc).file_statuses[0]
        assert entry.x == "C"
        assert entry.renamed_from == "a.txt"

    def test_branch_section(self):
        """Test that the branch section is parsed."""
        status = parse_status(status_document([], name="feature"))
        assert status.version == "0.1"
        assert status.branch.name == "feature"
        assert status.branch.revision == 4
        assert status.branch.heads[0].id == "deadbeef"
        assert status.resources == []

    def test_resource_fields(self):
        """Test aliases on resource fields."""
        res = JsonResource.model_validate(resource("changed"))
        assert res.hash == "0123"
        assert res.length == 10
        assert res.staged is False

    def test_malformed_json_raises(self):
        """Test that broken JSON is reported as a parse error."""
        with pytest.raises(ParseError, match="Error parsing status") as exc_info:
            parse_status("{not json")
        assert isinstance(exc_info.value.__cause__, json.JSONDecodeError)
        assert exc_info.value.details["raw"] == "{not json"

    def test_missing_resources_raises(self):
        """Test that a document without resources fails as a parse error."""
        with pytest.raises(ParseError) as exc_info:
            parse_status(json.dumps({"Version": "1", "Branch": {"Heads": []}}))
        assert isinstance(exc_info.value.__cause__, ValidationError)

    def test_non_object_document_raises(self):
        """Test that a JSON value other than an object is rejected."""
        with pytest.raises(ParseError):
            parse_status("[]")

    @pytest.mark.parametrize("raw", ["", "  \n"])
    def test_empty_output_has_no_resources(self, raw):
        """Test that empty output means nothing to report."""
        status = parse_status(raw)
        assert status.resources == []
        assert status.file_statuses == []


class TestParseNameStatus:
    """Tests for parse_name_status."""

    def test_basic_changes(self, tmp_path):
        """Test modified, added and deleted records."""
        raw = "M\x00a.txt\x00A\x00dir/b.txt\x00D\x00c.txt\x00"
        changes = parse_name_status(raw, tmp_path)

        assert [c.status for c in changes] == [Status.MODIFIED, Status.ADDED, Status.DELETED]
        assert changes[0].uri == tmp_path / "a.txt"
        assert changes[1].original_uri == tmp_path / "dir" / "b.txt"

    def test_rename_consumes_two_paths(self, tmp_path):
        """Test that renames take an extra path field."""
        raw = "R100\x00old.txt\x00new.txt\x00M\x00other.txt\x00"
        changes = parse_name_status(raw, tmp_path)

        assert len(changes) == 2
        assert changes[0].status is Status.RENAMED
        assert changes[0].original_uri == tmp_path / "old.txt"
        assert changes[0].uri == tmp_path / "new.txt"
        assert changes[0].rename_uri == tmp_path / "new.txt"
        assert changes[1].uri == tmp_path / "other.txt"

    def test_unknown_letter_stops_parsing(self, tmp_path):
        """Test that an unrecognised status ends the usable data."""
        raw = "M\x00a.txt\x00X\x00b.txt\x00A\x00c.txt\x00"
        changes = parse_name_status(raw, tmp_path)
        assert [c.uri for c in changes] == [tmp_path / "a.txt"]

    def test_truncated_rename(self, tmp_path):
        """Test that a rename without its target is dropped."""
        assert parse_name_status("R100\x00old.txt", tmp_path) == []

    def test_absolute_paths_kept(self, tmp_path):
        """Test that absolute paths are not joined to the root."""
        absolute = str(tmp_path / "abs.txt")
        changes = parse_name_status(f"M\x00{absolute}\x00", Path("/elsewhere"))
        assert changes[0].uri == Path(absolute)

    def test_empty(self, tmp_path):
        """Test empty input."""
        assert parse_name_status("", tmp_path) == []

    def test_reparse_is_stable(self, tmp_path):
        """Test that re-serialising parsed changes gives the same statuses."""
        raw = "M\x00a.txt\x00R\x00b.txt\x00c.txt\x00D\x00d.txt\x00"
        letters = {Status.MODIFIED: "M", Status.RENAMED: "R", Status.DELETED: "D"}
        first = parse_name_status(raw, tmp_path)

        fields = []
        for change in first:
            fields.append(letters[change.status])
            fields.append(str(change.original_uri))
            if change.status is Status.RENAMED:
                fields.append(str(change.uri))
        second = parse_name_status("\x00".join(fields) + "\x00", tmp_path)

        assert [c.status for c in second] == [c.status for c in first]


class TestListingParsers:
    """Tests for tree and index listings."""

    def test_ls_tree(self):
        """Test tree listing rows and dropped lines."""
        raw = (
            "100644 blob 3b18e512dba79e4c8300dd08aeb37f8e728b8dad      12\tREADME.md\n"
            "garbage\n"
            "040000 tree 9bdaeadb0e1cbd1b4c3f1f3b7e0f3b1c1a0b2d3e       -\tsrc dir\n"
        )
        elements = parse_ls_tree(raw)

        assert len(elements) == 2
        assert elements[0].mode == "100644"
        assert elements[0].type == "blob"
        assert elements[0].size == "12"
        assert elements[0].file == "README.md"
        assert elements[1].file == "src dir"

    def test_ls_files(self):
        """Test index listing rows and dropped lines."""
        raw = "100644 3b18e512dba79e4c8300dd08aeb37f8e728b8dad 0\tREADME.md\n\nbad\n"
        elements = parse_ls_files(raw)

        assert len(elements) == 1
        assert elements[0].stage == "0"
        assert elements[0].file == "README.md"

    def test_empty(self):
        """Test empty listings."""
        assert parse_ls_tree("") == []
        assert parse_ls_files("\n") == []


class TestParseSubmodules:
    """Tests for parse_submodules."""

    def test_blocks_with_blank_lines(self):
        """Test that every complete block yields a record."""
        raw = (
            '[submodule "lib"]\n'
            "\tpath = vendor/lib\n"
            "\turl = vsr://host/lib\n"
            "\n\n"
            '[submodule "docs"]\n'
            "    path = docs\n"
            "    url = vsr://host/docs\n"
        )
        modules = parse_submodules(raw)

        assert [(m.name, m.path, m.url) for m in modules] == [
            ("lib", "vendor/lib", "vsr://host/lib"),
            ("docs", "docs", "vsr://host/docs"),
        ]

    def test_incomplete_block_dropped(self):
        """Test that blocks missing a field are skipped."""
        raw = '[submodule "half"]\n\tpath = half\n[submodule "full"]\n\tpath = full\n\turl = u\n'
        modules = parse_submodules(raw)
        assert [m.name for m in modules] == ["full"]

    def test_properties_outside_section_ignored(self):
        """Test that stray properties are not attributed to a module."""
        raw = "path = stray\nurl = stray\n"
        assert parse_submodules(raw) == []

    def test_crlf(self):
        """Test Windows line endings."""
        raw = '[submodule "a"]\r\n\tpath = a\r\n\turl = u\r\n'
        assert parse_submodules(raw)[0].url == "u"

    def test_empty(self):
        """Test empty input."""
        assert parse_submodules("") == []


class TestHeadAndBranchParsers:
    """Tests for HEAD, branch and upstream parsers."""

    def test_parse_head(self):
        """Test extracting version and branch."""
        branch = parse_head('Version deeff0de-8df7-4267-bf4e-0c058f541e9c on branch "master" (rev 4)\n')
        assert branch.type is RefType.HEAD
        assert branch.name == "master"
        assert branch.commit == "deeff0de-8df7-4267-bf4e-0c058f541e9c"

    def test_parse_head_empty(self):
        """Test that empty output is a hard failure."""
        with pytest.raises(ParseError, match="Not in a branch"):
            parse_head("")

    def test_parse_head_unrecognised(self):
        """Test that unexpected prose is a hard failure."""
        with pytest.raises(ParseError):
            parse_head("Something else entirely")

    def test_parse_branch_commit(self):
        """Test extracting the head version of a branch."""
        assert parse_branch_commit("feature - 1234abcd-0000 (2 heads)\n") == "1234abcd-0000"

    def test_parse_branch_commit_fails(self):
        """Test that a missing listing line is a hard failure."""
        with pytest.raises(ParseError):
            parse_branch_commit("nothing here")

    def test_parse_upstream_ahead(self):
        """Test a connected remote where the branch is ahead."""
        raw = "Connected to Remote: vsr://host:5122/repo\nRemote - master - Version: 1234abcd (ahead)\n"
        upstream, ahead, behind = parse_upstream(raw, "master")

        assert upstream.remote == "vsr://host:5122/repo"
        assert upstream.name == "master"
        assert (ahead, behind) == (1, 0)

    def test_parse_upstream_behind(self):
        """Test a connected remote where the branch is behind."""
        raw = "Connected to Remote: origin\nfetching...\nRemote - master - Version: 9876 (behind)"
        _, ahead, behind = parse_upstream(raw, "master")
        assert (ahead, behind) == (0, 1)

    def test_parse_upstream_no_provider(self):
        """Test that no connected remote is not an error."""
        assert parse_upstream("No provider connected to remote URL", "master") is None

    def test_parse_upstream_unrecognised(self):
        """Test that unexpected output is a hard failure."""
        with pytest.raises(ParseError):
            parse_upstream("garbage", "master")

    def test_parse_upstream_bad_status_line(self):
        """Test that a connected remote without a status line fails."""
        with pytest.raises(ParseError):
            parse_upstream("Connected to Remote: origin\nno status", "master")


class TestListParsers:
    """Tests for refs, stashes, remotes and configs."""

    def test_parse_refs(self):
        """Test local, remote and tag refs."""
        raw = (
            f"refs/heads/main {HASH_A}\n"
            f"refs/remotes/origin/main {HASH_B}\n"
            f"refs/tags/v1.0 {HASH_C}\n"
            "refs/notes/commits zzz\n"
        )
        refs = parse_refs(raw)

        assert [(r.type, r.name) for r in refs] == [
            (RefType.HEAD, "main"),
            (RefType.REMOTE_HEAD, "origin/main"),
            (RefType.TAG, "v1.0"),
        ]
        assert refs[1].remote == "origin"
        assert refs[2].commit == HASH_C

    def test_parse_tracking_branches(self):
        """Test selecting branches by upstream."""
        raw = "main\x00origin/main\nfeature\x00origin/feature\nlocal\x00\n"
        branches = parse_tracking_branches(raw, "origin/main")
        assert [b.name for b in branches] == ["main"]

    def test_parse_stashes(self):
        """Test stash list rows."""
        raw = "stash@{0}: WIP on main: fix\nnoise\nstash@{1}: On main: older\n"
        stashes = parse_stashes(raw)

        assert [s.index for s in stashes] == [0, 1]
        assert stashes[0].description == " WIP on main: fix"
        assert stashes[1].one_line() == "stash@{1}: On main: older"

    def test_parse_remotes(self):
        """Test remote listing rows."""
        raw = 'Remote "origin" is vsr://host:5122/repo\nsomething else\n'
        remotes = parse_remotes(raw)

        assert len(remotes) == 1
        assert remotes[0].name == "origin"
        assert remotes[0].push_url == "vsr://host:5122/repo"
        assert remotes[0].is_read_only is False

    def test_parse_configs(self):
        """Test splitting on the first equals sign."""
        entries = parse_configs("user.name=Jane\r\nalias.x=log --format=%H\n\n")
        assert [(e.key, e.value) for e in entries] == [
            ("user.name", "Jane"),
            ("alias.x", "log --format=%H"),
        ]

    @pytest.mark.parametrize("parser", [parse_refs, parse_stashes, parse_remotes, parse_configs])
    def test_empty(self, parser):
        """Test that empty input gives empty lists."""
        assert parser("") == []


class TestStripCommitMessageComments:
    """Tests for strip_commit_message_comments."""

    def test_comment_lines_removed(self):
        """Test that # lines disappear and the rest is trimmed."""
        message = "Merge branch 'feature'\n\n# Conflicts:\n#\tfile.txt\n"
        assert strip_commit_message_comments(message) == "Merge branch 'feature'"

    def test_hash_inside_line_kept(self):
        """Test that # in the middle of a line is kept."""
        assert strip_commit_message_comments("Fix #12\n") == "Fix #12"
