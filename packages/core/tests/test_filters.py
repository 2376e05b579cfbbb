"""Tests for the post-filter chain."""

import copy
import os

import pytest

from stet_core.errors import InvalidStrictnessError
from stet_core.findings.filters import (
    StrictnessPreset,
    filter_abstention,
    filter_by_hunk_lines,
    filter_fp_kill_list,
    resolve_strictness,
    set_cursor_uris,
)
from stet_core.findings.models import Finding, LineRange


def _f(message="Possible nil dereference", file="a.go", line=5, confidence=0.95, category="bug", **kw) -> Finding:
    return Finding(
        file=file, line=line, message=message, severity="warning", category=category, confidence=confidence, **kw
    )


# ---------------------------------------------------------------------------
# Strictness presets
# ---------------------------------------------------------------------------


class TestResolveStrictness:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("strict", StrictnessPreset(0.6, 0.7, True)),
            ("default", StrictnessPreset(0.8, 0.9, True)),
            ("lenient", StrictnessPreset(0.9, 0.95, True)),
            ("strict+", StrictnessPreset(0.6, 0.7, False)),
            ("default+", StrictnessPreset(0.8, 0.9, False)),
            ("lenient+", StrictnessPreset(0.9, 0.95, False)),
        ],
    )
    def test_presets(self, value, expected):
        assert resolve_strictness(value) == expected

    def test_case_and_whitespace_insensitive(self):
        assert resolve_strictness("  STRICT+ ") == StrictnessPreset(0.6, 0.7, False)

    @pytest.mark.parametrize("value", ["", "paranoid", "default++", "+"])
    def test_unknown_rejected(self, value):
        with pytest.raises(InvalidStrictnessError):
            resolve_strictness(value)


# ---------------------------------------------------------------------------
# Abstention
# ---------------------------------------------------------------------------


class TestAbstention:
    def test_drops_below_min_keep(self):
        findings = [_f(confidence=0.79), _f(confidence=0.8)]
        assert [f.confidence for f in filter_abstention(findings, 0.8, 0.9)] == [0.8]

    def test_maintainability_needs_higher_confidence(self):
        findings = [_f(category="maintainability", confidence=0.85), _f(category="maintainability", confidence=0.9)]
        assert [f.confidence for f in filter_abstention(findings, 0.8, 0.9)] == [0.9]

    def test_raising_threshold_never_keeps_more(self):
        findings = [_f(confidence=c / 20) for c in range(21)]
        previous = len(findings) + 1
        for threshold in (0.0, 0.3, 0.6, 0.8, 1.0):
            kept = len(filter_abstention(findings, threshold, threshold))
            assert kept <= previous
            previous = kept

    def test_idempotent(self):
        findings = [
            _f(confidence=0.5),
            _f(category="maintainability", confidence=0.85),
            _f(category="maintainability", confidence=0.95),
            _f(confidence=0.8),
        ]
        once = filter_abstention(findings, 0.8, 0.9)
        assert [f.confidence for f in once] == [0.95, 0.8]
        assert filter_abstention(once, 0.8, 0.9) == once

    def test_does_not_mutate_input(self):
        findings = [_f(confidence=0.1), _f(confidence=0.99)]
        snapshot = copy.deepcopy(findings)
        filter_abstention(findings, 0.8, 0.9)
        assert findings == snapshot


# ---------------------------------------------------------------------------
# Kill list
# ---------------------------------------------------------------------------


class TestKillList:
    @pytest.mark.parametrize(
        "message",
        [
            "Consider adding comments to explain this",
            "consider adding a comment here",
            "Ensure that... the value is set",
            "IT MIGHT BE BENEFICIAL to cache this",
            "You might want to rename this",
            "Consider adding documentation for the API",
        ],
    )
    def test_drops_banned_phrases(self, message):
        assert filter_fp_kill_list([_f(message=message)]) == []

    def test_keeps_other_messages(self):
        findings = [_f(message="Index out of range when list is empty")]
        assert filter_fp_kill_list(findings) == findings

    def test_ellipsis_is_literal(self):
        # "Ensure that..." must not behave like a regex wildcard.
        assert len(filter_fp_kill_list([_f(message="Ensure thatXYZ works")])) == 1

    def test_idempotent(self):
        findings = [_f(message="You might want to"), _f(message="Real bug")]
        once = filter_fp_kill_list(findings)
        assert filter_fp_kill_list(once) == once


# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------


class TestEvidence:
    def test_line_inside_hunk_kept(self):
        assert len(filter_by_hunk_lines([_f(line=12)], "a.go", 10, 20)) == 1

    def test_line_outside_hunk_dropped(self):
        assert filter_by_hunk_lines([_f(line=25)], "a.go", 10, 20) == []

    def test_other_file_kept(self):
        assert len(filter_by_hunk_lines([_f(file="b.go", line=99)], "a.go", 10, 20)) == 1

    def test_file_level_finding_kept(self):
        assert len(filter_by_hunk_lines([_f(line=0)], "a.go", 10, 20)) == 1

    def test_overlapping_range_kept(self):
        assert len(filter_by_hunk_lines([_f(line=0, range=LineRange(18, 25))], "a.go", 10, 20)) == 1

    def test_disjoint_range_dropped(self):
        assert filter_by_hunk_lines([_f(line=0, range=LineRange(21, 25))], "a.go", 10, 20) == []

    def test_inverted_range_dropped(self):
        assert filter_by_hunk_lines([_f(line=0, range=LineRange(15, 12))], "a.go", 10, 20) == []

    @pytest.mark.parametrize("start,end", [(0, 10), (-1, 5), (10, 9)])
    def test_invalid_hunk_range_passes_everything_through(self, start, end):
        findings = [_f(line=500)]
        assert filter_by_hunk_lines(findings, "a.go", start, end) == findings


# ---------------------------------------------------------------------------
# Cursor URIs
# ---------------------------------------------------------------------------


class TestCursorURIs:
    def test_line_uri(self, tmp_path):
        [f] = set_cursor_uris(str(tmp_path), [_f(file="pkg/a.go", line=7)])
        expected = "file://" + os.path.abspath(tmp_path / "pkg" / "a.go").replace(os.sep, "/") + "#L7"
        assert f.cursor_uri == expected

    def test_range_uri(self, tmp_path):
        [f] = set_cursor_uris(str(tmp_path), [_f(line=0, range=LineRange(3, 6))])
        assert f.cursor_uri.endswith("a.go#L3-6")

    def test_file_level_uri_has_no_fragment(self, tmp_path):
        [f] = set_cursor_uris(str(tmp_path), [_f(line=0)])
        assert f.cursor_uri.startswith("file://")
        assert "#" not in f.cursor_uri

    def test_existing_uri_untouched(self, tmp_path):
        [f] = set_cursor_uris(str(tmp_path), [_f(cursor_uri="vscode://custom")])
        assert f.cursor_uri == "vscode://custom"

    def test_input_not_mutated(self, tmp_path):
        original = _f()
        set_cursor_uris(str(tmp_path), [original])
        assert original.cursor_uri == ""
