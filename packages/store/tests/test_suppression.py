"""Tests for few-shot suppression examples built from history."""

import pytest

from stet_core.errors import StateError
from stet_core.findings.models import Finding
from stet_store.history import append_record, history_path
from stet_store.models import Dismissal, HistoryRecord, UserAction
from stet_store.suppression import format_example, suppression_examples


def _finding(fid, message, file="a.go", line=3):
    return Finding(id=fid, file=file, line=line, severity="warning", category="style", message=message)


def _dismissal_record(*findings, dismissed=None):
    dismissed = [f.id for f in findings] if dismissed is None else dismissed
    return HistoryRecord(
        diff_ref="abc",
        review_output=list(findings),
        user_action=UserAction(
            dismissed_ids=list(dismissed),
            dismissals=[Dismissal(finding_id=fid, reason="false_positive") for fid in dismissed],
        ),
    )


class TestFormatExample:
    def test_with_line(self):
        assert format_example(_finding("f1", " Unused variable ")) == "a.go:3: Unused variable"

    def test_file_level(self):
        assert format_example(_finding("f1", "Missing tests", line=0)) == "a.go: Missing tests"

    def test_no_file(self):
        assert format_example(_finding("f1", "Generic", file="")) == "Generic"


class TestSuppressionExamples:
    def test_no_history(self, tmp_path):
        assert suppression_examples(tmp_path) is None

    def test_only_dismissed_findings_used(self, tmp_path):
        kept = _finding("f1", "Unused variable")
        other = _finding("f2", "Shadowed name", line=9)
        append_record(tmp_path, _dismissal_record(kept, other, dismissed=["f1"]))
        assert suppression_examples(tmp_path) == ["a.go:3: Unused variable"]

    def test_records_without_dismissals_ignored(self, tmp_path):
        append_record(tmp_path, HistoryRecord(diff_ref="abc", review_output=[_finding("f1", "m")]))
        assert suppression_examples(tmp_path) is None

    def test_duplicates_collapsed(self, tmp_path):
        append_record(tmp_path, _dismissal_record(_finding("f1", "Unused   variable")))
        append_record(tmp_path, _dismissal_record(_finding("f2", "Unused variable")))
        assert suppression_examples(tmp_path) == ["a.go:3: Unused   variable"]

    def test_max_examples_keeps_newest(self, tmp_path):
        for i in range(5):
            append_record(tmp_path, _dismissal_record(_finding(f"f{i}", f"issue {i}")))
        assert suppression_examples(tmp_path, max_examples=2) == ["a.go:3: issue 3", "a.go:3: issue 4"]

    def test_only_recent_records_scanned(self, tmp_path):
        for i in range(5):
            append_record(tmp_path, _dismissal_record(_finding(f"f{i}", f"issue {i}")))
        assert suppression_examples(tmp_path, max_records=1) == ["a.go:3: issue 4"]

    @pytest.mark.parametrize("max_records,max_examples", [(0, 30), (50, 0)])
    def test_disabled_limits(self, tmp_path, max_records, max_examples):
        append_record(tmp_path, _dismissal_record(_finding("f1", "m")))
        assert suppression_examples(tmp_path, max_records, max_examples) is None

    def test_corrupt_history_propagates(self, tmp_path):
        history_path(tmp_path).write_text("{broken\n")
        with pytest.raises(StateError):
            suppression_examples(tmp_path)
