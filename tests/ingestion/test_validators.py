"""Tests for the student row validation pipeline."""

from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from workflow_ingestion.domain.types import (
    ImportRow,
    ImportRules,
    IssueSeverity,
    RowValidationStatus,
)
from workflow_ingestion.domain.validators import (
    normalized_key,
    parse_grade,
    validate_batch,
    validate_grade,
    validate_required_fields,
)
from workflow_kernel.domain.types import StudentRecord

RULES = ImportRules()


def _row(index: int, **fields) -> ImportRow:
    base = {"name": f"Student {index}", "grade": "2", "guardian": "Pat Doe"}
    base.update(fields)
    return ImportRow(row_index=index, fields=base)


def _student(name: str, grade: int) -> StudentRecord:
    return StudentRecord(
        student_id=uuid4(), school_id="school-1", name=name, grade=grade,
        guardian="Existing Guardian", version=1,
    )


class TestParseGrade:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (3, 3),
            ("4", 4),
            (" 5 ", 5),
            ("K", 0),
            ("k", 0),
            ("-1", -1),
            ("3rd", None),
            ("2.5", None),
            (2.0, None),
            (True, None),
            ("٣", None),
            (None, None),
        ],
    )
    def test_parse(self, value, expected):
        assert parse_grade(value, RULES) == expected


class TestValidateRequiredFields:
    def test_missing_required(self):
        issues = validate_required_fields({"name": "Ann", "grade": "1"}, RULES)
        assert len(issues) == 1
        assert issues[0].code == "MISSING_REQUIRED_FIELD"
        assert issues[0].field == "guardian"
        assert issues[0].severity == IssueSeverity.ERROR

    def test_blank_counts_as_missing(self):
        issues = validate_required_fields({"name": "  ", "grade": "1", "guardian": ""}, RULES)
        assert {i.field for i in issues} == {"name", "guardian"}

    def test_present_required(self):
        assert validate_required_fields({"name": "A", "grade": 1, "guardian": "B"}, RULES) == []


class TestValidateGrade:
    def test_unreadable_is_error(self):
        issues = validate_grade({"grade": "third"}, RULES)
        assert issues[0].code == "INVALID_GRADE"
        assert issues[0].severity == IssueSeverity.ERROR

    def test_out_of_range_is_warning(self):
        issues = validate_grade({"grade": "9"}, RULES)
        assert issues[0].code == "GRADE_OUT_OF_RANGE"
        assert issues[0].severity == IssueSeverity.WARNING

    def test_missing_grade_left_to_required_check(self):
        assert validate_grade({}, RULES) == []


class TestValidateBatch:
    def test_empty_guardian_on_one_row(self):
        rows = [_row(i) for i in range(1, 6)]
        rows[2] = _row(3, guardian="")
        report = validate_batch(rows, [], RULES)
        assert report.total_rows == 5
        assert report.error_count == 1
        assert report.valid_count == 4
        assert report.rows[2].status == RowValidationStatus.ERROR
        assert "guardian" in report.rows[2].error_reason

    def test_row_checks_do_not_short_circuit(self):
        report = validate_batch([_row(1, guardian=None, grade="x")], [], RULES)
        codes = {i.code for i in report.rows[0].issues}
        assert codes == {"MISSING_REQUIRED_FIELD", "INVALID_GRADE"}

    def test_rows_sorted_by_index(self):
        report = validate_batch([_row(3), _row(1), _row(2)], [], RULES)
        assert [r.row_index for r in report.rows] == [1, 2, 3]

    def test_duplicate_indexes_rejected(self):
        with pytest.raises(ValueError):
            validate_batch([_row(1), _row(1)], [], RULES)

    def test_existing_duplicate_is_tagged_not_resolved(self):
        existing = _student("Maya  Lopez", 0)
        report = validate_batch([_row(1, name="maya lopez", grade="K")], [existing], RULES)
        row = report.rows[0]
        assert row.duplicate_of_id == existing.student_id
        assert row.status == RowValidationStatus.VALID
        assert report.duplicate_count == 1

    def test_first_existing_match_reported(self):
        first, second = _student("Ann", 2), _student("ANN", 2)
        report = validate_batch([_row(1, name="ann")], [first, second], RULES)
        assert report.rows[0].duplicate_of_id == first.student_id

    def test_in_file_repeat_is_warning(self):
        report = validate_batch([_row(1, name="Ann"), _row(2, name=" ann ")], [], RULES)
        assert report.rows[0].duplicate_of_row is None
        assert report.rows[1].duplicate_of_row == 1
        assert report.rows[1].status == RowValidationStatus.WARNING
        assert report.warning_count == 1
        assert report.valid_count == 1

    def test_unreadable_grade_never_duplicate(self):
        assert normalized_key({"name": "Ann", "grade": "x"}, RULES) is None

    def test_custom_rules(self):
        rules = ImportRules(required_fields=("name",), grade_max=12, grade_aliases={"pk": -1})
        report = validate_batch([ImportRow(1, {"name": "A", "grade": "PK"})], [], rules)
        assert report.rows[0].status == RowValidationStatus.WARNING


field_values = st.one_of(
    st.none(),
    st.text(max_size=6),
    st.integers(min_value=-3, max_value=9),
    st.sampled_from(["K", "k", " 2 ", "Ann", "ann"]),
)


class TestValidationProperties:
    @given(
        st.lists(
            st.fixed_dictionaries(
                {"name": field_values, "grade": field_values, "guardian": field_values}
            ),
            max_size=12,
        )
    )
    def test_deterministic_and_counts_consistent(self, raw_rows):
        rows = [ImportRow(row_index=i, fields=f) for i, f in enumerate(raw_rows, start=1)]
        first = validate_batch(rows, [], RULES)
        second = validate_batch(list(reversed(rows)), [], RULES)
        assert first == second
        assert first.valid_count + first.warning_count + first.error_count == first.total_rows
