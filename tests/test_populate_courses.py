import pytest

from attendbot.scripts.populate_courses import parse_course_rows


def test_skips_header_and_blank_lines():
    rows = [
        ["ordinal", "name", "external_id"],
        ["1", " FYBSC CS - Division A ", "101"],
        [],
        ["", "", ""],
        ["2", "SYBAF - Division B", "203"],
    ]
    assert parse_course_rows(rows) == [(1, "FYBSC CS - Division A", "101"), (2, "SYBAF - Division B", "203")]


@pytest.mark.parametrize(
    "rows",
    [
        [["1", "A"]],
        [["1", "A", "101"], ["x", "B", "102"]],
        [["1", "", "101"]],
        [["1", "A", "101"], ["1", "B", "102"]],
    ],
)
def test_rejects_bad_rows(rows):
    with pytest.raises(SystemExit):
        parse_course_rows(rows)
