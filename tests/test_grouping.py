import random

from conftest import make_row
from folha_presenca.reports.gerar_folha_presenca import group_sessions, rows_by_session


def _rows():
    return [
        make_row(3, action_ref="A", instructor_code=1),
        make_row(3, action_ref="A", instructor_code=2),
        make_row(1, action_ref="A"),
        make_row(9, action_ref="B"),
        make_row(4, action_ref=None),
        make_row(9, action_ref="B", instructor_code=5),
    ]


def test_groups_hold_distinct_sorted_ids():
    groups = group_sessions(_rows())
    assert [(g.action_ref, g.session_ids) for g in groups] == [
        ("A", [1, 3]),
        ("B", [9]),
        ("SEM_REF", [4]),
    ]


def test_grouping_is_repeatable_and_order_independent():
    rows = _rows()
    first = {g.action_ref: g.session_ids for g in group_sessions(rows)}
    again = {g.action_ref: g.session_ids for g in group_sessions(rows)}
    shuffled = rows[:]
    random.Random(42).shuffle(shuffled)
    other = {g.action_ref: g.session_ids for g in group_sessions(shuffled)}

    assert first == again == other


def test_rows_by_session_keeps_every_instructor():
    lookup = rows_by_session(_rows())
    assert [r.instructor_code for r in lookup[3]] == [1, 2]
    assert len(lookup[9]) == 2
    assert 42 not in dict(lookup)
