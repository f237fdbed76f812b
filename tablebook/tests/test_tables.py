from tablebook.app.models import Table
from tablebook.app.services.tables import select_candidates

TABLES = [
    Table(id="T4", sector_id="S1", min_size=4, max_size=6),
    Table(id="T2", sector_id="S1", min_size=2, max_size=4),
    Table(id="T1", sector_id="S1", min_size=2, max_size=2),
    Table(id="T3", sector_id="S1", min_size=2, max_size=4),
]


def ids(tables):
    return [table.id for table in tables]


def test_smallest_capacity_first_with_stable_ties():
    assert ids(select_candidates(TABLES, 2)) == ["T1", "T2", "T3"]


def test_capacity_range_is_inclusive():
    assert ids(select_candidates(TABLES, 4)) == ["T2", "T3", "T4"]
    assert ids(select_candidates(TABLES, 6)) == ["T4"]


def test_party_too_large_or_small_has_no_candidates():
    assert select_candidates(TABLES, 7) == []
    assert select_candidates(TABLES, 1) == []
