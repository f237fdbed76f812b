from __future__ import annotations

from collections.abc import Iterable

from tablebook.app.models import Table


def select_candidates(tables: Iterable[Table], party_size: int) -> list[Table]:
    """Tables that seat ``party_size``, smallest capacity first.

    Ties keep the input order, so a store returning tables sorted by id
    yields a stable assignment order.
    """
    fitting = [table for table in tables if table.fits(party_size)]
    return sorted(fitting, key=lambda table: table.max_size)
