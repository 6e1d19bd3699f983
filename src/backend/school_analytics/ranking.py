from __future__ import annotations

from typing import List, Sequence, Tuple

from .models import OrganizationCredit


def rank_school(
    school_id: str,
    own_credit: float,
    credit_totals: Sequence[OrganizationCredit],
) -> Tuple[int, int]:
    """
    Return ``(rank, total_schools)`` for ``school_id``.

    Schools with positive credit are ordered by credit, highest first, ties
    keeping their input order. Schools without credit all share the rank
    right after the last ranked school. When ``school_id`` is absent from
    ``credit_totals`` it takes part with ``own_credit``.
    """

    entries: List[OrganizationCredit] = list(credit_totals)
    target = next((entry for entry in entries if str(entry.organization_id) == str(school_id)), None)
    if target is None:
        target = OrganizationCredit(organization_id=str(school_id), total_earned_credit=own_credit)
        entries.append(target)

    ranked = sorted(
        (entry for entry in entries if (entry.total_earned_credit or 0) > 0),
        key=lambda entry: entry.total_earned_credit,
        reverse=True,
    )
    if (target.total_earned_credit or 0) <= 0:
        return len(ranked) + 1, len(entries)

    for position, entry in enumerate(ranked, start=1):
        if entry is target:
            return position, len(entries)
    return len(ranked) + 1, len(entries)
