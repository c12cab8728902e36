"""Ranking of alternatives by priority."""

from finance_dss.models.ahp import Alternative, RankItem


def create_ranking(
    alternatives: list[Alternative],
    priorities: dict[str, float],
) -> list[RankItem]:
    """
    Rank alternatives by priority, highest first.

    The sort is stable: ties keep the order the alternatives were given in.
    """
    ordered = sorted(
        alternatives,
        key=lambda alt: priorities.get(alt.id, 0.0),
        reverse=True,
    )
    return [
        RankItem(
            alternative_id=alt.id,
            alternative_name=alt.name,
            priority=priorities.get(alt.id, 0.0),
            rank=position,
        )
        for position, alt in enumerate(ordered, start=1)
    ]
