"""Compilation des descripteurs de filtre en clauses SQL paramétrées."""
from typing import Any, List, Mapping

from catalogpy.listing.filters import (
    AllOf, AnyOf, Condition, FieldEquals, MatchAll, TextContains,
)

LIKE_ESCAPE = "\\"


def escape_like(term: str) -> str:
    """Neutralise les jokers LIKE (%, _) et le caractère d'échappement."""
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


class SqlFilterCompiler:
    """
    Traduit un arbre de Condition en clause WHERE asyncpg ($1, $2, ...).

    Seuls les champs déclarés dans `columns` sont acceptés ; les valeurs et
    termes de recherche sont toujours passés en paramètres.
    """

    def __init__(self, columns: Mapping[str, str]):
        self.columns = dict(columns)

    def _column(self, field: str) -> str:
        try:
            return self.columns[field]
        except KeyError:
            raise ValueError(f"Unknown filter field: {field}") from None

    def compile(self, condition: Condition, params: List[Any]) -> str:
        """
        Args:
            condition: Filtre à compiler
            params: Liste des paramètres, complétée en place

        Returns:
            Fragment SQL utilisable après WHERE.
        """
        if isinstance(condition, MatchAll):
            return "TRUE"

        if isinstance(condition, FieldEquals):
            column = self._column(condition.field)
            if condition.value is None:
                return f"{column} IS NULL"
            params.append(condition.value)
            return f"{column} = ${len(params)}"

        if isinstance(condition, TextContains):
            column = self._column(condition.field)
            params.append(f"%{escape_like(condition.term)}%")
            return f"{column} ILIKE ${len(params)} ESCAPE '{LIKE_ESCAPE}'"

        if isinstance(condition, AllOf):
            if not condition.conditions:
                return "TRUE"
            parts = [self.compile(c, params) for c in condition.conditions]
            return "(" + " AND ".join(parts) + ")"

        if isinstance(condition, AnyOf):
            if not condition.conditions:
                return "FALSE"
            parts = [self.compile(c, params) for c in condition.conditions]
            return "(" + " OR ".join(parts) + ")"

        raise ValueError(f"Unsupported condition: {condition!r}")
