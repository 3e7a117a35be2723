"""Descripteurs de filtre et composition avec la recherche textuelle.

Un filtre est un petit arbre de valeurs immuables (ET / OU / prédicats de
champ). Il peut être évalué directement sur un enregistrement en mémoire ou
parcouru pour être compilé en SQL (voir ``catalogpy.db.sql``).
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from catalogpy.logger import logger

DEFAULT_SEARCH_FIELDS: Tuple[str, ...] = ("name", "description")


class Condition(ABC):
    """Prédicat sur un enregistrement du catalogue."""

    @abstractmethod
    def matches(self, record: Dict[str, Any]) -> bool:
        """Évalue le prédicat sur un enregistrement."""

    def __and__(self, other: "Condition") -> "Condition":
        return all_of(self, other)

    def __or__(self, other: "Condition") -> "Condition":
        return any_of(self, other)


@dataclass(frozen=True)
class MatchAll(Condition):
    """Accepte tous les enregistrements."""

    def matches(self, record: Dict[str, Any]) -> bool:
        return True


@dataclass(frozen=True)
class FieldEquals(Condition):
    """Égalité stricte sur un champ."""
    field: str
    value: Any

    def matches(self, record: Dict[str, Any]) -> bool:
        return record.get(self.field) == self.value


@dataclass(frozen=True)
class TextContains(Condition):
    """Sous-chaîne insensible à la casse.

    Le terme est comparé littéralement : aucun caractère n'a de sens spécial.
    """
    field: str
    term: str

    def matches(self, record: Dict[str, Any]) -> bool:
        value = record.get(self.field)
        if value is None:
            return False
        return self.term.casefold() in str(value).casefold()


@dataclass(frozen=True)
class AllOf(Condition):
    """Conjonction ; vide, elle accepte tout."""
    conditions: Tuple[Condition, ...]

    def matches(self, record: Dict[str, Any]) -> bool:
        return all(c.matches(record) for c in self.conditions)


@dataclass(frozen=True)
class AnyOf(Condition):
    """Disjonction ; vide, elle n'accepte rien."""
    conditions: Tuple[Condition, ...]

    def matches(self, record: Dict[str, Any]) -> bool:
        return any(c.matches(record) for c in self.conditions)


def all_of(*conditions: Condition) -> Condition:
    """ET logique, en ignorant les MatchAll et en aplatissant les AllOf."""
    parts = []
    for cond in conditions:
        if isinstance(cond, MatchAll):
            continue
        if isinstance(cond, AllOf):
            parts.extend(cond.conditions)
        else:
            parts.append(cond)
    if not parts:
        return MatchAll()
    if len(parts) == 1:
        return parts[0]
    return AllOf(tuple(parts))


def any_of(*conditions: Condition) -> Condition:
    """OU logique, en aplatissant les AnyOf."""
    parts = []
    for cond in conditions:
        if isinstance(cond, MatchAll):
            return MatchAll()
        if isinstance(cond, AnyOf):
            parts.extend(cond.conditions)
        else:
            parts.append(cond)
    if len(parts) == 1:
        return parts[0]
    return AnyOf(tuple(parts))


def normalize_search_term(term: Any) -> Optional[str]:
    """Retourne le terme nettoyé, ou None s'il est absent ou vide."""
    if not isinstance(term, str):
        return None
    cleaned = term.strip()
    return cleaned or None


def search_condition(term: str, fields: Iterable[str] = DEFAULT_SEARCH_FIELDS) -> Condition:
    """Prédicat de recherche : le terme apparaît dans l'un des champs."""
    return any_of(*(TextContains(field, term) for field in fields))


def compose(
        base_filter: Optional[Condition],
        search_term: Any,
        fields: Sequence[str] = DEFAULT_SEARCH_FIELDS
    ) -> Condition:
    """
    Fusionne le filtre de base avec la recherche textuelle.

    Args:
        base_filter: Filtre imposé par l'appelant (ex: articles actifs)
        search_term: Terme de recherche libre, éventuellement absent
        fields: Champs sur lesquels porte la recherche

    Returns:
        Le filtre de base inchangé si le terme est vide, sinon
        ``base AND (champ1 CONTIENT terme OR champ2 CONTIENT terme ...)``.
    """
    base = base_filter if base_filter is not None else MatchAll()
    term = normalize_search_term(search_term)
    if term is None or not fields:
        return base

    logger.debug("Composition du filtre avec la recherche '{term}'", term=term)
    return all_of(base, search_condition(term, fields))
