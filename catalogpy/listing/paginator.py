"""Pagination unifiée : côté base de données ou sur une liste déjà triée."""
import asyncio
import math
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from catalogpy.config import ListingConfig
from catalogpy.listing.filters import Condition
from catalogpy.models import PageResult, PaginationMeta, SortSpec

# Plus grand OFFSET accepté par PostgreSQL (bigint)
MAX_OFFSET = 2 ** 63 - 1


class PageSource(ABC):
    """Source paginable : sait compter ses éléments et en extraire une tranche."""

    @abstractmethod
    async def count(self) -> int:
        """Nombre total d'éléments de la source."""

    @abstractmethod
    async def slice(self, skip: int, limit: int) -> List[Dict[str, Any]]:
        """Éléments [skip, skip + limit) de la source."""


class QuerySource(PageSource):
    """Source adossée à la collection : filtre, tri, skip et limit côté serveur."""

    def __init__(self, repository, condition: Condition, sort: Optional[SortSpec] = None):
        self.repository = repository
        self.condition = condition
        self.sort = sort

    async def count(self) -> int:
        return await self.repository.count(self.condition)

    async def slice(self, skip: int, limit: int) -> List[Dict[str, Any]]:
        return await self.repository.fetch(
            self.condition, sort=self.sort, skip=skip, limit=limit
        )


class MaterializedSource(PageSource):
    """Source déjà matérialisée et ordonnée en mémoire."""

    def __init__(self, items: List[Dict[str, Any]]):
        self.items = items

    async def count(self) -> int:
        return len(self.items)

    async def slice(self, skip: int, limit: int) -> List[Dict[str, Any]]:
        return self.items[skip:skip + limit]


def _as_positive_int(value: Any) -> Optional[int]:
    """Convertit en entier strictement positif, sinon None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    elif not isinstance(value, int):
        try:
            value = int(str(value).strip())
        except ValueError:
            return None
    return value if value >= 1 else None


def resolve_paging(page: Any, page_size: Any, config: ListingConfig) -> Tuple[int, int]:
    """
    Normalise les paramètres de pagination.

    Une valeur absente, non entière, inférieure à 1 ou (pour la taille de page)
    supérieure au maximum configuré est remplacée par sa valeur par défaut.
    Il en va de même pour une page dont le décalage dépasse MAX_OFFSET.
    Ne lève jamais d'exception.
    """
    resolved_page = _as_positive_int(page) or config.default_page
    resolved_size = _as_positive_int(page_size)
    if resolved_size is None or resolved_size > config.max_page_size:
        resolved_size = config.default_page_size
    if (resolved_page - 1) * resolved_size > MAX_OFFSET:
        resolved_page = config.default_page
    return resolved_page, resolved_size


def build_pagination(page: int, page_size: int, total: int) -> PaginationMeta:
    """Métadonnées communes aux deux stratégies."""
    total_pages = math.ceil(total / page_size) if total > 0 else 0
    return PaginationMeta(
        currentPage=page,
        totalPages=total_pages,
        totalItems=total,
        itemsPerPage=page_size,
        hasNextPage=page < total_pages,
        hasPrevPage=page > 1,
    )


class Paginator:  # pylint: disable=too-few-public-methods
    """Produit une page et ses métadonnées à partir de n'importe quelle PageSource."""

    async def paginate(self, page: int, page_size: int, source: PageSource) -> PageResult:
        """
        Args:
            page: Numéro de page (>= 1, déjà normalisé)
            page_size: Taille de page (>= 1, déjà normalisée)
            source: QuerySource ou MaterializedSource

        Returns:
            PageResult sans tri effectif ; l'appelant le renseigne.
        """
        skip = (page - 1) * page_size
        # Le comptage et la tranche sont deux lectures indépendantes
        total, items = await asyncio.gather(
            source.count(),
            source.slice(skip, page_size),
        )
        return PageResult(
            items=list(items),
            pagination=build_pagination(page, page_size, total),
        )
