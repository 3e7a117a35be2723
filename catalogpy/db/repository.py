"""Accès à la collection du catalogue (articles et propriétaires)."""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from catalogpy.db.sql import SqlFilterCompiler
from catalogpy.listing.filters import Condition
from catalogpy.logger import logger
from catalogpy.models import SortField, SortOrder, SortSpec
from catalogpy.scoring.geo import GeoPoint

ITEM_COLUMNS = (
    "id", "name", "description", "price", "quantity", "image",
    "owner_id", "is_active", "created_at", "updated_at",
)


def sort_column(sort: SortSpec) -> str:
    """Champ d'enregistrement correspondant à un tri exposé par l'API."""
    return SortField(sort.field).column


def normalize_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """Convertit les NUMERIC (Decimal) en float pour la sérialisation JSON."""
    return {k: float(v) if isinstance(v, Decimal) else v for k, v in row.items()}


class CatalogRepository(ABC):
    """Contrat de la collection de stockage utilisée par le pipeline de listing."""

    @abstractmethod
    async def count(self, condition: Condition) -> int:
        """Nombre d'articles correspondant au filtre."""

    @abstractmethod
    async def fetch(
            self,
            condition: Condition,
            sort: Optional[SortSpec] = None,
            skip: Optional[int] = None,
            limit: Optional[int] = None
        ) -> List[Dict[str, Any]]:
        """Articles correspondant au filtre ; sans tri, ordre par identifiant."""

    @abstractmethod
    async def fetch_owners(self, owner_ids: Iterable[Any]) -> Dict[Any, Dict[str, Any]]:
        """Propriétaires par identifiant : {id: {"id", "name", "location"}}."""


class PostgresCatalogRepository(CatalogRepository):
    """Implémentation PostgreSQL via PostgresConnector."""

    def __init__(self, db_connector, items_table: str = "items", owners_table: str = "owners"):
        self.db = db_connector
        self.items_table = items_table
        self.owners_table = owners_table
        self.compiler = SqlFilterCompiler({c: c for c in ITEM_COLUMNS})

    def _where(self, condition: Condition):
        params: List[Any] = []
        clause = self.compiler.compile(condition, params)
        return clause, params

    async def count(self, condition: Condition) -> int:
        clause, params = self._where(condition)
        sql = f"SELECT COUNT(*) AS total FROM {self.items_table} WHERE {clause}"  # nosec B608
        rows = await self.db.execute_query(sql, *params)
        return int(rows[0]["total"]) if rows else 0

    async def fetch(
            self,
            condition: Condition,
            sort: Optional[SortSpec] = None,
            skip: Optional[int] = None,
            limit: Optional[int] = None
        ) -> List[Dict[str, Any]]:
        clause, params = self._where(condition)

        # Clé secondaire sur id : ordre total, donc pagination déterministe
        if sort is not None:
            direction = "DESC" if sort.order == SortOrder.DESC else "ASC"
            order_by = f"{sort_column(sort)} {direction}, id ASC"
        else:
            order_by = "id ASC"

        sql = (
            f"SELECT {', '.join(ITEM_COLUMNS)} FROM {self.items_table} "  # nosec B608
            f"WHERE {clause} ORDER BY {order_by}"
        )
        if limit is not None:
            params.append(limit)
            sql += f" LIMIT ${len(params)}"
        if skip:
            params.append(skip)
            sql += f" OFFSET ${len(params)}"

        rows = await self.db.execute_query(sql, *params)
        return [normalize_row(row) for row in rows]

    async def fetch_owners(self, owner_ids: Iterable[Any]) -> Dict[Any, Dict[str, Any]]:
        ids = list(dict.fromkeys(i for i in owner_ids if i is not None))
        if not ids:
            return {}

        sql = (
            f"SELECT id, name, latitude, longitude FROM {self.owners_table} "  # nosec B608
            "WHERE id = ANY($1)"
        )
        rows = await self.db.execute_query(sql, ids)
        owners = {}
        for row in rows:
            point = GeoPoint.from_dict(row)
            owners[row["id"]] = {
                "id": row["id"],
                "name": row.get("name"),
                "location": point.to_dict() if point else None,
            }
        logger.debug("{found} propriétaires chargés sur {asked}", found=len(owners), asked=len(ids))
        return owners


class InMemoryCatalogRepository(CatalogRepository):
    """
    Implémentation en mémoire, conforme au même contrat.

    - Ordre par défaut : identifiant croissant, comme en base
    - Applique le filtre avant le tri, puis skip/limit
    """

    def __init__(self, items: List[Dict[str, Any]], owners: Optional[List[Dict[str, Any]]] = None):
        self._items = list(items)
        self._owners = {o["id"]: o for o in (owners or [])}

    async def count(self, condition: Condition) -> int:
        return sum(1 for item in self._items if condition.matches(item))

    async def fetch(
            self,
            condition: Condition,
            sort: Optional[SortSpec] = None,
            skip: Optional[int] = None,
            limit: Optional[int] = None
        ) -> List[Dict[str, Any]]:
        matches = [dict(item) for item in self._items if condition.matches(item)]

        # Tri stable : id croissant d'abord, puis le champ demandé.
        # Les NULL vont en fin de tri croissant et en tête de tri décroissant,
        # comme dans PostgreSQL.
        matches.sort(key=lambda item: item["id"])
        if sort is not None:
            column = sort_column(sort)
            matches.sort(
                key=lambda item: (item.get(column) is None, item.get(column)),
                reverse=sort.order == SortOrder.DESC
            )

        start = skip or 0
        end = None if limit is None else start + limit
        return matches[start:end]

    async def fetch_owners(self, owner_ids: Iterable[Any]) -> Dict[Any, Dict[str, Any]]:
        owners = {}
        for owner_id in owner_ids:
            owner = self._owners.get(owner_id)
            if owner is None:
                continue
            point = GeoPoint.from_dict(owner.get("location"))
            owners[owner_id] = {
                "id": owner["id"],
                "name": owner.get("name"),
                "location": point.to_dict() if point else None,
            }
        return owners
