# tests/test_repository.py
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from catalogpy.db.postgres_connector import PostgresConnector
from catalogpy.db.repository import InMemoryCatalogRepository, PostgresCatalogRepository
from catalogpy.db.sql import SqlFilterCompiler, escape_like
from catalogpy.errors import BackingStoreError, InfrastructureError
from catalogpy.listing.filters import FieldEquals, MatchAll, TextContains, compose
from catalogpy.listing.listing_service import ListingService
from catalogpy.listing.paginator import MAX_OFFSET
from catalogpy.listing.request import build_listing_request
from catalogpy.models import SortOrder, SortSpec

from factories import make_item, make_owner


class TestSqlCompiler:
    """Traduction des descripteurs en SQL paramétré."""

    def test_escape_like(self):
        assert escape_like("50%_off\\") == "50\\%\\_off\\\\"
        assert escape_like("A+B (test)") == "A+B (test)"

    def test_match_all(self):
        params = []
        assert SqlFilterCompiler({}).compile(MatchAll(), params) == "TRUE"
        assert params == []

    def test_search_is_bound_as_escaped_parameter(self):
        compiler = SqlFilterCompiler({"is_active": "is_active", "name": "name", "description": "description"})
        params = []
        sql = compiler.compile(compose(FieldEquals("is_active", True), "100%"), params)

        assert sql == (
            "(is_active = $1 AND (name ILIKE $2 ESCAPE '\\' OR description ILIKE $3 ESCAPE '\\'))"
        )
        assert params == [True, "%100\\%%", "%100\\%%"]

    def test_null_equality(self):
        params = []
        assert SqlFilterCompiler({"owner_id": "owner_id"}).compile(FieldEquals("owner_id", None), params) == "owner_id IS NULL"
        assert params == []

    def test_unknown_field_is_rejected(self):
        with pytest.raises(ValueError):
            SqlFilterCompiler({"name": "name"}).compile(TextContains("password; DROP", "x"), [])


@pytest.mark.asyncio
class TestPostgresCatalogRepository:
    """Requêtes émises vers le connecteur (mocké)."""

    async def test_count(self, mock_db_connector):
        mock_db_connector.execute_query.return_value = [{"total": 3}]
        repo = PostgresCatalogRepository(mock_db_connector)

        total = await repo.count(compose(FieldEquals("is_active", True), "A+B (test)"))

        assert total == 3
        sql, *params = mock_db_connector.execute_query.await_args.args
        assert sql.startswith("SELECT COUNT(*) AS total FROM items WHERE ")
        assert params == [True, "%A+B (test)%", "%A+B (test)%"]

    async def test_fetch_page_with_sort(self, mock_db_connector):
        repo = PostgresCatalogRepository(mock_db_connector, items_table="medicines")
        sort = SortSpec(field="price", order=SortOrder.DESC)

        await repo.fetch(FieldEquals("is_active", True), sort=sort, skip=20, limit=10)

        sql, *params = mock_db_connector.execute_query.await_args.args
        assert "FROM medicines WHERE is_active = $1" in sql
        assert sql.endswith("ORDER BY price DESC, id ASC LIMIT $2 OFFSET $3")
        assert params == [True, 10, 20]

    async def test_fetch_all_without_sort(self, mock_db_connector):
        repo = PostgresCatalogRepository(mock_db_connector)

        await repo.fetch(MatchAll())

        sql, *params = mock_db_connector.execute_query.await_args.args
        assert sql.endswith("WHERE TRUE ORDER BY id ASC")
        assert params == []

    async def test_huge_page_never_reaches_offset(self, mock_db_connector, listing_config):
        service = ListingService(PostgresCatalogRepository(mock_db_connector), config=listing_config)
        request = build_listing_request(listing_config, page="99999999999999999999")

        page = await service.list_items(request)

        assert page.pagination.currentPage == 1
        for call in mock_db_connector.execute_query.await_args_list:
            _, *params = call.args
            assert all(p <= MAX_OFFSET for p in params if isinstance(p, int))

    async def test_offset_is_bound_as_parameter(self, mock_db_connector):
        repo = PostgresCatalogRepository(mock_db_connector)
        await repo.fetch(MatchAll(), skip=MAX_OFFSET, limit=10)

        sql, *params = mock_db_connector.execute_query.await_args.args
        assert sql.endswith("LIMIT $1 OFFSET $2")
        assert params == [10, MAX_OFFSET]

    async def test_fetch_converts_decimals(self, mock_db_connector):
        mock_db_connector.execute_query.return_value = [{"id": 1, "price": Decimal("15.99")}]
        rows = await PostgresCatalogRepository(mock_db_connector).fetch(MatchAll())
        assert rows == [{"id": 1, "price": 15.99}]
        assert isinstance(rows[0]["price"], float)

    async def test_fetch_owners(self, mock_db_connector):
        mock_db_connector.execute_query.return_value = [
            {"id": 1, "name": "Pharmacy 1", "latitude": Decimal("30.0444"), "longitude": 31.2357},
            {"id": 2, "name": "Pharmacy 2", "latitude": None, "longitude": None},
        ]
        repo = PostgresCatalogRepository(mock_db_connector)

        owners = await repo.fetch_owners([1, 2, 1, None])

        sql, ids = mock_db_connector.execute_query.await_args.args
        assert "WHERE id = ANY($1)" in sql
        assert ids == [1, 2]
        assert owners[1]["location"] == {"latitude": 30.0444, "longitude": 31.2357}
        assert owners[2]["location"] is None

    async def test_fetch_owners_with_nan_coordinates(self, mock_db_connector):
        mock_db_connector.execute_query.return_value = [
            {"id": 3, "name": "Pharmacy 3", "latitude": Decimal("NaN"), "longitude": Decimal("31.2")},
        ]
        owners = await PostgresCatalogRepository(mock_db_connector).fetch_owners([3])
        assert owners[3]["location"] is None

    async def test_fetch_owners_without_ids_skips_query(self, mock_db_connector):
        assert await PostgresCatalogRepository(mock_db_connector).fetch_owners([None]) == {}
        mock_db_connector.execute_query.assert_not_called()

    async def test_backing_store_errors_propagate(self, mock_db_connector):
        mock_db_connector.execute_query.side_effect = BackingStoreError("timeout")
        with pytest.raises(InfrastructureError):
            await PostgresCatalogRepository(mock_db_connector).count(MatchAll())


@pytest.mark.asyncio
class TestInMemoryCatalogRepository:
    """Même contrat que la version PostgreSQL."""

    async def test_filter_sort_skip_limit(self):
        items = [make_item(i, price=float(10 - i)) for i in range(1, 8)]
        repo = InMemoryCatalogRepository(items)
        sort = SortSpec(field="price", order=SortOrder.ASC)

        rows = await repo.fetch(MatchAll(), sort=sort, skip=2, limit=3)

        assert [r["id"] for r in rows] == [5, 4, 3]
        assert await repo.count(FieldEquals("id", 3)) == 1

    async def test_ties_broken_by_id(self):
        items = [make_item(i, price=1.0) for i in (3, 1, 2)]
        sort = SortSpec(field="price", order=SortOrder.DESC)
        rows = await InMemoryCatalogRepository(items).fetch(MatchAll(), sort=sort)
        assert [r["id"] for r in rows] == [1, 2, 3]

    @pytest.mark.parametrize("order, expected", [
        (SortOrder.ASC, [3, 1, 2, 4]),
        (SortOrder.DESC, [2, 4, 1, 3]),
    ])
    async def test_null_sort_values_are_ordered_like_postgres(self, order, expected):
        items = [make_item(1, price=5.0), make_item(2), make_item(3, price=1.0), make_item(4)]
        items[1]["price"] = None
        items[3]["price"] = None
        sort = SortSpec(field="price", order=order)

        rows = await InMemoryCatalogRepository(items).fetch(MatchAll(), sort=sort)

        assert [r["id"] for r in rows] == expected

    async def test_fetch_owners(self):
        repo = InMemoryCatalogRepository([], owners=[make_owner(1, 30.0, 31.0), make_owner(2)])
        owners = await repo.fetch_owners({1, 2, 3})
        assert owners[1]["location"] == {"latitude": 30.0, "longitude": 31.0}
        assert owners[2]["location"] is None
        assert 3 not in owners


@pytest.mark.asyncio
class TestPostgresConnector:
    """Les erreurs de bas niveau deviennent des BackingStoreError."""

    async def test_query_without_pool(self):
        with pytest.raises(BackingStoreError):
            await PostgresConnector("postgresql://localhost/test").execute_query("SELECT 1")

    @pytest.mark.parametrize("error", [OSError("connection refused"), asyncpg.InterfaceError("pool is closing")])
    async def test_driver_errors_are_wrapped(self, error):
        conn = MagicMock()
        conn.fetch = AsyncMock(side_effect=error)
        pool = MagicMock()
        pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
        pool.acquire.return_value.__aexit__ = AsyncMock(return_value=False)

        connector = PostgresConnector("postgresql://localhost/test")
        connector._pool = pool  # pylint: disable=protected-access

        with pytest.raises(BackingStoreError) as exc_info:
            await connector.execute_query("SELECT 1")
        assert exc_info.value.__cause__ is error

    async def test_rows_are_returned_as_dicts(self):
        conn = MagicMock()
        conn.fetch = AsyncMock(return_value=[{"id": 1}])
        pool = MagicMock()
        pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
        pool.acquire.return_value.__aexit__ = AsyncMock(return_value=False)

        connector = PostgresConnector("postgresql://localhost/test")
        connector._pool = pool  # pylint: disable=protected-access

        assert await connector.execute_query("SELECT $1", 1) == [{"id": 1}]
        conn.fetch.assert_awaited_once_with("SELECT $1", 1)
