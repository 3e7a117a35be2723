"""Module contenant le service de listing principal."""
# catalogpy/listing/listing_service.py
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import psutil

from catalogpy.config import ListingConfig
from catalogpy.db.repository import CatalogRepository
from catalogpy.listing.filters import Condition, MatchAll, compose
from catalogpy.listing.paginator import MaterializedSource, Paginator, QuerySource
from catalogpy.logger import logger
from catalogpy.models import DISTANCE_SORT, ListingRequest, PageResult, SortSpec
from catalogpy.scoring.geo import GeoRanker


@dataclass
class ListingContext:
    """Contexte d'une requête de listing."""
    request: ListingRequest
    condition: Condition
    start_time: float

    @property
    def mode(self) -> str:
        """'ranked' si le classement géographique est actif, sinon 'unranked'."""
        return "ranked" if self.request.is_geo_ranked else "unranked"


class ListingService:
    """Pipeline de listing : filtre, classement géographique et pagination."""

    def __init__(
            self,
            repository: CatalogRepository,
            config: Optional[ListingConfig] = None,
            ranker: Optional[GeoRanker] = None,
            paginator: Optional[Paginator] = None
        ):
        self.repository = repository
        self.config = config or ListingConfig()
        self.ranker = ranker or GeoRanker(
            radius_km=self.config.earth_radius_km,
            precision=self.config.distance_precision,
        )
        self.paginator = paginator or Paginator()

    async def _attach_owners(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Ajoute à chaque article son propriétaire (id, nom, localisation).

        Une seule requête groupée pour l'ensemble des articles.
        """
        if not items:
            return items

        owner_ids = {item.get("owner_id") for item in items if item.get("owner_id") is not None}
        owners = await self.repository.fetch_owners(owner_ids) if owner_ids else {}

        enriched = []
        for item in items:
            row = dict(item)
            row["owner"] = owners.get(item.get("owner_id"))
            enriched.append(row)
        return enriched

    async def list_items(
            self,
            request: ListingRequest,
            base_filter: Optional[Condition] = None
        ) -> PageResult:
        """Retourne une page d'articles selon la requête.

        Args:
            request: Requête normalisée (voir listing.request.build_listing_request).
            base_filter: Filtre imposé par l'appelant (articles actifs, propriétaire...).

        Returns:
            Un PageResult ; `sort` indique le tri effectivement appliqué.

        Raises:
            InfrastructureError: si la collection de stockage est injoignable.
        """
        ctx = ListingContext(
            request=request,
            condition=compose(base_filter or MatchAll(), request.search, self.config.search_fields),
            start_time=time.time(),
        )

        if request.is_geo_ranked:
            result = await self._handle_ranked(ctx)
        else:
            result = await self._handle_unranked(ctx)

        self._log_listing(ctx, result)
        return result

    async def _handle_unranked(self, ctx: ListingContext) -> PageResult:
        """Pagination côté serveur avec le tri demandé."""
        sort = SortSpec(field=ctx.request.sort_field.value, order=ctx.request.sort_order)
        source = QuerySource(self.repository, ctx.condition, sort)

        page = await self.paginator.paginate(ctx.request.page, ctx.request.page_size, source)
        page.items = await self._attach_owners(page.items)
        page.sort = sort
        return page

    async def _handle_ranked(self, ctx: ListingContext) -> PageResult:
        """Matérialise tous les candidats, les classe par distance puis pagine en mémoire."""
        candidates = await self.repository.fetch(ctx.condition)
        candidates = await self._attach_owners(candidates)

        ranked = self.ranker.rank(candidates, ctx.request.latitude, ctx.request.longitude)

        page = await self.paginator.paginate(
            ctx.request.page, ctx.request.page_size, MaterializedSource(ranked)
        )
        page.ranked = True
        page.sort = DISTANCE_SORT
        return page

    def _log_listing(self, ctx: ListingContext, result: PageResult) -> None:
        duration = time.time() - ctx.start_time
        memory_mb = (
            psutil.Process().memory_info().rss / 1024 / 1024
            if self.config.enable_metrics else 0.0
        )
        logger.info(
            "Listing {mode} (page {page}, search: '{search}') : {count}/{total} éléments | "
            "Durée = {duration:.4f}s | RAM = {memory:.2f} Mo",
            mode=ctx.mode,
            page=result.pagination.currentPage,
            search=ctx.request.search or "",
            count=len(result.items),
            total=result.pagination.totalItems,
            duration=duration,
            memory=memory_mb,
        )
