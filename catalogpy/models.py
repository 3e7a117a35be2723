"""Modèles Pydantic pour les requêtes et réponses de listing."""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SortField(str, Enum):
    """Champs de tri exposés à l'API."""
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"
    NAME = "name"
    PRICE = "price"
    QUANTITY = "quantity"

    @property
    def column(self) -> str:
        """Nom du champ dans les enregistrements du catalogue."""
        return _SORT_COLUMNS[self]


_SORT_COLUMNS = {
    SortField.CREATED_AT: "created_at",
    SortField.UPDATED_AT: "updated_at",
    SortField.NAME: "name",
    SortField.PRICE: "price",
    SortField.QUANTITY: "quantity",
}


class SortOrder(str, Enum):
    """Sens du tri."""
    ASC = "asc"
    DESC = "desc"


class SortSpec(BaseModel): # pylint: disable=too-few-public-methods
    """Tri effectif appliqué à une page."""
    field: str
    order: SortOrder


# Tri rapporté lorsque le classement géographique est actif
DISTANCE_SORT = SortSpec(field="distance", order=SortOrder.ASC)


class ListingRequest(BaseModel): # pylint: disable=too-few-public-methods
    """Requête de listing déjà normalisée (voir listing.request)."""
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1)
    search: Optional[str] = None
    sort_field: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    @property
    def is_geo_ranked(self) -> bool:
        """Vrai si les deux coordonnées du demandeur sont connues."""
        return self.latitude is not None and self.longitude is not None


class PaginationMeta(BaseModel): # pylint: disable=too-few-public-methods
    """Métadonnées de pagination, identiques quelle que soit la stratégie."""
    currentPage: int
    totalPages: int
    totalItems: int
    itemsPerPage: int
    hasNextPage: bool
    hasPrevPage: bool


class PageResult(BaseModel): # pylint: disable=too-few-public-methods
    """Une page de résultats."""
    items: List[Dict[str, Any]]
    pagination: PaginationMeta
    ranked: bool = False
    sort: Optional[SortSpec] = None


class ListingData(BaseModel): # pylint: disable=too-few-public-methods
    """Contenu de `data` dans l'enveloppe de réponse."""
    count: int
    items: List[Dict[str, Any]]
    pagination: PaginationMeta
    sort: Optional[SortSpec] = None


class ListingResponse(BaseModel): # pylint: disable=too-few-public-methods
    """Réponse de listing."""
    success: bool = True
    status: str = "success"
    message: str
    data: ListingData

    model_config = ConfigDict(extra="allow")

    @classmethod
    def from_page(cls, page: PageResult, message: str) -> "ListingResponse":
        """Construit l'enveloppe de succès à partir d'une page."""
        return cls(
            message=message,
            data=ListingData(
                count=len(page.items),
                items=page.items,
                pagination=page.pagination,
                sort=page.sort,
            ),
        )


class ErrorResponse(BaseModel): # pylint: disable=too-few-public-methods
    """Réponse d'erreur, sans données de pagination."""
    success: bool = False
    status: str = "error"
    message: str
