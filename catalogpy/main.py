"""Main module for the FastAPI application."""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, status
from fastapi.responses import JSONResponse

from .config import ListingConfig, settings
from .db.postgres_connector import PostgresConnector
from .db.repository import PostgresCatalogRepository
from .errors import InfrastructureError
from .listing.filters import Condition, FieldEquals
from .listing.listing_service import ListingService
from .listing.request import build_listing_request, parse_coordinate
from .logger import logger
from .models import ErrorResponse, ListingResponse
from .scoring.geo import GeoPoint


# --- Initialisation des variables globales ---

# Connecteur de base de données (sera connecté au démarrage)
db_connector: PostgresConnector = PostgresConnector(
    settings.DATABASE_URL, max_size=settings.DB_POOL_MAX_SIZE
)

listing_config: ListingConfig = ListingConfig.from_settings(settings)

listing_service: ListingService = ListingService(
    repository=PostgresCatalogRepository(
        db_connector,
        items_table=settings.ITEMS_TABLE,
        owners_table=settings.OWNERS_TABLE,
    ),
    config=listing_config,
)
# Alias `service` que les tests remplacent
service = listing_service


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Handle FastAPI startup and shutdown events."""
    logger.info("Starting up CatalogPy API...")

    try:
        await db_connector.connect()
        logger.info("PostgreSQL connection pool established successfully.")
    except InfrastructureError as e:
        logger.error("Failed to connect to PostgreSQL: {error}", error=e)

    yield

    logger.info("Shutting down CatalogPy API...")
    await db_connector.close()
    logger.info("PostgreSQL connection pool closed.")


app = FastAPI(
    title="CatalogPy - Catalog Listing Service",
    lifespan=lifespan
)


def get_service() -> ListingService:
    """Dépendance FastAPI pour obtenir l'instance du service de listing."""
    return service


def get_requester_location(
        x_requester_latitude: Optional[str] = Header(default=None),
        x_requester_longitude: Optional[str] = Header(default=None)
    ) -> Optional[GeoPoint]:
    """
    Localisation enregistrée du demandeur authentifié.

    La passerelle d'authentification la transmet dans les en-têtes
    X-Requester-Latitude / X-Requester-Longitude ; absente pour un anonyme.
    """
    lat = parse_coordinate(x_requester_latitude, 90)
    lng = parse_coordinate(x_requester_longitude, 180)
    if lat is None or lng is None:
        return None
    return GeoPoint(lat=lat, lng=lng)


async def _list_response(
        svc: ListingService,
        base_filter: Condition,
        message: str,
        requester_location: Optional[GeoPoint],
        **params
    ):
    """Exécute le pipeline et construit l'enveloppe de réponse."""
    request = build_listing_request(
        svc.config, fallback_location=requester_location, **params
    )
    try:
        page = await svc.list_items(request, base_filter=base_filter)
    except InfrastructureError:
        logger.exception("Error processing listing request")
        error = ErrorResponse(message="Internal server error")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error.model_dump(),
        )

    return ListingResponse.from_page(page, message)


@app.get("/api/items", response_model=ListingResponse, tags=["Items"])
async def list_items(
        page: Optional[str] = None,
        page_size: Optional[str] = Query(default=None, alias="pageSize"),
        limit: Optional[str] = None,
        search: Optional[str] = None,
        sort: Optional[str] = None,
        order: Optional[str] = None,
        latitude: Optional[str] = None,
        longitude: Optional[str] = None,
        requester_location: Optional[GeoPoint] = Depends(get_requester_location),
        svc: ListingService = Depends(get_service)
    ):
    """
    GET /api/items : articles actifs, paginés.

    Si une position est connue, les articles sont triés du plus proche au plus
    lointain et `sort` / `order` sont ignorés.
    """
    return await _list_response(
        svc,
        FieldEquals("is_active", True),
        "Items retrieved successfully",
        requester_location,
        page=page,
        page_size=page_size if page_size is not None else limit,
        search=search,
        sort=sort,
        order=order,
        latitude=latitude,
        longitude=longitude,
    )


@app.get("/api/items/owner/{owner_id}", response_model=ListingResponse, tags=["Items"])
async def list_owner_items(
        owner_id: int,
        page: Optional[str] = None,
        page_size: Optional[str] = Query(default=None, alias="pageSize"),
        limit: Optional[str] = None,
        search: Optional[str] = None,
        sort: Optional[str] = None,
        order: Optional[str] = None,
        latitude: Optional[str] = None,
        longitude: Optional[str] = None,
        requester_location: Optional[GeoPoint] = Depends(get_requester_location),
        svc: ListingService = Depends(get_service)
    ):
    """GET /api/items/owner/{owner_id} : tous les articles d'un vendeur, actifs ou non."""
    return await _list_response(
        svc,
        FieldEquals("owner_id", owner_id),
        "Owner items retrieved successfully",
        requester_location,
        page=page,
        page_size=page_size if page_size is not None else limit,
        search=search,
        sort=sort,
        order=order,
        latitude=latitude,
        longitude=longitude,
    )


@app.get("/")
def root():
    """Root endpoint to check API status."""
    return {"status": "ok", "message": "CatalogPy API is running 🚀"}


@app.get("/health", status_code=status.HTTP_200_OK, tags=["Monitoring"])
async def health_check():
    """
    Health check endpoint.

    Returns 200 OK if the database is reachable, otherwise 503 Service Unavailable.
    """
    services_status = {"database": "ok"}
    try:
        await db_connector.execute_query("SELECT 1")
    except InfrastructureError:
        services_status["database"] = "error"
        logger.error("Health check failed: Database connection error.")

    if "error" in services_status.values():
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=services_status)

    return services_status
