"""Construction tolérante d'une ListingRequest à partir des paramètres bruts."""
import math
from typing import Any, Optional, Tuple

from catalogpy.config import ListingConfig
from catalogpy.listing.filters import normalize_search_term
from catalogpy.listing.paginator import resolve_paging
from catalogpy.logger import logger
from catalogpy.models import ListingRequest, SortField, SortOrder
from catalogpy.scoring.geo import GeoPoint


def parse_coordinate(value: Any, bound: float) -> Optional[float]:
    """Retourne la coordonnée si elle est numérique, finie et dans [-bound, bound]."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or abs(number) > bound:
        return None
    return number


def _is_supplied(value: Any) -> bool:
    return value is not None and not (isinstance(value, str) and not value.strip())


def resolve_requester_location(
        latitude: Any,
        longitude: Any,
        fallback: Optional[GeoPoint] = None
    ) -> Tuple[Optional[float], Optional[float]]:
    """
    Détermine les coordonnées du demandeur.

    Les coordonnées explicites priment : si l'une d'elles est fournie, seules
    celles-ci sont prises en compte (invalides => pas de classement).
    Sinon on se rabat sur la localisation enregistrée du demandeur.
    """
    if _is_supplied(latitude) or _is_supplied(longitude):
        lat = parse_coordinate(latitude, 90)
        lon = parse_coordinate(longitude, 180)
    elif fallback is not None:
        lat = parse_coordinate(fallback.lat, 90)
        lon = parse_coordinate(fallback.lng, 180)
    else:
        return None, None

    if lat is None or lon is None:
        logger.debug(
            "Coordonnées ignorées (lat={lat}, lng={lng})", lat=latitude, lng=longitude
        )
        return None, None
    return lat, lon


def _parse_enum(enum_cls, value: Any, default: str):
    try:
        return enum_cls(value)
    except ValueError:
        return enum_cls(default)


def build_listing_request(
        config: ListingConfig,
        page: Any = None,
        page_size: Any = None,
        search: Any = None,
        sort: Any = None,
        order: Any = None,
        latitude: Any = None,
        longitude: Any = None,
        fallback_location: Optional[GeoPoint] = None
    ) -> ListingRequest:
    """Normalise les paramètres de la requête ; toute valeur invalide prend sa valeur par défaut."""
    resolved_page, resolved_size = resolve_paging(page, page_size, config)
    lat, lon = resolve_requester_location(latitude, longitude, fallback_location)

    return ListingRequest(
        page=resolved_page,
        page_size=resolved_size,
        search=normalize_search_term(search),
        sort_field=_parse_enum(SortField, sort, config.default_sort_field),
        sort_order=_parse_enum(SortOrder, order, config.default_sort_order),
        latitude=lat,
        longitude=lon,
    )
