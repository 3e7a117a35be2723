"""Distance orthodromique et classement géographique des résultats."""
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..logger import logger

EARTH_RADIUS_KM = 6371.0
DISTANCE_KEY = "distanceKm"


@dataclass(frozen=True)
class GeoPoint:
    """Représente un point géographique."""
    lat: float
    lng: float

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['GeoPoint']:
        """Crée un GeoPoint depuis un dictionnaire avec support multi-format."""
        if not data:
            return None
        try:
            if "latitude" in data and "longitude" in data:
                lat = data.get("latitude")
                lng = data.get("longitude")
            elif "lat" in data and "lng" in data:
                lat = data.get("lat")
                lng = data.get("lng")
            else:
                return None

            if lat is not None and lng is not None:
                lat, lng = float(lat), float(lng)
                # NaN / infini : position inexploitable
                if math.isfinite(lat) and math.isfinite(lng):
                    return cls(lat=lat, lng=lng)
        except (ValueError, TypeError):
            pass
        return None

    def to_dict(self) -> Dict[str, float]:
        """Format exposé dans les réponses."""
        return {"latitude": self.lat, "longitude": self.lng}


def distance_km(
        lat1: float, lon1: float, lat2: float, lon2: float,
        radius_km: float = EARTH_RADIUS_KM) -> float:
    """Distance haversine en kilomètres entre deux points (en degrés)."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    value = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    # min() protège asin des arrondis flottants au-delà de 1
    arc = 2 * math.asin(math.sqrt(min(1.0, value)))
    return radius_km * arc


def is_finite_number(value: Any) -> bool:
    """Vrai pour un int/float fini (les booléens sont exclus)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def owner_location(record: Dict[str, Any]) -> Optional[GeoPoint]:
    """Localisation du propriétaire d'un enregistrement, si connue."""
    owner = record.get("owner")
    if not isinstance(owner, dict):
        return None
    return GeoPoint.from_dict(owner.get("location"))


class GeoRanker:  # pylint: disable=too-few-public-methods
    """Classe les enregistrements par distance croissante au demandeur."""

    def __init__(self, radius_km: float = EARTH_RADIUS_KM, precision: int = 2):
        self.radius_km = radius_km
        self.precision = precision

    def _distance_to(
            self, record: Dict[str, Any], lat: Any, lon: Any) -> Optional[float]:
        if not (is_finite_number(lat) and is_finite_number(lon)):
            return None
        point = owner_location(record)
        if point is None:
            return None
        dist = distance_km(lat, lon, point.lat, point.lng, self.radius_km)
        return round(dist, self.precision)

    def rank(
            self,
            records: List[Dict[str, Any]],
            requester_lat: Any,
            requester_lon: Any
        ) -> List[Dict[str, Any]]:
        """
        Annote chaque enregistrement avec `distanceKm` puis trie.

        Le tri est stable : les distances connues d'abord (croissantes), puis
        les distances inconnues, l'ordre d'entrée étant conservé entre égalités.

        Args:
            records: Candidats déjà matérialisés
            requester_lat: Latitude du demandeur
            requester_lon: Longitude du demandeur

        Returns:
            Nouvelle liste de copies annotées ; les entrées ne sont pas modifiées.
        """
        annotated = []
        for record in records:
            ranked = dict(record)
            ranked[DISTANCE_KEY] = self._distance_to(record, requester_lat, requester_lon)
            annotated.append(ranked)

        annotated.sort(key=lambda r: (r[DISTANCE_KEY] is None, r[DISTANCE_KEY] or 0.0))

        located = sum(1 for r in annotated if r[DISTANCE_KEY] is not None)
        logger.debug(
            "Classement géographique : {located} localisés sur {total}",
            located=located, total=len(annotated)
        )
        return annotated
