# ---------------------------------------------------------------------
# tests/conftest.py
import os

# Pas de fichiers de logs pendant les tests
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("ENABLE_METRICS", "false")

import pytest  # noqa: E402
from unittest.mock import MagicMock, AsyncMock  # noqa: E402

from factories import make_item, make_owner  # noqa: E402

# --- Mocks des clients de bas niveau ---

@pytest.fixture
def mock_db_connector():
    """Fixture pour un mock du connecteur PostgreSQL."""
    db_conn = MagicMock()
    db_conn.execute_query = AsyncMock(return_value=[])
    return db_conn

# --- Jeux de données ---

@pytest.fixture
def listing_config():
    """Configuration par défaut du pipeline."""
    from catalogpy.config import ListingConfig

    return ListingConfig()

@pytest.fixture
def twelve_items():
    """12 articles actifs d'un même propriétaire, plus un article inactif."""
    items = [make_item(i) for i in range(1, 13)]
    items.append(make_item(13, is_active=False))
    return items

@pytest.fixture
def memory_repository(twelve_items):
    """Collection en mémoire avec un propriétaire localisé au Caire."""
    from catalogpy.db.repository import InMemoryCatalogRepository

    return InMemoryCatalogRepository(
        twelve_items, owners=[make_owner(1, 30.0444, 31.2357)]
    )

@pytest.fixture
def listing_service(memory_repository, listing_config):
    """ListingService réel branché sur la collection en mémoire."""
    from catalogpy.listing.listing_service import ListingService

    return ListingService(repository=memory_repository, config=listing_config)
