"""Exceptions du service de listing."""


class CatalogError(Exception):
    """Base exception for the catalog backend."""


class InfrastructureError(CatalogError):
    """Dépendance externe injoignable (base de données, réseau, timeout)."""


class BackingStoreError(InfrastructureError):
    """La collection de stockage n'a pas pu répondre à une requête."""
