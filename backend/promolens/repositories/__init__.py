"""
Repositories for the external relational store.
"""

from promolens.repositories.promo_repo import (
    PromoRepository,
    PromoStoreError,
    SNAPSHOT_FIELDS,
)

__all__ = ["PromoRepository", "PromoStoreError", "SNAPSHOT_FIELDS"]
