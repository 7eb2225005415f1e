"""Promo KPI definitions."""

from promolens.metrics.kpi_definitions import (
    calculate_roi,
    calculate_pvi,
    calculate_leakage,
    is_new_customer,
)

__all__ = [
    "calculate_roi",
    "calculate_pvi",
    "calculate_leakage",
    "is_new_customer",
]
