"""
Tests for the metrics service error policies.

Tests:
- Code metrics degrade store failures to zero metrics (fail-soft)
- Dashboard KPIs degrade store failures to zero KPIs (fail-soft)
- Owner metrics raise on a missing owner and propagate store errors (fail-loud)
- FetchResult carries the error instead of raising

Run with: pytest backend/promolens/tests/services/test_metrics_error_policies.py -v
"""

import logging
from unittest.mock import MagicMock

import pytest

from promolens.repositories.promo_repo import PromoRepository, PromoStoreError
from promolens.services.promo_metrics_service import (
    DashboardKPIs,
    OwnerNotFoundError,
    PromoMetrics,
    PromoMetricsService,
)


@pytest.fixture
def mock_repository():
    return MagicMock(spec=PromoRepository)


@pytest.fixture
def service(mock_repository):
    return PromoMetricsService(db_session=MagicMock(), repository=mock_repository)


class TestCodeMetricsFailSoft:

    def test_store_error_returns_zero_metrics(self, service, mock_repository):
        mock_repository.get_redemptions.side_effect = PromoStoreError("boom", "get_redemptions")

        metrics = service.calculate_code_metrics("code-1")

        assert metrics == PromoMetrics.zero("code-1")

    def test_store_error_is_logged(self, service, mock_repository, caplog):
        mock_repository.get_redemptions.side_effect = PromoStoreError("boom", "get_redemptions")

        with caplog.at_level(logging.ERROR):
            service.calculate_code_metrics("code-1")

        assert "Code metrics fetch failed" in caplog.text

    def test_fetch_reports_error_without_raising(self, service, mock_repository):
        error = PromoStoreError("boom", "get_redemptions")
        mock_repository.get_redemptions.side_effect = error

        result = service.fetch_code_metrics("code-1")

        assert result.ok is False
        assert result.error is error
        assert result.value is None

    def test_no_redemptions_gives_zero_metrics(self, service, mock_repository):
        mock_repository.get_redemptions.return_value = []

        assert service.calculate_code_metrics("code-1") == PromoMetrics.zero("code-1")


class TestDashboardFailSoft:

    def test_store_error_returns_zero_kpis(self, service, mock_repository):
        mock_repository.get_redemptions.side_effect = PromoStoreError("boom", "get_redemptions")

        assert service.get_dashboard_kpis() == DashboardKPIs.zero()

    def test_dashboard_reads_all_codes(self, service, mock_repository):
        mock_repository.get_redemptions.return_value = []

        service.get_dashboard_kpis()

        mock_repository.get_redemptions.assert_called_once_with(None, None, None)


class TestOwnerMetricsFailLoud:

    def test_missing_owner_raises(self, service, mock_repository):
        mock_repository.get_owner.return_value = None

        with pytest.raises(OwnerNotFoundError) as exc_info:
            service.calculate_owner_metrics("missing")

        assert exc_info.value.owner_id == "missing"

    def test_owner_lookup_error_propagates(self, service, mock_repository):
        mock_repository.get_owner.side_effect = PromoStoreError("down", "get_owner")

        with pytest.raises(PromoStoreError):
            service.calculate_owner_metrics("owner-1")

    def test_redemption_error_propagates(self, service, mock_repository):
        owner = MagicMock(id="owner-1", type="REP")
        owner.name = "Sam Rivera"
        mock_repository.get_owner.return_value = owner
        mock_repository.get_codes_by_owner.return_value = [MagicMock(id="code-1")]
        mock_repository.get_redemptions.side_effect = PromoStoreError("down", "get_redemptions")

        with pytest.raises(PromoStoreError):
            service.calculate_owner_metrics("owner-1")

    def test_owner_without_codes(self, service, mock_repository):
        owner = MagicMock(id="owner-1", type="CAMPAIGN")
        owner.name = "Spring Launch"
        mock_repository.get_owner.return_value = owner
        mock_repository.get_codes_by_owner.return_value = []

        metrics = service.calculate_owner_metrics("owner-1")

        assert metrics.total_codes == 0
        assert metrics.total_uses == 0
        assert metrics.avg_pvi == 0.0
        assert metrics.avg_roi == 0.0
        assert metrics.owner_name == "Spring Launch"
