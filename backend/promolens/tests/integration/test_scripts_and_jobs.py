"""
Tests for the operational scripts and job entry points.

Tests:
- init_database creates/verifies every model table
- Demo seeding is reproducible and attributes redeemed orders to owners
- Dry runs write nothing
- Job argument parsing
- Anomaly runner persists flags and exits non-zero on failure

Run with: pytest backend/promolens/tests/integration/test_scripts_and_jobs.py -v
"""

from datetime import date, timedelta
from unittest.mock import patch

import pytest

from promolens.jobs import anomaly_runner
from promolens.jobs.snapshot_runner import parse_args
from promolens.models import AnomalyFlag, CodeRedemption, Order, Owner, PromoCode
from promolens.scripts.init_db import init_database
from promolens.scripts.seed_demo_data import OWNER_COUNTS, seed_demo_data


class TestInitDatabase:

    def test_returns_all_tables(self, db_engine):
        tables = init_database(db_engine)

        assert tables == sorted(tables)
        for name in ("owners", "codes", "customers", "orders", "code_redemptions",
                     "metrics_snapshots", "anomaly_flags"):
            assert name in tables


class TestSeedDemoData:

    def test_counts_match_rows(self, db_session):
        counts = seed_demo_data(db_session, customers=20, codes=8, orders=60, days=10, seed=1)

        assert counts.owners == sum(OWNER_COUNTS.values())
        assert db_session.query(Owner).count() == counts.owners
        assert db_session.query(PromoCode).count() == 8
        assert db_session.query(Order).count() == 60
        assert db_session.query(CodeRedemption).count() == counts.redemptions

    def test_redeemed_orders_are_attributed(self, db_session):
        seed_demo_data(db_session, customers=10, codes=5, orders=40, days=10, seed=3)

        for redemption in db_session.query(CodeRedemption).all():
            assert redemption.order.owner_id == redemption.code.owner_id
            assert redemption.order.coupon == redemption.code.code

    def test_same_seed_same_shape(self, db_session):
        first = seed_demo_data(db_session, dry_run=True, customers=10, codes=5, orders=40, seed=7)
        second = seed_demo_data(db_session, dry_run=True, customers=10, codes=5, orders=40, seed=7)

        assert first == second

    def test_dry_run_writes_nothing(self, db_session):
        seed_demo_data(db_session, dry_run=True, customers=5, codes=3, orders=10)

        assert db_session.query(Owner).count() == 0
        assert db_session.query(Order).count() == 0


class TestSnapshotRunnerArgs:

    def test_default_date(self):
        assert parse_args([]).date is None

    def test_explicit_date(self):
        assert parse_args(["--date", "2024-03-01"]).date == date(2024, 3, 1)

    def test_invalid_date_exits(self):
        with pytest.raises(SystemExit):
            parse_args(["--date", "03/01/2024"])


class TestAnomalyRunner:

    def test_persists_flags(self, db_session, make_code, make_snapshot):
        code = make_code(code="SHARED")
        for i in range(3):
            make_snapshot(code, date(2024, 6, 30) - timedelta(days=i), pvi=2.0, leakage=0.95)

        with patch.object(anomaly_runner, "get_db_session_sync", return_value=iter([db_session])):
            anomaly_runner.main()

        assert db_session.query(AnomalyFlag).count() == 1

    def test_failure_exits_non_zero(self):
        with patch.object(
            anomaly_runner, "get_db_session_sync", side_effect=RuntimeError("Database not configured")
        ):
            with pytest.raises(SystemExit) as exc_info:
                anomaly_runner.main()

        assert exc_info.value.code == 1
