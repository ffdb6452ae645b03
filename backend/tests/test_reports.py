"""
Reports, CSV and XLSX export, maintenance jobs and CLI commands.
"""

import csv
import io
from datetime import datetime, timedelta

import pytest
from openpyxl import load_workbook

from pettycash.errors import ValidationError
from pettycash.extensions import db
from pettycash.models import OTP, Category, SessionToken, User
from pettycash.services import maintenance_service, report_service, transaction_service
from pettycash.time_utils import utcnow


@pytest.fixture
def ledger_data(admin, employee, make_user, category, funded, db_session):
    """Three expenses for the employee (approved, rejected, pending) and one for someone else."""
    travel = Category(name="Travel", code="TRAVEL", budget_limit_cents=10000)
    db_session.add(travel)
    db_session.commit()

    approved = transaction_service.create_transaction(
        employee, {"category_id": category.id, "pre_tax_amount": "1000", "tax_amount": "180"}
    )
    transaction_service.approve_transaction(admin, approved.id)
    rejected = transaction_service.create_transaction(employee, {"category_id": travel.id, "amount": "150"})
    transaction_service.reject_transaction(admin, rejected.id, "Not business travel")
    transaction_service.create_transaction(employee, {"category_id": travel.id, "amount": "60", "vendor_name": "Cabs, Inc"})

    other = make_user("employee")
    transaction_service.create_transaction(other, {"category_id": category.id, "amount": "999"})
    return {"travel": travel}


class TestRanges:

    def test_period_today(self):
        now = datetime(2026, 3, 18, 15, 30)
        start, end = report_service.period_range("today", now)
        assert start == datetime(2026, 3, 18)
        assert end.date() == now.date()

    def test_week_starts_sunday(self):
        wednesday = datetime(2026, 3, 18, 12, 0)
        start, _ = report_service.period_range("week", wednesday)
        assert start == datetime(2026, 3, 15)
        sunday = datetime(2026, 3, 15, 9, 0)
        assert report_service.period_range("week", sunday)[0] == datetime(2026, 3, 15)

    def test_month_and_quarter(self):
        now = datetime(2026, 5, 9)
        start, end = report_service.period_range("month", now)
        assert (start, end.date()) == (datetime(2026, 5, 1), datetime(2026, 5, 31).date())
        start, end = report_service.period_range("quarter", now)
        assert (start, end.date()) == (datetime(2026, 4, 1), datetime(2026, 6, 30).date())

    def test_unknown_period(self):
        with pytest.raises(ValidationError):
            report_service.period_range("fortnight")

    def test_date_only_end_is_inclusive(self):
        start, end = report_service.resolve_range(start="2026-01-01", end="2026-01-31")
        assert start == datetime(2026, 1, 1)
        assert end == datetime(2026, 2, 1) - timedelta(microseconds=1)

    def test_bad_date(self):
        with pytest.raises(ValidationError):
            report_service.resolve_range(start="yesterday")


class TestReports:

    def test_summary_admin_sees_everything(self, admin, ledger_data):
        report = report_service.summary(admin)
        assert report["total_transactions"] == 4
        assert report["by_status"]["approved"] == {"count": 1, "amount": "1180.00"}
        assert report["by_status"]["pending"] == {"count": 2, "amount": "1059.00"}
        assert report["approved_or_paid_amount"] == "1180.00"
        assert report["total_amount"] == "2389.00"

    def test_summary_employee_sees_own(self, employee, ledger_data):
        report = report_service.summary(employee)
        assert report["total_transactions"] == 3
        assert report["by_status"]["pending"]["amount"] == "60.00"

    def test_by_category_flags_budget(self, admin, ledger_data):
        rows = {r["code"]: r for r in report_service.by_category(admin)}
        assert rows["SUPPLY"]["total_amount"] == "2179.00"
        assert rows["SUPPLY"]["over_budget"] is False
        assert rows["TRAVEL"]["total_amount"] == "210.00"
        assert rows["TRAVEL"]["over_budget"] is True

    def test_monthly_trend_zero_fills(self, admin, ledger_data):
        trend = report_service.monthly_trend(admin, months=3)
        assert len(trend) == 3
        assert trend[-1]["period"] == f"{utcnow():%Y-%m}"
        assert trend[-1]["count"] == 4
        assert trend[0]["count"] == 0

    def test_monthly_trend_bounds(self, admin):
        with pytest.raises(ValidationError):
            report_service.monthly_trend(admin, months=0)

    def test_reconciliation_with_count(self, client, admin, ledger_data, headers):
        response = client.get("/api/reports/reconciliation?petty_cash_physical=8820.00", headers=headers(admin))
        data = response.get_json()["data"]
        physical = next(a for a in data["accounts"] if a["account_type"] == "petty_cash_physical")
        assert physical["current_balance"] == "8820.00"
        assert physical["checks"]["counted_matches_ledger"] is True
        assert physical["checks"]["spent_matches_expenses"] is True

    def test_login_activity_counts_locks(self, client, db_session, admin, employee, headers):
        client.post("/api/auth/login", json={"email": employee.email, "password": "bad"})
        employee.account_locked_until = utcnow() + timedelta(minutes=5)
        db_session.commit()

        data = client.get("/api/reports/login-activity", headers=headers(admin)).get_json()["data"]
        assert data["totals"]["failed"] == 1
        assert data["by_method"]["password"]["failed"] == 1
        assert data["currently_locked_accounts"] == 1

    def test_report_routes(self, client, employee, ledger_data, headers):
        h = headers(employee)
        assert client.get("/api/reports/summary?period=month", headers=h).status_code == 200
        assert client.get("/api/reports/by-category", headers=h).status_code == 200
        assert client.get("/api/reports/monthly-trend?months=6", headers=h).status_code == 200
        assert client.get("/api/reports/balance-overview", headers=h).status_code == 200
        assert client.get("/api/reports/summary?period=decade", headers=h).status_code == 400
        assert client.get("/api/reports/monthly-trend?months=99", headers=h).status_code == 400
        assert client.get("/api/reports/login-activity", headers=h).status_code == 403


class TestCsvExport:

    def test_export(self, client, admin, ledger_data, headers):
        response = client.get("/api/reports/export/csv", headers=headers(admin))
        assert response.status_code == 200
        assert response.mimetype == "text/csv"
        assert "attachment; filename=transactions-" in response.headers["Content-Disposition"]

        rows = list(csv.DictReader(io.StringIO(response.get_data(as_text=True))))
        assert len(rows) == 4
        assert tuple(rows[0].keys()) == report_service.CSV_COLUMNS
        approved = next(r for r in rows if r["status"] == "approved")
        assert approved["resolved_amount"] == "1180.00"
        assert approved["pre_tax_amount"] == "1000.00"
        assert approved["amount_provenance"] == "computed-pretax-tax"
        assert any(r["vendor_name"] == "Cabs, Inc" for r in rows)

    def test_export_filtered_and_scoped(self, client, employee, ledger_data, headers):
        body = client.get("/api/reports/export/csv?status=pending", headers=headers(employee)).get_data(as_text=True)
        rows = list(csv.DictReader(io.StringIO(body)))
        assert [r["resolved_amount"] for r in rows] == ["60.00"]
        assert rows[0]["amount_provenance"] == "legacy-flat"


def _sheet_rows(body: bytes) -> list[list[str]]:
    sheet = load_workbook(io.BytesIO(body)).active
    return [[value or "" for value in row] for row in sheet.iter_rows(values_only=True)]


class TestXlsxExport:

    def test_workbook_matches_csv(self, client, admin, ledger_data, headers):
        h = headers(admin)
        response = client.get("/api/reports/export/xlsx", headers=h)
        assert response.status_code == 200
        assert response.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        assert response.headers["Content-Disposition"].endswith(".xlsx")

        csv_rows = list(csv.reader(io.StringIO(client.get("/api/reports/export/csv", headers=h).get_data(as_text=True))))
        rows = _sheet_rows(response.get_data())
        assert rows[0] == list(report_service.CSV_COLUMNS)
        assert len(rows) == 5
        assert rows == csv_rows

    def test_filters_and_scope_apply(self, client, employee, ledger_data, headers):
        response = client.get("/api/reports/export/xlsx?status=pending", headers=headers(employee))
        rows = _sheet_rows(response.get_data())
        resolved = rows[0].index("resolved_amount")
        assert [r[resolved] for r in rows[1:]] == ["60.00"]

    def test_control_characters_dropped(self, client, admin, employee, category, headers):
        transaction_service.create_transaction(
            employee, {"category_id": category.id, "amount": "12", "description": "Tea\x07 and snacks"}
        )
        rows = _sheet_rows(client.get("/api/reports/export/xlsx", headers=headers(admin)).get_data())
        description = rows[0].index("description")
        assert rows[1][description] == "Tea and snacks"

    def test_bad_status_rejected(self, client, admin, headers):
        response = client.get("/api/reports/export/xlsx?status=", headers=headers(admin))
        assert response.status_code == 400


class TestMaintenance:

    def test_cleanup_otps(self, db_session, employee):
        now = utcnow()
        db_session.add_all([
            OTP(user_id=employee.id, code_hash="a" * 64, otp_type="login", expires_at=now - timedelta(hours=30), created_at=now),
            OTP(user_id=employee.id, code_hash="b" * 64, otp_type="login", expires_at=now + timedelta(minutes=5), created_at=now),
        ])
        db_session.commit()

        assert maintenance_service.cleanup_otps(older_than_hours=24) == 1
        assert db_session.query(OTP).count() == 1

    def test_cleanup_sessions(self, db_session, employee):
        now = utcnow()
        db_session.add_all([
            SessionToken(user_id=employee.id, token_hash="1" * 64, created_at=now, last_used_at=now,
                         expires_at=now - timedelta(days=31)),
            SessionToken(user_id=employee.id, token_hash="2" * 64, created_at=now - timedelta(days=40),
                         last_used_at=now, expires_at=now + timedelta(hours=1),
                         is_revoked=True, revoked_at=now - timedelta(days=40)),
            SessionToken(user_id=employee.id, token_hash="3" * 64, created_at=now, last_used_at=now,
                         expires_at=now + timedelta(hours=1)),
        ])
        db_session.commit()

        assert maintenance_service.cleanup_sessions(retention_days=30) == 2
        assert [s.token_hash for s in db_session.query(SessionToken).all()] == ["3" * 64]


class TestCli:

    def test_system_init_is_idempotent(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["system", "init", "--no-users"])
        assert result.exit_code == 0, result.output
        assert db.session.query(Category).count() == 5

        result = runner.invoke(args=["system", "init", "--no-users"])
        assert "0 created" in result.output
        assert db.session.query(Category).count() == 5

    def test_users_create_and_list(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create", "--name", "Cli User", "--email", "cli@pettycash.test",
            "--role", "approver", "--approval-limit", "1500",
        ])
        assert result.exit_code == 0, result.output
        user = db.session.query(User).filter_by(email="cli@pettycash.test").one()
        assert user.approval_limit_cents == 150000
        assert not user.has_password

        listing = runner.invoke(args=["users", "list"])
        assert "cli@pettycash.test" in listing.output

    def test_migrate_legacy_roles(self, app, make_user):
        legacy = make_user("handler")
        runner = app.test_cli_runner()

        dry = runner.invoke(args=["users", "migrate-legacy-roles", "--dry-run"])
        assert "would be updated" in dry.output
        db.session.expire_all()
        assert db.session.get(User, legacy.id).role == "handler"

        runner.invoke(args=["users", "migrate-legacy-roles"])
        db.session.expire_all()
        assert db.session.get(User, legacy.id).role == "employee"

    def test_balance_commands(self, app, funded):
        runner = app.test_cli_runner()
        shown = runner.invoke(args=["balance", "show"])
        assert "petty_cash_physical" in shown.output
        assert "20000.00" in shown.output

        # Funds seeded straight into the ledger have no transfers behind them
        result = runner.invoke(args=["balance", "reconcile"])
        assert result.exit_code == 1
        assert "received_matches_transfers: MISMATCH" in result.output
