from datetime import date, datetime, timedelta

from backup import reminder_due
from database import Bill
from main import deactivate_expired_bills


def seed_account(client, auth):
    client.post(
        "/api/incomes",
        headers=auth,
        json={
            "date": "2026-10-01",
            "source": "Salary",
            "category": "Salary",
            "method": "Transfer",
            "amount": 8000000,
        },
    )
    client.post(
        "/api/expenses",
        headers=auth,
        json={
            "date": "2026-10-02",
            "name": "Groceries",
            "category": "Food",
            "method": "Debit",
            "amount": 350000,
        },
    )
    client.post(
        "/api/budgets",
        headers=auth,
        json={"month": "2026-10", "category": "Food", "amount": 2000000},
    )
    client.post(
        "/api/savings",
        headers=auth,
        json={
            "date": "2026-10-03",
            "kind": "Savings",
            "account_name": "Emergency Fund",
            "deposit": 1000000,
            "withdrawal": 0,
        },
    )
    bill = client.post(
        "/api/bills",
        headers=auth,
        json={
            "name": "Internet",
            "category": "Bills",
            "amount": 300000,
            "due_day": 10,
            "start_month": "2026-01",
        },
    ).json()
    client.post(
        "/api/bill_payments",
        headers=auth,
        json={
            "bill_id": bill["id"],
            "month": "2026-10",
            "paid_at": "2026-10-09T12:00:00",
            "amount_paid": 300000,
        },
    )
    client.post(
        "/api/savings_targets",
        headers=auth,
        json={
            "name": "Holiday",
            "target_amount": 5000000,
            "start_date": "2026-10-01",
            "target_date": "2027-06-01",
            "linked_account": "Emergency Fund",
        },
    )


def test_export_marks_backup_time(client, auth):
    status = client.get("/api/backup/status", headers=auth).json()
    assert status["last_backup_at"] is None
    assert status["reminder_due"] is True
    assert status["reminder_interval_days"] == 7

    seed_account(client, auth)
    document = client.get("/api/backup", headers=auth).json()

    assert document["version"] == 2
    assert len(document["incomes"]) == 1
    # Plain expense plus the saving and bill payment mirrors.
    assert len(document["expenses"]) == 3
    assert len(document["master_data"]) == 20

    status = client.get("/api/backup/status", headers=auth).json()
    assert status["last_backup_at"] is not None
    assert status["reminder_due"] is False


def test_import_regenerates_mirrors(client, auth, make_user):
    seed_account(client, auth)
    document = client.get("/api/backup", headers=auth).json()

    other = make_user("bob")
    r = client.post("/api/backup", headers=other, json=document)
    assert r.status_code == 200, r.text
    assert r.json()["imported"] == {
        "incomes": 1,
        "expenses": 1,
        "budgets": 1,
        "savings": 1,
        "master_data": 20,
        "bills": 1,
        "bill_payments": 1,
        "savings_targets": 1,
    }

    expenses = client.get("/api/expenses", headers=other).json()
    assert len(expenses) == 3
    assert len([e for e in expenses if e["saving_id"]]) == 1
    assert len([e for e in expenses if e["bill_payment_id"]]) == 1

    bills = client.get("/api/bills", headers=other).json()
    payments = client.get("/api/bill_payments", headers=other).json()
    assert payments[0]["bill_id"] == bills[0]["id"]
    assert bills[0]["id"] != document["bills"][0]["id"]

    # The source account is untouched.
    assert len(client.get("/api/expenses", headers=auth).json()) == 3


def test_import_replaces_existing_data(client, auth):
    seed_account(client, auth)
    document = client.get("/api/backup", headers=auth).json()

    assert client.post("/api/backup", headers=auth, json=document).status_code == 200
    assert len(client.get("/api/incomes", headers=auth).json()) == 1
    assert len(client.get("/api/expenses", headers=auth).json()) == 3
    assert len(client.get("/api/master_data", headers=auth).json()) == 20


def test_import_without_master_data_reseeds_defaults(client, auth):
    r = client.post("/api/backup", headers=auth, json={"version": 2})
    assert r.status_code == 200
    assert len(client.get("/api/master_data", headers=auth).json()) == 20


def test_import_rejects_unknown_version(client, auth):
    seed_account(client, auth)
    r = client.post("/api/backup", headers=auth, json={"version": 1})
    assert r.status_code == 400
    # Nothing was cleared.
    assert len(client.get("/api/incomes", headers=auth).json()) == 1


def test_import_rejects_conflicting_records(client, auth):
    seed_account(client, auth)
    budget = {"id": "x", "user_id": "y", "month": "2026-10", "category": "Food", "amount": 10}
    r = client.post(
        "/api/backup",
        headers=auth,
        json={"version": 2, "budgets": [budget, dict(budget, id="z")]},
    )
    assert r.status_code == 400
    assert len(client.get("/api/budgets", headers=auth).json()) == 1


def test_reminder_due():
    now = datetime(2026, 10, 19, 12, 0)
    assert reminder_due(None, 7, now) is True
    assert reminder_due(now - timedelta(days=3), 7, now) is False
    assert reminder_due(now - timedelta(days=8), 7, now) is True


def test_deactivate_expired_bills(client, auth, db):
    for name, end_month in (("Gym", "2026-08"), ("Phone", "2026-10"), ("Rent", "ongoing")):
        client.post(
            "/api/bills",
            headers=auth,
            json={
                "name": name,
                "category": "Bills",
                "amount": 100,
                "due_day": 1,
                "start_month": "2026-01",
                "end_month": end_month,
            },
        )

    assert deactivate_expired_bills(today=date(2026, 10, 19)) == 1

    active = {b.name: b.is_active for b in db.query(Bill).all()}
    assert active == {"Gym": False, "Phone": True, "Rent": True}


def test_expired_bill_still_reported_for_its_months(client, auth):
    bill = client.post(
        "/api/bills",
        headers=auth,
        json={
            "name": "Course",
            "category": "Education",
            "amount": 300000,
            "due_day": 5,
            "start_month": "2026-01",
            "end_month": "2026-03",
        },
    ).json()
    client.post(
        "/api/bill_payments",
        headers=auth,
        json={
            "bill_id": bill["id"],
            "month": "2026-02",
            "paid_at": "2026-02-04T09:00:00",
            "amount_paid": 300000,
        },
    )

    assert deactivate_expired_bills(today=date(2026, 5, 1)) == 1

    overview = client.get(
        "/api/analytics/bills", headers=auth, params={"month": "2026-02"}
    ).json()
    assert overview["stats"]["total"] == 1
    assert overview["stats"]["paid"] == 1
    assert overview["stats"]["paid_amount"] == 300000
