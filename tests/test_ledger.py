from database import Expense, Income


def saving(**overrides):
    body = {
        "date": "2026-10-03",
        "kind": "Savings",
        "account_name": "Emergency Fund",
        "deposit": 500000,
        "withdrawal": 0,
        "note": "monthly",
    }
    body.update(overrides)
    return body


def bill(client, auth, **overrides):
    body = {
        "name": "Electricity",
        "category": "Bills",
        "amount": 400000,
        "due_day": 15,
        "start_month": "2026-01",
    }
    body.update(overrides)
    r = client.post("/api/bills", headers=auth, json=body)
    assert r.status_code == 201, r.text
    return r.json()


def linked_expenses(client, auth, key, value):
    return [e for e in client.get("/api/expenses", headers=auth).json() if e[key] == value]


def linked_incomes(client, auth, saving_id):
    return [i for i in client.get("/api/incomes", headers=auth).json() if i["saving_id"] == saving_id]


def test_deposit_is_mirrored_as_expense(client, auth):
    created = client.post("/api/savings", headers=auth, json=saving()).json()

    mirrors = linked_expenses(client, auth, "saving_id", created["id"])
    assert len(mirrors) == 1
    mirror = mirrors[0]
    assert mirror["name"] == "Deposit Savings - Emergency Fund"
    assert mirror["category"] == "Savings"
    assert mirror["method"] == "Transfer"
    assert mirror["amount"] == 500000
    assert mirror["month"] == "2026-10"
    assert linked_incomes(client, auth, created["id"]) == []


def test_withdrawal_is_mirrored_as_income(client, auth):
    created = client.post(
        "/api/savings",
        headers=auth,
        json=saving(kind="Investment", account_name="Index Fund", deposit=0, withdrawal=200000),
    ).json()

    incomes = linked_incomes(client, auth, created["id"])
    assert len(incomes) == 1
    assert incomes[0]["source"] == "Withdrawal Investment - Index Fund"
    assert incomes[0]["amount"] == 200000
    assert linked_expenses(client, auth, "saving_id", created["id"]) == []


def test_update_rebuilds_mirrors(client, auth):
    created = client.post("/api/savings", headers=auth, json=saving()).json()

    r = client.put(
        f"/api/savings/{created['id']}",
        headers=auth,
        json={"deposit": 0, "withdrawal": 150000, "date": "2026-11-01"},
    )
    assert r.status_code == 200, r.text

    assert linked_expenses(client, auth, "saving_id", created["id"]) == []
    incomes = linked_incomes(client, auth, created["id"])
    assert len(incomes) == 1
    assert incomes[0]["amount"] == 150000
    assert incomes[0]["month"] == "2026-11"

    # A second edit must not leave duplicates behind.
    client.put(f"/api/savings/{created['id']}", headers=auth, json={"note": "changed"})
    incomes = linked_incomes(client, auth, created["id"])
    assert len(incomes) == 1
    assert incomes[0]["note"] == "changed"


def test_delete_saving_removes_mirrors(client, auth, db):
    created = client.post(
        "/api/savings", headers=auth, json=saving(deposit=100, withdrawal=50)
    ).json()
    assert client.delete(f"/api/savings/{created['id']}", headers=auth).status_code == 200

    assert db.query(Expense).filter(Expense.saving_id == created["id"]).count() == 0
    assert db.query(Income).filter(Income.saving_id == created["id"]).count() == 0


def test_mirrored_rows_are_read_only(client, auth):
    created = client.post("/api/savings", headers=auth, json=saving()).json()
    mirror = linked_expenses(client, auth, "saving_id", created["id"])[0]

    r = client.put(f"/api/expenses/{mirror['id']}", headers=auth, json={"amount": 1})
    assert r.status_code == 409
    assert client.delete(f"/api/expenses/{mirror['id']}", headers=auth).status_code == 409


def test_bill_payment_creates_expense_in_billing_month(client, auth):
    created_bill = bill(client, auth)
    r = client.post(
        "/api/bill_payments",
        headers=auth,
        json={
            "bill_id": created_bill["id"],
            "month": "2026-09",
            "paid_at": "2026-10-02T08:30:15.123Z",
            "amount_paid": 410000,
        },
    )
    assert r.status_code == 201, r.text
    payment = r.json()
    assert payment["paid_at"] == "2026-10-02T08:30:15"

    mirrors = linked_expenses(client, auth, "bill_payment_id", payment["id"])
    assert len(mirrors) == 1
    assert mirrors[0]["name"] == "Bill: Electricity"
    assert mirrors[0]["category"] == "Bills"
    assert mirrors[0]["amount"] == 410000
    assert mirrors[0]["date"] == "2026-10-02"
    assert mirrors[0]["month"] == "2026-09"


def test_bill_paid_once_per_month(client, auth):
    created_bill = bill(client, auth)
    body = {
        "bill_id": created_bill["id"],
        "month": "2026-09",
        "paid_at": "2026-09-10T10:00:00",
        "amount_paid": 400000,
    }
    assert client.post("/api/bill_payments", headers=auth, json=body).status_code == 201
    assert client.post("/api/bill_payments", headers=auth, json=body).status_code == 409


def test_payment_for_someone_elses_bill_is_not_found(client, auth, make_user):
    created_bill = bill(client, auth)
    other = make_user("mallory")
    r = client.post(
        "/api/bill_payments",
        headers=other,
        json={
            "bill_id": created_bill["id"],
            "month": "2026-09",
            "paid_at": "2026-09-10T10:00:00",
            "amount_paid": 1,
        },
    )
    assert r.status_code == 404


def test_payment_update_and_delete_follow_expense(client, auth):
    created_bill = bill(client, auth)
    payment = client.post(
        "/api/bill_payments",
        headers=auth,
        json={
            "bill_id": created_bill["id"],
            "month": "2026-09",
            "paid_at": "2026-09-10T10:00:00",
            "amount_paid": 400000,
        },
    ).json()

    r = client.put(
        f"/api/bill_payments/{payment['id']}",
        headers=auth,
        json={"amount_paid": 420000, "month": "2026-10"},
    )
    assert r.status_code == 200
    mirror = linked_expenses(client, auth, "bill_payment_id", payment["id"])[0]
    assert mirror["amount"] == 420000
    assert mirror["month"] == "2026-10"

    assert client.delete(f"/api/bill_payments/{payment['id']}", headers=auth).status_code == 200
    assert linked_expenses(client, auth, "bill_payment_id", payment["id"]) == []


def test_delete_bill_removes_payments_and_expenses(client, auth, db):
    created_bill = bill(client, auth)
    for month in ("2026-08", "2026-09"):
        client.post(
            "/api/bill_payments",
            headers=auth,
            json={
                "bill_id": created_bill["id"],
                "month": month,
                "paid_at": f"{month}-10T10:00:00",
                "amount_paid": 400000,
            },
        )
    assert len(client.get("/api/bill_payments", headers=auth).json()) == 2

    assert client.delete(f"/api/bills/{created_bill['id']}", headers=auth).status_code == 200
    assert client.get("/api/bill_payments", headers=auth).json() == []
    assert db.query(Expense).filter(Expense.bill_payment_id.isnot(None)).count() == 0
