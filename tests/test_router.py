def add_expense(client, auth, day, amount, category="Food", name="Lunch"):
    r = client.post(
        "/api/expenses",
        headers=auth,
        json={
            "date": day,
            "name": name,
            "category": category,
            "method": "Cash",
            "amount": amount,
        },
    )
    assert r.status_code == 201, r.text


def test_health_endpoints(client):
    assert client.get("/").status_code == 200
    assert client.get("/api/health").json() == {"status": "ok"}


def test_analytics_require_login(client):
    assert client.get("/api/analytics/summary").status_code == 401


def test_insights_and_heatmap(client, auth):
    add_expense(client, auth, "2026-10-01", 600)
    add_expense(client, auth, "2026-10-01", 400, category="Transportation", name="Taxi")

    insights = client.get(
        "/api/analytics/insights", headers=auth, params={"month": "2026-10"}
    ).json()
    assert insights["top_category"]["category"] == "Food"

    heatmap = client.get(
        "/api/analytics/heatmap", headers=auth, params={"month": "2026-10"}
    ).json()
    first = heatmap["days"][0]
    assert first["date"] == "2026-10-01"
    assert first["total"] == 1000
    assert len(first["transactions"]) == 2


def test_budget_usage_and_health_score(client, auth):
    client.post(
        "/api/budgets", headers=auth, json={"month": "2026-10", "category": "Food", "amount": 500}
    )
    add_expense(client, auth, "2026-10-05", 700)

    usage = client.get("/api/analytics/budgets", headers=auth, params={"month": "2026-10"}).json()
    assert usage[0]["over_budget"] is True

    score = client.get(
        "/api/analytics/health-score", headers=auth, params={"month": "2026-10"}
    ).json()
    assert score["month"] == "2026-10"
    assert score["over_budget_categories"] == ["Food"]
    assert "over_budget" in score["recommendations"]


def test_bill_overview(client, auth):
    client.post(
        "/api/bills",
        headers=auth,
        json={
            "name": "Water",
            "category": "Bills",
            "amount": 90000,
            "due_day": 20,
            "start_month": "2026-01",
        },
    )
    overview = client.get("/api/analytics/bills", headers=auth, params={"month": "2026-10"}).json()
    assert overview["stats"]["total"] == 1
    assert overview["bills"][0]["is_paid"] is False


def test_savings_accounts_and_targets(client, auth):
    for kind, account, amount in (
        ("Savings", "Emergency Fund", 400),
        ("Investment", "Index Fund", 900),
    ):
        client.post(
            "/api/savings",
            headers=auth,
            json={"date": "2026-10-01", "kind": kind, "account_name": account, "deposit": amount},
        )
    client.post(
        "/api/savings_targets",
        headers=auth,
        json={
            "name": "Laptop",
            "target_amount": 1000,
            "start_date": "2026-10-01",
            "target_date": "2030-01-01",
            "linked_account": "Emergency Fund",
        },
    )

    accounts = client.get(
        "/api/analytics/savings-accounts", headers=auth, params={"kind": "Savings"}
    ).json()
    assert [a["account_name"] for a in accounts] == ["Emergency Fund"]

    overview = client.get("/api/analytics/targets", headers=auth).json()
    assert overview["targets"][0]["current_amount"] == 400
    assert overview["targets"][0]["progress"] == 40


def test_months_and_category_trends(client, auth):
    add_expense(client, auth, "2020-03-01", 100)
    add_expense(client, auth, "2020-03-15", 50)
    add_expense(client, auth, "2020-04-01", 30, category="Health", name="Pharmacy")

    months = client.get("/api/analytics/months", headers=auth).json()
    assert months[-2:] == ["2020-04", "2020-03"]

    trends = client.get(
        "/api/analytics/category-trends", headers=auth, params={"end_date": "2020-03-31"}
    ).json()
    assert trends == [{"category": "Food", "month": "2020-03", "total": 150}]


def test_export_report(client, auth):
    add_expense(client, auth, "2026-10-01", 100)
    r = client.get("/api/export-report", headers=auth)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert "alice_all_financial_report.csv" in r.headers["content-disposition"]
    lines = r.text.splitlines()
    assert lines[0] == "Date,Type,Description,Category,Method,Amount"
    assert "Food,100.0" in r.text


def test_export_report_for_one_month(client, auth):
    add_expense(client, auth, "2026-09-15", 80, name="Dinner")
    add_expense(client, auth, "2026-10-01", 100)
    client.post(
        "/api/budgets", headers=auth, json={"month": "2026-10", "category": "Food", "amount": 500}
    )
    client.post(
        "/api/budgets", headers=auth, json={"month": "2026-09", "category": "Food", "amount": 90}
    )

    r = client.get("/api/export-report", headers=auth, params={"month": "2026-10"})
    assert r.status_code == 200
    assert "alice_2026-10_financial_report.csv" in r.headers["content-disposition"]
    assert "Dinner" not in r.text
    assert "Lunch" in r.text
    lines = r.text.splitlines()
    budget_header = lines.index("Month,Budget Category,Budget,Spent,Remaining")
    assert lines[budget_header + 1 :] == ["2026-10,Food,500.0,100.0,400.0"]


def test_export_report_lists_budgets_of_all_months(client, auth):
    add_expense(client, auth, "2026-09-15", 80, name="Dinner")
    client.post(
        "/api/budgets", headers=auth, json={"month": "2026-09", "category": "Food", "amount": 90}
    )

    r = client.get("/api/export-report", headers=auth)
    lines = r.text.splitlines()
    budget_header = lines.index("Month,Budget Category,Budget,Spent,Remaining")
    assert lines[budget_header + 1 :] == ["2026-09,Food,90.0,80.0,10.0"]


def test_bill_and_budget_views_fall_back_to_current_month(client, auth):
    client.post(
        "/api/bills",
        headers=auth,
        json={
            "name": "Water",
            "category": "Bills",
            "amount": 90000,
            "due_day": 20,
            "start_month": "2020-01",
        },
    )
    current = client.get("/api/analytics/bills", headers=auth).json()

    r = client.get("/api/analytics/bills", headers=auth, params={"month": "all"})
    assert r.status_code == 200
    assert r.json()["month"] == current["month"]
    assert r.json()["stats"]["total"] == 1

    r = client.get("/api/analytics/budgets", headers=auth, params={"month": "garbage"})
    assert r.status_code == 200
    assert r.json() == []
