import datetime as dt


# ---------- tests ----------
def test_create_transaction(client, api_helpers):
    cat_id = api_helpers["create_category"]("Food", "expense")

    payload = {
        "amount": 45.80,
        "category_id": cat_id,
        "description": "Grocery shopping",
        "date": "2023-05-15T10:30:00",
    }
    res = client.post("/api/transactions", json=payload)
    assert res.status_code == 201

    data = res.json()
    assert data["amount"] == "45.80"
    assert data["description"] == "Grocery shopping"
    assert data["date"].startswith("2023-05-15T10:30:00")
    assert data["category_id"] == cat_id
    assert data["category"]["name"] == "Food"
    assert data["category"]["type"] == "expense"


def test_create_transaction_defaults_date_to_now(client, api_helpers):
    cat_id = api_helpers["create_category"]()
    before = dt.datetime.now(dt.timezone.utc).replace(tzinfo=None) - dt.timedelta(seconds=5)

    data = api_helpers["create_transaction"](cat_id, 12)

    created = dt.datetime.fromisoformat(data["date"])
    assert created >= before


def test_amount_is_never_signed_even_for_expenses(client, api_helpers):
    cat_id = api_helpers["create_category"]("Bills", "expense")
    data = api_helpers["create_transaction"](cat_id, 85.4, "2023-05-03")
    assert float(data["amount"]) == 85.40


def test_create_transaction_negative_amount(client, api_helpers):
    cat_id = api_helpers["create_category"]()
    res = client.post(
        "/api/transactions",
        json={"amount": -10.0, "category_id": cat_id, "date": "2025-01-01"},
    )
    assert res.status_code == 422


def test_create_transaction_zero_amount(client, api_helpers):
    cat_id = api_helpers["create_category"]()
    res = client.post("/api/transactions", json={"amount": 0, "category_id": cat_id})
    assert res.status_code == 422


def test_create_transaction_requires_category(client):
    res = client.post("/api/transactions", json={"amount": 10})
    assert res.status_code == 422


def test_create_transaction_invalid_category(client):
    res = client.post("/api/transactions", json={"amount": 10.0, "category_id": 999999})
    assert res.status_code == 400
    assert "Category not found" in res.text


def test_create_transaction_with_other_owners_category(client, api_helpers):
    other = api_helpers["owner_headers"]("other")
    foreign_cat = api_helpers["create_category"]("Theirs", headers=other)

    res = client.post("/api/transactions", json={"amount": 10.0, "category_id": foreign_cat})
    assert res.status_code == 400


def test_get_transaction_not_found(client):
    res = client.get("/api/transactions/999999")
    assert res.status_code == 404
    assert res.json()["detail"] == "Transaction not found"


def test_update_only_description_preserves_other_fields(client, api_helpers):
    cat_id = api_helpers["create_category"]("Food")
    original = api_helpers["create_transaction"](cat_id, 100.50, "2025-01-10", "Birthday")

    res = client.put(f"/api/transactions/{original['id']}", json={"description": "Updated note"})
    assert res.status_code == 200
    data = res.json()

    assert data["description"] == "Updated note"
    assert data["amount"] == original["amount"]
    assert data["date"] == original["date"]
    assert data["category_id"] == original["category_id"]
    assert data["created_at"] == original["created_at"]


def test_update_transaction_category_and_amount(client, api_helpers):
    food = api_helpers["create_category"]("Food")
    salary = api_helpers["create_category"]("Salary", "income")
    tx = api_helpers["create_transaction"](food, 150.0, "2025-01-02")

    res = client.put(
        f"/api/transactions/{tx['id']}",
        json={"amount": 250.0, "category_id": salary},
    )
    assert res.status_code == 200
    data = res.json()
    assert float(data["amount"]) == 250.0
    assert data["category"]["type"] == "income"


def test_update_transaction_invalid_category(client, api_helpers):
    cat_id = api_helpers["create_category"]("Food")
    tx = api_helpers["create_transaction"](cat_id, 20.0, "2025-01-10")

    res = client.put(f"/api/transactions/{tx['id']}", json={"category_id": 999999})
    assert res.status_code == 400
    assert "Category not found" in res.text


def test_update_transaction_rejects_negative_amount(client, api_helpers):
    cat_id = api_helpers["create_category"]()
    tx = api_helpers["create_transaction"](cat_id, 20.0, "2025-01-10")

    res = client.put(f"/api/transactions/{tx['id']}", json={"amount": -3})
    assert res.status_code == 422


def test_update_transaction_not_found(client):
    res = client.put("/api/transactions/999999", json={"description": "Nope"})
    assert res.status_code == 404


def test_delete_transaction(client, api_helpers):
    cat_id = api_helpers["create_category"]("DeleteCat")
    tx = api_helpers["create_transaction"](cat_id, 75.0, "2025-01-03")

    res_del = client.delete(f"/api/transactions/{tx['id']}")
    assert res_del.status_code == 204
    assert client.get(f"/api/transactions/{tx['id']}").status_code == 404

    # the category is free again
    assert client.delete(f"/api/categories/{cat_id}").status_code == 204


def test_list_custom_range_is_inclusive_and_newest_first(client, api_helpers):
    cat_id = api_helpers["create_category"]()
    first = api_helpers["create_transaction"](cat_id, 1, "2025-01-10T00:00:00")
    last = api_helpers["create_transaction"](cat_id, 2, "2025-01-20T23:59:59")
    api_helpers["create_transaction"](cat_id, 3, "2025-01-09T23:59:59")
    api_helpers["create_transaction"](cat_id, 4, "2025-01-21T00:00:00")
    middle = api_helpers["create_transaction"](cat_id, 5, "2025-01-15T12:00:00")

    res = client.get(
        "/api/transactions",
        params={"startDate": "2025-01-10", "endDate": "2025-01-20"},
    )
    assert res.status_code == 200
    assert [t["id"] for t in res.json()] == [last["id"], middle["id"], first["id"]]


def test_list_week_range_uses_monday_start(client, api_helpers):
    cat_id = api_helpers["create_category"]()
    monday = api_helpers["create_transaction"](cat_id, 1, "2025-01-13T00:00:00")
    sunday = api_helpers["create_transaction"](cat_id, 2, "2025-01-19T23:30:00")
    api_helpers["create_transaction"](cat_id, 3, "2025-01-12T23:59:00")
    api_helpers["create_transaction"](cat_id, 4, "2025-01-20T00:00:00")

    res = client.get("/api/transactions", params={"timeRange": "week", "date": "2025-01-15"})
    assert res.status_code == 200
    assert [t["id"] for t in res.json()] == [sunday["id"], monday["id"]]


def test_list_ignores_lone_custom_date(client, api_helpers):
    cat = api_helpers["create_category"]()
    inside = api_helpers["create_transaction"](cat, 10, "2025-01-20")
    api_helpers["create_transaction"](cat, 20, "2025-02-20")

    res = client.get(
        "/api/transactions",
        params={"startDate": "2025-01-10", "date": "2025-01-15"},
    )
    assert res.status_code == 200
    assert [t["id"] for t in res.json()] == [inside["id"]]


def test_list_rejects_reversed_custom_range(client):
    res = client.get(
        "/api/transactions",
        params={"startDate": "2025-02-10", "endDate": "2025-01-10"},
    )
    assert res.status_code == 400


def test_list_unknown_time_range_means_month(client, api_helpers):
    cat = api_helpers["create_category"]()
    in_month = api_helpers["create_transaction"](cat, 10, "2025-01-31T23:00:00")
    api_helpers["create_transaction"](cat, 20, "2025-02-01")

    res = client.get("/api/transactions", params={"timeRange": "decade", "date": "2025-01-05"})
    assert res.status_code == 200
    assert [t["id"] for t in res.json()] == [in_month["id"]]


def test_list_is_scoped_to_owner(client, api_helpers):
    mine = api_helpers["create_category"]("Mine")
    api_helpers["create_transaction"](mine, 10, "2025-01-10")

    other = api_helpers["owner_headers"]("other")
    theirs = api_helpers["create_category"]("Theirs", headers=other)
    their_tx = api_helpers["create_transaction"](theirs, 99, "2025-01-10", headers=other)

    params = {"timeRange": "month", "date": "2025-01-01"}
    assert [float(t["amount"]) for t in client.get("/api/transactions", params=params).json()] == [10.0]
    assert [t["id"] for t in client.get("/api/transactions", params=params, headers=other).json()] == [
        their_tx["id"]
    ]
    assert client.get(f"/api/transactions/{their_tx['id']}").status_code == 404
