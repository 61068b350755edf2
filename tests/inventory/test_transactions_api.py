def _create_part(client, quantity=10, article="FX-1"):
    resp = client.post("/parts", json={"name": "Filter X", "article": article, "price": 100, "quantity": quantity})
    assert resp.status_code == 201
    return resp.get_json()["data"]


def test_expense_and_arrival_through_api(auth_client):
    part = _create_part(auth_client)

    resp = auth_client.post("/transactions", json={
        "type": "expense", "part_id": part["id"], "quantity": 3, "description": "workshop",
    })
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["data"]["type"] == "expense"
    assert body["new_quantity"] == 7

    resp = auth_client.post("/transactions", json={
        "type": "expense", "part_id": part["id"], "quantity": 20, "description": "too much",
    })
    assert resp.status_code == 409
    error = resp.get_json()
    assert error["success"] is False
    assert error["code"] == "insufficient_stock"
    assert error["field"] == "quantity"
    assert error["details"]["available"] == 7

    resp = auth_client.post("/transactions", json={
        "type": "arrival", "part_id": part["id"], "quantity": 5, "description": "delivery",
    })
    assert resp.get_json()["new_quantity"] == 12


def test_transaction_requires_description_and_positive_quantity(auth_client):
    part = _create_part(auth_client)
    resp = auth_client.post("/transactions", json={"type": "arrival", "part_id": part["id"], "quantity": 0,
                                                   "description": "x"})
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "quantity"

    resp = auth_client.post("/transactions", json={"type": "arrival", "part_id": part["id"], "quantity": 1})
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "description"


def test_list_filters_and_detail(auth_client):
    part = _create_part(auth_client)
    auth_client.post("/transactions", json={"type": "expense", "part_id": part["id"], "quantity": 2,
                                            "description": "used"})

    resp = auth_client.get(f"/transactions?part_id={part['id']}&type=expense")
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["pagination"]["total"] == 1
    entry = body["data"][0]
    assert entry["quantity"] == 2 and entry["part_article"] == "FX-1"

    resp = auth_client.get(f"/transactions/{entry['id']}")
    assert resp.get_json()["data"]["description"] == "used"
    assert auth_client.get("/transactions/9999").status_code == 404


def test_batch_endpoint_is_atomic(auth_client):
    part = _create_part(auth_client, quantity=2)
    resp = auth_client.post("/transactions/batch", json={"transactions": [
        {"type": "arrival", "part_id": part["id"], "quantity": 5, "description": "in"},
        {"type": "expense", "part_id": part["id"], "quantity": 50, "description": "out"},
    ]})
    assert resp.status_code == 409
    assert auth_client.get(f"/parts/{part['id']}").get_json()["data"]["quantity"] == 2

    resp = auth_client.post("/transactions/batch", json={"transactions": [
        {"type": "arrival", "part_id": part["id"], "quantity": 5, "description": "in"},
        {"type": "expense", "part_id": part["id"], "quantity": 6, "description": "out"},
    ]})
    assert resp.status_code == 201
    assert resp.get_json()["count"] == 2
    assert auth_client.get(f"/parts/{part['id']}").get_json()["data"]["quantity"] == 1


def test_stats_overview(auth_client):
    part = _create_part(auth_client)
    auth_client.post("/transactions", json={"type": "expense", "part_id": part["id"], "quantity": 4,
                                            "description": "used"})
    resp = auth_client.get("/transactions/stats/overview?period=7d")
    data = resp.get_json()["data"]
    assert data["period"] == "7d"
    assert data["overview"]["arrivals"] == 1
    assert data["overview"]["expenses"] == 1
    assert data["overview"]["total_expenses_quantity"] == 4
    assert data["top_parts"][0]["part_id"] == part["id"]

    assert auth_client.get("/transactions/stats/overview?period=2w").status_code == 400
