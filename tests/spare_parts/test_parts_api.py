import io

import pytest
from openpyxl import Workbook


def _authenticate(client, user_id: int) -> None:
    with client.session_transaction() as s:
        s["_user_id"] = str(user_id)
        s["_fresh"] = True


def _create_part(client, **data):
    payload = {"name": "Filter X", "article": "FX-100", "price": 100, "quantity": 10}
    payload.update(data)
    resp = client.post("/parts", json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]


def test_create_part_records_initial_arrival(auth_client):
    part = _create_part(auth_client)
    assert part["quantity"] == 10
    assert part["price"] == 100.0

    detail = auth_client.get(f"/parts/{part['id']}").get_json()["data"]
    assert [(t["type"], t["quantity"], t["description"]) for t in detail["transactions"]] == [
        ("arrival", 10, "Initial arrival")
    ]

    ledger = auth_client.get(f"/parts/{part['id']}/ledger").get_json()["data"]
    assert ledger["consistent"] is True
    assert ledger["balance"] == 10


def test_create_part_validation(auth_client):
    resp = auth_client.post("/parts", json={"article": "NO-NAME"})
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "name"

    resp = auth_client.post("/parts", json={"name": "Bolt", "quantity": -2})
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "quantity"

    resp = auth_client.post("/parts", json=["not", "an", "object"])
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "body"


def test_duplicate_article_is_a_conflict(auth_client):
    _create_part(auth_client)
    resp = auth_client.post("/parts", json={"name": "Another", "article": "FX-100"})
    assert resp.status_code == 409
    assert resp.get_json()["field"] == "article"


def test_quantity_only_changes_through_the_ledger(auth_client):
    part = _create_part(auth_client)

    resp = auth_client.patch(f"/parts/{part['id']}", json={"quantity": 99})
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "quantity"

    resp = auth_client.patch(f"/parts/{part['id']}/quantity", json={"quantity": 4, "reason": "stocktake"})
    data = resp.get_json()["data"]
    assert (data["old_quantity"], data["new_quantity"], data["difference"]) == (10, 4, -6)
    assert data["transaction"]["type"] == "expense"
    assert data["transaction"]["quantity"] == 6
    assert data["transaction"]["description"] == "stocktake"

    resp = auth_client.patch(f"/parts/{part['id']}/quantity", json={"quantity": 4})
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "conflict"

    resp = auth_client.patch(f"/parts/{part['id']}/quantity", json={"quantity": -1})
    assert resp.status_code == 400


def test_update_descriptive_fields(auth_client):
    part = _create_part(auth_client)
    resp = auth_client.patch(f"/parts/{part['id']}", json={"price": 120.5, "brand": "Bosch"})
    data = resp.get_json()["data"]
    assert data["price"] == 120.5 and data["brand"] == "Bosch"
    assert data["quantity"] == 10

    resp = auth_client.patch(f"/parts/{part['id']}", json={"name": ""})
    assert resp.status_code == 400


def test_list_filters_sort_and_low_stock(auth_client):
    _create_part(auth_client, name="Belt", article="B-1", quantity=2, type="engine")
    _create_part(auth_client, name="Anchor", article="A-1", quantity=40, type="body")
    _create_part(auth_client, name="Clamp", article="C-1", quantity=0, type="engine")

    body = auth_client.get("/parts").get_json()
    assert [p["name"] for p in body["data"]] == ["Anchor", "Belt", "Clamp"]
    assert body["pagination"] == {"page": 1, "limit": 50, "total": 3, "pages": 1}

    body = auth_client.get("/parts?low_stock=true&sort_by=quantity&sort_order=desc").get_json()
    assert [p["name"] for p in body["data"]] == ["Belt", "Clamp"]

    body = auth_client.get("/parts?type=engine&search=bel").get_json()
    assert [p["name"] for p in body["data"]] == ["Belt"]

    body = auth_client.get("/parts?limit=2&page=2").get_json()
    assert len(body["data"]) == 1 and body["pagination"]["pages"] == 2

    assert auth_client.get("/parts?sort_by=password").status_code == 400

    stats = auth_client.get("/parts/stats/overview").get_json()["data"]["overview"]
    assert stats["total_parts"] == 3
    assert stats["out_of_stock"] == 1 and stats["low_stock"] == 1 and stats["in_stock"] == 1
    assert stats["total_quantity"] == 42


def test_barcode_search(auth_client):
    _create_part(auth_client, barcode="4601234567890")
    body = auth_client.get("/parts/search/barcode/4601234567890").get_json()
    assert [p["article"] for p in body["data"]] == ["FX-100"]
    assert auth_client.get("/parts/search/barcode/000").get_json()["data"] == []


def test_delete_part_removes_its_history(auth_client):
    part = _create_part(auth_client)
    assert auth_client.delete(f"/parts/{part['id']}").status_code == 200
    assert auth_client.get(f"/parts/{part['id']}").status_code == 404
    assert auth_client.get(f"/transactions?part_id={part['id']}").get_json()["data"] == []


def test_delete_blocked_while_repair_is_open(auth_client):
    part = _create_part(auth_client)
    equipment = auth_client.post("/equipment", json={"type": "truck", "model": "KAMAZ"}).get_json()["data"]
    repair = auth_client.post("/repairs", json={"equipment_id": equipment["id"], "description": "Brakes",
                                                "start": True}).get_json()["data"]
    auth_client.post(f"/repairs/{repair['id']}/parts", json={"part_id": part["id"], "quantity": 1})

    resp = auth_client.delete(f"/parts/{part['id']}")
    assert resp.status_code == 409
    assert resp.get_json()["details"]["active_repairs"] == 1


def test_containers_hold_parts_and_release_them_on_delete(auth_client):
    resp = auth_client.post("/containers", json={"name": "Shelf A1", "location": "Garage"})
    assert resp.status_code == 201
    container = resp.get_json()["data"]

    assert auth_client.post("/containers", json={"name": "Shelf A1"}).status_code == 409

    part = _create_part(auth_client, container_id=container["id"])
    assert part["container_name"] == "Shelf A1"

    overview = auth_client.get("/containers").get_json()["data"]
    assert overview[0]["parts_count"] == 1 and overview[0]["total_quantity"] == 10

    detail = auth_client.get(f"/containers/{container['id']}").get_json()["data"]
    assert [p["id"] for p in detail["parts"]] == [part["id"]]
    assert detail["stats"]["total_value"] == 1000.0

    resp = auth_client.delete(f"/containers/{container['id']}")
    assert resp.get_json()["data"]["released_parts"] == 1

    part = auth_client.get(f"/parts/{part['id']}").get_json()["data"]
    assert part["container_id"] is None
    assert part["quantity"] == 10


def test_part_in_unknown_container_is_rejected(auth_client):
    resp = auth_client.post("/parts", json={"name": "Bolt", "container_id": 999})
    assert resp.status_code == 404


def test_import_csv(auth_client):
    _create_part(auth_client)
    content = (
        "name,article,quantity,price,type\n"
        "Oil filter,OF-1,5,250,engine\n"
        "Duplicate,FX-100,1,1,engine\n"
        "Wiper,WP-1,,80,body\n"
    ).encode("utf-8")
    resp = auth_client.post("/parts/import", data={"file": (io.BytesIO(content), "parts.csv")},
                            content_type="multipart/form-data")
    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["added"] == 2
    assert data["skipped"] == ["FX-100"]

    oil = auth_client.get("/parts?search=OF-1").get_json()["data"][0]
    assert oil["quantity"] == 5 and oil["price"] == 250.0


def test_import_xlsx_names_the_bad_row(auth_client):
    wb = Workbook()
    ws = wb.active
    ws.append(["Name", "Article", "Quantity"])
    ws.append(["Belt", "B-1", 3])
    ws.append(["Hose", "H-1", "many"])
    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)

    resp = auth_client.post("/parts/import", data={"file": (buf, "parts.xlsx")},
                            content_type="multipart/form-data")
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "rows[3].quantity"
    # nothing from the file was kept
    assert auth_client.get("/parts").get_json()["data"] == []


def test_import_rejects_other_formats(auth_client):
    resp = auth_client.post("/parts/import", data={"file": (io.BytesIO(b"x"), "parts.txt")},
                            content_type="multipart/form-data")
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "file"


@pytest.mark.parametrize("content, filename", [
    (b"not a zip archive", "parts.xlsx"),
    (b"name,article\n\xff\xfe\xfa,X-1\n", "parts.csv"),
])
def test_import_rejects_unreadable_files(auth_client, content, filename):
    resp = auth_client.post("/parts/import", data={"file": (io.BytesIO(content), filename)},
                            content_type="multipart/form-data")
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["field"] == "file"
    assert body["code"] == "invalid_input"


def test_import_closes_the_workbook(auth_client, monkeypatch):
    from modules.spare_parts import services

    closed = []
    real_load = services.load_workbook

    def tracking_load(*args, **kwargs):
        wb = real_load(*args, **kwargs)
        real_close = wb.close

        def close():
            closed.append(True)
            real_close()

        wb.close = close
        return wb

    monkeypatch.setattr(services, "load_workbook", tracking_load)

    wb = Workbook()
    wb.active.append(["Name", "Article", "Quantity"])
    wb.active.append(["Belt", "B-1", 3])
    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)

    resp = auth_client.post("/parts/import", data={"file": (buf, "parts.xlsx")},
                            content_type="multipart/form-data")
    assert resp.status_code == 201
    assert resp.get_json()["data"]["added"] == 1
    assert closed == [True]


def test_photo_upload(auth_client, app):
    part = _create_part(auth_client)
    resp = auth_client.post(f"/parts/{part['id']}/photos",
                            data={"photo": (io.BytesIO(b"\x89PNG fake"), "front.png")},
                            content_type="multipart/form-data")
    assert resp.status_code == 201
    photos = resp.get_json()["data"]["photos"]
    assert len(photos) == 1 and photos[0].endswith("front.png")

    resp = auth_client.post(f"/parts/{part['id']}/photos",
                            data={"photo": (io.BytesIO(b"MZ"), "virus.exe")},
                            content_type="multipart/form-data")
    assert resp.status_code == 400


def test_user_role_can_move_stock_but_not_edit_parts(client, make_user, app):
    admin = make_user("storekeeper", role="admin")
    _authenticate(client, admin.id)
    part = _create_part(client)

    user = make_user("mechanic")
    _authenticate(client, user.id)
    assert client.post("/parts", json={"name": "Bolt"}).status_code == 403
    assert client.delete(f"/parts/{part['id']}").status_code == 403
    resp = client.patch(f"/parts/{part['id']}/quantity", json={"quantity": 12})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["transaction"]["type"] == "arrival"


def test_parts_are_tenant_scoped(client, make_user, other_company):
    owner = make_user("owner", role="admin")
    _authenticate(client, owner.id)
    part = _create_part(client)

    stranger = make_user("stranger", role="admin", company_id=other_company.id)
    _authenticate(client, stranger.id)
    assert client.get(f"/parts/{part['id']}").status_code == 404
    assert client.patch(f"/parts/{part['id']}/quantity", json={"quantity": 1}).status_code == 404
    assert client.get("/parts").get_json()["data"] == []

    # articles are unique per company only
    _create_part(client)
