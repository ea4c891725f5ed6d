def create_product(client, headers=None, **overrides):
    payload = {"name": "Widget", "price": 10, "quantity": 10}
    payload.update(overrides)
    response = client.post("/products/", json=payload, headers=headers or {})
    assert response.status_code == 201, response.text
    return response.json()


def test_root_and_info(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "running"

    info = client.get("/info").json()
    assert info["service"] == "inventory-service"
    assert info["endpoints"]["categories"] == "/categories"


def test_health_endpoints(client):
    assert client.get("/health").json()["status"] == "pass"
    assert client.get("/health/live").json() == {"status": "alive"}


def test_request_id_is_returned(client):
    response = client.get("/", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_category_lifecycle(client):
    electronics = client.post("/categories/", json={"name": "Electronics"}).json()
    computers = client.post("/categories/", json={"name": "Computers", "parent_id": electronics["id"]}).json()
    laptops = client.post("/categories/", json={"name": "Laptops", "parent_id": computers["id"]}).json()
    assert laptops["level"] == 2
    assert laptops["path"] == f"{electronics['id']}/{computers['id']}"

    moved = client.post(f"/categories/{computers['id']}/move", json={"parent_id": None})
    assert moved.status_code == 200
    assert moved.json()["level"] == 0

    laptops = client.get(f"/categories/{laptops['id']}").json()
    assert (laptops["level"], laptops["path"]) == (1, str(computers["id"]))

    tree = client.get("/categories/tree").json()
    assert {node["name"] for node in tree} == {"Electronics", "Computers"}

    breadcrumb = client.get(f"/categories/{laptops['id']}/breadcrumb").json()
    assert [c["name"] for c in breadcrumb] == ["Computers", "Laptops"]

    assert client.get("/categories/slug/laptops").json()["id"] == laptops["id"]
    assert client.get("/categories/verify").json()["valid"] is True


def test_category_cycle_is_rejected(client):
    parent = client.post("/categories/", json={"name": "Parent"}).json()
    child = client.post("/categories/", json={"name": "Child", "parent_id": parent["id"]}).json()

    response = client.post(f"/categories/{parent['id']}/move", json={"parent_id": child["id"]})

    assert response.status_code == 400
    assert response.json()["error"] == "InvalidOperationError"


def test_category_delete_dispositions(client):
    parent = client.post("/categories/", json={"name": "Parent"}).json()
    client.post("/categories/", json={"name": "Child", "parent_id": parent["id"]})

    refused = client.delete(f"/categories/{parent['id']}")
    assert refused.status_code == 400

    invalid = client.delete(f"/categories/{parent['id']}", params={"disposition": "explode"})
    assert invalid.status_code == 400
    assert invalid.json()["details"][0]["field"] == "disposition"

    deleted = client.delete(f"/categories/{parent['id']}", params={"disposition": "move_to_root"})
    assert deleted.status_code == 200
    assert deleted.json()["childrenHandled"] == 1
    assert deleted.json()["deletedCategory"]["id"] == parent["id"]


def test_duplicate_category_conflicts(client):
    assert client.post("/categories/", json={"name": "Tools"}).status_code == 201
    response = client.post("/categories/", json={"name": "Tools"})
    assert response.status_code == 409
    assert response.json()["error"] == "DuplicateError"


def test_reorder_reports_failures(client):
    category = client.post("/categories/", json={"name": "Books"}).json()
    response = client.patch("/categories/reorder", json={"orders": [
        {"category_id": category["id"], "sort_order": 4},
        {"category_id": 999, "sort_order": 1},
    ]})
    body = response.json()
    assert response.status_code == 200
    assert body["successful"][0]["sortOrder"] == 4
    assert body["failed"][0]["categoryId"] == 999


def test_not_found_body(client):
    response = client.get("/products/999")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "NotFoundError", "message": "Product not found: 999"}


def test_request_validation_body(client):
    response = client.post("/products/", json={"name": "Widget", "price": -1})
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "ValidationError"
    assert body["details"][0]["field"] == "price"


def test_product_create_records_actor(client):
    product = create_product(client, headers={"X-User": "alice"})
    assert product["stock_status"] == "in_stock"
    assert product["total_value"] == 100.0

    transactions = client.get(f"/products/{product['id']}/transactions").json()
    assert transactions["pagination"]["total"] == 1
    assert transactions["documents"][0]["performed_by"] == "alice"
    assert transactions["documents"][0]["type"] == "stock_in"


def test_stock_movement_endpoint(client):
    product = create_product(client)

    response = client.post(
        f"/products/{product['id']}/transactions",
        json={"type": "stock_out", "quantity": 3, "reason": "Sold"},
        headers={"X-User": "bob"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["transaction"]["quantity"] == -3
    assert body["transaction"]["performed_by"] == "bob"
    assert body["product"]["quantity"] == 7


def test_insufficient_stock_is_rejected(client):
    product = create_product(client, quantity=2)

    response = client.post(
        f"/products/{product['id']}/transactions",
        json={"type": "stock_out", "quantity": 5, "reason": "Sold"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "InvalidOperationError"
    assert client.get(f"/products/{product['id']}").json()["quantity"] == 2


def test_quantity_endpoints(client):
    product = create_product(client)

    response = client.patch(f"/products/{product['id']}/quantity", json={"quantity": 4, "reason": "Recount"})
    assert response.status_code == 200
    assert response.json()["quantityChange"]["difference"] == -6
    assert response.json()["transaction"]["type"] == "stock_out"

    bulk = client.patch("/products/bulk-quantity", json={"updates": [
        {"product_id": product["id"], "quantity": 9},
        {"product_id": 999, "quantity": 5},
    ]}).json()
    assert len(bulk["successful"]) == 1
    assert bulk["failed"] == [{"productId": 999, "error": "Product not found: 999"}]

    balance = client.get(f"/products/{product['id']}/ledger-balance").json()
    assert balance["quantity"] == balance["ledgerQuantity"] == 9
    assert balance["consistent"] is True


def test_duplicate_sku_conflicts(client):
    create_product(client, sku="SKU-1")
    response = client.post("/products/", json={"name": "Other", "price": 1, "sku": "sku-1"})
    assert response.status_code == 409


def test_product_queries(client):
    create_product(client, name="Blue Pen", quantity=0)
    create_product(client, name="Red Pen", quantity=3)

    assert client.get("/products/search", params={"q": "blue"}).json()["pagination"]["total"] == 1
    assert client.get("/products/out-of-stock").json()["pagination"]["total"] == 1
    low = client.get("/products/advanced-search", params={"stock_status": "low_stock"}).json()
    assert [p["name"] for p in low["documents"]] == ["Red Pen"]
    assert client.get("/products/stats").json()["totalProducts"] == 2


def test_raw_ledger_entry_and_immutability(client):
    product = create_product(client)

    created = client.post("/transactions/", json={
        "product_id": product["id"], "type": "stock_out", "quantity": 2,
        "previous_quantity": 10, "new_quantity": 8, "reason": "Manual entry",
    })
    assert created.status_code == 201
    assert created.json()["quantity"] == -2
    assert created.json()["performed_by"] == "System"

    missing = client.post("/transactions/", json={"product_id": product["id"], "type": "stock_out"})
    assert missing.status_code == 400
    assert {d["field"] for d in missing.json()["details"]} >= {"quantity", "reason"}

    transaction_id = created.json()["id"]
    assert client.put(f"/transactions/{transaction_id}", json={"reason": "x"}).status_code == 405
    assert client.delete(f"/transactions/{transaction_id}").status_code == 405


def test_transaction_reports(client):
    product = create_product(client)
    client.post(
        f"/products/{product['id']}/transactions",
        json={"type": "stock_out", "quantity": 9, "reason": "Sold"},
    )

    stats = client.get("/transactions/stats").json()
    assert stats["overall"]["totalTransactions"] == 2

    alerts = client.get("/transactions/alerts/low-stock").json()
    assert [a["productId"] for a in alerts] == [product["id"]]

    by_type = client.get("/transactions/type/stock_out").json()
    assert by_type["pagination"]["total"] == 1
    assert client.get("/transactions/type/teleport").status_code == 400

    movements = client.get(f"/products/{product['id']}/movements").json()
    assert movements["netMovement"] == 1


def test_bearer_token_sets_actor(client):
    token = client.post("/auth/token", json={"username": "carol"}).json()["access_token"]
    product = create_product(client, headers={"Authorization": f"Bearer {token}"})

    audit = client.get(f"/products/{product['id']}/audit-trail").json()
    assert audit[0]["performed_by"] == "carol"

    rejected = client.post(
        "/products/", json={"name": "Other", "price": 1}, headers={"Authorization": "Bearer not-a-token"}
    )
    assert rejected.status_code == 401


def test_suppliers_endpoints(client):
    created = client.post("/suppliers/", json={"name": "Acme Supplies"})
    assert created.status_code == 201
    supplier = created.json()
    assert supplier["code"] == "ACM-0001"

    rating = client.patch(f"/suppliers/{supplier['id']}/rating", json={"rating": 4.5, "reason": "Good"})
    assert rating.json()["ratingChange"]["current"] == 4.5
    assert client.patch(f"/suppliers/{supplier['id']}/rating", json={"rating": 7}).status_code == 400

    assert client.get("/suppliers/code/acm-0001").json()["id"] == supplier["id"]
    assert client.get("/suppliers/top-rated").json()[0]["id"] == supplier["id"]
    assert client.get("/suppliers/stats").json()["total"] == 1


def test_dashboard(client):
    create_product(client, quantity=0)
    create_product(client, name="Gadget", quantity=2)

    overview = client.get("/dashboard/overview").json()
    assert overview["overview"]["totalProducts"] == 2
    assert overview["overview"]["outOfStockCount"] == 1
    assert len(overview["recent"]["transactions"]) == 1

    alerts = client.get("/dashboard/alerts").json()
    assert alerts["summary"]["critical"] == 1
    assert alerts["summary"]["warning"] == 1
    assert client.get("/dashboard/alerts", params={"severity": "bogus"}).status_code == 400


def test_movement_with_unknown_supplier_is_not_found(client):
    product = create_product(client)

    response = client.post(
        f"/products/{product['id']}/transactions",
        json={"type": "stock_in", "quantity": 1, "reason": "Delivery", "supplier_id": 9999},
    )

    assert response.status_code == 404
    assert response.json()["message"] == "Supplier not found: 9999"
    assert client.get(f"/products/{product['id']}").json()["quantity"] == 10


def test_dashboard_analytics(client):
    product = create_product(client)
    client.post(f"/products/{product['id']}/transactions", json={"type": "stock_out", "quantity": 4, "reason": "Sold"})

    overview = client.get("/dashboard/inventory-overview").json()
    assert overview["stockLevels"]["adequateStock"] == 1
    assert overview["supplierBreakdown"][0]["supplier"] == "No Supplier"

    analytics = client.get("/dashboard/sales-analytics", params={"group_by": "week"}).json()
    assert analytics["topSellingProducts"][0]["totalQuantity"] == 4
    assert client.get("/dashboard/sales-analytics", params={"group_by": "hour"}).status_code == 400


def test_supplier_queries(client):
    client.post("/suppliers/", json={"name": "Acme Supplies", "rating": 4.5, "city": "Portland"})
    client.post("/suppliers/", json={"name": "Bolt Works", "rating": 2, "payment_terms": "cod"})

    top = client.get("/suppliers/rating-range", params={"min_rating": 4}).json()
    assert [s["name"] for s in top["documents"]] == ["Acme Supplies"]

    cod = client.get("/suppliers/payment-terms/cod").json()
    assert cod["pagination"]["total"] == 1
    assert client.get("/suppliers/payment-terms/weekly").status_code == 400

    assert client.get("/suppliers/location/portland").json()["documents"][0]["name"] == "Acme Supplies"
    found = client.get("/suppliers/advanced-search", params={"max_rating": 3}).json()
    assert [s["name"] for s in found["documents"]] == ["Bolt Works"]
