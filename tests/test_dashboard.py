import pytest

from inventory_api.application.errors import ValidationError
from inventory_api.domain.models import utcnow


def test_warning_alerts_skip_out_of_stock_products(dashboard, make_product):
    for name in ("Empty A", "Empty B", "Empty C"):
        make_product(name=name, quantity=0)
    low = make_product(name="Low", quantity=2)

    result = dashboard.get_alerts(limit=2)

    assert [alert["productId"] for alert in result["alerts"]["warning"]] == [low.id]
    assert result["summary"]["critical"] == 2
    assert result["summary"]["warning"] == 1


def test_stock_level_distribution(dashboard, make_product):
    make_product(name="Empty", quantity=0)
    make_product(name="Low", quantity=5)
    make_product(name="Fine", quantity=15)
    make_product(name="Plenty", quantity=16)

    assert dashboard.get_stock_level_distribution() == {
        "outOfStock": 1, "lowStock": 1, "adequateStock": 1, "overStock": 1,
    }


def test_supplier_breakdown(dashboard, make_product, make_supplier):
    acme = make_supplier("Acme Supplies")
    make_product(name="Bolt", price="10.00", quantity=10, supplier_id=acme.id)
    make_product(name="Nut", price="2.00", quantity=5, supplier_id=acme.id)
    make_product(name="Loose", price="10.00", quantity=1)

    breakdown = dashboard.get_supplier_breakdown()

    assert [(item["supplier"], item["productCount"], item["totalValue"]) for item in breakdown] == [
        ("Acme Supplies", 2, 110.0),
        ("No Supplier", 1, 10.0),
    ]


def test_inventory_overview(dashboard, make_product):
    make_product(name="Widget", price="10.00", quantity=10)
    low = make_product(name="Gadget", price="5.00", quantity=2)

    overview = dashboard.get_inventory_overview()

    assert overview["totalValue"] == {"total": 110.0, "totalItems": 12, "averageItemValue": 9.17}
    assert [item["productId"] for item in overview["alerts"]["lowStock"]] == [low.id]
    assert len(overview["recentMovements"]) == 2
    assert overview["categoryBreakdown"][0]["category"] == "Uncategorized"


def test_sales_analytics(dashboard, products, make_category, make_product):
    tools = make_category("Tools")
    hammer = make_product(name="Hammer", price="10.00", quantity=20, category_id=tools.id)
    tape = make_product(name="Tape", price="5.00", quantity=20)
    products.record_movement(hammer.id, "stock_out", 5, "Sold")
    products.record_movement(hammer.id, "stock_out", 3, "Sold")
    products.record_movement(tape.id, "stock_out", 4, "Sold")
    products.record_movement(tape.id, "stock_out", 2, "Sold", unit_cost="1.00")
    products.record_movement(hammer.id, "damaged", 1, "Dropped")

    analytics = dashboard.get_sales_analytics(days=30, group_by="month")

    assert analytics["topSellingProducts"] == [
        {"productId": hammer.id, "name": "Hammer", "totalQuantity": 8, "totalValue": 80.0},
        {"productId": tape.id, "name": "Tape", "totalQuantity": 6, "totalValue": 22.0},
    ]
    assert analytics["categoryPerformance"] == [
        {"category": "Tools", "quantity": 8, "value": 80.0, "transactions": 2},
        {"category": "Uncategorized", "quantity": 6, "value": 22.0, "transactions": 2},
    ]
    assert analytics["salesTrend"] == [
        {"date": utcnow().strftime("%Y-%m"), "quantity": 14, "value": 102.0, "transactions": 4},
    ]


def test_sales_analytics_limit(dashboard, products, make_product):
    first = make_product(name="First", quantity=10)
    second = make_product(name="Second", quantity=10)
    products.record_movement(first.id, "stock_out", 1, "Sold")
    products.record_movement(second.id, "stock_out", 2, "Sold")

    analytics = dashboard.get_sales_analytics(limit=1)

    assert [p["productId"] for p in analytics["topSellingProducts"]] == [second.id]


@pytest.mark.parametrize("kwargs", [{"days": 0}, {"group_by": "hour"}])
def test_sales_analytics_rejects_bad_input(dashboard, kwargs):
    with pytest.raises(ValidationError):
        dashboard.get_sales_analytics(**kwargs)
