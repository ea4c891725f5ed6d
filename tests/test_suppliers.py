import pytest
from pydantic import ValidationError as SchemaError

from inventory_api.application.errors import DuplicateError, NotFoundError, ValidationError
from inventory_api.application.schemas import SupplierCreate, SupplierUpdate


def test_generated_codes_are_sequential(make_supplier):
    assert make_supplier("Acme Supplies").code == "ACM-0001"
    assert make_supplier("Acme Tools").code == "ACM-0002"
    assert make_supplier("42 Parts").code == "PAR-0001"


def test_explicit_code_is_uppercased_and_unique(suppliers, make_supplier):
    supplier = make_supplier(code="north-01")
    assert supplier.code == "NORTH-01"
    assert suppliers.find_by_code("north-01").id == supplier.id
    with pytest.raises(DuplicateError):
        make_supplier("Other", code="NORTH-01")


def test_rating_must_use_half_steps():
    with pytest.raises(SchemaError):
        SupplierCreate(name="Acme", rating=4.3)
    assert SupplierCreate(name="Acme", rating=4.5).rating == 4.5


def test_update_rating_reports_change(suppliers, make_supplier):
    supplier = make_supplier()

    first = suppliers.update_rating(supplier.id, 4.5, "Fast delivery")
    second = suppliers.update_rating(supplier.id, 3.0, "Late order")

    assert first["ratingChange"] == {"previous": None, "current": 4.5, "difference": None, "reason": "Fast delivery"}
    assert second["ratingChange"]["previous"] == 4.5
    assert second["ratingChange"]["difference"] == -1.5


@pytest.mark.parametrize("rating", [0.5, 5.5, 3.3])
def test_update_rating_rejects_invalid_values(suppliers, make_supplier, rating):
    supplier = make_supplier()
    with pytest.raises(ValidationError):
        suppliers.update_rating(supplier.id, rating)


def test_update_credit_limit(suppliers, make_supplier):
    supplier = make_supplier()

    result = suppliers.update_credit_limit(supplier.id, 1000, "Annual review")

    assert result["creditChange"] == {
        "previous": 0.0, "current": 1000.0, "difference": 1000.0, "reason": "Annual review",
    }
    with pytest.raises(ValidationError):
        suppliers.update_credit_limit(supplier.id, -1)


def test_update_and_soft_delete(suppliers, make_supplier):
    supplier = make_supplier()

    updated = suppliers.update(supplier.id, SupplierUpdate(city="Springfield", payment_terms="net_60"))
    assert (updated.city, updated.payment_terms) == ("Springfield", "net_60")

    assert suppliers.delete(supplier.id).status == "inactive"
    with pytest.raises(NotFoundError):
        suppliers.delete(999)


def test_bulk_update_status(suppliers, make_supplier):
    first = make_supplier("Acme Supplies")
    second = make_supplier("Bolt Works", status="suspended")

    result = suppliers.bulk_update_status([first.id, second.id, 999], "suspended", "Audit")

    assert result == {"matchedCount": 2, "modifiedCount": 1, "status": "suspended", "reason": "Audit"}
    with pytest.raises(ValidationError):
        suppliers.bulk_update_status([first.id], "retired")


def test_top_rated_and_stats(suppliers, make_supplier):
    good = make_supplier("Good Co", rating=4.5, credit_limit=500)
    fair = make_supplier("Fair Co", rating=2.5, credit_limit=100)
    make_supplier("Unrated Co")
    make_supplier("Gone Co", rating=5, status="inactive")

    assert [s.id for s in suppliers.get_top_rated()] == [good.id, fair.id]

    stats = suppliers.get_supplier_stats()
    assert stats["total"] == 4
    assert stats["byStatus"] == {"active": 3, "inactive": 1}
    assert stats["ratings"]["totalRated"] == 2
    assert stats["ratings"]["average"] == 3.5
    assert stats["ratings"]["highRating"] == 1
    assert stats["ratings"]["lowRating"] == 1
    assert stats["credit"]["total"] == 600.0


def test_search(suppliers, make_supplier):
    make_supplier("Acme Supplies", email="sales@acme.test")
    make_supplier("Bolt Works")
    assert [s.name for s in suppliers.search("acme").documents] == ["Acme Supplies"]


def names(page):
    return [s.name for s in page.documents]


def test_get_by_payment_terms(suppliers, make_supplier):
    make_supplier("Acme Supplies", payment_terms="net_60")
    make_supplier("Bolt Works", payment_terms="net_30")
    make_supplier("Gone Co", payment_terms="net_60", status="inactive")

    assert names(suppliers.get_by_payment_terms("net_60")) == ["Acme Supplies"]
    with pytest.raises(ValidationError):
        suppliers.get_by_payment_terms("weekly")


def test_get_by_rating_range(suppliers, make_supplier):
    make_supplier("Good Co", rating=4.5)
    make_supplier("Fair Co", rating=3)
    make_supplier("Poor Co", rating=1.5)
    make_supplier("Unrated Co")

    assert names(suppliers.get_by_rating_range(3)) == ["Good Co", "Fair Co"]
    assert names(suppliers.get_by_rating_range(1, 2)) == ["Poor Co"]


@pytest.mark.parametrize("low, high", [(4, 2), (0, 5), (3, 6)])
def test_get_by_rating_range_rejects_bad_bounds(suppliers, low, high):
    with pytest.raises(ValidationError):
        suppliers.get_by_rating_range(low, high)


def test_get_by_location_matches_city_state_or_country(suppliers, make_supplier):
    make_supplier("Acme Supplies", city="Portland", state="Oregon")
    make_supplier("Bolt Works", city="Toronto", country="Canada")
    make_supplier("Gone Co", city="Portland", status="inactive")

    assert names(suppliers.get_by_location("portland")) == ["Acme Supplies"]
    assert names(suppliers.get_by_location("OREGON")) == ["Acme Supplies"]
    assert names(suppliers.get_by_location("canada")) == ["Bolt Works"]


def test_advanced_search(suppliers, make_supplier):
    make_supplier("Good Co", rating=4.5, credit_limit=500, payment_terms="net_60", city="Portland")
    make_supplier("Fair Co", rating=3, credit_limit=100, payment_terms="net_60")
    make_supplier("Bolt Works", rating=5, credit_limit=2000, payment_terms="net_30")

    search = suppliers.advanced_search
    assert names(search({"payment_terms": "net_60", "min_rating": 3, "max_credit_limit": 600})) == [
        "Fair Co", "Good Co",
    ]
    assert names(search({"search": "co", "location": "portland"})) == ["Good Co"]
    assert names(search({"min_credit_limit": 0, "max_rating": 3})) == ["Fair Co"]
    assert names(search({"min_credit_limit": 1000})) == ["Bolt Works"]
    with pytest.raises(ValidationError):
        search({"payment_terms": "weekly"})
