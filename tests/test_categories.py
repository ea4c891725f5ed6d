import pytest

from inventory_api.application.category_service import child_path, slugify
from inventory_api.application.errors import (
    DuplicateError, InvalidOperationError, NotFoundError, ValidationError,
)
from inventory_api.application.schemas import CategoryCreate, CategoryUpdate
from inventory_api.domain.models import Category


@pytest.fixture
def electronics_tree(make_category):
    electronics = make_category("Electronics")
    computers = make_category("Computers", parent=electronics)
    laptops = make_category("Laptops", parent=computers)
    return electronics, computers, laptops


def test_slugify():
    assert slugify("Home & Garden") == "home-garden"
    assert slugify("  Hello -- World  ") == "hello-world"
    assert slugify("Outdoor_Gear 2") == "outdoor_gear-2"
    assert slugify("!!!") == ""


def test_child_path_of_root_and_nested(electronics_tree):
    electronics, computers, _ = electronics_tree
    assert child_path(None) == ""
    assert child_path(electronics) == str(electronics.id)
    assert child_path(computers) == f"{electronics.id}/{computers.id}"


def test_create_derives_level_and_path(electronics_tree):
    electronics, computers, laptops = electronics_tree
    assert (electronics.level, electronics.path) == (0, "")
    assert (computers.level, computers.path) == (1, str(electronics.id))
    assert (laptops.level, laptops.path) == (2, f"{electronics.id}/{computers.id}")
    assert laptops.slug == "laptops"


def test_create_with_missing_parent(categories):
    with pytest.raises(NotFoundError):
        categories.create(CategoryCreate(name="Orphans", parent_id=999))


def test_create_rejects_duplicate_name_and_slug(make_category):
    make_category("Electronics")
    with pytest.raises(DuplicateError):
        make_category("Electronics")
    with pytest.raises(DuplicateError) as exc_info:
        make_category("Electronics!")
    assert exc_info.value.field == "slug"


def test_create_rejects_name_without_slug(categories):
    with pytest.raises(ValidationError):
        categories.create(CategoryCreate(name="***"))


def test_move_subtree_to_root(categories, electronics_tree):
    electronics, computers, laptops = electronics_tree

    moved = categories.move_category(computers.id, None)

    assert moved.parent_id is None
    assert (moved.level, moved.path) == (0, "")
    laptops = categories.get(laptops.id)
    assert laptops.level == 1
    assert laptops.path == str(computers.id)
    assert categories.get_descendants(electronics.id) == []


def test_move_subtree_deeper(categories, make_category, electronics_tree):
    electronics, computers, laptops = electronics_tree
    office = make_category("Office")
    desks = make_category("Desks", parent=office)

    categories.move_category(computers.id, desks.id)

    assert computers.level == 2
    assert computers.path == f"{office.id}/{desks.id}"
    assert laptops.level == 3
    assert laptops.path == f"{office.id}/{desks.id}/{computers.id}"
    assert categories.verify_tree()["valid"]


def test_move_under_descendant_is_rejected(categories, electronics_tree):
    electronics, computers, laptops = electronics_tree

    with pytest.raises(InvalidOperationError):
        categories.move_category(electronics.id, laptops.id)

    electronics = categories.get(electronics.id)
    assert electronics.parent_id is None
    assert electronics.level == 0
    assert categories.verify_tree()["valid"]


def test_move_under_itself_is_rejected(categories, electronics_tree):
    _, computers, _ = electronics_tree
    with pytest.raises(InvalidOperationError):
        categories.move_category(computers.id, computers.id)


def test_move_to_missing_parent(categories, electronics_tree):
    _, computers, _ = electronics_tree
    with pytest.raises(NotFoundError):
        categories.move_category(computers.id, 999)


def test_descendants_match_whole_path_segments(categories, make_category):
    roots = [make_category(f"Root {n}") for n in range(1, 13)]
    first, twelfth = roots[0], roots[-1]
    assert (first.id, twelfth.id) == (1, 12)

    near = make_category("Near", parent=first)
    far = make_category("Far", parent=twelfth)
    farther = make_category("Farther", parent=far)

    assert [c.id for c in categories.get_descendants(first.id)] == [near.id]
    assert [c.id for c in categories.get_descendants(twelfth.id)] == [far.id, farther.id]


def test_ancestors_and_breadcrumb(categories, electronics_tree):
    electronics, computers, laptops = electronics_tree
    assert [c.id for c in categories.get_ancestors(laptops.id)] == [electronics.id, computers.id]
    assert [c.name for c in categories.get_breadcrumb(laptops.id)] == ["Electronics", "Computers", "Laptops"]
    assert categories.get_ancestors(electronics.id) == []


def test_children_and_roots_are_sorted(categories, make_category):
    parent = make_category("Garden")
    make_category("Tools", parent=parent, sort_order=2)
    make_category("Plants", parent=parent, sort_order=1)
    make_category("Seeds", parent=parent, sort_order=1)

    assert [c.name for c in categories.get_children(parent.id)] == ["Plants", "Seeds", "Tools"]
    assert [c.name for c in categories.get_root_categories()] == ["Garden"]


def test_category_tree(categories, electronics_tree):
    electronics, computers, laptops = electronics_tree

    tree = categories.get_category_tree()
    assert len(tree) == 1
    assert tree[0]["id"] == electronics.id
    assert tree[0]["children"][0]["id"] == computers.id
    assert tree[0]["children"][0]["children"][0]["id"] == laptops.id

    shallow = categories.get_category_tree(max_depth=1)
    assert shallow[0]["children"][0]["children"] == []

    subtree = categories.get_category_tree(root_id=computers.id)
    assert subtree["id"] == computers.id
    assert [child["id"] for child in subtree["children"]] == [laptops.id]


def test_update_name_regenerates_slug(categories, electronics_tree):
    _, _, laptops = electronics_tree
    updated = categories.update(laptops.id, CategoryUpdate(name="Portable Computers"))
    assert updated.slug == "portable-computers"
    assert categories.find_by_slug("portable-computers").id == laptops.id


def test_update_parent_moves_subtree(categories, electronics_tree):
    _, computers, laptops = electronics_tree
    categories.update(computers.id, CategoryUpdate(parent_id=None))
    assert categories.get(computers.id).level == 0
    assert categories.get(laptops.id).path == str(computers.id)


def test_update_parent_cycle_rolls_back_other_fields(categories, electronics_tree):
    electronics, _, laptops = electronics_tree
    with pytest.raises(InvalidOperationError):
        categories.update(electronics.id, CategoryUpdate(parent_id=laptops.id, description="changed"))
    assert categories.get(electronics.id).description is None


def test_delete_leaf_without_disposition(categories, db, make_category, make_product):
    leaf = make_category("Cables")
    product = make_product(category_id=leaf.id)

    result = categories.delete_category(leaf.id)

    assert result["childrenHandled"] == 0
    assert categories.find_by_id(leaf.id) is None
    db.refresh(product)
    assert product.category_id is None


def test_delete_with_children_requires_disposition(categories, electronics_tree):
    electronics, _, _ = electronics_tree
    with pytest.raises(InvalidOperationError):
        categories.delete_category(electronics.id)
    assert categories.find_by_id(electronics.id) is not None


def test_delete_with_invalid_disposition(categories, electronics_tree):
    _, computers, laptops = electronics_tree
    with pytest.raises(InvalidOperationError):
        categories.delete_category(computers.id, "explode")
    assert categories.find_by_id(computers.id) is not None
    assert categories.get(laptops.id).parent_id == computers.id


@pytest.fixture
def family(make_category):
    top = make_category("Home")
    parent = make_category("Kitchen", parent=top)
    first = make_category("Cookware", parent=parent)
    second = make_category("Cutlery", parent=parent)
    grandchild = make_category("Pans", parent=first)
    return top, parent, first, second, grandchild


def test_delete_move_to_root(categories, family):
    top, parent, first, second, grandchild = family

    result = categories.delete_category(parent.id, "move_to_root")

    assert result["childrenHandled"] == 2
    assert result["action"] == "move_to_root"
    for child in (first, second):
        child = categories.get(child.id)
        assert (child.parent_id, child.level, child.path) == (None, 0, "")
    grandchild = categories.get(grandchild.id)
    assert grandchild.level == 1
    assert grandchild.path == str(first.id)
    assert categories.verify_tree()["valid"]


def test_delete_move_to_parent(categories, family):
    top, parent, first, second, grandchild = family

    categories.delete_category(parent.id, "move_to_parent")

    assert [c.id for c in categories.get_children(top.id)] == [first.id, second.id]
    grandchild = categories.get(grandchild.id)
    assert grandchild.level == 2
    assert grandchild.path == f"{top.id}/{first.id}"
    assert categories.verify_tree()["valid"]


def test_delete_all_removes_subtree_and_detaches_products(categories, db, family, make_product):
    top, parent, first, second, grandchild = family
    product = make_product(category_id=grandchild.id)

    result = categories.delete_category(parent.id, "delete_all")

    assert result["childrenHandled"] == 3
    assert db.query(Category).count() == 1
    assert categories.find_by_id(top.id) is not None
    db.refresh(product)
    assert product.category_id is None


def test_reorder_collects_failures(categories, make_category):
    first = make_category("Books")
    second = make_category("Music")

    result = categories.reorder_categories([
        {"category_id": first.id, "sort_order": 3},
        {"category_id": 999, "sort_order": 1},
        {"category_id": second.id, "sort_order": 1},
    ])

    assert [entry["categoryId"] for entry in result["successful"]] == [first.id, second.id]
    assert result["failed"] == [{"categoryId": 999, "error": "Category not found: 999"}]
    assert categories.get(first.id).sort_order == 3


def test_search_and_level_queries(categories, electronics_tree):
    page = categories.search("comp")
    assert [c.name for c in page.documents] == ["Computers"]
    assert page.pagination["total"] == 1

    level_one = categories.get_categories_by_level(1)
    assert [c.name for c in level_one.documents] == ["Computers"]


def test_category_stats(categories, electronics_tree):
    stats = categories.get_category_stats()
    assert stats["total"] == 3
    assert stats["rootCategories"] == 1
    assert stats["maxLevel"] == 2
    assert stats["byLevel"] == {"level_0": 1, "level_1": 1, "level_2": 1}


def test_verify_tree_reports_stale_position(categories, db, electronics_tree):
    _, _, laptops = electronics_tree
    laptops.level = 5
    db.commit()

    report = categories.verify_tree()

    assert not report["valid"]
    assert report["checked"] == 3
    assert report["issues"][0]["categoryId"] == laptops.id
    assert report["issues"][0]["expectedLevel"] == 2
