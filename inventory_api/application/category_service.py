"""
Category tree engine.

Categories form a forest. Every node stores a materialized ``path`` (the
``/``-joined ids of its ancestors, root first, empty for a root) and a
``level`` (0 for a root). Both are derived from the live parent chain on
create, update and move and are never accepted from callers.
"""

import re
from collections import defaultdict, deque
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from inventory_api.domain.models import Category, CategoryStatus, Product
from shared.core import get_logger
from .errors import DuplicateError, InvalidOperationError, InventoryError, NotFoundError, ValidationError
from .query import Page, QueryOptions, paginate
from .schemas import CategoryCreate, CategoryUpdate
from .unit_of_work import commit, translate_integrity_errors

logger = get_logger(__name__, component="categories")

DISPOSITIONS = ("move_to_parent", "move_to_root", "delete_all")


def slugify(name: str) -> str:
    slug = re.sub(r"[^\w\s-]", "", name.lower())
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


def child_path(parent: Optional[Category]) -> str:
    """Path stored on a direct child of ``parent``."""
    if parent is None:
        return ""
    return f"{parent.path}/{parent.id}" if parent.path else str(parent.id)


def category_to_dict(category: Category) -> Dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "parent_id": category.parent_id,
        "level": category.level,
        "path": category.path,
        "sort_order": category.sort_order,
        "status": category.status,
    }


class CategoryService:
    def __init__(self, db: Session):
        self.db = db

    # Lookups

    def find_by_id(self, category_id: int) -> Optional[Category]:
        return self.db.query(Category).filter(Category.id == category_id).first()

    def get(self, category_id: int) -> Category:
        category = self.find_by_id(category_id)
        if not category:
            raise NotFoundError("Category", category_id)
        return category

    def find_by_slug(self, slug: str) -> Optional[Category]:
        return self.db.query(Category).filter(Category.slug == slug.lower()).first()

    def list(self, status: Optional[str] = None, parent_only: bool = False,
             options: Optional[QueryOptions] = None) -> Page:
        options = options or QueryOptions(sort=[("level", "asc"), ("sort_order", "asc"), ("name", "asc")])
        query = self.db.query(Category)
        if status:
            query = query.filter(Category.status == status)
        if parent_only:
            query = query.filter(Category.parent_id.is_(None))
        return paginate(query, Category, options)

    def search(self, term: str, options: Optional[QueryOptions] = None) -> Page:
        options = options or QueryOptions(sort=[("sort_order", "asc"), ("name", "asc")])
        pattern = f"%{term}%"
        query = self.db.query(Category).filter(
            or_(
                Category.name.ilike(pattern),
                Category.description.ilike(pattern),
                Category.slug.ilike(pattern),
            )
        )
        return paginate(query, Category, options)

    def get_children(self, category_id: int) -> List[Category]:
        self.get(category_id)
        return (
            self.db.query(Category)
            .filter(Category.parent_id == category_id)
            .order_by(Category.sort_order.asc(), Category.name.asc())
            .all()
        )

    def get_root_categories(self, status: Optional[str] = None) -> List[Category]:
        query = self.db.query(Category).filter(Category.parent_id.is_(None))
        if status:
            query = query.filter(Category.status == status)
        return query.order_by(Category.sort_order.asc(), Category.name.asc()).all()

    def _descendants_query(self, category: Category):
        # Whole-segment match: "1" must not pick up "12" or "1x"
        prefix = child_path(category)
        return self.db.query(Category).filter(
            or_(Category.path == prefix, Category.path.like(f"{prefix}/%"))
        )

    def get_descendants(self, category_id: int) -> List[Category]:
        category = self.get(category_id)
        return (
            self._descendants_query(category)
            .order_by(Category.level.asc(), Category.sort_order.asc(), Category.name.asc())
            .all()
        )

    def get_ancestors(self, category_id: int) -> List[Category]:
        category = self.get(category_id)
        if not category.path:
            return []
        ids = [int(segment) for segment in category.path.split("/") if segment]
        return (
            self.db.query(Category)
            .filter(Category.id.in_(ids))
            .order_by(Category.level.asc())
            .all()
        )

    def get_breadcrumb(self, category_id: int) -> List[Category]:
        category = self.get(category_id)
        return self.get_ancestors(category_id) + [category]

    def get_categories_by_level(self, level: int, options: Optional[QueryOptions] = None) -> Page:
        options = options or QueryOptions(sort=[("sort_order", "asc"), ("name", "asc")])
        query = self.db.query(Category).filter(
            Category.level == level, Category.status == CategoryStatus.ACTIVE.value
        )
        return paginate(query, Category, options)

    def get_category_tree(self, root_id: Optional[int] = None, max_depth: Optional[int] = None):
        """
        Nested ``children`` view of the active categories.

        Without ``root_id`` the result is the list of root nodes; with it, the
        single node for ``root_id``. ``max_depth`` limits how many levels below
        the starting level are included.
        """
        query = self.db.query(Category).filter(Category.status == CategoryStatus.ACTIVE.value)
        start_level = 0
        if root_id is not None:
            root = self.get(root_id)
            start_level = root.level
            prefix = child_path(root)
            query = query.filter(
                or_(Category.id == root.id, Category.path == prefix, Category.path.like(f"{prefix}/%"))
            )
        if max_depth is not None:
            query = query.filter(Category.level <= start_level + max_depth)

        nodes = query.order_by(Category.level.asc(), Category.sort_order.asc(), Category.name.asc()).all()

        by_id: Dict[int, Dict[str, Any]] = {}
        for category in nodes:
            by_id[category.id] = {**category_to_dict(category), "children": []}

        roots = []
        for category in nodes:
            node = by_id[category.id]
            parent = by_id.get(category.parent_id) if category.parent_id is not None else None
            if parent is not None and category.id != root_id:
                parent["children"].append(node)
            elif root_id is None and category.parent_id is None:
                roots.append(node)

        if root_id is not None:
            return by_id.get(root_id)
        return roots

    # Mutations

    def _ensure_unique(self, name: str, slug: str, exclude_id: Optional[int] = None) -> None:
        query = self.db.query(Category).filter(Category.name == name)
        if exclude_id is not None:
            query = query.filter(Category.id != exclude_id)
        if query.first():
            raise DuplicateError("name", name)
        query = self.db.query(Category).filter(Category.slug == slug)
        if exclude_id is not None:
            query = query.filter(Category.id != exclude_id)
        if query.first():
            raise DuplicateError("slug", slug)

    @staticmethod
    def _slug_for(name: str) -> str:
        slug = slugify(name)
        if not slug:
            raise ValidationError.for_field("name", "Category name must contain letters or digits", name)
        return slug

    @staticmethod
    def _place_under(category: Category, parent: Optional[Category]) -> None:
        category.parent_id = parent.id if parent else None
        category.level = parent.level + 1 if parent else 0
        category.path = child_path(parent)

    def create(self, data: CategoryCreate) -> Category:
        name = data.name.strip()
        slug = self._slug_for(name)
        self._ensure_unique(name, slug)

        parent = self.get(data.parent_id) if data.parent_id is not None else None

        category = Category(
            name=name,
            slug=slug,
            description=data.description,
            sort_order=data.sort_order,
            status=CategoryStatus(data.status).value,
        )
        self._place_under(category, parent)
        self.db.add(category)
        commit(self.db)
        self.db.refresh(category)

        logger.info(
            "Category created",
            extra={'extra_fields': {
                'category_id': category.id, 'parent_id': category.parent_id,
                'level': category.level, 'path': category.path,
            }}
        )
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        category = self.get(category_id)
        fields = data.model_fields_set

        if "name" in fields and data.name is not None:
            name = data.name.strip()
            if name != category.name:
                slug = self._slug_for(name)
                self._ensure_unique(name, slug, exclude_id=category.id)
                category.name = name
                category.slug = slug
        if "description" in fields:
            category.description = data.description
        if "status" in fields and data.status is not None:
            category.status = CategoryStatus(data.status).value
        if "sort_order" in fields and data.sort_order is not None:
            category.sort_order = data.sort_order

        if "parent_id" in fields and data.parent_id != category.parent_id:
            try:
                self._move(category, data.parent_id)
            except InventoryError:
                self.db.rollback()
                raise

        commit(self.db)
        self.db.refresh(category)
        logger.info("Category updated", extra={'extra_fields': {'category_id': category.id, 'fields': sorted(fields)}})
        return category

    def _move(self, category: Category, new_parent_id: Optional[int], sort_order: Optional[int] = None) -> int:
        """
        Re-parent ``category`` and re-derive the subtree below it, without committing.

        Returns the level delta applied to the subtree.
        """
        descendants = self._descendants_query(category).all()

        new_parent = None
        if new_parent_id is not None:
            if new_parent_id == category.id:
                raise InvalidOperationError("Cannot move a category under itself")
            new_parent = self.get(new_parent_id)
            if any(d.id == new_parent.id for d in descendants):
                raise InvalidOperationError(
                    "Cannot move a category under one of its own descendants",
                    details=[{"field": "parent_id", "message": "would create a cycle", "value": new_parent_id}],
                )

        old_level = category.level
        self._place_under(category, new_parent)
        if sort_order is not None:
            category.sort_order = sort_order

        # Top-down over the pre-move subtree, keyed by parent id
        children_of: Dict[int, List[Category]] = defaultdict(list)
        for node in descendants:
            children_of[node.parent_id].append(node)
        queue = deque([category])
        while queue:
            node = queue.popleft()
            for child in children_of.get(node.id, []):
                child.level = node.level + 1
                child.path = child_path(node)
                queue.append(child)

        with translate_integrity_errors(self.db):
            self.db.flush()
        return category.level - old_level

    def move_category(self, category_id: int, new_parent_id: Optional[int] = None,
                      sort_order: Optional[int] = None) -> Category:
        category = self.get(category_id)
        try:
            delta = self._move(category, new_parent_id, sort_order)
        except InventoryError as exc:
            self.db.rollback()
            logger.info(
                "Category move rejected",
                extra={'extra_fields': {'category_id': category_id, 'parent_id': new_parent_id, 'error': exc.kind}}
            )
            raise
        commit(self.db)
        self.db.refresh(category)
        logger.info(
            "Category moved",
            extra={'extra_fields': {
                'category_id': category.id, 'parent_id': category.parent_id,
                'level': category.level, 'level_delta': delta,
            }}
        )
        return category

    def reorder_categories(self, orders: List[Dict[str, int]]) -> Dict[str, List[Dict[str, Any]]]:
        """Apply each ``{category_id, sort_order}`` independently, collecting failures."""
        results = {"successful": [], "failed": []}
        for order in orders:
            category_id = order.get("category_id")
            sort_order = order.get("sort_order")
            try:
                if sort_order is None or sort_order < 0:
                    raise ValidationError.for_field("sort_order", "sort_order must be a non-negative integer", sort_order)
                category = self.get(category_id)
                category.sort_order = sort_order
                commit(self.db)
                results["successful"].append({
                    "categoryId": category_id,
                    "sortOrder": sort_order,
                    "category": category_to_dict(category),
                })
            except InventoryError as exc:
                self.db.rollback()
                logger.warning(
                    "Category reorder entry failed",
                    extra={'extra_fields': {'category_id': category_id, 'error': exc.message}}
                )
                results["failed"].append({"categoryId": category_id, "error": exc.message})
        logger.info(
            "Categories reordered",
            extra={'extra_fields': {'successful': len(results["successful"]), 'failed': len(results["failed"])}}
        )
        return results

    def _detach_products(self, category_ids: List[int]) -> None:
        (
            self.db.query(Product)
            .filter(Product.category_id.in_(category_ids))
            .update({Product.category_id: None}, synchronize_session=False)
        )

    def delete_with_children(self, category_id: int, disposition: str) -> Dict[str, Any]:
        category = self.get(category_id)
        if disposition not in DISPOSITIONS:
            raise InvalidOperationError(
                f"Invalid disposition '{disposition}'. Use: {', '.join(DISPOSITIONS)}",
                details=[{"field": "disposition", "message": "unrecognized disposition", "value": disposition}],
            )

        try:
            if disposition == "delete_all":
                descendants = self._descendants_query(category).all()
                self._detach_products([d.id for d in descendants] + [category.id])
                # Deepest first so no row is removed while a child still points at it
                for node in sorted(descendants, key=lambda d: d.level, reverse=True):
                    self.db.delete(node)
                    self.db.flush()
                handled = len(descendants)
            else:
                target_parent_id = category.parent_id if disposition == "move_to_parent" else None
                children = self.get_children(category.id)
                for child in children:
                    self._move(child, target_parent_id)
                self._detach_products([category.id])
                handled = len(children)

            self.db.delete(category)
            commit(self.db)
        except InventoryError:
            self.db.rollback()
            raise

        logger.info(
            "Category deleted",
            extra={'extra_fields': {'category_id': category_id, 'disposition': disposition, 'children_handled': handled}}
        )
        return {"deletedCategory": category, "childrenHandled": handled, "action": disposition}

    def delete_category(self, category_id: int, disposition: Optional[str] = None) -> Dict[str, Any]:
        if disposition is not None:
            return self.delete_with_children(category_id, disposition)

        category = self.get(category_id)
        child_count = self.db.query(Category).filter(Category.parent_id == category.id).count()
        if child_count:
            logger.info(
                "Category delete rejected",
                extra={'extra_fields': {'category_id': category_id, 'children': child_count}}
            )
            raise InvalidOperationError(
                f"Category {category_id} has {child_count} children; choose a disposition: {', '.join(DISPOSITIONS)}"
            )
        self._detach_products([category.id])
        self.db.delete(category)
        commit(self.db)
        logger.info("Category deleted", extra={'extra_fields': {'category_id': category_id}})
        return {"deletedCategory": category, "childrenHandled": 0, "action": None}

    # Reporting

    def get_category_stats(self) -> Dict[str, Any]:
        by_status: Dict[str, int] = {}
        by_level: Dict[int, int] = {}
        total = active = roots = 0
        max_level = 0
        rows = self.db.query(Category.status, Category.level, Category.parent_id).all()
        for status, level, parent_id in rows:
            total += 1
            by_status[status] = by_status.get(status, 0) + 1
            if status == CategoryStatus.ACTIVE.value:
                active += 1
                by_level[level] = by_level.get(level, 0) + 1
            if parent_id is None:
                roots += 1
            max_level = max(max_level, level)
        return {
            "total": total,
            "active": active,
            "rootCategories": roots,
            "maxLevel": max_level,
            "byStatus": by_status,
            "byLevel": {f"level_{level}": count for level, count in sorted(by_level.items())},
        }

    def verify_tree(self) -> Dict[str, Any]:
        """Report nodes whose stored level/path disagree with their live parent chain."""
        nodes = {c.id: c for c in self.db.query(Category).all()}
        issues = []
        for category in nodes.values():
            chain = []
            seen = {category.id}
            parent_id = category.parent_id
            broken = None
            while parent_id is not None:
                if parent_id in seen:
                    broken = "cycle"
                    break
                parent = nodes.get(parent_id)
                if parent is None:
                    broken = "missing parent"
                    break
                seen.add(parent_id)
                chain.append(parent_id)
                parent_id = parent.parent_id
            if broken:
                issues.append({"categoryId": category.id, "problem": broken})
                continue
            expected_path = "/".join(str(i) for i in reversed(chain))
            expected_level = len(chain)
            if category.path != expected_path or category.level != expected_level:
                issues.append({
                    "categoryId": category.id,
                    "problem": "stale position",
                    "expectedLevel": expected_level,
                    "actualLevel": category.level,
                    "expectedPath": expected_path,
                    "actualPath": category.path,
                })
        return {"valid": not issues, "checked": len(nodes), "issues": issues}
