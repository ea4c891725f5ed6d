from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from inventory_api.application.category_service import CategoryService
from inventory_api.application.errors import NotFoundError
from inventory_api.application.query import Page, QueryOptions
from inventory_api.application.schemas import (
    CategoryCreate, CategoryMove, CategoryRead, CategoryReorder, CategoryUpdate,
)
from inventory_api.infrastructure.db import get_db
from .deps import get_query_options

router = APIRouter(prefix="/categories", tags=["categories"])


def category_page(page: Page) -> Dict[str, Any]:
    return {
        "documents": [CategoryRead.model_validate(c) for c in page.documents],
        "pagination": page.pagination,
    }


@router.get("/")
def list_categories(status: Optional[str] = None, parent_only: bool = False,
                    options: QueryOptions = Depends(get_query_options), db: Session = Depends(get_db)):
    return category_page(CategoryService(db).list(status, parent_only, options))

@router.get("/tree")
def category_tree(root_id: Optional[int] = None, max_depth: Optional[int] = Query(None, ge=0),
                  db: Session = Depends(get_db)):
    return CategoryService(db).get_category_tree(root_id, max_depth)

@router.get("/roots", response_model=List[CategoryRead])
def root_categories(status: Optional[str] = None, db: Session = Depends(get_db)):
    return CategoryService(db).get_root_categories(status)

@router.get("/stats")
def category_stats(db: Session = Depends(get_db)):
    return CategoryService(db).get_category_stats()

@router.get("/verify")
def verify_tree(db: Session = Depends(get_db)):
    return CategoryService(db).verify_tree()

@router.get("/search")
def search_categories(q: str = Query(min_length=1), options: QueryOptions = Depends(get_query_options),
                      db: Session = Depends(get_db)):
    return category_page(CategoryService(db).search(q, options))

@router.get("/level/{level}")
def categories_by_level(level: int, options: QueryOptions = Depends(get_query_options),
                        db: Session = Depends(get_db)):
    return category_page(CategoryService(db).get_categories_by_level(level, options))

@router.get("/slug/{slug}", response_model=CategoryRead)
def category_by_slug(slug: str, db: Session = Depends(get_db)):
    category = CategoryService(db).find_by_slug(slug)
    if not category:
        raise NotFoundError("Category", slug)
    return category

@router.patch("/reorder")
def reorder_categories(payload: CategoryReorder, db: Session = Depends(get_db)):
    return CategoryService(db).reorder_categories([order.model_dump() for order in payload.orders])

@router.post("/", response_model=CategoryRead, status_code=201)
def create_category(payload: CategoryCreate, db: Session = Depends(get_db)):
    return CategoryService(db).create(payload)

@router.get("/{category_id}", response_model=CategoryRead)
def get_category(category_id: int, db: Session = Depends(get_db)):
    return CategoryService(db).get(category_id)

@router.put("/{category_id}", response_model=CategoryRead)
def update_category(category_id: int, payload: CategoryUpdate, db: Session = Depends(get_db)):
    return CategoryService(db).update(category_id, payload)

@router.delete("/{category_id}")
def delete_category(category_id: int, disposition: Optional[str] = None, db: Session = Depends(get_db)):
    result = CategoryService(db).delete_category(category_id, disposition)
    return {**result, "deletedCategory": CategoryRead.model_validate(result["deletedCategory"])}

@router.post("/{category_id}/move", response_model=CategoryRead)
def move_category(category_id: int, payload: CategoryMove, db: Session = Depends(get_db)):
    return CategoryService(db).move_category(category_id, payload.parent_id, payload.sort_order)

@router.get("/{category_id}/children", response_model=List[CategoryRead])
def category_children(category_id: int, db: Session = Depends(get_db)):
    return CategoryService(db).get_children(category_id)

@router.get("/{category_id}/descendants", response_model=List[CategoryRead])
def category_descendants(category_id: int, db: Session = Depends(get_db)):
    return CategoryService(db).get_descendants(category_id)

@router.get("/{category_id}/ancestors", response_model=List[CategoryRead])
def category_ancestors(category_id: int, db: Session = Depends(get_db)):
    return CategoryService(db).get_ancestors(category_id)

@router.get("/{category_id}/breadcrumb", response_model=List[CategoryRead])
def category_breadcrumb(category_id: int, db: Session = Depends(get_db)):
    return CategoryService(db).get_breadcrumb(category_id)
