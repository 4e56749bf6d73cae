from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from catalog_admin.extensions import cache, limiter
from catalog_admin.schemas.categories import (
    CategoryCreate,
    CategoryMove,
    CategoryReorder,
    CategoryUpdate,
)
from catalog_admin.services.categories import (
    SORT_FIELDS,
    TREE_CACHE_KEYS,
    UNSET,
    get_category_engine,
    invalidate_tree_cache,
)

bp = Blueprint("admin_categories", __name__, url_prefix="/api/admin/categories")


def _mutation_limit() -> str:
    return current_app.config.get("CATEGORY_MUTATION_LIMIT", "30 per minute")


def _flag(name: str) -> bool:
    return request.args.get(name, "").lower() in ("1", "true", "yes")


def _invalid(message: str, e: ValidationError):
    current_app.logger.info(f"{message}: {e.errors()}")
    return jsonify({
        "error": "bad_request",
        "message": message,
        "details": [{"field": "/".join(map(str, err["loc"])), "message": err["msg"]}
                    for err in e.errors()]
    }), 400


@bp.get("")
def list_categories():
    """Flat paginated listing, or the nested tree with ``?tree=true``"""
    engine = get_category_engine()

    if _flag("tree"):
        include_inactive = _flag("include_inactive")
        key = TREE_CACHE_KEYS[include_inactive]
        tree = cache.get(key)
        if tree is None:
            tree = [entry.model_dump(mode="json") for entry in engine.build_tree(include_inactive)]
            cache.set(key, tree, timeout=current_app.config.get("CATEGORY_TREE_CACHE_SECONDS", 300))
        return jsonify({"categories": tree}), 200

    parent_id = UNSET
    if "parent_id" in request.args:
        # Empty value or "root" selects top-level categories
        parent_id = request.args.get("parent_id") or None
        if parent_id == "root":
            parent_id = None

    is_active = None
    if "is_active" in request.args:
        is_active = _flag("is_active")

    has_products = None
    if "has_products" in request.args:
        has_products = _flag("has_products")

    sort_by = request.args.get("sort_by", "sort_order")
    order = request.args.get("order", "asc").lower()
    if sort_by not in SORT_FIELDS or order not in ("asc", "desc"):
        return jsonify({
            "error": "bad_request",
            "message": f"sort_by must be one of {', '.join(SORT_FIELDS)}; order must be asc or desc",
        }), 400

    page = max(request.args.get("page", 1, type=int), 1)
    per_page = request.args.get("per_page", current_app.config.get("CATEGORY_PAGE_SIZE", 20), type=int)
    per_page = min(max(per_page, 1), current_app.config.get("CATEGORY_MAX_PAGE_SIZE", 100))

    items, total = engine.list_categories(
        parent_id=parent_id,
        is_active=is_active,
        has_products=has_products,
        sort_by=sort_by,
        descending=order == "desc",
        page=page,
        per_page=per_page,
    )
    return jsonify({
        "categories": [node.model_dump(mode="json") for node in items],
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "pages": (total + per_page - 1) // per_page,
        },
    }), 200


@bp.get("/<string:category_id>")
def get_category(category_id: str):
    node = get_category_engine().get(category_id)
    return jsonify({"category": node.model_dump(mode="json")}), 200


@bp.get("/<string:category_id>/path")
def get_category_path(category_id: str):
    path = get_category_engine().get_ancestor_path(category_id)
    return jsonify({"path": [node.model_dump(mode="json") for node in path]}), 200


@bp.get("/<string:category_id>/available-parents")
def get_available_parents(category_id: str):
    engine = get_category_engine()
    engine.get(category_id)
    parents = engine.find_available_parents(category_id)
    return jsonify({"categories": [node.model_dump(mode="json") for node in parents]}), 200


@bp.post("")
@limiter.limit(_mutation_limit)
def create_category():
    data = request.get_json(silent=True) or {}
    try:
        payload = CategoryCreate.model_validate(data)
    except ValidationError as e:
        return _invalid("Invalid category data", e)

    node = get_category_engine().create(payload)
    invalidate_tree_cache()
    return jsonify({"status": "ok", "category": node.model_dump(mode="json")}), 201


@bp.patch("/<string:category_id>")
@limiter.limit(_mutation_limit)
def update_category(category_id: str):
    data = request.get_json(silent=True) or {}
    try:
        payload = CategoryUpdate.model_validate(data)
    except ValidationError as e:
        return _invalid("Invalid category data", e)

    node = get_category_engine().update(category_id, payload)
    invalidate_tree_cache()
    return jsonify({"status": "ok", "category": node.model_dump(mode="json")}), 200


@bp.put("/<string:category_id>/move")
@limiter.limit(_mutation_limit)
def move_category(category_id: str):
    data = request.get_json(silent=True) or {}
    try:
        payload = CategoryMove.model_validate(data)
    except ValidationError as e:
        return _invalid("Invalid move request", e)

    node = get_category_engine().move(category_id, payload.new_parent_id, payload.new_sort_order)
    invalidate_tree_cache()
    return jsonify({"status": "ok", "category": node.model_dump(mode="json")}), 200


@bp.post("/reorder")
@limiter.limit(_mutation_limit)
def reorder_categories():
    data = request.get_json(silent=True) or {}
    try:
        payload = CategoryReorder.model_validate(data)
    except ValidationError as e:
        return _invalid("Invalid reorder request", e)

    get_category_engine().reorder(payload.category_ids)
    invalidate_tree_cache()
    return jsonify({"status": "ok"}), 200


@bp.delete("/<string:category_id>")
@limiter.limit(_mutation_limit)
def delete_category(category_id: str):
    get_category_engine().delete(category_id)
    invalidate_tree_cache()
    return jsonify({"status": "ok"}), 200
