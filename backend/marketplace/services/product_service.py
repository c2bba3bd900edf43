# Overview: Service-layer operations for the seller catalogue.

from __future__ import annotations

from ..extensions import db
from ..models import Product, User, ROLE_SELLER
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)
from .access_policy import (
    ACTION_CREATE,
    ACTION_DELETE,
    ACTION_UPDATE,
    ACTION_VIEW,
    KIND_PRODUCT,
    Principal,
    Resource,
    require_access,
)


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "unit", "category", "description", "is_active"}),
    required_on_create=frozenset({"name", "unit", "category"}),
)


def list_products(principal: Principal, *, seller_id: int | None = None, include_inactive: bool = False) -> list[Product]:
    query = db.session.query(Product)
    if principal.is_admin:
        if seller_id:
            query = query.filter(Product.seller_id == seller_id)
    elif principal.is_customer:
        if not principal.seller_id:
            raise ValidationError("Customer is not assigned to a seller")
        query = query.filter(Product.seller_id == principal.seller_id)
        include_inactive = False
    else:
        query = query.filter(Product.seller_id == principal.user_id)

    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.category.asc(), Product.name.asc()).all()


def get_product(principal: Principal, product_id: str, action: str = ACTION_VIEW) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    require_access(principal, Resource.of(KIND_PRODUCT, product), action)
    return product


def create_product(principal: Principal, data: dict) -> Product:
    if principal.is_seller:
        seller_id = principal.user_id
    else:
        seller = db.session.get(User, (data or {}).get("seller_id")) if (data or {}).get("seller_id") else None
        if not seller or seller.role != ROLE_SELLER:
            raise ValidationError("seller_id must reference a seller")
        seller_id = seller.id
    require_access(principal, Resource(kind=KIND_PRODUCT, seller_id=seller_id), ACTION_CREATE)

    patch = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    product = Product(seller_id=seller_id, **patch)
    db.session.add(product)
    db.session.commit()
    return product


def update_product(principal: Principal, product_id: str, data: dict) -> Product:
    product = get_product(principal, product_id, ACTION_UPDATE)
    patch = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    for key, value in patch.items():
        setattr(product, key, value)
    db.session.commit()
    return product


def delete_product(principal: Principal, product_id: str) -> Product:
    """Soft delete: the product is deactivated and drops out of listings."""
    product = get_product(principal, product_id, ACTION_DELETE)
    product.is_active = False
    db.session.commit()
    return product
