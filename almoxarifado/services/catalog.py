"""
Catalogue produits : lectures et éditions directes.

Les fonctions reçoivent un TenantScopedStore et ne commitent pas :
c'est l'appelant (endpoint) qui décide du commit.
"""

from __future__ import annotations

import enum
from datetime import datetime

from almoxarifado.app.db.models.core_types import ProductType
from almoxarifado.app.db.models.models_v1 import Product
from almoxarifado.app.schemas.product import ProductUpdate
from almoxarifado.services.errors import ValidationError
from almoxarifado.services.ledger import append_audit
from almoxarifado.services.tenancy import Page, TenantScopedStore

SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 10

REQUIRED_FIELDS = ("name", "code", "category", "type", "unit", "reference", "is_perishable")

# libellés utilisés dans la description d'audit
FIELD_LABELS = {
    "name": "name",
    "code": "code",
    "category": "category",
    "type": "type",
    "unit": "unit",
    "reference": "reference",
    "patrimony": "patrimony",
    "is_perishable": "perishable",
    "image_url": "image",
}


def _display(value) -> str:
    if isinstance(value, enum.Enum):
        return str(value.value)
    if value is None:
        return ""
    return str(value)


def _type_criteria(product_type: ProductType | None) -> list:
    return [Product.type == product_type] if product_type else []


def get_product(store: TenantScopedStore, product_id: str) -> Product:
    return store.get(Product, product_id)


def list_products(
    store: TenantScopedStore,
    *,
    page_size: int,
    search_term: str | None = None,
    product_type: ProductType | None = None,
    cursor: str | None = None,
) -> Page:
    criteria = _type_criteria(product_type)
    if search_term:
        criteria.append(Product.name_lowercase.startswith(search_term.strip().lower(), autoescape=True))
    return store.page(
        Product,
        *criteria,
        sort_column=Product.name_lowercase,
        page_size=page_size,
        cursor=cursor,
    )


def list_all_products(store: TenantScopedStore, *, product_type: ProductType | None = None) -> list[Product]:
    return store.query(
        Product,
        *_type_criteria(product_type),
        order_by=(Product.name_lowercase, Product.id),
    )


def search_products(
    store: TenantScopedStore,
    term: str | None,
    *,
    product_type: ProductType | None = None,
) -> list[Product]:
    """Préfixe du nom OU code exact, 10 résultats max par critère."""
    term = (term or "").strip()
    if len(term) < SEARCH_MIN_LENGTH:
        return []

    criteria = _type_criteria(product_type)
    by_name = store.query(
        Product,
        *criteria,
        Product.name_lowercase.startswith(term.lower(), autoescape=True),
        order_by=(Product.name_lowercase, Product.id),
        limit=SEARCH_LIMIT,
    )
    by_code = store.query(Product, *criteria, Product.code == term, limit=SEARCH_LIMIT)

    found: dict[str, Product] = {p.id: p for p in by_name}
    for p in by_code:
        found[p.id] = p
    return list(found.values())


def update_product(
    store: TenantScopedStore,
    product_id: str,
    changes: ProductUpdate,
    *,
    responsible: str,
    happened_at: datetime | None = None,
) -> Product:
    """
    Édition directe d'un produit + mouvement AUDIT décrivant les champs modifiés.

    Ni la quantité ni la validade ne passent par ici.
    """
    product = store.get(Product, product_id, for_update=True)
    patch = changes.model_dump(exclude_unset=True)

    for field in REQUIRED_FIELDS:
        if field in patch and patch[field] is None:
            raise ValidationError(f"{field} cannot be empty")
    for field in ("name", "code", "category", "unit"):
        if field in patch and not patch[field].strip():
            raise ValidationError(f"{field} cannot be empty")

    if patch.get("type", product.type) == ProductType.durable:
        patch["is_perishable"] = False
    elif "type" in patch:
        patch["patrimony"] = None

    diffs = []
    for field, new_value in patch.items():
        old_value = getattr(product, field)
        if old_value != new_value:
            diffs.append(f"{FIELD_LABELS[field]}: '{_display(old_value)}' -> '{_display(new_value)}'")
    if not diffs:
        return product

    if "code" in patch and patch["code"] != product.code:
        taken = store.query(Product, Product.code == patch["code"], Product.id != product.id, limit=1)
        if taken:
            raise ValidationError(f"Code {patch['code']} is already in use")

    # plus périssable : la projection FEFO n'a plus de sens
    if patch.get("is_perishable") is False:
        patch["expiration_date"] = None

    if "name" in patch:
        patch["name_lowercase"] = patch["name"].strip().lower()

    store.update(Product, product_id, patch)
    append_audit(
        store,
        product,
        responsible=responsible,
        description=f"Item edited: {'; '.join(diffs)}.",
        happened_at=happened_at,
    )
    return product


def delete_product(store: TenantScopedStore, product_id: str) -> None:
    # l'historique des mouvements reste en place (orphelin)
    store.delete(Product, product_id)
