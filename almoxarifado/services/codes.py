"""
Codes produit séquentiels ``PREFIX-NNN`` par secretaria.

Le numéro est complété à 3 chiffres et grandit simplement au-delà de 999.
"""

from __future__ import annotations

from almoxarifado.app.db.models.models_v1 import Product
from almoxarifado.services.errors import ValidationError
from almoxarifado.services.tenancy import TenantScopedStore

SUFFIX_WIDTH = 3


def code_prefix(category: str, name: str) -> str:
    """ "Escolar" + "Caderno" -> "ESC-CAD" """
    category = (category or "").strip()
    name = (name or "").strip()
    if not category or not name:
        raise ValidationError("category and name are required to build a code prefix")
    return f"{category[:3].upper()}-{name[:3].upper()}"


def parse_suffix(code: str) -> int:
    # suffixe non numérique = donnée corrompue, on repart de 0 plutôt que de planter
    try:
        return int(code.rsplit("-", 1)[-1])
    except ValueError:
        return 0


def next_item_code(store: TenantScopedStore, prefix: str) -> str:
    """
    Prochain code libre pour ``prefix`` dans la secretaria du store.

    On prend le max NUMÉRIQUE des suffixes (pas le max lexicographique :
    "-1000" < "-999" en ordre de chaîne).
    """
    prefix = (prefix or "").strip()
    if not prefix:
        raise ValidationError("prefix is required")

    rows = store.query(Product, Product.code.startswith(f"{prefix}-", autoescape=True))
    highest = max((parse_suffix(p.code) for p in rows), default=0)
    return f"{prefix}-{highest + 1:0{SUFFIX_WIDTH}d}"
