"""Pydantic-модели ингредиентов и продуктов."""
import re
import unicodedata
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel

_WHITESPACE_RE = re.compile(r"\s+")

# JSON-группы (витамины, загрязнители и т.п.), для резолвера непрозрачны
ATTRIBUTE_GROUPS: tuple[str, ...] = (
    "vitamins",
    "minerals",
    "essential_fatty_acids",
    "essential_amino_acids",
    "heavy_metals",
    "micro_plastics",
    "industrial_chemicals",
    "pesticides",
    "hormones",
    "antibiotics",
    "beta_agonists",
    "antiparasitics",
    "carcinogens",
    "natural_toxins",
    "radiological",
    "historical_issues",
    "fraudulent_ingredients",
)


def normalize_ingredient_name(name: str) -> str:
    """Нормализовать имя ингредиента для уникального индекса: casefold + trim."""
    name = unicodedata.normalize("NFKC", name)
    return _WHITESPACE_RE.sub(" ", name).strip().casefold()


class Ingredient(BaseModel):
    """Ингредиент из таблицы ingredients."""

    id: int
    name: str
    branded: bool = False  # составной/производный ингредиент
    sub_ingredients: list[int] = []
    parent_ingredients: list[int] = []  # обратная ссылка, только для поиска
    expanded_at: datetime | None = None  # вложенный список уже разобран

    # Макронутриенты на грамм
    gram_protein_per_gram: float | None = None
    gram_carbs_per_gram: float | None = None
    gram_fat_per_gram: float | None = None
    gram_fiber_per_gram: float | None = None

    vitamins: Any = None
    minerals: Any = None
    essential_fatty_acids: Any = None
    essential_amino_acids: Any = None
    heavy_metals: Any = None
    micro_plastics: Any = None
    industrial_chemicals: Any = None
    pesticides: Any = None
    hormones: Any = None
    antibiotics: Any = None
    beta_agonists: Any = None
    antiparasitics: Any = None
    carcinogens: Any = None
    natural_toxins: Any = None
    radiological: Any = None
    historical_issues: Any = None
    fraudulent_ingredients: Any = None

    created_at: datetime | None = None
    updated_at: datetime | None = None


class Product(BaseModel):
    """Продукт из таблицы products (кэш OpenFoodFacts)."""

    id: int
    barcode: str
    product_name: str | None = None
    brands: str | None = None
    categories: str | None = None
    quantity: str | None = None
    image_url: str | None = None
    nutriscore_grade: str | None = None
    nova_group: int | None = None
    ecoscore_grade: str | None = None
    ingredients_text: str | None = None
    allergens: str | None = None
    full_response: dict[str, Any] = {}
    ingredient_ids: list[int] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ParentRef(BaseModel):
    """Родитель, к которому привязываются ингредиенты: продукт или составной ингредиент."""

    kind: Literal["product", "ingredient"]
    id: int
