"""Клиент OpenFoodFacts: получение продукта по штрихкоду."""
from typing import Any

import httpx
from loguru import logger

from spoils.exceptions import CatalogAPIError, ProductNotFoundError, TaskLogicError

USER_AGENT = "Spoils/0.1 (ingredient analysis)"

# Поля, которые копируются из ответа каталога в колонки products
PRODUCT_TEXT_FIELDS: tuple[str, ...] = (
    "product_name",
    "brands",
    "categories",
    "quantity",
    "image_url",
    "nutriscore_grade",
    "ecoscore_grade",
    "ingredients_text",
    "allergens",
)


class OpenFoodFactsClient:
    """Тонкая обёртка над GET /api/v2/product/{barcode}."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(headers={"User-Agent": USER_AGENT})

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_product(self, barcode: str) -> dict[str, Any]:
        """
        Вернуть product-объект из ответа каталога.
        status != 1 → ProductNotFoundError (ретрай бесполезен),
        HTTP-ошибки → CatalogAPIError, сеть/таймаут → TaskLogicError (ретрай).
        """
        url = f"{self.base_url}/api/v2/product/{barcode}"
        try:
            response = await self._client.get(url, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise ProductNotFoundError(f"Product {barcode} not found in OpenFoodFacts") from e
            raise CatalogAPIError(e.response.status_code, e.response.text[:200]) from e
        except httpx.TimeoutException as e:
            raise TaskLogicError(f"OpenFoodFacts timeout for {barcode}") from e
        except httpx.HTTPError as e:
            raise TaskLogicError(f"OpenFoodFacts request failed for {barcode}: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise TaskLogicError(f"Failed to parse OpenFoodFacts response for {barcode}") from e

        if not isinstance(data, dict):
            raise TaskLogicError(f"Unexpected OpenFoodFacts payload for {barcode}")
        product = data.get("product")
        if data.get("status") != 1 or not isinstance(product, dict):
            raise ProductNotFoundError(f"Product {barcode} not found in OpenFoodFacts")

        logger.debug(f"[catalog] Fetched product {barcode}")
        return product


def build_product_row(barcode: str, product: dict[str, Any]) -> dict[str, Any]:
    """Маппинг ответа OpenFoodFacts → строка таблицы products."""
    row: dict[str, Any] = {"barcode": barcode, "full_response": product}
    for key in PRODUCT_TEXT_FIELDS:
        value = product.get(key)
        row[key] = value if isinstance(value, str) and value else None

    nova_group = product.get("nova_group")
    row["nova_group"] = int(nova_group) if isinstance(nova_group, int | float) else None
    return row
