"""
UPC product lookup against Open Food Facts compatible endpoints

The client is given its endpoints and token through ServiceConfig; it never
reads the environment, so tests can point it anywhere.
"""
import re
import time
from typing import Optional

import httpx

from config import ServiceConfig
from utils.debug import Loggers

UPC_SERVICE = "upc"


class UPCServiceUnavailable(Exception):
    """Every configured endpoint failed to answer."""


def clean_upc(upc: str) -> str:
    return re.sub(r"\D", "", upc or "")


class UPCLookupClient:
    def __init__(self, client: httpx.AsyncClient, service_config: ServiceConfig):
        self.client = client
        self.endpoints = service_config.endpoints_for(UPC_SERVICE)
        self.api_token = service_config.api_token
        self.timeout = service_config.timeout_seconds

    def _headers(self) -> dict:
        headers = {"User-Agent": "ComfortKitchen/1.0", "Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    async def lookup(self, upc: str) -> Optional[dict]:
        """
        Return a normalized product dict, or None when no endpoint knows the code.

        Raises UPCServiceUnavailable when no endpoint could be reached at all.
        """
        code = clean_upc(upc)
        if not self.endpoints:
            raise UPCServiceUnavailable("No UPC endpoints configured")

        reached_any = False
        for base_url in self.endpoints:
            start_time = time.time()
            try:
                response = await self.client.get(
                    f"{base_url.rstrip('/')}/{code}.json",
                    headers=self._headers(),
                    timeout=self.timeout,
                )
            except httpx.HTTPError as e:
                Loggers.services.warning(
                    "UPC endpoint request failed",
                    endpoint=base_url,
                    error=type(e).__name__,
                )
                continue

            duration_ms = (time.time() - start_time) * 1000

            if response.status_code == 404:
                reached_any = True
                continue
            if response.status_code != 200:
                Loggers.services.warning(
                    "UPC endpoint returned error",
                    endpoint=base_url,
                    status=response.status_code,
                    duration_ms=f"{duration_ms:.2f}",
                )
                continue

            try:
                data = response.json()
            except ValueError:
                Loggers.services.warning(
                    "UPC endpoint returned a non-JSON body",
                    endpoint=base_url,
                    content_type=response.headers.get("content-type"),
                )
                continue
            if not isinstance(data, dict):
                Loggers.services.warning("UPC endpoint returned an unexpected payload", endpoint=base_url)
                continue

            reached_any = True
            Loggers.services.debug("UPC lookup answered", endpoint=base_url, duration_ms=f"{duration_ms:.2f}")
            if data.get("status") == 1 and data.get("product"):
                return self._normalize(code, data["product"])

        if not reached_any:
            raise UPCServiceUnavailable("All UPC endpoints failed")
        return None

    @staticmethod
    def _normalize(code: str, product: dict) -> dict:
        nutriments = product.get("nutriments") or {}
        nutrition = {
            "calories": nutriments.get("energy-kcal_100g"),
            "protein": nutriments.get("proteins_100g"),
            "fat": nutriments.get("fat_100g"),
            "carbohydrates": nutriments.get("carbohydrates_100g"),
            "sugars": nutriments.get("sugars_100g"),
            "fiber": nutriments.get("fiber_100g"),
            "sodium": nutriments.get("sodium_100g"),
        }
        categories = product.get("categories") or ""
        return {
            "upc": code,
            "name": product.get("product_name") or product.get("generic_name") or "Unknown product",
            "brand": (product.get("brands") or "").split(",")[0].strip() or None,
            "category": categories.split(",")[0].strip() or None,
            "image_url": product.get("image_front_url") or product.get("image_url"),
            "nutrition": {k: v for k, v in nutrition.items() if v is not None},
            "source_url": f"https://world.openfoodfacts.org/product/{code}",
        }
