from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from showroom.logging import get_logger
from showroom.service.errors import NotFoundError
from showroom.storage.models import Banner, Product

logger = get_logger(__name__)


class CatalogStore(Protocol):
    def list_products(self) -> List[Product]: ...

    def get_product(self, product_id: str) -> Optional[Product]: ...

    def create_product(self, values: Dict[str, Any]) -> Product: ...

    def update_product(self, product_id: str, updates: Dict[str, Any]) -> Optional[Product]: ...

    def delete_product(self, product_id: str) -> bool: ...

    def list_banners(self) -> List[Banner]: ...

    def get_banner(self, banner_id: str) -> Optional[Banner]: ...

    def create_banner(self, values: Dict[str, Any]) -> Banner: ...

    def update_banner(self, banner_id: str, updates: Dict[str, Any]) -> Optional[Banner]: ...

    def delete_banner(self, banner_id: str) -> bool: ...


class CatalogService:
    """Product and banner management on top of a catalog store."""

    def __init__(self, store: CatalogStore) -> None:
        self.store = store

    def list_products(self, *, active_only: bool = False) -> List[Product]:
        products = self.store.list_products()
        if not active_only:
            return products
        return [product for product in products if product.is_active]

    def get_product(self, product_id: str) -> Product:
        product = self.store.get_product(product_id)
        if not product:
            raise NotFoundError("product not found", detail={"id": product_id})
        return product

    def create_product(self, values: Dict[str, Any], *, actor: str) -> Product:
        product = self.store.create_product(values)
        logger.info("product_created", product_id=product.id, actor=actor)
        return product

    def update_product(self, product_id: str, updates: Dict[str, Any], *, actor: str) -> Product:
        product = self.store.update_product(product_id, updates)
        if not product:
            raise NotFoundError("product not found", detail={"id": product_id})
        logger.info("product_updated", product_id=product_id, fields=sorted(updates), actor=actor)
        return product

    def delete_product(self, product_id: str, *, actor: str) -> None:
        if not self.store.delete_product(product_id):
            raise NotFoundError("product not found", detail={"id": product_id})
        logger.info("product_deleted", product_id=product_id, actor=actor)

    def list_banners(self, *, active_only: bool = False) -> List[Banner]:
        banners = self.store.list_banners()
        if not active_only:
            return banners
        return [banner for banner in banners if banner.is_active]

    def get_banner(self, banner_id: str) -> Banner:
        banner = self.store.get_banner(banner_id)
        if not banner:
            raise NotFoundError("banner not found", detail={"id": banner_id})
        return banner

    def create_banner(self, values: Dict[str, Any], *, actor: str) -> Banner:
        banner = self.store.create_banner(values)
        logger.info("banner_created", banner_id=banner.id, actor=actor)
        return banner

    def update_banner(self, banner_id: str, updates: Dict[str, Any], *, actor: str) -> Banner:
        banner = self.store.update_banner(banner_id, updates)
        if not banner:
            raise NotFoundError("banner not found", detail={"id": banner_id})
        logger.info("banner_updated", banner_id=banner_id, fields=sorted(updates), actor=actor)
        return banner

    def delete_banner(self, banner_id: str, *, actor: str) -> None:
        if not self.store.delete_banner(banner_id):
            raise NotFoundError("banner not found", detail={"id": banner_id})
        logger.info("banner_deleted", banner_id=banner_id, actor=actor)
