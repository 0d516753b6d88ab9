"""Product repository - provides access to the mock billing catalog.

Loads product definitions from the ``mock.products`` section of
config/entitlement.yaml and provides lookup methods.
"""

from typing import Dict, List, Optional

from entitlement_engine.config import Config, get_config
from entitlement_engine.models import BillingPeriod, ProductDefinition
from entitlement_engine.utils.billing_period import billing_period_from_package_type


class ProductNotFoundError(Exception):
    """Raised when a product is not found in the repository."""

    pass


class ProductRepository:
    """Repository for catalog product definitions.

    Indexes products by store product ID and by offering package identifier.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        products: Optional[List[ProductDefinition]] = None,
    ):
        """Initialize product repository.

        Args:
            config: Configuration instance. If not provided, uses global config.
            products: Explicit catalog; takes precedence over the configuration
        """
        self._config = config if config is not None or products is not None else get_config()
        self._explicit_products = products
        self._products_by_id: Dict[str, ProductDefinition] = {}
        self._products_by_package: Dict[str, ProductDefinition] = {}
        self._load_products()

    def _load_products(self) -> None:
        """Load product definitions into indexed dictionaries."""
        self._products_by_id.clear()
        self._products_by_package.clear()

        if self._explicit_products is not None:
            products = self._explicit_products
        else:
            products = self._config.mock_settings.products

        for product in products:
            self._products_by_id[product.id] = product
            self._products_by_package[product.package_identifier] = product

    def get_by_id(self, product_id: str) -> ProductDefinition:
        """Get product definition by ID.

        Args:
            product_id: Store product ID (e.g., "pro_annual")

        Returns:
            ProductDefinition

        Raises:
            ProductNotFoundError: If product ID not found
        """
        product = self._products_by_id.get(product_id)
        if product is None:
            raise ProductNotFoundError(
                f"Product not found: {product_id}. "
                f"Available products: {list(self._products_by_id.keys())}"
            )
        return product

    def find_by_id(self, product_id: str) -> Optional[ProductDefinition]:
        """Find product definition by ID (returns None if not found)."""
        return self._products_by_id.get(product_id)

    def find_by_package(self, package_identifier: str) -> Optional[ProductDefinition]:
        """Find the product sold under an offering package identifier."""
        return self._products_by_package.get(package_identifier)

    def get_all(self) -> List[ProductDefinition]:
        """Get all product definitions in catalog order."""
        return list(self._products_by_id.values())

    def get_all_ids(self) -> List[str]:
        """Get list of all product IDs."""
        return list(self._products_by_id.keys())

    def billing_period_of(self, product_id: Optional[str]) -> Optional[BillingPeriod]:
        """Billing period of a catalog product, or None when unknown."""
        product = self._products_by_id.get(product_id) if product_id else None
        if product is None:
            return None
        return billing_period_from_package_type(product.package_type)

    def default_product(self) -> ProductDefinition:
        """Product granted by shortcuts that do not name one (monthly first).

        Raises:
            ProductNotFoundError: If the catalog is empty
        """
        for product in self._products_by_id.values():
            if product.package_type == "MONTHLY":
                return product
        if not self._products_by_id:
            raise ProductNotFoundError("Product catalog is empty")
        return next(iter(self._products_by_id.values()))

    def exists(self, product_id: str) -> bool:
        """Check if product ID exists."""
        return product_id in self._products_by_id

    def reload(self) -> None:
        """Reload product definitions from configuration.

        Useful when configuration file has been modified.
        """
        if self._config is not None:
            self._config.reload()
        self._load_products()

    def __len__(self) -> int:
        """Get number of products in repository."""
        return len(self._products_by_id)

    def __contains__(self, product_id: str) -> bool:
        """Check if product_id exists in repository."""
        return product_id in self._products_by_id

    def __repr__(self) -> str:
        """String representation of repository."""
        return f"ProductRepository(products={len(self._products_by_id)})"
