"""Tests for the catalog product repository."""

import pytest

from entitlement_engine.config import Config
from entitlement_engine.models import BillingPeriod, ProductDefinition
from entitlement_engine.repositories.product_repository import ProductNotFoundError, ProductRepository


@pytest.fixture
def config(monkeypatch):
    """Configuration with a three product catalog."""
    for name in ("REVENUECAT_MOBILE_API_KEY", "REVENUECAT_WEB_API_KEY", "ENTITLEMENT_PLATFORM"):
        monkeypatch.delenv(name, raising=False)
    return Config.from_dict(
        {
            "mock": {
                "products": [
                    {
                        "id": "pro_annual",
                        "package_identifier": "annual",
                        "package_type": "ANNUAL",
                        "title": "Pro Annual",
                        "price_micros": 99990000,
                        "billing_period": "P1Y",
                    },
                    {
                        "id": "pro_monthly",
                        "package_identifier": "monthly",
                        "title": "Pro Monthly",
                        "price_micros": 9990000,
                    },
                    {
                        "id": "pro_lifetime",
                        "package_identifier": "lifetime",
                        "package_type": "lifetime",
                        "title": "Pro Lifetime",
                        "price_micros": 249990000,
                        "billing_period": None,
                    },
                ]
            }
        }
    )


@pytest.fixture
def repo(config):
    """Repository over the configured catalog."""
    return ProductRepository(config)


class TestProductLookup:
    """Test product lookups."""

    def test_get_by_id(self, repo):
        """Test retrieving a product by ID."""
        product = repo.get_by_id("pro_annual")

        assert product.title == "Pro Annual"
        assert product.price == pytest.approx(99.99)
        assert product.price_string == "$99.99"

    def test_get_by_id_missing(self, repo):
        """Test that a missing product raises with the available IDs."""
        with pytest.raises(ProductNotFoundError) as exc_info:
            repo.get_by_id("pro_weekly")
        assert "pro_annual" in str(exc_info.value)

    def test_find_by_id_and_package(self, repo):
        """Test lookups that return None when missing."""
        assert repo.find_by_id("pro_monthly").package_identifier == "monthly"
        assert repo.find_by_package("lifetime").id == "pro_lifetime"
        assert repo.find_by_id("missing") is None
        assert repo.find_by_package("missing") is None

    def test_catalog_order(self, repo):
        """Test that products keep their configured order."""
        assert repo.get_all_ids() == ["pro_annual", "pro_monthly", "pro_lifetime"]
        assert [p.id for p in repo.get_all()] == repo.get_all_ids()

    def test_container_protocol(self, repo):
        """Test len, membership and exists."""
        assert len(repo) == 3
        assert "pro_monthly" in repo
        assert repo.exists("pro_lifetime")
        assert not repo.exists("pro_weekly")


class TestCatalogClassification:
    """Test billing periods and the default product."""

    def test_billing_period_of(self, repo):
        """Test billing periods from package types."""
        assert repo.billing_period_of("pro_annual") == BillingPeriod.ANNUAL
        assert repo.billing_period_of("pro_monthly") == BillingPeriod.MONTHLY
        assert repo.billing_period_of("pro_lifetime") == BillingPeriod.LIFETIME
        assert repo.billing_period_of("unknown") is None
        assert repo.billing_period_of(None) is None

    def test_default_product_prefers_monthly(self, repo):
        """Test that the default product is the first monthly one."""
        assert repo.default_product().id == "pro_monthly"

    def test_default_product_without_monthly(self):
        """Test that the first product is used when there is no monthly one."""
        repo = ProductRepository(
            products=[
                ProductDefinition(
                    id="pro_annual",
                    package_identifier="annual",
                    package_type="ANNUAL",
                    title="Pro Annual",
                    price_micros=1,
                )
            ]
        )
        assert repo.default_product().id == "pro_annual"

    def test_default_product_empty_catalog(self):
        """Test that an empty catalog has no default product."""
        repo = ProductRepository(products=[])

        assert len(repo) == 0
        with pytest.raises(ProductNotFoundError):
            repo.default_product()


class TestProductValidation:
    """Test product definition validation."""

    def test_package_type_normalized(self, repo):
        """Test that package types are upper-cased."""
        assert repo.get_by_id("pro_lifetime").package_type == "LIFETIME"

    def test_unsupported_package_type(self):
        """Test that unknown package types are rejected."""
        with pytest.raises(ValueError):
            ProductDefinition(id="x", package_identifier="x", package_type="WEEKLY", title="X", price_micros=1)

    def test_non_usd_price_string(self):
        """Test that other currencies are prefixed with their code."""
        product = ProductDefinition(
            id="x", package_identifier="x", title="X", price_micros=4500000, currency="EUR"
        )
        assert product.price_string == "EUR 4.50"
