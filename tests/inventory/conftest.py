import pytest
from protean.integrations.pytest import DomainFixture

from inventory.settings import reset_settings


@pytest.fixture(scope="session")
def inventory_bed():
    from inventory.domain import inventory

    bed = DomainFixture(inventory)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(scope="session", autouse=True)
def setup_db(inventory_bed):
    """Create relational tables when the selected environment uses a database."""
    from inventory.domain import inventory
    from inventory.utils.db import drop_db, setup_db

    setup_db(inventory)

    yield

    drop_db(inventory)


@pytest.fixture(autouse=True)
def _ctx(inventory_bed):
    with inventory_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def _settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def register():
    """Register a product with the ledger; defaults mirror a typical catalog item."""
    from inventory.stock.ledger import register_product

    def _register(product_id="prod-001", physical_stock=100, **overrides):
        return register_product(product_id, physical_stock=physical_stock, **overrides)

    return _register
