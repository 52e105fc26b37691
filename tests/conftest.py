"""Pytest fixtures for sellisy tests."""

import threading
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from sellisy.common.config import AppConfig, DeliveryConfig
from sellisy.common.db.session import make_session_factory
from sellisy.common.errors import NotificationError, StorageUnavailableError
from sellisy.common.models import Base
from sellisy.common.services.catalog_service import CatalogService
from sellisy.common.services.download_token_service import DownloadTokenService
from sellisy.common.services.fulfillment_service import FulfillmentService
from sellisy.common.services.integrity_service import IntegrityService
from sellisy.common.services.order_service import OrderService
from sellisy.config import SellisyConfig
from sellisy.services.notifier import OrderNotifier
from sellisy.services.object_store import ObjectStoreGateway, UploadTarget


START = datetime(2026, 1, 15, 12, 0, 0)


class FakeClock:
    """Controllable naive-UTC clock; optionally ticks on every read."""

    def __init__(self, now=START, tick=timedelta(0)):
        self.now = now
        self.tick = tick
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            current = self.now
            self.now = self.now + self.tick
            return current

    def advance(self, **kwargs):
        with self._lock:
            self.now = self.now + timedelta(**kwargs)

    def set(self, value):
        with self._lock:
            self.now = value


class FakeObjectStore(ObjectStoreGateway):
    """In-memory object store that records every presign call."""

    name = "fake"

    def __init__(self):
        self.objects = set()
        self.calls = []
        self.failures = {}
        self._lock = threading.Lock()

    def fail_next(self, storage_key, times=1):
        self.failures[storage_key] = times

    def get_upload_url(self, prefix="uploads"):
        key = f"{prefix}/fake-{len(self.calls)}"
        return UploadTarget(upload_url=f"https://upload.test/{key}", storage_key=key, public_url=f"https://cdn.test/{key}")

    def get_download_url(self, storage_key, filename=None, expires_in=3600):
        with self._lock:
            self.calls.append((storage_key, filename, expires_in))
            remaining = self.failures.get(storage_key, 0)
            if remaining:
                self.failures[storage_key] = remaining - 1
                raise StorageUnavailableError("download_url", storage_key, "simulated outage")
        return f"https://storage.test/{storage_key}?expires_in={expires_in}"

    def exists(self, storage_key):
        return storage_key in self.objects

    def delete(self, storage_key):
        self.objects.discard(storage_key)


class RecordingNotifier(OrderNotifier):
    """Keeps every message instead of sending it; can be told to fail."""

    name = "recording"

    def __init__(self):
        self.sent = []
        self.failures = 0

    def send_download_link(self, *, to, order, download_url, expires_at=None):
        if self.failures:
            self.failures -= 1
            raise NotificationError(self.name, "simulated bounce")
        self.sent.append({"to": to, "order_id": order["id"], "download_url": download_url, "expires_at": expires_at})


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upload_clock():
    """Separate ticking clock so file upload order is strictly increasing."""
    return FakeClock(now=START - timedelta(days=1), tick=timedelta(seconds=1))


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def delivery_config():
    return DeliveryConfig(
        token_ttl_seconds=3600,
        presigned_url_ttl_seconds=600,
        max_presign_workers=4,
        presign_retry_backoff_seconds=0,
    )


@pytest.fixture
def catalog(session_factory, upload_clock):
    return CatalogService(session_factory, clock=upload_clock)


@pytest.fixture
def orders(session_factory, clock):
    return OrderService(session_factory, clock=clock)


@pytest.fixture
def token_service(object_store, delivery_config, session_factory, clock):
    return DownloadTokenService(object_store, delivery_config, session_factory, clock=clock)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def fulfillment(token_service, notifier, session_factory):
    return FulfillmentService(token_service, notifier, lambda raw: f"http://sellisy.test/api/download/{raw}", session_factory)


@pytest.fixture
def delivering_orders(session_factory, clock, fulfillment):
    """Order service that fulfills on completion, as the app wires it."""
    return OrderService(session_factory, clock=clock, on_completed=fulfillment.deliver)


@pytest.fixture
def integrity(object_store, session_factory, clock):
    return IntegrityService(object_store, session_factory, clock=clock)


@pytest.fixture
def make_order(catalog, orders):
    """Create products with the given file names, then a COMPLETED order for them.

    ``make_order([["ebook.pdf"], ["a.zip", "b.zip"]])`` creates two products.
    """

    def _make(files_per_product, complete=True, buyer_email="buyer@example.com"):
        product_ids = []
        for index, names in enumerate(files_per_product):
            product = catalog.create_product(title=f"Product {index}", price_cents=1000 * (index + 1))
            for name in names:
                catalog.attach_file(
                    product_id=product["id"],
                    storage_key=f"products/{product['id']}/{name}",
                    original_name=name,
                    size_bytes=123,
                )
            product_ids.append(product["id"])
        order = orders.create_order(store_id="store-1", buyer_email=buyer_email, product_ids=product_ids)
        if complete:
            order = orders.complete_order(order["id"])
        return order

    return _make


@pytest.fixture
def app_config(delivery_config):
    return SellisyConfig(
        secret_key="test-secret",
        admin_username="admin",
        admin_password="s3cret",
        app=AppConfig(
            database_url="sqlite://",
            secret_key="test-secret",
            log_level="ERROR",
            public_base_url="http://sellisy.test",
        ),
        delivery=delivery_config,
    )


@pytest.fixture
def app(app_config, object_store, catalog, orders, token_service, fulfillment, integrity):
    from sellisy.app import create_app

    components = {
        "object_store": object_store,
        "catalog_service": catalog,
        "order_service": orders,
        "token_service": token_service,
        "fulfillment_service": fulfillment,
        "integrity_service": integrity,
    }
    flask_app = create_app(app_config, components)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(client):
    response = client.post("/admin/login", json={"username": "admin", "password": "s3cret"})
    assert response.status_code == 200
    return client
