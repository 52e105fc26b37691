"""Tests for the storage integrity report."""

import pytest

from sellisy.common.errors import StorageUnavailableError
from sellisy.common.models import FileAsset, Product


def test_healthy_when_all_objects_exist(integrity, catalog, object_store):
    product = catalog.create_product(title="Kit", price_cents=100)
    catalog.attach_file(product_id=product["id"], storage_key="kit/a.zip", original_name="a.zip")
    object_store.objects.add("kit/a.zip")

    report = integrity.run_health_check()

    assert report["healthy"] is True
    assert report["issues"] == []
    assert report["stats"]["total_file_assets"] == 1


def test_counts_active_and_expired_tokens(integrity, token_service, make_order, clock, object_store):
    order = make_order([[]])
    token_service.issue_token(order["id"])
    clock.advance(seconds=1800)
    token_service.issue_token(order["id"])
    clock.advance(seconds=1801)

    report = integrity.run_health_check()

    assert report["stats"]["active_download_tokens"] == 1
    assert report["stats"]["expired_download_tokens"] == 1
    assert [i["type"] for i in report["issues"]] == ["expired_download_tokens"]

    repaired = integrity.run_repair()
    assert repaired["total_fixed"] == 1
    assert integrity.run_health_check()["healthy"] is True


def test_orphaned_file_assets_are_reported_and_removed(integrity, catalog, session_factory):
    product = catalog.create_product(title="Gone", price_cents=100)
    catalog.attach_file(product_id=product["id"], storage_key="gone/a.zip", original_name="a.zip")
    with session_factory() as session:
        session.query(Product).filter(Product.id == product["id"]).delete()

    report = integrity.run_health_check()
    assert report["issues"][0]["type"] == "orphaned_file_assets"
    assert report["issues"][0]["severity"] == "warning"

    repaired = integrity.run_repair()
    assert repaired["repairs"][0]["type"] == "orphaned_file_assets"
    with session_factory() as session:
        assert session.query(FileAsset).count() == 0


def test_storage_outage_propagates(integrity, catalog, monkeypatch, object_store):
    product = catalog.create_product(title="Kit", price_cents=100)
    catalog.attach_file(product_id=product["id"], storage_key="kit/a.zip", original_name="a.zip")

    def outage(key):
        raise StorageUnavailableError("exists", key, "down")

    monkeypatch.setattr(object_store, "exists", outage)
    with pytest.raises(StorageUnavailableError):
        integrity.run_health_check()
