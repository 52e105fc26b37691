"""Sellisy 數位商品交付服務 Flask 應用。"""

from __future__ import annotations

from typing import Any, Dict, Optional

from flask import Flask, jsonify

from .common.db import session as db_session
from .common.errors import SellisyError, StorageUnavailableError
from .common.services.catalog_service import CatalogService
from .common.services.download_token_service import DownloadTokenService
from .common.services.fulfillment_service import FulfillmentService
from .common.services.integrity_service import IntegrityService
from .common.services.logging import log_event, set_log_level
from .common.services.order_service import OrderService
from .config import SellisyConfig
from .routes import admin, api
from .services.notifier import select_notifier
from .services.object_store import select_object_store


STORAGE_RETRY_AFTER_SECONDS = 5


def build_components(config: SellisyConfig, object_store=None, session_factory=None, notifier=None) -> Dict[str, Any]:
    """組裝服務；儲存後端在此探測一次後注入，之後不再重新探測。"""
    if object_store is None:
        object_store = select_object_store(config.storage)
    if notifier is None:
        notifier = select_notifier(config.mail)
    if session_factory is None:
        db_session.configure(config.database_url)
        db_session.init_db()
        session_factory = db_session.get_session
    token_service = DownloadTokenService(object_store, config.delivery, session_factory)
    # 訂單轉為 COMPLETED 時立即簽發 token 並寄出下載連結
    fulfillment = FulfillmentService(token_service, notifier, config.app.get_download_url, session_factory)
    return {
        "object_store": object_store,
        "catalog_service": CatalogService(session_factory),
        "order_service": OrderService(session_factory, on_completed=fulfillment.deliver),
        "token_service": token_service,
        "fulfillment_service": fulfillment,
        "integrity_service": IntegrityService(object_store, session_factory),
    }


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(SellisyError)
    def handle_sellisy_error(exc: SellisyError):
        response = jsonify({"error": str(exc)})
        response.status_code = exc.http_status
        if isinstance(exc, StorageUnavailableError):
            response.headers["Retry-After"] = str(STORAGE_RETRY_AFTER_SECONDS)
            log_event("error", "http.storage_unavailable", operation=exc.operation)
        return response


def create_app(config: Optional[SellisyConfig] = None, components: Optional[Dict[str, Any]] = None) -> Flask:
    config = config or SellisyConfig.load()
    set_log_level(config.log_level)
    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.secret_key
    app.config["SELLISY_CONFIG"] = config

    app.extensions["sellisy_components"] = components or build_components(config)

    app.register_blueprint(api.api_bp)
    app.register_blueprint(admin.admin_bp)
    _register_error_handlers(app)

    log_event("info", "app.started", storage=app.extensions["sellisy_components"]["object_store"].name)
    return app


def main() -> None:
    app = create_app()
    app.run(host="0.0.0.0", port=5000, debug=False)


if __name__ == "__main__":
    main()
