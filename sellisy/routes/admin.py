"""管理後台 API 路由（商品檔案、訂單狀態、token 維護、資料完整性）。"""

from __future__ import annotations

import hmac

from flask import Blueprint, current_app, jsonify, request, session


admin_bp = Blueprint("sellisy_admin", __name__, url_prefix="/admin")


def _components() -> dict:
    return current_app.extensions["sellisy_components"]


def _config():
    return current_app.config["SELLISY_CONFIG"]


def _is_authenticated() -> bool:
    return bool(session.get("sellisy_admin"))


@admin_bp.before_request
def guard_private_routes():
    if request.endpoint and request.endpoint.startswith("sellisy_admin."):
        if request.endpoint != "sellisy_admin.login" and not _is_authenticated():
            return jsonify({"error": "Admin login required"}), 401
    return None


@admin_bp.post("/login")
def login():
    payload = request.get_json(silent=True) or request.form
    username = str(payload.get("username", "")).strip()
    password = str(payload.get("password", "")).strip()
    cfg = _config()
    # 未設定密碼時一律拒絕登入
    if (
        cfg.admin_password
        and hmac.compare_digest(username.encode(), cfg.admin_username.encode())
        and hmac.compare_digest(password.encode(), cfg.admin_password.encode())
    ):
        session["sellisy_admin"] = True
        return jsonify({"status": "ok"})
    return jsonify({"error": "Invalid username or password"}), 401


@admin_bp.post("/logout")
def logout():
    session.pop("sellisy_admin", None)
    return jsonify({"status": "ok"})


@admin_bp.post("/products")
def create_product():
    payload = request.get_json(silent=True) or {}
    try:
        product = _components()["catalog_service"].create_product(
            title=payload.get("title"),
            price_cents=payload.get("price_cents", 0),
            owner_id=payload.get("owner_id"),
            description=payload.get("description"),
            status=payload.get("status", "ACTIVE"),
        )
    except (TypeError, ValueError) as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"product": product}), 201


@admin_bp.post("/products/<product_id>/files")
def attach_file(product_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        asset = _components()["catalog_service"].attach_file(
            product_id=product_id,
            storage_key=payload.get("storage_key"),
            original_name=payload.get("original_name"),
            size_bytes=payload.get("size_bytes", 0),
        )
    except (TypeError, ValueError) as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"file": asset}), 201


@admin_bp.get("/products/<product_id>/files")
def list_files(product_id: str):
    catalog = _components()["catalog_service"]
    product = catalog.get_product(product_id)
    return jsonify({"product": product, "files": catalog.list_files(product_id)})


@admin_bp.post("/uploads/request-url")
def request_upload_url():
    """取得上傳用 presigned URL；上傳完成後再以 storage_key 綁定商品。"""
    payload = request.get_json(silent=True) or {}
    name = str(payload.get("name", "")).strip()
    if not name:
        return jsonify({"error": "Missing required field: name"}), 400
    target = _components()["object_store"].get_upload_url("uploads")
    body = target.to_dict()
    body["metadata"] = {
        "name": name,
        "size": payload.get("size"),
        "content_type": payload.get("content_type"),
    }
    return jsonify(body)


@admin_bp.post("/orders/<order_id>/complete")
def complete_order(order_id: str):
    order = _components()["order_service"].complete_order(order_id)
    return jsonify({"order": order})


@admin_bp.post("/orders/<order_id>/send-email")
def resend_order_email(order_id: str):
    """補寄下載連結；已寄出過的訂單不會重複寄送。"""
    order = _components()["order_service"].get_order(order_id)
    sent = _components()["fulfillment_service"].send_completion_email(order["id"])
    return jsonify({"order": order, "sent": sent})


@admin_bp.post("/orders/<order_id>/fail")
def fail_order(order_id: str):
    order = _components()["order_service"].fail_order(order_id)
    return jsonify({"order": order})


@admin_bp.post("/tokens/revoke")
def revoke_token():
    payload = request.get_json(silent=True) or {}
    revoked = _components()["token_service"].revoke_token(payload.get("token"))
    if not revoked:
        return jsonify({"error": "Token not found"}), 404
    return jsonify({"status": "revoked"})


@admin_bp.post("/tokens/purge")
def purge_tokens():
    removed = _components()["token_service"].purge_expired()
    return jsonify({"status": "ok", "purged": removed})


@admin_bp.get("/integrity")
def integrity_report():
    return jsonify(_components()["integrity_service"].run_health_check())


@admin_bp.post("/integrity/repair")
def integrity_repair():
    return jsonify(_components()["integrity_service"].run_repair())
