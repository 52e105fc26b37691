"""提供商店前台與下載交付使用的 API 路由。"""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, redirect, request, session

from ..common.errors import OrderNotCompletedError
from ..common.models.order import ORDER_COMPLETED, ORDER_FAILED


api_bp = Blueprint("sellisy_api", __name__, url_prefix="/api")

NO_FILES_MESSAGE = "This order has no downloadable files"
CHECKOUT_TOKENS_KEY = "sellisy_checkout_tokens"


def _components() -> Dict[str, Any]:
    return current_app.extensions["sellisy_components"]


@api_bp.get("/health")
def health():
    return jsonify({"status": "ok", "storage": _components()["object_store"].name})


@api_bp.get("/download/<token>")
def download(token: str):
    """單一檔案直接轉址至 presigned URL；多檔或 ?format=json 時回傳檔案清單。"""
    resolved = _components()["token_service"].resolve_token(token)
    wants_json = request.args.get("format") == "json"
    if len(resolved.files) == 1 and not wants_json:
        return redirect(resolved.files[0]["url"], code=302)
    return _file_listing(resolved)


@api_bp.get("/download/<token>/files")
def download_files(token: str):
    resolved = _components()["token_service"].resolve_token(token)
    return _file_listing(resolved)


def _file_listing(resolved):
    body = resolved.to_dict()
    if not resolved.files:
        body["message"] = NO_FILES_MESSAGE
    response = jsonify(body)
    # presigned URL 具時效性，不可被快取
    response.headers["Cache-Control"] = "no-store"
    return response


@api_bp.post("/checkout")
def create_checkout():
    """建立待付款訂單；付款流程由外部金流處理。"""
    payload = request.get_json(silent=True) or {}
    product_ids = payload.get("product_ids")
    if product_ids is None and payload.get("product_id"):
        product_ids = [payload.get("product_id")]
    if not isinstance(product_ids, list):
        return jsonify({"error": "product_ids must be a list"}), 400
    try:
        order = _components()["order_service"].create_order(
            store_id=payload.get("store_id"),
            buyer_email=payload.get("buyer_email"),
            product_ids=[str(p) for p in product_ids],
            payment_session_id=payload.get("payment_session_id"),
        )
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"order": order}), 201


@api_bp.get("/checkout/success/<order_id>")
def checkout_success(order_id: str):
    """付款完成頁輪詢用：訂單完成後才簽發下載 token。"""
    order = _components()["order_service"].get_order(order_id)
    if order["status"] == ORDER_FAILED:
        raise OrderNotCompletedError(order_id, order["status"])
    if order["status"] != ORDER_COMPLETED:
        return jsonify({"order": order, "status": order["status"]}), 202
    body = {"order": order}
    body.update(_checkout_token(order_id))
    body["download_url"] = current_app.config["SELLISY_CONFIG"].app.get_download_url(body["download_token"])
    response = jsonify(body)
    response.headers["Cache-Control"] = "no-store"
    return response


def _checkout_token(order_id: str) -> Dict[str, str]:
    """同一瀏覽器重新整理成功頁時沿用仍有效的 token，不重複簽發。"""
    tokens = _components()["token_service"]
    cached = dict(session.get(CHECKOUT_TOKENS_KEY) or {})
    entry = cached.get(order_id)
    if entry and tokens.is_active(entry.get("download_token")):
        return entry
    entry = tokens.issue_token(order_id).to_dict()
    cached[order_id] = entry
    session[CHECKOUT_TOKENS_KEY] = cached
    return entry
