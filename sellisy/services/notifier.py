"""買家通知：訂單完成後寄送下載連結。

正式環境透過 SendGrid v3 API 寄信；未設定金鑰時使用 ``DisabledNotifier``，
每次寄送都回報失敗，讓訂單保持「尚未寄信」狀態以便日後補寄。
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional, Tuple

import requests

from ..common.errors import NotificationError
from ..common.services.logging import log_event


SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


def _format_price(cents: int) -> str:
    return f"${int(cents or 0) / 100:.2f}"


def render_download_email(order: Dict, download_url: str, expires_at: Optional[datetime]) -> Tuple[str, str, str]:
    """回傳 (subject, text, html)。"""
    subject = f"Your Sellisy order {order['id'][:8]} is ready to download"
    expiry = f" The link works until {expires_at:%Y-%m-%d %H:%M} UTC." if expires_at else ""
    text = (
        "Thank you for your purchase.\n\n"
        f"Order total: {_format_price(order.get('total_cents'))}\n"
        f"Download your files: {download_url}\n"
        f"{expiry.strip()}\n"
    )
    html = (
        "<p>Thank you for your purchase.</p>"
        f"<p>Order total: <strong>{_format_price(order.get('total_cents'))}</strong></p>"
        f'<p><a href="{download_url}">Download your files</a></p>'
        f"<p>{expiry.strip()}</p>"
    )
    return subject, text, html


class OrderNotifier:
    """通知管道介面。"""

    name = "base"

    def send_download_link(self, *, to: str, order: Dict, download_url: str, expires_at: Optional[datetime] = None) -> None:
        raise NotImplementedError


class SendGridNotifier(OrderNotifier):
    name = "sendgrid"

    def __init__(self, *, api_key: str, from_email: str, timeout: Tuple[float, float] = (5.0, 10.0)) -> None:
        if not api_key or not from_email:
            raise ValueError("SENDGRID_API_KEY and SELLISY_MAIL_FROM are required")
        self.api_key = api_key
        self.from_email = from_email
        self.timeout = timeout

    def send_download_link(self, *, to: str, order: Dict, download_url: str, expires_at: Optional[datetime] = None) -> None:
        subject, text, html = render_download_email(order, download_url, expires_at)
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.from_email},
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": text},
                {"type": "text/html", "value": html},
            ],
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            resp = requests.post(SENDGRID_SEND_URL, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise NotificationError(self.name, str(exc)) from exc
        if not resp.ok:
            raise NotificationError(self.name, f"status {resp.status_code}")
        log_event("info", "notify.sent", channel=self.name, order_id=order["id"])


class DisabledNotifier(OrderNotifier):
    name = "disabled"

    def send_download_link(self, *, to: str, order: Dict, download_url: str, expires_at: Optional[datetime] = None) -> None:
        raise NotificationError(self.name, "email delivery not configured")


def select_notifier(mail) -> OrderNotifier:
    if mail.sendgrid_configured:
        log_event("info", "notify.channel_selected", channel=SendGridNotifier.name)
        return SendGridNotifier(
            api_key=mail.sendgrid_api_key,
            from_email=mail.from_email,
            timeout=(mail.connect_timeout, mail.read_timeout),
        )
    log_event("warning", "notify.channel_selected", channel=DisabledNotifier.name)
    return DisabledNotifier()
