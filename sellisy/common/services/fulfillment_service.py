"""Order fulfillment: mint a download token on completion and email the link once.

``Order.email_sent`` is claimed with a conditional UPDATE before anything is
sent, so concurrent or redelivered completions send at most one message. Every
path that ends without a successful send releases the claim again.
"""

from typing import Callable, Optional

from ..db.session import get_session
from ..errors import NotificationError
from ..models.order import ORDER_COMPLETED, PLACEHOLDER_BUYER_EMAIL, Order
from ..utils.dto import to_order_dto
from ..utils.validators import validate_email
from .download_token_service import DownloadTokenService, IssuedToken
from .logging import log_event


class FulfillmentService:
    def __init__(
        self,
        token_service: DownloadTokenService,
        notifier,
        link_builder: Callable[[str], str],
        session_factory=get_session,
    ):
        self._tokens = token_service
        self._notifier = notifier
        self._link_builder = link_builder
        self._session_factory = session_factory

    def deliver(self, order_id: str) -> IssuedToken:
        """Called once an order reaches COMPLETED: issue a token, then notify the buyer."""
        issued = self._tokens.issue_token(order_id)
        self.send_completion_email(order_id, issued)
        return issued

    def send_completion_email(self, order_id: str, issued: Optional[IssuedToken] = None) -> bool:
        """Send the download link unless it already went out. Returns True when sent."""
        if not self._claim(order_id):
            log_event("info", "fulfillment.email_already_claimed", order_id=order_id)
            return False
        with self._session_factory() as session:
            order = session.get(Order, order_id)
            order_dto = to_order_dto(order) if order else None
        if order_dto is None or order_dto["status"] != ORDER_COMPLETED:
            log_event("info", "fulfillment.order_not_completed", order_id=order_id)
            self._release(order_id)
            return False
        if not self._is_deliverable(order_dto["buyer_email"]):
            log_event("info", "fulfillment.no_buyer_email", order_id=order_id)
            self._release(order_id)
            return False
        # the raw value of an earlier token is not stored, so a resend mints a fresh one
        issued = issued or self._tokens.issue_token(order_id)
        try:
            self._notifier.send_download_link(
                to=order_dto["buyer_email"],
                order=order_dto,
                download_url=self._link_builder(issued.raw_token),
                expires_at=issued.expires_at,
            )
        except NotificationError as exc:
            log_event("error", "fulfillment.email_failed", order_id=order_id, channel=exc.channel, reason=exc.reason)
            self._release(order_id)
            return False
        log_event("info", "fulfillment.email_sent", order_id=order_id)
        return True

    @staticmethod
    def _is_deliverable(email: Optional[str]) -> bool:
        if not email or email.lower() == PLACEHOLDER_BUYER_EMAIL:
            return False
        try:
            validate_email(email)
        except ValueError:
            return False
        return True

    def _claim(self, order_id: str) -> bool:
        with self._session_factory() as session:
            claimed = (
                session.query(Order)
                .filter(Order.id == order_id, Order.email_sent.is_(False))
                .update({Order.email_sent: True}, synchronize_session=False)
            )
        return bool(claimed)

    def _release(self, order_id: str) -> None:
        with self._session_factory() as session:
            session.query(Order).filter(Order.id == order_id).update(
                {Order.email_sent: False}, synchronize_session=False
            )
