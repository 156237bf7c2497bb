"""Modelos do checkout: payload de entrada, transação e resultado."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from lineflow.domain.cart import Cart
from lineflow.domain.purchase import PurchaseState, validate_transition

if TYPE_CHECKING:
    from lineflow.config.settings import Settings


class CheckoutAddress(BaseModel):
    """Endereço informado no checkout (aceita camelCase da origem)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    street: str | None = None
    address2: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = Field(default=None, alias="zipCode")
    country: str | None = None
    phone: str | None = None
    email: str | None = None
    residential: str | None = None


class CheckoutPayload(BaseModel):
    """Dados finais do pedido entregues ao orquestrador."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str | None = Field(default=None, alias="sessionId")
    shipping_address: CheckoutAddress | None = Field(default=None, alias="shippingAddress")
    billing_address: CheckoutAddress | None = Field(default=None, alias="billingAddress")
    cart: Cart | None = None


@dataclass(slots=True)
class PurchaseTransaction:
    """Transação efêmera quote → purchase → status."""

    state: PurchaseState = PurchaseState.INITIAL
    client_account_id: str | None = None
    transaction_id: str | None = None
    quote_data: dict[str, Any] | None = None
    payment_status: str | None = None
    order_status: str | None = None
    payment_url: str | None = None
    payment_url_expiry: str | None = None
    customer_id: str | None = None
    support_url: str | None = None
    poll_attempts: int = 0
    polled: bool = False
    cancelled: bool = False
    error: str | None = None

    def advance(self, next_state: PurchaseState) -> None:
        """Aplica transição validada.

        Raises:
            RuntimeError: transição ilegal (erro de programação)
        """
        ok, _, reason = validate_transition(self.state, next_state)
        if not ok:
            raise RuntimeError(reason)
        self.state = next_state


@dataclass(slots=True)
class PollingOptions:
    """Parâmetros de polling de um checkout."""

    skip_polling: bool = False
    max_poll_attempts: int = 40
    poll_interval: float = 3.0
    initial_poll_delay: float = 5.0
    max_backoff: float = 10.0
    cancel_event: asyncio.Event | None = None
    timeout_seconds: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> PollingOptions:
        options = cls(
            max_poll_attempts=settings.purchase_max_poll_attempts,
            poll_interval=settings.purchase_poll_interval_seconds,
            initial_poll_delay=settings.purchase_initial_poll_delay_seconds,
            max_backoff=settings.purchase_max_backoff_seconds,
        )
        for name, value in overrides.items():
            if value is not None:
                setattr(options, name, value)
        return options


_MESSAGES: dict[PurchaseState, str] = {
    PurchaseState.COMPLETED: "Purchase completed",
    PurchaseState.FAILED: "Purchase failed",
    PurchaseState.POLLING_TIMEOUT: (
        "Purchase submitted but status is still pending. Check the status again later."
    ),
    PurchaseState.POLLING: "Purchase in progress",
}


@dataclass(slots=True)
class PurchaseResult:
    """Projeção serializável de uma PurchaseTransaction."""

    transaction: PurchaseTransaction
    message: str | None = None

    @property
    def state(self) -> PurchaseState:
        return self.transaction.state

    @property
    def success(self) -> bool:
        return self.transaction.state != PurchaseState.FAILED

    @property
    def partial(self) -> bool:
        """Compra submetida sem confirmação final (timeout ou cancelada)."""
        return self.transaction.state == PurchaseState.POLLING_TIMEOUT or self.transaction.cancelled

    def to_dict(self) -> dict[str, Any]:
        tx = self.transaction
        return {
            "success": self.success,
            "partial": self.partial,
            "state": tx.state.value,
            "message": self.message or _MESSAGES.get(tx.state, tx.state.value),
            "transaction_id": tx.transaction_id,
            "client_account_id": tx.client_account_id,
            "payment_status": tx.payment_status,
            "order_status": tx.order_status,
            "payment_url": tx.payment_url,
            "payment_url_expiry": tx.payment_url_expiry,
            "customer_id": tx.customer_id,
            "support_url": tx.support_url,
            "poll_attempts": tx.poll_attempts,
            "polled": tx.polled,
            "cancelled": tx.cancelled,
            "error": tx.error,
            "quote": tx.quote_data,
        }
