"""Corpos de requisição das rotas de ferramenta."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from lineflow.application.purchase.models import CheckoutAddress


class SessionRequest(BaseModel):
    session_id: str = Field(min_length=1)


class LineCountRequest(SessionRequest):
    line_count: int


class AssignItemRequest(SessionRequest):
    item_type: str
    item: dict[str, Any] = Field(default_factory=dict)
    line_number: int | None = None


class SimSelectionItem(BaseModel):
    line_number: int
    sim_type: str
    iccid: str | None = None


class SimSelectionRequest(SessionRequest):
    selections: list[SimSelectionItem] = Field(min_length=1)


class RemoveItemRequest(SessionRequest):
    item_type: str
    line_number: int


class ClearCartRequest(SessionRequest):
    reset_flow: bool = False


class PrerequisiteRequest(SessionRequest):
    action: str


class RouteIntentRequest(SessionRequest):
    intent: str
    entities: dict[str, Any] = Field(default_factory=dict)


class CheckoutRequest(SessionRequest):
    """Checkout; parâmetros de polling opcionais sobrescrevem os de Settings."""

    shipping_address: CheckoutAddress | None = None
    billing_address: CheckoutAddress | None = None
    skip_polling: bool = False
    max_poll_attempts: int | None = Field(default=None, ge=1)
    poll_interval: float | None = Field(default=None, gt=0)
    initial_poll_delay: float | None = Field(default=None, ge=0)
    timeout_seconds: float | None = Field(default=None, gt=0)


class StatusRequest(BaseModel):
    transaction_id: str | None = None
    session_id: str | None = None
    client_account_id: str | None = None
