"""Rotas HTTP: uma chamada de ferramenta = uma requisição."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from lineflow.api.dependencies import get_settings, get_tool_service
from lineflow.api.schemas import (
    AssignItemRequest,
    CheckoutRequest,
    ClearCartRequest,
    LineCountRequest,
    PrerequisiteRequest,
    RemoveItemRequest,
    RouteIntentRequest,
    SimSelectionRequest,
    StatusRequest,
)
from lineflow.application.tools import FlowToolService, SimSelection, parse_sim_type
from lineflow.config.settings import Settings

router = APIRouter()


@router.get("/health")
def health(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    """Healthcheck simples para Cloud Run."""
    return {"status": "ok", "service": settings.service_name, "version": settings.version}


# ----------------------------------------------------------------------
# Linhas e carrinho
# ----------------------------------------------------------------------


@router.post("/flow/line-count")
async def set_line_count(
    body: LineCountRequest, tools: FlowToolService = Depends(get_tool_service)
) -> dict[str, Any]:
    return await tools.set_line_count(body.session_id, body.line_count)


@router.post("/flow/items")
async def assign_item(
    body: AssignItemRequest, tools: FlowToolService = Depends(get_tool_service)
) -> dict[str, Any]:
    result = await tools.assign_item_to_line(
        body.session_id, body.item_type, body.item, body.line_number
    )
    return result.to_dict()


@router.post("/flow/sim")
async def select_sim_types(
    body: SimSelectionRequest, tools: FlowToolService = Depends(get_tool_service)
) -> dict[str, Any]:
    selections = [
        SimSelection(
            line_number=entry.line_number,
            sim_type=parse_sim_type(entry.sim_type),
            iccid=entry.iccid,
        )
        for entry in body.selections
    ]
    return await tools.select_sim_types(body.session_id, selections)


@router.post("/flow/items/remove")
async def remove_item(
    body: RemoveItemRequest, tools: FlowToolService = Depends(get_tool_service)
) -> dict[str, Any]:
    return await tools.remove_item(body.session_id, body.item_type, body.line_number)


@router.post("/flow/cart/clear")
async def clear_cart(
    body: ClearCartRequest, tools: FlowToolService = Depends(get_tool_service)
) -> dict[str, Any]:
    return await tools.clear_cart(body.session_id, reset_flow=body.reset_flow)


# ----------------------------------------------------------------------
# Estado, gate e roteamento
# ----------------------------------------------------------------------


@router.get("/flow/{session_id}/progress")
async def flow_progress(
    session_id: str, tools: FlowToolService = Depends(get_tool_service)
) -> dict[str, Any]:
    return await tools.get_flow_progress(session_id)


@router.get("/flow/{session_id}/context")
async def global_context(
    session_id: str, tools: FlowToolService = Depends(get_tool_service)
) -> dict[str, Any]:
    return await tools.get_global_context(session_id)


@router.post("/flow/prerequisites")
async def check_prerequisites(
    body: PrerequisiteRequest, tools: FlowToolService = Depends(get_tool_service)
) -> dict[str, Any]:
    gate = await tools.check_prerequisites(body.session_id, body.action)
    return gate.to_dict()


@router.post("/flow/route")
async def route_intent(
    body: RouteIntentRequest, tools: FlowToolService = Depends(get_tool_service)
) -> dict[str, Any]:
    decision = await tools.route_intent(body.session_id, body.intent, body.entities)
    return decision.to_dict()


@router.get("/flow/{session_id}/next-step")
async def next_step(
    session_id: str, tools: FlowToolService = Depends(get_tool_service)
) -> dict[str, Any]:
    return (await tools.get_next_step(session_id)).to_dict()


@router.get("/sessions/last-active")
def last_active_session(tools: FlowToolService = Depends(get_tool_service)) -> dict[str, Any]:
    return {"session_id": tools.last_active_session()}


# ----------------------------------------------------------------------
# Checkout
# ----------------------------------------------------------------------


@router.post("/purchase/checkout")
async def checkout(
    body: CheckoutRequest, tools: FlowToolService = Depends(get_tool_service)
) -> dict[str, Any]:
    options = tools.polling_options(
        skip_polling=body.skip_polling,
        max_poll_attempts=body.max_poll_attempts,
        poll_interval=body.poll_interval,
        initial_poll_delay=body.initial_poll_delay,
        timeout_seconds=body.timeout_seconds,
    )
    result = await tools.start_checkout(
        body.session_id, body.shipping_address, body.billing_address, options
    )
    return result.to_dict()


@router.post("/purchase/status")
async def purchase_status(
    body: StatusRequest, tools: FlowToolService = Depends(get_tool_service)
) -> dict[str, Any]:
    result = await tools.check_status(
        body.transaction_id, body.session_id, body.client_account_id
    )
    return result.to_dict()
