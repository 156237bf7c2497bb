"""Testes do FlowToolService (ferramentas sobre FlowContext, Cart e checkout)."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from lineflow.application.flow_context_manager import FlowContextManager
from lineflow.application.line_assignment import (
    REASON_NO_CONTEXT,
    REASON_NO_DEVICE_FOR_PROTECTION,
    LineAssignment,
)
from lineflow.application.tools import FlowToolService, SimSelection, parse_sim_type
from lineflow.domain.enums import GateCode, SimType
from lineflow.domain.errors import FlowError, InvalidArgumentError, PrerequisiteError
from lineflow.domain.purchase import PurchaseState
from lineflow.infra.http import HttpError
from tests.helpers.factories import CLIENT_ACCOUNT_ID, shipping_address, status_response

SESSION = "sess-tools"
PLAN = {"id": "plan-unl", "name": "Unlimited (50GB)", "price": 30}
DEVICE = {"id": "dev-1", "name": "Phone 15", "price": 799}


async def _two_lines_with_plans(tools: FlowToolService) -> None:
    await tools.set_line_count(SESSION, 2)
    await tools.assign_item_to_line(SESSION, "plan", PLAN, line_number=1)
    await tools.assign_item_to_line(SESSION, "plan", PLAN, line_number=2)


class TestParsing:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("esim", SimType.ESIM), ("pSIM", SimType.PHYSICAL), ("PHYSICAL", SimType.PHYSICAL)],
    )
    def test_sim_aliases(self, value: str, expected: SimType) -> None:
        assert parse_sim_type(value) == expected

    def test_unknown_sim(self) -> None:
        with pytest.raises(InvalidArgumentError):
            parse_sim_type("nano")


class TestLineCount:
    @pytest.mark.asyncio
    async def test_set_line_count(self, tools: FlowToolService) -> None:
        snapshot = await tools.set_line_count(SESSION, 3)

        assert snapshot["line_count"] == 3
        assert [line["line_number"] for line in snapshot["lines"]] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_rejects_negative(self, tools: FlowToolService) -> None:
        with pytest.raises(InvalidArgumentError):
            await tools.set_line_count(SESSION, -1)

    @pytest.mark.asyncio
    async def test_shrinking_drops_cart_lines(
        self, tools: FlowToolService, manager: FlowContextManager
    ) -> None:
        await _two_lines_with_plans(tools)

        await tools.set_line_count(SESSION, 1)

        cart = await manager.get_cart(SESSION)
        assert [line.line_number for line in cart.lines] == [1]


class TestAssignItem:
    """Atribuição de plano, device e proteção."""

    @pytest.mark.asyncio
    async def test_plan_without_lines_creates_line_one(
        self, tools: FlowToolService, manager: FlowContextManager
    ) -> None:
        result = await tools.assign_item_to_line(SESSION, "plan", PLAN)

        assert result.assigned is True
        assert result.line_number == 1
        assert result.cart_total == 30.0
        context = await manager.get_or_create(SESSION)
        assert context.line_count == 1
        assert context.line(1).plan_id == "plan-unl"
        cart = await manager.get_cart(SESSION)
        assert cart.lines[0].sim == SimType.ESIM

    @pytest.mark.asyncio
    async def test_protection_without_device_rejected(self, tools: FlowToolService) -> None:
        await tools.set_line_count(SESSION, 1)

        result = await tools.assign_item_to_line(
            SESSION, "protection", {"id": "prot-1"}, line_number=1
        )

        assert result.assigned is False
        assert result.assignment.reason == REASON_NO_DEVICE_FOR_PROTECTION
        assert "Line 1 has no device" in (result.assignment.suggestion or "")

    @pytest.mark.asyncio
    async def test_protection_after_device(
        self, tools: FlowToolService, manager: FlowContextManager
    ) -> None:
        await tools.assign_item_to_line(SESSION, "device", DEVICE)

        result = await tools.assign_item_to_line(
            SESSION, "protection", {"id": "prot-1", "price": 9}, line_number=1
        )

        assert result.assigned is True
        context = await manager.get_or_create(SESSION)
        assert context.line(1).protection_selected is True

    @pytest.mark.asyncio
    async def test_sim_item_not_assigned_here(self, tools: FlowToolService) -> None:
        await tools.set_line_count(SESSION, 1)

        result = await tools.assign_item_to_line(SESSION, "sim", {}, line_number=1)

        assert result.assigned is False

    @pytest.mark.asyncio
    async def test_unresolved_line_is_not_assigned(
        self, tools: FlowToolService, manager: FlowContextManager
    ) -> None:
        """Sem linha alvo o item é recusado e nada é anexado."""
        await tools.set_line_count(SESSION, 1)
        unresolved = LineAssignment(target_line=None, reason=REASON_NO_CONTEXT)

        with patch(
            "lineflow.application.tools.resolve_line_assignment", return_value=unresolved
        ):
            result = await tools.assign_item_to_line(SESSION, "plan", PLAN)

        assert result.assigned is False
        assert result.line_number is None
        assert result.assignment.reason == REASON_NO_CONTEXT
        assert (await manager.get_or_create(SESSION)).plan_selected is False
        assert (await manager.get_cart(SESSION)).lines == []

    @pytest.mark.asyncio
    async def test_unknown_item_type(self, tools: FlowToolService) -> None:
        with pytest.raises(InvalidArgumentError, match="Unknown item type"):
            await tools.assign_item_to_line(SESSION, "charger", {})


class TestSimSelection:
    @pytest.mark.asyncio
    async def test_requires_lines(self, tools: FlowToolService) -> None:
        with pytest.raises(PrerequisiteError) as exc_info:
            await tools.select_sim_types(SESSION, [{"line_number": 1, "sim_type": "ESIM"}])

        assert exc_info.value.gate.gate_code == GateCode.NEED_PLANS

    @pytest.mark.asyncio
    async def test_physical_sim_keeps_iccid(
        self, tools: FlowToolService, manager: FlowContextManager
    ) -> None:
        await tools.set_line_count(SESSION, 2)

        await tools.select_sim_types(
            SESSION,
            [SimSelection(line_number=2, sim_type=SimType.PHYSICAL, iccid="8901")],
        )

        context = await manager.get_or_create(SESSION)
        assert context.line(2).sim_type == SimType.PHYSICAL
        assert context.line(2).sim_iccid == "8901"
        cart = await manager.get_cart(SESSION)
        assert cart.get_line(2).sim == SimType.PHYSICAL

    @pytest.mark.asyncio
    async def test_empty_selection(self, tools: FlowToolService) -> None:
        with pytest.raises(InvalidArgumentError):
            await tools.select_sim_types(SESSION, [])


class TestRemoveAndClear:
    @pytest.mark.asyncio
    async def test_remove_device_removes_protection(
        self, tools: FlowToolService, manager: FlowContextManager
    ) -> None:
        await tools.assign_item_to_line(SESSION, "device", DEVICE)
        await tools.assign_item_to_line(SESSION, "protection", {"id": "prot-1"}, line_number=1)

        result = await tools.remove_item(SESSION, "device", 1)

        assert result["removed"] is True
        context = await manager.get_or_create(SESSION)
        assert context.line(1).device_selected is False
        assert context.line(1).protection_selected is False

    @pytest.mark.asyncio
    async def test_clear_cart_keeps_lines(self, tools: FlowToolService) -> None:
        await _two_lines_with_plans(tools)

        result = await tools.clear_cart(SESSION)

        assert result["line_count"] == 2
        assert result["cart_total"] == 0.0
        assert result["flags"]["plan_selected"] is False

    @pytest.mark.asyncio
    async def test_clear_cart_with_reset(self, tools: FlowToolService) -> None:
        await _two_lines_with_plans(tools)

        result = await tools.clear_cart(SESSION, reset_flow=True)

        assert result["line_count"] == 0
        assert result["lines"] == []


class TestCheckout:
    """Gate, resultado gravado na sessão e fallback de status."""

    @pytest.mark.asyncio
    async def test_blocked_by_gate(
        self, tools: FlowToolService, manager: FlowContextManager, carrier: AsyncMock
    ) -> None:
        await tools.set_line_count(SESSION, 2)
        await tools.assign_item_to_line(SESSION, "plan", PLAN, line_number=1)

        with pytest.raises(PrerequisiteError) as exc_info:
            await tools.start_checkout(SESSION, shipping_address())

        assert exc_info.value.gate.gate_code == GateCode.NEED_PLANS
        context = await manager.get_or_create(SESSION)
        assert context.missing_prerequisites == ["Line 2"]
        carrier.quote.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_success_records_last_purchase(
        self, tools: FlowToolService, manager: FlowContextManager
    ) -> None:
        await _two_lines_with_plans(tools)

        result = await tools.start_checkout(SESSION, shipping_address())

        assert result.state == PurchaseState.COMPLETED
        context = await manager.get_or_create(SESSION)
        assert context.last_purchase is not None
        assert context.last_purchase.transaction_id == "tx-123"
        assert context.last_purchase.client_account_id == CLIENT_ACCOUNT_ID
        assert context.last_purchase.payment_url == "https://pay.example/x"

    @pytest.mark.asyncio
    async def test_flow_error_records_snapshot(
        self, tools: FlowToolService, manager: FlowContextManager, carrier: AsyncMock
    ) -> None:
        await _two_lines_with_plans(tools)
        carrier.quote.side_effect = HttpError("HTTP 500", status_code=500)

        with pytest.raises(FlowError) as exc_info:
            await tools.start_checkout(SESSION, shipping_address())

        context = await manager.get_or_create(SESSION)
        assert context.last_purchase is not None
        assert context.last_purchase.state == exc_info.value.state
        assert context.last_purchase.error == str(exc_info.value)

    @pytest.mark.asyncio
    async def test_cancelled_checkout_keeps_transaction_id(
        self, tools: FlowToolService, manager: FlowContextManager, carrier: AsyncMock
    ) -> None:
        """Compra já submetida continua consultável depois do cancelamento."""
        await _two_lines_with_plans(tools)
        carrier.status.side_effect = asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await tools.start_checkout(SESSION, shipping_address())

        context = await manager.get_or_create(SESSION)
        assert context.last_purchase is not None
        assert context.last_purchase.transaction_id == "tx-123"
        assert context.last_purchase.client_account_id == CLIENT_ACCOUNT_ID
        assert context.last_purchase.state == PurchaseState.POLLING.value

        carrier.status.side_effect = None
        carrier.status.return_value = status_response(status="DONE")
        result = await tools.check_status(session_id=SESSION)

        carrier.status.assert_awaited_with("tx-123")
        assert result.state == PurchaseState.COMPLETED

    @pytest.mark.asyncio
    async def test_cancelled_before_transaction_records_nothing(
        self, tools: FlowToolService, manager: FlowContextManager
    ) -> None:
        await _two_lines_with_plans(tools)
        cancelled = AsyncMock(side_effect=asyncio.CancelledError())

        with (
            patch.object(tools._orchestrator, "start_checkout", cancelled),
            pytest.raises(asyncio.CancelledError),
        ):
            await tools.start_checkout(SESSION, shipping_address())

        assert (await manager.get_or_create(SESSION)).last_purchase is None

    @pytest.mark.asyncio
    async def test_check_status_uses_last_purchase(
        self, tools: FlowToolService, carrier: AsyncMock
    ) -> None:
        await _two_lines_with_plans(tools)
        await tools.start_checkout(SESSION, shipping_address())
        carrier.status.reset_mock()
        carrier.status.return_value = status_response(status="DONE")

        result = await tools.check_status(session_id=SESSION)

        carrier.status.assert_awaited_once_with("tx-123")
        assert result.transaction.client_account_id == CLIENT_ACCOUNT_ID

    @pytest.mark.asyncio
    async def test_check_status_requires_transaction(self, tools: FlowToolService) -> None:
        with pytest.raises(InvalidArgumentError, match="transaction_id"):
            await tools.check_status(session_id="sess-empty")


class TestRouting:
    @pytest.mark.asyncio
    async def test_route_intent_records_history(
        self, tools: FlowToolService, manager: FlowContextManager
    ) -> None:
        decision = await tools.route_intent(SESSION, "checkout")

        assert decision.allowed is False
        history = await manager.get_conversation_history(SESSION)
        assert history[-1].intent == "checkout"
        assert history[-1].data == {"allowed": False}

    @pytest.mark.asyncio
    async def test_check_prerequisites_stores_missing(
        self, tools: FlowToolService, manager: FlowContextManager
    ) -> None:
        await tools.set_line_count(SESSION, 1)

        gate = await tools.check_prerequisites(SESSION, "checkout")

        assert gate.allowed is False
        context = await manager.get_or_create(SESSION)
        assert context.missing_prerequisites == ["Line 1"]

    @pytest.mark.asyncio
    async def test_last_active_session(self, tools: FlowToolService) -> None:
        await tools.set_line_count(SESSION, 1)

        assert tools.last_active_session() == SESSION
