"""FlowToolService: superfície de ferramentas chamadas pelo agente.

Cada chamada de ferramenta é uma operação aqui. Mutações de linha e
carrinho passam por FlowContextManager.apply (um único passo sob o lock
da sessão); o checkout roda fora do lock e só o resultado é gravado.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from lineflow.application.flow_context_manager import FlowContextManager
from lineflow.application.gate import GateResult, check_prerequisites
from lineflow.application.line_assignment import (
    REASON_NO_DEVICE_FOR_PROTECTION,
    LineAssignment,
    line_assignment_summary,
    resolve_line_assignment,
)
from lineflow.application.progress import compute_flow_progress, next_step_suggestions
from lineflow.application.purchase.models import (
    CheckoutAddress,
    CheckoutPayload,
    PollingOptions,
    PurchaseResult,
    PurchaseTransaction,
)
from lineflow.application.purchase.orchestrator import PurchaseOrchestrator
from lineflow.application.router import NextStep, RouteDecision, get_next_step, route_intent
from lineflow.config.settings import Settings, get_settings
from lineflow.domain.cart import Cart, CartItem
from lineflow.domain.enums import FlowStep, GateAction, ItemType, PlanSelectionMode, SimType
from lineflow.domain.errors import FlowError, InvalidArgumentError, PrerequisiteError
from lineflow.domain.flow_context import FlowContext, HistoryEntry, PurchaseSnapshot
from lineflow.observability.logging import get_logger, mask_id

logger: logging.Logger = get_logger(__name__)

ITEM_STEPS: dict[ItemType, FlowStep] = {
    ItemType.PLAN: FlowStep.PLAN_SELECTION,
    ItemType.DEVICE: FlowStep.DEVICE_SELECTION,
    ItemType.PROTECTION: FlowStep.PROTECTION_SELECTION,
    ItemType.SIM: FlowStep.SIM_SELECTION,
}

_SIM_ALIASES = {"ESIM": SimType.ESIM, "PSIM": SimType.PHYSICAL, "PHYSICAL": SimType.PHYSICAL}


def parse_item_type(value: str) -> ItemType:
    try:
        return ItemType(str(value).strip().lower())
    except ValueError as e:
        raise InvalidArgumentError(f"Unknown item type: {value}") from e


def parse_sim_type(value: str) -> SimType:
    sim_type = _SIM_ALIASES.get(str(value).strip().upper())
    if sim_type is None:
        raise InvalidArgumentError(f"Unknown SIM type: {value}")
    return sim_type


def _validate_line_count(count: Any) -> int:
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        raise InvalidArgumentError("line_count must be an integer >= 0")
    return count


def _as_cart_item(item: CartItem | Mapping[str, Any] | None) -> CartItem:
    if isinstance(item, CartItem):
        return item
    return CartItem.model_validate(dict(item or {}))


@dataclass(slots=True)
class SimSelection:
    """SIM escolhido para uma linha (iccid apenas para PHYSICAL)."""

    line_number: int
    sim_type: SimType
    iccid: str | None = None


@dataclass(slots=True)
class ItemAssignmentResult:
    """Resultado de assign_item_to_line."""

    assigned: bool
    item_type: ItemType
    assignment: LineAssignment
    line_number: int | None = None
    cart_total: float = 0.0
    flags: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "assigned": self.assigned,
            "item_type": self.item_type.value,
            "line_number": self.line_number,
            "reason": self.assignment.reason,
            "suggestion": self.assignment.suggestion,
            "needs_confirmation": self.assignment.needs_confirmation,
            "cart_total": self.cart_total,
            "flags": dict(self.flags),
        }


def _snapshot(context: FlowContext, cart: Cart) -> dict[str, Any]:
    return {
        "session_id": context.session_id,
        "line_count": context.line_count,
        "lines": [line.model_dump(mode="json") for line in context.lines],
        "summary": line_assignment_summary(context),
        "flags": context.global_flags(),
        "cart_total": cart.total,
    }


class FlowToolService:
    """Operações de ferramenta sobre FlowContext, Cart e checkout."""

    def __init__(
        self,
        manager: FlowContextManager,
        orchestrator: PurchaseOrchestrator,
        settings: Settings | None = None,
    ) -> None:
        self._manager = manager
        self._orchestrator = orchestrator
        self._settings = settings or get_settings()

    def polling_options(self, **overrides: Any) -> PollingOptions:
        """Opções de polling de Settings com sobrescritas não nulas."""
        return PollingOptions.from_settings(self._settings, **overrides)

    def _record(self, context: FlowContext, intent: str, action: str, **data: Any) -> None:
        context.last_intent = intent
        context.last_action = action
        context.add_history(
            HistoryEntry(intent=intent, action=action, data=data),
            limit=self._settings.conversation_history_max,
        )

    # ------------------------------------------------------------------
    # Linhas e itens
    # ------------------------------------------------------------------

    async def set_line_count(self, session_id: str, line_count: int) -> dict[str, Any]:
        """Define quantas linhas o pedido terá (encolher descarta itens do fim)."""
        count = _validate_line_count(line_count)

        def _mutate(context: FlowContext, cart: Cart) -> dict[str, Any]:
            context.resize_lines(count)
            context.resume_step = FlowStep.PLAN_SELECTION if count else FlowStep.LINE_COUNT
            self._record(context, "line_count", "set_line_count", line_count=count)
            return _snapshot(context, cart)

        result = await self._manager.apply(session_id, _mutate)
        logger.info(
            "Line count set", extra={"session_id": mask_id(session_id), "line_count": count}
        )
        return result

    async def assign_item_to_line(
        self,
        session_id: str,
        item_type: str,
        item: CartItem | Mapping[str, Any] | None = None,
        line_number: int | None = None,
    ) -> ItemAssignmentResult:
        """Atribui plano, device ou proteção a uma linha.

        Sem linhas configuradas, plano ou device criam a linha 1. Proteção
        sem device elegível é recusada (assigned=False).
        """
        kind = parse_item_type(item_type)
        cart_item = _as_cart_item(item)

        def _mutate(context: FlowContext, cart: Cart) -> ItemAssignmentResult:
            if kind in (ItemType.PLAN, ItemType.DEVICE) and context.line_count == 0:
                context.resize_lines(1)

            assignment = resolve_line_assignment(context, kind, line_number)
            target = assignment.target_line

            if kind == ItemType.SIM:
                return ItemAssignmentResult(
                    assigned=False, item_type=kind, assignment=assignment, cart_total=cart.total
                )

            if kind == ItemType.PROTECTION and (
                target is None
                or context.line_count == 0
                or not context.line(target).device_selected
            ):
                rejection = LineAssignment(
                    target_line=None,
                    reason=REASON_NO_DEVICE_FOR_PROTECTION,
                    suggestion=(
                        f"Line {target} has no device. Device protection requires a device."
                        if target is not None and context.line_count
                        else "Device protection requires a device. "
                        "You need to add a device first before adding protection."
                    ),
                )
                return ItemAssignmentResult(
                    assigned=False,
                    item_type=kind,
                    assignment=rejection,
                    cart_total=cart.total,
                    flags=context.global_flags(),
                )

            if target is None:
                return ItemAssignmentResult(
                    assigned=False,
                    item_type=kind,
                    assignment=assignment,
                    cart_total=cart.total,
                    flags=context.global_flags(),
                )

            line = context.line(target)
            cart_line = cart.ensure_line(target)
            if kind == ItemType.PLAN:
                line.attach_plan(cart_item.identifier)
                if cart_line.sim is None:
                    cart_line.sim = line.sim_type
            elif kind == ItemType.DEVICE:
                line.attach_device(cart_item.identifier)
            else:
                line.attach_protection(cart_item.identifier)
            cart_line.set_item(kind, cart_item)

            context.resume_step = ITEM_STEPS[kind]
            self._record(
                context,
                kind.value,
                f"add_{kind.value}",
                line_number=target,
                item_id=cart_item.identifier,
            )
            return ItemAssignmentResult(
                assigned=True,
                item_type=kind,
                assignment=assignment,
                line_number=target,
                cart_total=cart.total,
                flags=context.global_flags(),
            )

        result = await self._manager.apply(session_id, _mutate)
        logger.info(
            "Item assignment processed",
            extra={
                "session_id": mask_id(session_id),
                "item_type": kind.value,
                "assigned": result.assigned,
                "line_number": result.line_number,
                "reason": result.assignment.reason,
            },
        )
        return result

    async def select_sim_types(
        self,
        session_id: str,
        selections: Iterable[SimSelection | Mapping[str, Any]],
    ) -> dict[str, Any]:
        """Define o tipo de SIM de uma ou mais linhas.

        Raises:
            PrerequisiteError: nenhuma linha configurada
            InvalidArgumentError: linha fora do intervalo ou SIM desconhecido
        """
        parsed = [self._parse_selection(entry) for entry in selections]
        if not parsed:
            raise InvalidArgumentError("At least one SIM selection is required")

        def _mutate(context: FlowContext, cart: Cart) -> dict[str, Any]:
            gate = check_prerequisites(context, GateAction.SELECT_SIM)
            if not gate.allowed:
                raise PrerequisiteError(gate)
            lines = [context.line(selection.line_number) for selection in parsed]
            for line, selection in zip(lines, parsed, strict=True):
                line.set_sim(selection.sim_type, selection.iccid)
                cart.ensure_line(selection.line_number).sim = selection.sim_type
            context.resume_step = FlowStep.SIM_SELECTION
            self._record(
                context,
                "sim",
                "select_sim_types",
                lines=[selection.line_number for selection in parsed],
            )
            return _snapshot(context, cart)

        return await self._manager.apply(session_id, _mutate)

    @staticmethod
    def _parse_selection(entry: SimSelection | Mapping[str, Any]) -> SimSelection:
        if isinstance(entry, SimSelection):
            return entry
        line_number = entry.get("line_number")
        if isinstance(line_number, bool) or not isinstance(line_number, int):
            raise InvalidArgumentError("line_number must be an integer")
        return SimSelection(
            line_number=line_number,
            sim_type=parse_sim_type(entry.get("sim_type", "")),
            iccid=entry.get("iccid"),
        )

    async def remove_item(
        self, session_id: str, item_type: str, line_number: int
    ) -> dict[str, Any]:
        """Remove um item da linha; remover o device remove a proteção junto."""
        kind = parse_item_type(item_type)

        def _mutate(context: FlowContext, cart: Cart) -> dict[str, Any]:
            line = context.line(line_number)
            cart_line = cart.get_line(line_number)
            if kind == ItemType.PLAN:
                removed = line.plan_selected
                line.detach_plan()
            elif kind == ItemType.DEVICE:
                removed = line.device_selected
                line.detach_device()
            elif kind == ItemType.PROTECTION:
                removed = line.protection_selected
                line.detach_protection()
            else:
                removed = line.sim_type is not None
                line.set_sim(None)

            if cart_line is not None:
                if kind == ItemType.SIM:
                    cart_line.sim = None
                else:
                    cart_line.set_item(kind, None)
            self._record(context, "edit", f"remove_{kind.value}", line_number=line_number)
            return {"removed": removed, "item_type": kind.value, **_snapshot(context, cart)}

        return await self._manager.apply(session_id, _mutate)

    async def clear_cart(self, session_id: str, reset_flow: bool = False) -> dict[str, Any]:
        """Esvazia o carrinho; com reset_flow o fluxo volta ao início."""

        def _mutate(context: FlowContext, cart: Cart) -> dict[str, Any]:
            cart.lines = []
            context.clear_selections()
            if reset_flow:
                context.resize_lines(0)
                context.flow_stage = "initial"
                context.resume_step = None
                context.current_question = None
                context.missing_prerequisites = []
                context.plan_selection_mode = PlanSelectionMode.INITIAL
            self._record(context, "edit", "clear_cart", reset_flow=reset_flow)
            return {"cleared": True, "reset_flow": reset_flow, **_snapshot(context, cart)}

        result = await self._manager.apply(session_id, _mutate)
        logger.info(
            "Cart cleared",
            extra={"session_id": mask_id(session_id), "reset_flow": reset_flow},
        )
        return result

    # ------------------------------------------------------------------
    # Leitura e roteamento
    # ------------------------------------------------------------------

    async def get_flow_progress(self, session_id: str) -> dict[str, Any]:
        context = await self._manager.get_or_create(session_id)
        return {
            "progress": compute_flow_progress(context).to_dict(),
            "next": next_step_suggestions(context).to_dict(),
            "summary": line_assignment_summary(context),
        }

    async def get_global_context(self, session_id: str) -> dict[str, Any]:
        context = await self._manager.get_or_create(session_id)
        cart = await self._manager.get_cart(session_id)
        return {
            "context": context.model_dump(mode="json"),
            "cart": cart.model_dump(mode="json"),
        }

    async def check_prerequisites(self, session_id: str, action: str) -> GateResult:
        context = await self._manager.peek(session_id)
        gate = check_prerequisites(context, action)
        if context is not None:
            await self._manager.update_missing_prerequisites(session_id, gate.missing)
        return gate

    async def route_intent(
        self, session_id: str, intent: str, entities: dict[str, Any] | None = None
    ) -> RouteDecision:
        context = await self._manager.peek(session_id)
        decision = route_intent(intent, entities, context)
        await self._manager.update_last_intent(session_id, intent, decision.action)
        await self._manager.add_conversation_history(
            session_id, intent, decision.action, {"allowed": decision.allowed}
        )
        return decision

    async def get_next_step(self, session_id: str) -> NextStep:
        return get_next_step(await self._manager.peek(session_id))

    def last_active_session(self) -> str | None:
        return self._manager.store.last_active_session()

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    async def start_checkout(
        self,
        session_id: str,
        shipping_address: CheckoutAddress | Mapping[str, Any] | None,
        billing_address: CheckoutAddress | Mapping[str, Any] | None = None,
        options: PollingOptions | None = None,
    ) -> PurchaseResult:
        """Gate de checkout, depois quote → purchase → polling sem lock.

        Raises:
            PrerequisiteError: pedido incompleto (linhas, planos ou SIM)
            FlowError: falha fatal do fluxo (snapshot gravado na sessão)
        """
        context = await self._manager.get_or_create(session_id)
        gate = check_prerequisites(context, GateAction.CHECKOUT)
        if not gate.allowed:
            await self._manager.update_missing_prerequisites(session_id, gate.missing)
            logger.info(
                "Checkout blocked by gate",
                extra={"session_id": mask_id(session_id), "gate_code": gate.gate_code.value},
            )
            raise PrerequisiteError(gate)

        cart = await self._manager.get_cart(session_id)
        payload = CheckoutPayload(
            session_id=session_id,
            shipping_address=self._as_address(shipping_address),
            billing_address=self._as_address(billing_address),
            cart=cart,
        )

        started: list[PurchaseTransaction] = []
        try:
            result = await self._orchestrator.start_checkout(
                payload, options, on_transaction=started.append
            )
        except asyncio.CancelledError:
            if started:
                await asyncio.shield(
                    self._manager.record_purchase(
                        session_id, self._transaction_snapshot(started[0])
                    )
                )
            raise
        except FlowError as e:
            await self._manager.record_purchase(
                session_id,
                PurchaseSnapshot(
                    state=e.state,
                    transaction_id=e.transaction_id,
                    client_account_id=e.client_account_id,
                    error=str(e),
                ),
            )
            raise

        await self._manager.record_purchase(session_id, self._purchase_snapshot(result))
        return result

    async def check_status(
        self,
        transaction_id: str | None = None,
        session_id: str | None = None,
        client_account_id: str | None = None,
    ) -> PurchaseResult:
        """Consulta status; sem transaction_id usa o último checkout da sessão."""
        if not transaction_id and session_id:
            context = await self._manager.peek(session_id)
            if context is not None and context.last_purchase is not None:
                transaction_id = context.last_purchase.transaction_id
                client_account_id = client_account_id or context.last_purchase.client_account_id
        if not transaction_id:
            raise InvalidArgumentError("transaction_id is required")

        result = await self._orchestrator.check_status(transaction_id, client_account_id)
        if session_id:
            await self._manager.record_purchase(session_id, self._purchase_snapshot(result))
        return result

    @staticmethod
    def _as_address(value: CheckoutAddress | Mapping[str, Any] | None) -> CheckoutAddress | None:
        if value is None or isinstance(value, CheckoutAddress):
            return value
        return CheckoutAddress.model_validate(dict(value))

    @staticmethod
    def _purchase_snapshot(result: PurchaseResult) -> PurchaseSnapshot:
        return FlowToolService._transaction_snapshot(result.transaction)

    @staticmethod
    def _transaction_snapshot(tx: PurchaseTransaction) -> PurchaseSnapshot:
        return PurchaseSnapshot(
            state=tx.state.value,
            transaction_id=tx.transaction_id,
            client_account_id=tx.client_account_id,
            payment_url=tx.payment_url,
            error=tx.error,
        )
