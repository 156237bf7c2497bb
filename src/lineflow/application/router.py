"""Router conversacional — intenção classificada + FlowContext → ação.

Consulta o gate para intenções que dependem de pré-requisitos e devolve
redirecionamento conversacional em vez de erro.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from lineflow.application.gate import GateResult, check_prerequisites
from lineflow.application.progress import (
    checkout_guidance,
    compute_flow_progress,
    next_step_suggestions,
)
from lineflow.domain.enums import FlowStep, GateAction, GateCode, Intent
from lineflow.domain.flow_context import FlowContext
from lineflow.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

STEP_ACTIONS: dict[str, str] = {
    FlowStep.LINE_COUNT: "start_purchase_flow",
    FlowStep.PLAN_SELECTION: "get_plans",
    FlowStep.DEVICE_SELECTION: "get_devices",
    FlowStep.PROTECTION_SELECTION: "get_protection_plan",
    FlowStep.SIM_SELECTION: "get_sim_types",
    FlowStep.CHECKOUT: "review_cart",
}
DEFAULT_STEP_ACTION = "get_flow_status"

START_FLOW_REASON = "Please start a purchase flow first"


def _plural(count: int) -> str:
    return "s" if count > 1 else ""


def _blocked(reason: str, code: GateCode = GateCode.OTHER) -> GateResult:
    return GateResult(allowed=False, gate_code=code, reason=reason)


@dataclass(slots=True)
class RouteDecision:
    """Decisão de roteamento para uma intenção."""

    route: str
    action: str
    allowed: bool
    guidance: str
    redirect_to: str | None = None
    gate: GateResult | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "route": self.route,
            "action": self.action,
            "allowed": self.allowed,
            "guidance": self.guidance,
            "redirect_to": self.redirect_to,
            "gate": self.gate.to_dict() if self.gate else None,
            "data": dict(self.data),
        }


@dataclass(slots=True)
class NextStep:
    """Próximo passo do fluxo com a ferramenta correspondente."""

    step: str
    action: str
    guidance: str
    suggestions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "action": self.action,
            "guidance": self.guidance,
            "suggestions": list(self.suggestions),
        }


def _route_coverage(entities: dict[str, Any], context: FlowContext | None) -> RouteDecision:
    zip_code = entities.get("zip_code")
    return RouteDecision(
        route="coverage",
        action="check_coverage",
        allowed=True,
        guidance=(
            f"Checking coverage for ZIP code {zip_code}..."
            if zip_code
            else "I can check coverage for you. What ZIP code should I check?"
        ),
        data={"requires_zip": not zip_code, "zip_code": zip_code},
    )


def _route_plan(entities: dict[str, Any], context: FlowContext | None) -> RouteDecision:
    progress = compute_flow_progress(context)
    if progress.line_count == 0:
        return RouteDecision(
            route="plan",
            action="get_plans",
            allowed=True,
            guidance="I'll show you plans. First, how many lines do you need?",
            data={"requires_line_count": True},
        )
    return RouteDecision(
        route="plan",
        action="get_plans",
        allowed=True,
        guidance=(
            f"Showing plans for {progress.line_count} line{_plural(progress.line_count)}. "
            "Would you like to apply the same plan to all lines, or mix & match?"
        ),
        data={"line_count": progress.line_count, "max_price": entities.get("max_price")},
    )


def _route_device(entities: dict[str, Any], context: FlowContext | None) -> RouteDecision:
    progress = compute_flow_progress(context)
    if progress.line_count == 0:
        return RouteDecision(
            route="device",
            action="get_devices",
            allowed=True,
            guidance=(
                "I can show you devices. Note: You'll need to select plans before checkout. "
                "Would you like to see devices now, or select plans first?"
            ),
            data={"requires_line_count": True, "warning": "Plan required before checkout"},
        )
    gate = check_prerequisites(context, GateAction.ADD_DEVICE)
    return RouteDecision(
        route="device",
        action="get_devices",
        allowed=gate.allowed,
        guidance=(
            f"Which line{_plural(progress.line_count)} would you like to add a device for?"
        ),
        gate=gate,
        data={"line_count": progress.line_count, "brand": entities.get("brand")},
    )


def _route_protection(entities: dict[str, Any], context: FlowContext | None) -> RouteDecision:
    if context is None:
        return RouteDecision(
            route="protection",
            action="get_protection_plan",
            allowed=False,
            guidance="Device protection requires a device. Would you like to add a device first?",
            redirect_to="device",
            gate=_blocked("Please add devices first", GateCode.NEED_DEVICE),
        )

    gate = check_prerequisites(context, GateAction.ADD_PROTECTION)
    if not gate.allowed:
        return RouteDecision(
            route="protection",
            action="get_protection_plan",
            allowed=False,
            guidance=f"{gate.reason} Would you like to add devices first?",
            redirect_to="device",
            gate=gate,
        )

    eligible = [line.line_number for line in context.lines if line.device_selected]
    return RouteDecision(
        route="protection",
        action="get_protection_plan",
        allowed=True,
        guidance=(
            f"You have devices on {len(eligible)} line{_plural(len(eligible))}. "
            "Would you like to add protection for all, or select per line?"
        ),
        gate=gate,
        data={"eligible_lines": eligible},
    )


def _route_sim(entities: dict[str, Any], context: FlowContext | None) -> RouteDecision:
    if context is None:
        return RouteDecision(
            route="sim",
            action="get_sim_types",
            allowed=False,
            guidance="SIM selection requires plans. Would you like to select plans first?",
            redirect_to="plan",
            gate=_blocked("Please select plans first", GateCode.NEED_PLANS),
        )

    gate = check_prerequisites(context, GateAction.SELECT_SIM)
    if not gate.allowed:
        return RouteDecision(
            route="sim",
            action="get_sim_types",
            allowed=False,
            guidance=gate.reason or "",
            redirect_to="plan",
            gate=gate,
        )

    missing_sim = compute_flow_progress(context).missing.sim
    guidance = (
        f"Select SIM type for line{_plural(len(missing_sim))} "
        f"{', '.join(str(n) for n in missing_sim)}. Choose eSIM or Physical SIM."
        if missing_sim
        else "All lines have SIM types. Ready for checkout?"
    )
    return RouteDecision(
        route="sim",
        action="get_sim_types",
        allowed=True,
        guidance=guidance,
        gate=gate,
        data={"line_number": entities.get("line_number")},
    )


def _route_checkout(entities: dict[str, Any], context: FlowContext | None) -> RouteDecision:
    if context is None:
        return RouteDecision(
            route="checkout",
            action="review_cart",
            allowed=False,
            guidance="Let's get started! How many lines would you like to set up?",
            redirect_to="line_count",
            gate=_blocked(START_FLOW_REASON),
        )

    guidance = checkout_guidance(context)
    gate = check_prerequisites(context, GateAction.CHECKOUT)
    if not guidance.ready:
        # Prioridade de redirecionamento: line_count > plan > sim
        if "line_count" in guidance.missing:
            redirect_to = "line_count"
        elif "plans" in guidance.missing:
            redirect_to = "plan"
        else:
            redirect_to = "sim"
        return RouteDecision(
            route="checkout",
            action="review_cart",
            allowed=False,
            guidance=guidance.guidance,
            redirect_to=redirect_to,
            gate=gate,
            data={"missing": guidance.missing},
        )

    return RouteDecision(
        route="checkout",
        action="review_cart",
        allowed=True,
        guidance="Reviewing your cart... All prerequisites are met!",
        gate=gate,
        data={"ready": True},
    )


def _route_edit(entities: dict[str, Any], context: FlowContext | None) -> RouteDecision:
    if context is None:
        return RouteDecision(
            route="edit",
            action="edit_cart_item",
            allowed=False,
            guidance="You don't have an active cart yet. Would you like to start shopping?",
            redirect_to="plan",
            gate=_blocked("No active cart to edit"),
        )

    edit_action = entities.get("action")
    item_type = entities.get("item_type")
    line_number = entities.get("line_number")
    if not edit_action or not item_type:
        return RouteDecision(
            route="edit",
            action="edit_cart_item",
            allowed=False,
            guidance=(
                "What would you like to edit? For example: "
                "'change plan on line 2' or 'remove device from line 1'."
            ),
            gate=_blocked(
                "Please specify what you want to edit (plan, device, protection, or sim) "
                "and the action (change, remove)"
            ),
        )

    on_line = f" on line {line_number}" if line_number else ""
    return RouteDecision(
        route="edit",
        action="edit_cart_item",
        allowed=True,
        guidance=f"I'll {edit_action} the {item_type}{on_line}.",
        data={"action": edit_action, "item_type": item_type, "line_number": line_number},
    )


def _route_line_count(entities: dict[str, Any], context: FlowContext | None) -> RouteDecision:
    line_count = entities.get("line_count")
    if not isinstance(line_count, int) or line_count < 1:
        return RouteDecision(
            route="line_count",
            action="start_purchase_flow",
            allowed=True,
            guidance="How many lines do you need? (e.g., '2 lines' or 'family plan for 4')",
            data={"requires_line_count": True},
        )
    return RouteDecision(
        route="line_count",
        action="start_purchase_flow",
        allowed=True,
        guidance=f"Setting up {line_count} line{_plural(line_count)}. Next: Select plans.",
        data={"line_count": line_count},
    )


_ROUTES: dict[str, Callable[[dict[str, Any], FlowContext | None], RouteDecision]] = {
    Intent.COVERAGE: _route_coverage,
    Intent.PLAN: _route_plan,
    Intent.DEVICE: _route_device,
    Intent.PROTECTION: _route_protection,
    Intent.SIM: _route_sim,
    Intent.CHECKOUT: _route_checkout,
    Intent.EDIT: _route_edit,
    Intent.LINE_COUNT: _route_line_count,
}


def route_intent(
    intent: str, entities: dict[str, Any] | None, context: FlowContext | None
) -> RouteDecision:
    """Mapeia intenção + contexto para a próxima ação."""
    entities = entities or {}
    logger.info(
        "Routing intent",
        extra={"intent": intent, "entities": sorted(entities), "has_context": context is not None},
    )

    handler = _ROUTES.get(intent)
    if handler is None:
        return RouteDecision(
            route="answer",
            action="answer_question",
            allowed=True,
            guidance="I'll help you with that. What would you like to know?",
        )
    return handler(entities, context)


def check_prerequisites_for_intent(intent: str, context: FlowContext | None) -> GateResult:
    """Gate aplicável a uma intenção (intenções livres sempre permitidas)."""
    if context is None:
        if intent in (Intent.COVERAGE, Intent.PLAN, Intent.DEVICE):
            return GateResult(allowed=True)
        return _blocked(START_FLOW_REASON)

    if intent == Intent.PROTECTION:
        return check_prerequisites(context, GateAction.ADD_PROTECTION)
    if intent == Intent.SIM:
        return check_prerequisites(context, GateAction.SELECT_SIM)
    if intent == Intent.CHECKOUT:
        return check_prerequisites(context, GateAction.CHECKOUT)
    return GateResult(allowed=True)


def get_next_step(context: FlowContext | None) -> NextStep:
    """Próximo passo obrigatório e a ferramenta que o atende."""
    if context is None:
        return NextStep(
            step=FlowStep.LINE_COUNT.value,
            action=STEP_ACTIONS[FlowStep.LINE_COUNT],
            guidance="Let's get started! How many lines would you like to set up?",
        )

    suggestion = next_step_suggestions(context)
    return NextStep(
        step=suggestion.next_step.value,
        action=STEP_ACTIONS.get(suggestion.next_step, DEFAULT_STEP_ACTION),
        guidance=suggestion.guidance,
        suggestions=list(suggestion.suggestions),
    )
