"""Gate de pré-requisitos: decide se uma ação é permitida agora.

- Puro: sem side effects, idempotente
- Nunca lança exceção; sempre retorna GateResult
- Prioridade no checkout: NEED_LINES > NEED_PLANS > NEED_SIM
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from lineflow.domain.enums import GateAction, GateCode
from lineflow.domain.flow_context import FlowContext


@dataclass(slots=True)
class GateResult:
    """Resultado da avaliação do gate."""

    allowed: bool
    gate_code: GateCode = GateCode.OK
    reason: str | None = None
    missing: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "gate_code": self.gate_code.value,
            "reason": self.reason,
            "missing": list(self.missing),
        }


def _missing_lines(context: FlowContext, predicate) -> list[str]:
    return [f"Line {line.line_number}" for line in context.lines if predicate(line)]


def _check_checkout(context: FlowContext) -> GateResult:
    if context.line_count == 0:
        return GateResult(
            allowed=False,
            gate_code=GateCode.NEED_LINES,
            reason="Please specify the number of lines first.",
            missing=["lineCount"],
        )

    missing_plans = _missing_lines(context, lambda line: not line.plan_selected)
    if missing_plans:
        return GateResult(
            allowed=False,
            gate_code=GateCode.NEED_PLANS,
            reason=(
                "Plans are required for all lines. "
                f"Missing plans for: {', '.join(missing_plans)}"
            ),
            missing=missing_plans,
        )

    missing_sim = _missing_lines(context, lambda line: line.sim_type is None)
    if missing_sim:
        return GateResult(
            allowed=False,
            gate_code=GateCode.NEED_SIM,
            reason=(
                "SIM types are required for all lines. "
                f"Missing SIM for: {', '.join(missing_sim)}"
            ),
            missing=missing_sim,
        )

    return GateResult(allowed=True)


def _check_add_protection(context: FlowContext) -> GateResult:
    if context.line_count == 0:
        return GateResult(
            allowed=False,
            gate_code=GateCode.NEED_DEVICE,
            reason="Please add devices first before selecting protection.",
            missing=["devices"],
        )
    if not any(line.device_selected for line in context.lines):
        return GateResult(
            allowed=False,
            gate_code=GateCode.NEED_DEVICE,
            reason="Please add a device before selecting protection.",
            missing=["devices"],
        )
    return GateResult(allowed=True)


def _check_select_sim(context: FlowContext) -> GateResult:
    if context.line_count == 0:
        return GateResult(
            allowed=False,
            gate_code=GateCode.NEED_PLANS,
            reason="Please select plans first.",
            missing=["plans"],
        )
    return GateResult(allowed=True)


def check_prerequisites(context: FlowContext | None, action: str) -> GateResult:
    """Avalia se `action` é permitida dado o FlowContext.

    Ações desconhecidas são sempre permitidas. Contexto ausente → OTHER.
    """
    if context is None:
        return GateResult(
            allowed=False,
            gate_code=GateCode.OTHER,
            reason="No flow context found. Please start a purchase flow first.",
        )

    if action == GateAction.CHECKOUT:
        return _check_checkout(context)
    if action == GateAction.ADD_PROTECTION:
        return _check_add_protection(context)
    if action == GateAction.SELECT_SIM:
        return _check_select_sim(context)

    # add_device e ações não mapeadas nunca são bloqueadas
    return GateResult(allowed=True)
