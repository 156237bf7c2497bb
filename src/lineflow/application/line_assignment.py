"""Resolver de linha alvo para plano/device/proteção/SIM.

Heurísticas determinísticas; nunca lança exceção. Linha pedida fora do
intervalo é corrigida para o limite mais próximo, nunca rejeitada.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from lineflow.domain.enums import ItemType
from lineflow.domain.flow_context import FlowContext

REASON_NO_CONTEXT = "no_context"
REASON_INVALID_LINE = "invalid_line_corrected"
REASON_LINE_EXCEEDED = "line_exceeded_corrected"
REASON_USER_SPECIFIED = "user_specified"
REASON_MATCHED_TO_PLAN = "matched_to_plan"
REASON_MATCHED_TO_DEVICE = "matched_to_device"
REASON_NO_DEVICE_FOR_PROTECTION = "no_device_for_protection"
REASON_SIM_AUTO_SET = "sim_auto_set"
REASON_AUTO_ASSIGNED = "auto_assigned"


@dataclass(slots=True)
class LineAssignment:
    """Linha escolhida e explicação para o usuário.

    target_line None significa rejeição (proteção sem device).
    """

    target_line: int | None
    reason: str
    suggestion: str | None = None
    needs_confirmation: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_line": self.target_line,
            "reason": self.reason,
            "suggestion": self.suggestion,
            "needs_confirmation": self.needs_confirmation,
        }


def _clamp_requested(line_count: int, requested: int) -> LineAssignment:
    if requested < 1:
        return LineAssignment(
            target_line=1,
            reason=REASON_INVALID_LINE,
            suggestion="Line numbers start at 1. I'll add this to Line 1 instead.",
        )
    if requested > line_count:
        plural = "s" if line_count > 1 else ""
        return LineAssignment(
            target_line=line_count,
            reason=REASON_LINE_EXCEEDED,
            suggestion=(
                f"You specified Line {requested}, but you only have {line_count} "
                f"line{plural}. I'll add this to Line {line_count} instead."
            ),
        )
    return LineAssignment(
        target_line=requested,
        reason=REASON_USER_SPECIFIED,
        suggestion=f"I'll add this to Line {requested}.",
    )


def _resolve_plan(context: FlowContext) -> LineAssignment:
    for line in context.lines:
        if not line.plan_selected:
            return LineAssignment(
                target_line=line.line_number,
                reason=REASON_AUTO_ASSIGNED,
                suggestion=(
                    f"I'll add this plan to Line {line.line_number} which needs a plan."
                ),
            )
    return LineAssignment(
        target_line=1,
        reason=REASON_AUTO_ASSIGNED,
        suggestion="All lines have plans. I'll add this to Line 1.",
        needs_confirmation=True,
    )


def _resolve_device(context: FlowContext) -> LineAssignment:
    for line in context.lines:
        if line.plan_selected and not line.device_selected:
            return LineAssignment(
                target_line=line.line_number,
                reason=REASON_MATCHED_TO_PLAN,
                suggestion=(
                    f"I'll add this device to Line {line.line_number} "
                    "which has a plan but no device yet."
                ),
            )
    for line in context.lines:
        if not line.device_selected:
            suggestion = f"I'll add this device to Line {line.line_number}."
            if not line.plan_selected:
                suggestion += " Note: You'll need to add a plan to this line before checkout."
            return LineAssignment(
                target_line=line.line_number,
                reason=REASON_AUTO_ASSIGNED,
                suggestion=suggestion,
            )
    return LineAssignment(
        target_line=1,
        reason=REASON_AUTO_ASSIGNED,
        suggestion="I'll add this device to Line 1.",
    )


def _resolve_protection(context: FlowContext) -> LineAssignment:
    for line in context.lines:
        if line.device_selected and not line.protection_selected:
            return LineAssignment(
                target_line=line.line_number,
                reason=REASON_MATCHED_TO_DEVICE,
                suggestion=(
                    f"I'll add protection to Line {line.line_number} which has a device."
                ),
            )
    return LineAssignment(
        target_line=None,
        reason=REASON_NO_DEVICE_FOR_PROTECTION,
        suggestion=(
            "Device protection requires a device. "
            "You need to add a device first before adding protection."
        ),
    )


def resolve_line_assignment(
    context: FlowContext | None,
    item_type: str,
    requested_line: int | None = None,
) -> LineAssignment:
    """Escolhe a linha alvo de um item.

    Com `requested_line`, apenas ajusta ao intervalo [1, line_count].
    """
    if context is None or context.line_count == 0:
        return LineAssignment(
            target_line=1,
            reason=REASON_NO_CONTEXT,
            suggestion=(
                "I'll add this to Line 1. You may want to set up your line count first."
            ),
        )

    if requested_line is not None:
        return _clamp_requested(context.line_count, requested_line)

    if item_type == ItemType.PLAN:
        return _resolve_plan(context)
    if item_type == ItemType.DEVICE:
        return _resolve_device(context)
    if item_type == ItemType.PROTECTION:
        return _resolve_protection(context)
    if item_type == ItemType.SIM:
        return LineAssignment(
            target_line=1,
            reason=REASON_SIM_AUTO_SET,
            suggestion=(
                "Note: SIM selection is no longer needed. "
                "eSIM is automatically set when you add a plan."
            ),
        )
    return LineAssignment(
        target_line=1, reason=REASON_AUTO_ASSIGNED, suggestion="I'll add this to Line 1."
    )


def line_assignment_summary(context: FlowContext | None) -> str:
    """Resumo por linha: "Line 1: Plan, SIM" / "Line 2: Empty"."""
    if context is None or context.line_count == 0:
        return "No lines configured yet."
    return "\n".join(
        f"Line {line.line_number}: {line.describe()}" for line in context.lines
    )
