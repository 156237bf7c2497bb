"""Progresso do fluxo e orientação de próximos passos.

Ordem obrigatória: line_count → plan_selection → sim_selection → checkout.
Device e proteção são opcionais e entram apenas como dicas.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from lineflow.domain.enums import FlowStep
from lineflow.domain.flow_context import FlowContext

STEPS_PER_LINE = 4  # plano, device, proteção, SIM


def _plural(count: int) -> str:
    return "s" if count > 1 else ""


def _join(numbers: list[int]) -> str:
    return ", ".join(str(n) for n in numbers)


@dataclass(slots=True)
class MissingItems:
    """Pendências por categoria (números de linha)."""

    line_count: bool = True
    plans: list[int] = field(default_factory=list)
    devices: list[int] = field(default_factory=list)
    protection: list[int] = field(default_factory=list)
    sim: list[int] = field(default_factory=list)


@dataclass(slots=True)
class FlowProgress:
    """Resumo do progresso de configuração das linhas."""

    line_count: int = 0
    completed_lines: int = 0
    progress_percent: int = 0
    missing: MissingItems = field(default_factory=MissingItems)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class NextStepSuggestion:
    """Próximo passo obrigatório mais dicas opcionais."""

    next_step: FlowStep
    guidance: str
    suggestions: list[str] = field(default_factory=list)
    hints: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "next_step": self.next_step.value,
            "guidance": self.guidance,
            "suggestions": list(self.suggestions),
            "hints": list(self.hints),
        }


@dataclass(slots=True)
class CheckoutGuidance:
    """Prontidão para checkout; missing ⊆ {line_count, plans, sim}."""

    ready: bool
    missing: list[str]
    guidance: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def compute_flow_progress(context: FlowContext | None) -> FlowProgress:
    """Calcula progresso com 4 passos por linha."""
    if context is None or context.line_count == 0:
        return FlowProgress()

    missing = MissingItems(line_count=False)
    completed_steps = 0
    for line in context.lines:
        n = line.line_number
        if not line.plan_selected:
            missing.plans.append(n)
        if not line.device_selected:
            missing.devices.append(n)
        if line.device_selected and not line.protection_selected:
            missing.protection.append(n)
        if line.sim_type is None:
            missing.sim.append(n)
        completed_steps += sum((
            line.plan_selected,
            line.device_selected,
            line.protection_selected,
            line.sim_type is not None,
        ))

    total_steps = context.line_count * STEPS_PER_LINE
    return FlowProgress(
        line_count=context.line_count,
        completed_lines=sum(1 for line in context.lines if line.plan_selected),
        progress_percent=round(completed_steps / total_steps * 100),
        missing=missing,
    )


def next_step_suggestions(context: FlowContext | None) -> NextStepSuggestion:
    """Determina o próximo passo seguindo a ordem obrigatória do fluxo."""
    progress = compute_flow_progress(context)

    if progress.line_count == 0:
        return NextStepSuggestion(
            next_step=FlowStep.LINE_COUNT,
            guidance="First, I need to know how many lines you'd like to set up.",
            suggestions=["Specify number of lines", "Tell me your line count"],
        )

    missing_plans = progress.missing.plans
    if missing_plans:
        return NextStepSuggestion(
            next_step=FlowStep.PLAN_SELECTION,
            guidance=(
                f"You need to select plans for {len(missing_plans)} "
                f"line{_plural(len(missing_plans))} ({_join(missing_plans)})."
            ),
            suggestions=["View available plans", "Select a plan", "Choose plan for all lines"],
        )

    hints: list[str] = []
    if context is not None and not context.device_selected:
        hints.append(
            "Devices are optional. You can add a device to any line before checkout."
        )
    lines_with_devices = len(progress.missing.devices) < progress.line_count
    if lines_with_devices and progress.missing.protection:
        hints.append(
            "Device protection is available for "
            f"line{_plural(len(progress.missing.protection))} "
            f"{_join(progress.missing.protection)}."
        )

    missing_sim = progress.missing.sim
    if missing_sim:
        return NextStepSuggestion(
            next_step=FlowStep.SIM_SELECTION,
            guidance=(
                f"You need to select SIM types for {len(missing_sim)} "
                f"line{_plural(len(missing_sim))} ({_join(missing_sim)}). "
                "Choose eSIM or Physical SIM for each line."
            ),
            suggestions=["Select SIM type", "Set SIM for all lines"],
            hints=hints,
        )

    return NextStepSuggestion(
        next_step=FlowStep.CHECKOUT,
        guidance="Your cart is complete! All required items are selected.",
        suggestions=["Review cart", "Proceed to checkout", "Add optional items"],
        hints=hints,
    )


def checkout_guidance(context: FlowContext | None) -> CheckoutGuidance:
    """Lista o que falta para o checkout (linhas, planos, SIM)."""
    if context is None:
        return CheckoutGuidance(
            ready=False,
            missing=["line_count"],
            guidance="Please start a purchase flow first.",
        )

    progress = compute_flow_progress(context)
    missing: list[str] = []
    steps: list[str] = []

    if progress.line_count == 0:
        missing.append("line_count")
        steps.append("1. Specify the number of lines")
    else:
        steps.append("1. Line count set")

    if progress.missing.plans:
        missing.append("plans")
        count = len(progress.missing.plans)
        steps.append(
            f"2. Select plans for {count} line{_plural(count)} "
            f"({_join(progress.missing.plans)})"
        )
    else:
        steps.append("2. Plans selected")

    if progress.missing.sim:
        missing.append("sim")
        count = len(progress.missing.sim)
        steps.append(
            f"3. Select SIM types for {count} line{_plural(count)} "
            f"({_join(progress.missing.sim)})"
        )
    else:
        steps.append("3. SIM types selected")

    if missing:
        return CheckoutGuidance(
            ready=False,
            missing=missing,
            guidance="Before checkout, complete these steps:\n" + "\n".join(steps),
        )
    return CheckoutGuidance(
        ready=True,
        missing=[],
        guidance="Your cart is ready for checkout!\n" + "\n".join(steps),
    )
