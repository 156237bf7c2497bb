"""Testes do router conversacional (intenção → ação ou redirecionamento)."""

from __future__ import annotations

import pytest

from lineflow.application.router import (
    STEP_ACTIONS,
    check_prerequisites_for_intent,
    get_next_step,
    route_intent,
)
from lineflow.domain.enums import FlowStep, GateCode, Intent
from lineflow.domain.flow_context import FlowContext


def _context(line_count: int, plans: int = 0) -> FlowContext:
    context = FlowContext(session_id="sess-router")
    context.resize_lines(line_count)
    for number in range(1, plans + 1):
        context.line(number).attach_plan("plan-a")
    return context


class TestRouteIntent:
    """Decisões por intenção."""

    def test_unknown_intent_answers(self) -> None:
        decision = route_intent("weather", {}, None)

        assert decision.route == "answer"
        assert decision.allowed is True

    def test_coverage_asks_for_zip(self) -> None:
        decision = route_intent(Intent.COVERAGE, None, None)

        assert decision.action == "check_coverage"
        assert decision.data["requires_zip"] is True

    def test_plan_without_lines_asks_line_count(self) -> None:
        decision = route_intent(Intent.PLAN, {}, _context(0))

        assert decision.data == {"requires_line_count": True}

    def test_plan_with_lines(self) -> None:
        decision = route_intent(Intent.PLAN, {"max_price": 40}, _context(2))

        assert "2 lines" in decision.guidance
        assert decision.data["max_price"] == 40

    def test_protection_without_device_redirects(self) -> None:
        decision = route_intent(Intent.PROTECTION, {}, _context(1, plans=1))

        assert decision.allowed is False
        assert decision.redirect_to == "device"
        assert decision.gate is not None
        assert decision.gate.gate_code == GateCode.NEED_DEVICE

    def test_protection_lists_eligible_lines(self) -> None:
        context = _context(2, plans=2)
        context.line(2).attach_device("dev-1")

        decision = route_intent(Intent.PROTECTION, {}, context)

        assert decision.allowed is True
        assert decision.data["eligible_lines"] == [2]

    def test_sim_without_lines_redirects_to_plan(self) -> None:
        decision = route_intent(Intent.SIM, {}, _context(0))

        assert decision.allowed is False
        assert decision.redirect_to == "plan"

    @pytest.mark.parametrize(
        ("context", "redirect"),
        [
            (None, "line_count"),
            (_context(0), "line_count"),
            (_context(2, plans=1), "plan"),
        ],
    )
    def test_checkout_redirect_priority(self, context, redirect: str) -> None:
        decision = route_intent(Intent.CHECKOUT, {}, context)

        assert decision.allowed is False
        assert decision.redirect_to == redirect

    def test_checkout_missing_sim_redirects_to_sim(self) -> None:
        context = _context(1, plans=1)
        context.line(1).set_sim(None)

        decision = route_intent(Intent.CHECKOUT, {}, context)

        assert decision.redirect_to == "sim"
        assert decision.data["missing"] == ["sim"]

    def test_checkout_ready(self) -> None:
        decision = route_intent(Intent.CHECKOUT, {}, _context(2, plans=2))

        assert decision.allowed is True
        assert decision.data == {"ready": True}

    def test_edit_requires_action_and_item(self) -> None:
        decision = route_intent(Intent.EDIT, {"item_type": "plan"}, _context(1))

        assert decision.allowed is False

    def test_edit_describes_change(self) -> None:
        decision = route_intent(
            Intent.EDIT,
            {"action": "change", "item_type": "plan", "line_number": 2},
            _context(2),
        )

        assert decision.guidance == "I'll change the plan on line 2."

    def test_line_count_entity(self) -> None:
        decision = route_intent(Intent.LINE_COUNT, {"line_count": 3}, None)

        assert decision.data == {"line_count": 3}
        assert "3 lines" in decision.guidance

    def test_to_dict_serializes_gate(self) -> None:
        payload = route_intent(Intent.SIM, {}, _context(0)).to_dict()

        assert payload["gate"]["gate_code"] == "NEED_PLANS"


class TestCheckPrerequisitesForIntent:
    def test_free_intents_without_context(self) -> None:
        assert check_prerequisites_for_intent(Intent.PLAN, None).allowed is True

    def test_checkout_without_context(self) -> None:
        assert check_prerequisites_for_intent(Intent.CHECKOUT, None).allowed is False

    def test_checkout_gate_used(self) -> None:
        result = check_prerequisites_for_intent(Intent.CHECKOUT, _context(1))

        assert result.gate_code == GateCode.NEED_PLANS


class TestGetNextStep:
    def test_without_context(self) -> None:
        step = get_next_step(None)

        assert step.step == "line_count"
        assert step.action == "start_purchase_flow"

    @pytest.mark.parametrize(
        ("context", "expected"),
        [
            (_context(0), FlowStep.LINE_COUNT),
            (_context(1), FlowStep.PLAN_SELECTION),
            (_context(1, plans=1), FlowStep.CHECKOUT),
        ],
    )
    def test_action_matches_step(self, context: FlowContext, expected: FlowStep) -> None:
        step = get_next_step(context)

        assert step.step == expected.value
        assert step.action == STEP_ACTIONS[expected]
