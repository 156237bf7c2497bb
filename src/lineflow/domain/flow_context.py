"""FlowContext: estado de configuração de linhas por sessão.

Regras:
- len(lines) == line_count sempre (crescer/encolher em resize_lines)
- Flags derivadas são computadas a cada leitura; nunca atribuíveis
- protection_selected ⇒ device_selected em cada linha
- last_updated nunca retrocede
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, computed_field, model_validator

from lineflow.domain.enums import PlanSelectionMode, SimType
from lineflow.domain.errors import InvalidArgumentError

MAX_CONVERSATION_HISTORY = 10

# Campos que update() aceita em merge parcial
UPDATABLE_FIELDS = frozenset({
    "line_count",
    "flow_stage",
    "resume_step",
    "current_question",
    "last_intent",
    "last_action",
    "missing_prerequisites",
    "zip_code",
    "coverage_checked",
    "plan_selection_mode",
})

# Projeções de lines/line_count; nunca atribuíveis diretamente
DERIVED_FIELDS = frozenset({
    "plan_selected",
    "device_selected",
    "protection_selected",
    "sim_selected",
    "lines_configured",
})


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class Line(BaseModel):
    """Uma linha do pedido (line_number começa em 1)."""

    line_number: int = Field(ge=1)
    plan_selected: bool = False
    plan_id: str | None = None
    device_selected: bool = False
    device_id: str | None = None
    protection_selected: bool = False
    protection_id: str | None = None
    sim_type: SimType | None = None
    sim_iccid: str | None = None

    @model_validator(mode="after")
    def _protection_requires_device(self) -> Line:
        if self.protection_selected and not self.device_selected:
            raise ValueError(f"Line {self.line_number}: protection requires a device")
        return self

    @property
    def is_empty(self) -> bool:
        return not (
            self.plan_selected
            or self.device_selected
            or self.protection_selected
            or self.sim_type
        )

    def attach_plan(self, plan_id: str | None) -> None:
        self.plan_selected = True
        self.plan_id = plan_id
        if self.sim_type is None:
            self.sim_type = SimType.ESIM

    def detach_plan(self) -> None:
        self.plan_selected = False
        self.plan_id = None

    def attach_device(self, device_id: str | None) -> None:
        self.device_selected = True
        self.device_id = device_id

    def detach_device(self) -> None:
        """Remove o device e, junto, a proteção associada."""
        self.device_selected = False
        self.device_id = None
        self.detach_protection()

    def attach_protection(self, protection_id: str | None) -> None:
        if not self.device_selected:
            raise InvalidArgumentError(
                f"Line {self.line_number} has no device; protection requires a device"
            )
        self.protection_selected = True
        self.protection_id = protection_id

    def detach_protection(self) -> None:
        self.protection_selected = False
        self.protection_id = None

    def set_sim(self, sim_type: SimType | None, iccid: str | None = None) -> None:
        self.sim_type = sim_type
        self.sim_iccid = iccid if sim_type == SimType.PHYSICAL else None

    def describe(self) -> str:
        """Resumo curto ("Plan, Device, SIM") ou "Empty"."""
        parts: list[str] = []
        if self.plan_selected:
            parts.append("Plan")
        if self.device_selected:
            parts.append("Device")
        if self.protection_selected:
            parts.append("Protection")
        if self.sim_type:
            parts.append("SIM")
        return ", ".join(parts) if parts else "Empty"


class CurrentQuestion(BaseModel):
    """Pergunta pendente feita ao usuário."""

    type: str
    text: str
    expected_entities: list[str] = Field(default_factory=list)
    asked_at: datetime = Field(default_factory=_utcnow)


class HistoryEntry(BaseModel):
    """Entrada do histórico de conversa (FIFO, limite de 10)."""

    intent: str | None = None
    action: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)
    data: dict[str, Any] = Field(default_factory=dict)


class PurchaseSnapshot(BaseModel):
    """Último estado conhecido de um checkout desta sessão.

    Permite que uma consulta de status posterior retome pelo transaction_id.
    """

    state: str
    transaction_id: str | None = None
    client_account_id: str | None = None
    payment_url: str | None = None
    error: str | None = None
    updated_at: datetime = Field(default_factory=_utcnow)


class FlowContext(BaseModel):
    """Estado de configuração do pedido de uma sessão."""

    session_id: str = Field(min_length=1)
    line_count: int = Field(default=0, ge=0)
    lines: list[Line] = Field(default_factory=list)

    flow_stage: str = "initial"
    resume_step: str | None = None
    current_question: CurrentQuestion | None = None
    last_intent: str | None = None
    last_action: str | None = None
    conversation_history: list[HistoryEntry] = Field(default_factory=list)
    missing_prerequisites: list[str] = Field(default_factory=list)

    zip_code: str | None = None
    coverage_checked: bool = False
    plan_selection_mode: PlanSelectionMode = PlanSelectionMode.INITIAL

    last_purchase: PurchaseSnapshot | None = None

    created_at: datetime = Field(default_factory=_utcnow)
    last_updated: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _lines_match_count(self) -> FlowContext:
        if len(self.lines) != self.line_count:
            raise ValueError(
                f"lines ({len(self.lines)}) must match line_count ({self.line_count})"
            )
        for index, line in enumerate(self.lines):
            if line.line_number != index + 1:
                raise ValueError(f"line_number {line.line_number} at index {index}")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def plan_selected(self) -> bool:
        return any(line.plan_selected for line in self.lines)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def device_selected(self) -> bool:
        return any(line.device_selected for line in self.lines)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def protection_selected(self) -> bool:
        return any(line.protection_selected for line in self.lines)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def sim_selected(self) -> bool:
        return any(line.sim_type is not None for line in self.lines)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def lines_configured(self) -> bool:
        return self.line_count > 0

    @property
    def has_selections(self) -> bool:
        return any(not line.is_empty for line in self.lines)

    def clear_selections(self) -> None:
        """Esvazia todas as linhas mantendo line_count."""
        for line in self.lines:
            line.detach_device()
            line.detach_plan()
            line.set_sim(None)

    def line(self, line_number: int) -> Line:
        """Retorna a linha pelo número (1-based)."""
        if not 1 <= line_number <= self.line_count:
            raise InvalidArgumentError(
                f"Line {line_number} out of range (line_count={self.line_count})"
            )
        return self.lines[line_number - 1]

    def resize_lines(self, count: int) -> None:
        """Ajusta line_count e lines.

        Novas linhas entram em branco; encolher remove do fim.
        """
        if count < 0:
            raise InvalidArgumentError("line_count must be >= 0")
        if count < len(self.lines):
            del self.lines[count:]
        while len(self.lines) < count:
            self.lines.append(Line(line_number=len(self.lines) + 1))
        self.line_count = count

    def add_history(self, entry: HistoryEntry, limit: int = MAX_CONVERSATION_HISTORY) -> None:
        self.conversation_history.append(entry)
        overflow = len(self.conversation_history) - limit
        if overflow > 0:
            del self.conversation_history[:overflow]

    def touch(self) -> None:
        """Atualiza last_updated sem retroceder."""
        now = _utcnow()
        if now > self.last_updated:
            self.last_updated = now

    def global_flags(self) -> dict[str, Any]:
        return {
            "line_count": self.line_count,
            "lines_configured": self.lines_configured,
            "plan_selected": self.plan_selected,
            "device_selected": self.device_selected,
            "protection_selected": self.protection_selected,
            "sim_selected": self.sim_selected,
        }
