"""Enums de domínio: SIM, gates, itens de linha, intenções e status da operadora."""

from __future__ import annotations

from enum import StrEnum


class SimType(StrEnum):
    """Tipo de SIM por linha."""

    ESIM = "ESIM"
    PHYSICAL = "PHYSICAL"


class GateCode(StrEnum):
    """Código do gate de pré-requisitos (ordem de prioridade no checkout)."""

    OK = "OK"
    NEED_LINES = "NEED_LINES"
    NEED_PLANS = "NEED_PLANS"
    NEED_SIM = "NEED_SIM"
    NEED_DEVICE = "NEED_DEVICE"
    OTHER = "OTHER"


class GateAction(StrEnum):
    """Ações avaliadas pelo gate."""

    CHECKOUT = "checkout"
    ADD_DEVICE = "add_device"
    ADD_PROTECTION = "add_protection"
    SELECT_SIM = "select_sim"


class ItemType(StrEnum):
    """Itens que podem ser atribuídos a uma linha."""

    PLAN = "plan"
    DEVICE = "device"
    PROTECTION = "protection"
    SIM = "sim"


class Intent(StrEnum):
    """Intenções produzidas pelo classificador externo."""

    COVERAGE = "coverage"
    PLAN = "plan"
    DEVICE = "device"
    PROTECTION = "protection"
    SIM = "sim"
    CHECKOUT = "checkout"
    EDIT = "edit"
    LINE_COUNT = "line_count"
    OTHER = "other"


class FlowStep(StrEnum):
    """Etapas do fluxo de montagem do pedido."""

    LINE_COUNT = "line_count"
    PLAN_SELECTION = "plan_selection"
    DEVICE_SELECTION = "device_selection"
    PROTECTION_SELECTION = "protection_selection"
    SIM_SELECTION = "sim_selection"
    CHECKOUT = "checkout"


class PlanSelectionMode(StrEnum):
    """Como o usuário escolhe planos para múltiplas linhas."""

    INITIAL = "initial"
    APPLY_ALL = "apply_all"
    SEQUENTIAL = "sequential"


class PaymentStatus(StrEnum):
    """paymentStatus retornado pelo endpoint de status."""

    SUCCESS = "SUCCESS"
    APPROVED = "APPROVED"
    PENDING = "PENDING"
    FAILED = "FAILED"


class OrderStatus(StrEnum):
    """status do pedido retornado pelo endpoint de status."""

    DONE = "DONE"
    FAILED = "FAILED"
    PENDING = "PENDING"


API_STATUS_SUCCESS = "SUCCESS"
