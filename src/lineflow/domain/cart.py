"""Cart: itens escolhidos por linha, alinhado por line_number ao FlowContext."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from lineflow.domain.enums import ItemType, SimType

DEFAULT_CART_TTL_SECONDS = 7200


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class CartItem(BaseModel):
    """Plano, device ou proteção vindos do catálogo."""

    model_config = ConfigDict(
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    id: str | None = None
    unique_identifier: str | None = None
    name: str | None = None
    display_name: str | None = None
    display_name_web: str | None = None
    service_code: str | None = None
    plan_type: str | None = None
    price: float = 0.0

    @field_validator("price", mode="before")
    @classmethod
    def _price_default(cls, value: object) -> object:
        return 0.0 if value is None else value

    @property
    def identifier(self) -> str | None:
        return self.id or self.unique_identifier


class CartLine(BaseModel):
    """Linha do carrinho (line_number 1-based)."""

    line_number: int = Field(ge=1)
    plan: CartItem | None = None
    device: CartItem | None = None
    protection: CartItem | None = None
    sim: SimType | None = None

    @property
    def subtotal(self) -> float:
        return sum(item.price for item in (self.plan, self.device, self.protection) if item)

    @property
    def is_empty(self) -> bool:
        return not (self.plan or self.device or self.protection or self.sim)

    def set_item(self, item_type: ItemType, item: CartItem | None) -> None:
        if item_type == ItemType.PLAN:
            self.plan = item
        elif item_type == ItemType.DEVICE:
            self.device = item
            if item is None:
                self.protection = None
        elif item_type == ItemType.PROTECTION:
            self.protection = item
        else:
            raise ValueError(f"Item type {item_type} is not stored as a cart item")


class Cart(BaseModel):
    """Carrinho da sessão com expiração lazy."""

    session_id: str = Field(min_length=1)
    lines: list[CartLine] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    expires_at: datetime = Field(
        default_factory=lambda: _utcnow() + timedelta(seconds=DEFAULT_CART_TTL_SECONDS)
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> float:
        return round(sum(line.subtotal for line in self.lines), 2)

    @classmethod
    def new(cls, session_id: str, ttl_seconds: int = DEFAULT_CART_TTL_SECONDS) -> Cart:
        now = _utcnow()
        return cls(
            session_id=session_id,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or _utcnow()) >= self.expires_at

    def refresh_expiry(self, ttl_seconds: int, now: datetime | None = None) -> None:
        """Desliza expires_at junto com o TTL do contexto da sessão."""
        self.expires_at = (now or _utcnow()) + timedelta(seconds=ttl_seconds)

    def get_line(self, line_number: int) -> CartLine | None:
        for line in self.lines:
            if line.line_number == line_number:
                return line
        return None

    def ensure_line(self, line_number: int) -> CartLine:
        """Retorna a linha, criando-a (em ordem) se ainda não existir."""
        line = self.get_line(line_number)
        if line is None:
            line = CartLine(line_number=line_number)
            self.lines.append(line)
            self.lines.sort(key=lambda item: item.line_number)
        return line

    def truncate(self, line_count: int) -> None:
        """Descarta linhas além de line_count (encolhimento do FlowContext)."""
        self.lines = [line for line in self.lines if line.line_number <= line_count]
