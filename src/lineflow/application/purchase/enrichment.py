"""Enriquecimento dos planos do carrinho com dados canônicos do catálogo.

A API de compra exige o nome de exibição exato do plano; o carrinho pode
ter apenas id/uniqueIdentifier. Falha no catálogo não bloqueia o checkout:
o carrinho segue como veio.
"""

from __future__ import annotations

import logging
from typing import Any

from lineflow.domain.cart import Cart, CartItem
from lineflow.domain.errors import CarrierError
from lineflow.domain.protocols.plan_catalog import PlanCatalogProtocol
from lineflow.infra.http import HttpError
from lineflow.observability.logging import get_logger, mask_id

logger: logging.Logger = get_logger(__name__)


def build_plan_map(plans: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    """Indexa planos por id e por uniqueIdentifier."""
    plan_map: dict[str, dict[str, Any]] = {}
    for plan in plans:
        key = plan.get("id") or plan.get("uniqueIdentifier")
        if key:
            plan_map[str(key)] = plan
        unique = plan.get("uniqueIdentifier")
        if unique and unique != key:
            plan_map[str(unique)] = plan
    return plan_map


def enrich_plan(item: CartItem, plan: dict[str, Any]) -> CartItem:
    canonical_name = plan.get("displayName") or plan.get("displayNameWeb") or plan.get("name")
    return item.model_copy(
        update={
            "display_name": plan.get("displayName") or item.display_name,
            "display_name_web": plan.get("displayNameWeb") or item.display_name_web,
            "name": canonical_name or item.name,
            "service_code": plan.get("serviceCode") or item.service_code,
            "plan_type": plan.get("planType") or item.plan_type,
        }
    )


async def enrich_cart_plans(cart: Cart, catalog: PlanCatalogProtocol) -> Cart:
    """Retorna cópia do carrinho com os planos enriquecidos."""
    try:
        plans = await catalog.list_plans()
    except (HttpError, CarrierError) as e:
        logger.error(
            "Falha ao enriquecer carrinho com catálogo de planos",
            extra={"session_id": mask_id(cart.session_id), "error": type(e).__name__},
        )
        return cart

    plan_map = build_plan_map(plans)
    enriched = cart.model_copy(deep=True)
    matched = 0
    for line in enriched.lines:
        if line.plan is None:
            continue
        plan = plan_map.get(line.plan.identifier or "")
        if plan is None:
            logger.warning(
                "Plano do carrinho não encontrado no catálogo",
                extra={"line_number": line.line_number, "catalog_size": len(plan_map)},
            )
            continue
        line.plan = enrich_plan(line.plan, plan)
        matched += 1

    logger.info(
        "Carrinho enriquecido com catálogo",
        extra={
            "session_id": mask_id(cart.session_id),
            "line_count": len(enriched.lines),
            "enriched": matched,
        },
    )
    return enriched
