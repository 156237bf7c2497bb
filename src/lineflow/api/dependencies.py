"""Dependências injetadas nas rotas."""

from __future__ import annotations

from fastapi import Request

from lineflow.application.tools import FlowToolService
from lineflow.config.settings import Settings


def get_settings(request: Request) -> Settings:
    """Retorna settings da aplicação."""

    return request.app.state.settings


def get_tool_service(request: Request) -> FlowToolService:
    """Retorna o serviço de ferramentas do fluxo."""
    return request.app.state.tool_service
