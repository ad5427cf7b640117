"""Dependency injection for FastAPI endpoints"""

from fastapi import Request

from tanda_engine.container import Engine
from tanda_engine.services.orchestrator import TandaOrchestrator


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_engine(request: Request) -> Engine:
    """Engine built by the application lifespan"""
    return request.app.state.engine


def get_orchestrator(request: Request) -> TandaOrchestrator:
    return get_engine(request).orchestrator
