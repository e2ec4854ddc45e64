from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings
from database import get_db
from matching_engine import MatchingEngine
from notifications import NotificationRegistry, RegistryNotifier
from routing import RoutingService


def get_registry(request: Request) -> NotificationRegistry:
    return request.app.state.notifications


def get_notifier(registry: NotificationRegistry = Depends(get_registry)):
    return RegistryNotifier(registry)


def get_routing_service(request: Request) -> RoutingService:
    return request.app.state.routing


def get_engine(
    db: AsyncSession = Depends(get_db),
    routing: RoutingService = Depends(get_routing_service),
    notifier=Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> MatchingEngine:
    return MatchingEngine(db, routing, notifier, settings=settings)
