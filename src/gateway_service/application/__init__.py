"""Application layer - services and use cases."""

from gateway_service.application.services import (
    AuthorizeCommand,
    GatewayService,
    TransactionCommand,
)
from gateway_service.application.unit_of_work import UnitOfWork


__all__ = [
    "AuthorizeCommand",
    "GatewayService",
    "TransactionCommand",
    "UnitOfWork",
]
