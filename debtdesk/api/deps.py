"""Request-scoped dependencies: gateway, caller identity and services."""

from typing import Optional

from fastapi import Depends, Header, Request, WebSocket

from ..core.context import ANONYMOUS, UserContext
from ..db.gateway import DataGateway
from ..models.schemas import Role
from ..services.action_service import ActionService
from ..services.case_query import CaseQueryService
from ..services.case_service import CaseService
from ..services.chat_service import ChatService
from ..services.error_handling import ValidationError


def get_gateway(request: Request) -> DataGateway:
    return request.app.state.gateway


def _parse_role(value: Optional[str]) -> Optional[Role]:
    if not value:
        return None
    try:
        return Role(value.upper())
    except ValueError:
        raise ValidationError(f"Unknown role: {value}", f"Unknown role: {value}")


async def resolve_user_context(
    gateway: DataGateway,
    user_id: Optional[str],
    email: Optional[str],
    role: Optional[str],
    client_id: Optional[str],
    name: Optional[str],
) -> UserContext:
    """Identity from upstream auth headers, else from the gateway session."""
    parsed_role = _parse_role(role)
    if user_id:
        return UserContext(
            user_id=user_id,
            role=parsed_role or Role.CLIENT,
            email=email,
            client_id=client_id,
            display_name=name,
        )

    current = await gateway.get_current_user()
    if current is None:
        return ANONYMOUS
    return UserContext(
        user_id=current.id,
        role=parsed_role or Role.AGENT,
        email=current.email,
        client_id=client_id,
        display_name=name,
    )


async def get_user_context(
    gateway: DataGateway = Depends(get_gateway),
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_client_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
) -> UserContext:
    return await resolve_user_context(
        gateway, x_user_id, x_user_email, x_user_role, x_client_id, x_user_name
    )


async def get_ws_user_context(websocket: WebSocket) -> UserContext:
    """Same as ``get_user_context``; browsers cannot set headers, so query params are accepted."""
    def pick(header: str, param: str) -> Optional[str]:
        return websocket.headers.get(header) or websocket.query_params.get(param)

    return await resolve_user_context(
        websocket.app.state.gateway,
        pick("x-user-id", "user_id"),
        pick("x-user-email", "email"),
        pick("x-user-role", "role"),
        pick("x-client-id", "client_id"),
        pick("x-user-name", "name"),
    )


def get_case_query_service(gateway: DataGateway = Depends(get_gateway)) -> CaseQueryService:
    return CaseQueryService(gateway)


def get_case_service(gateway: DataGateway = Depends(get_gateway)) -> CaseService:
    return CaseService(gateway)


def get_action_service(gateway: DataGateway = Depends(get_gateway)) -> ActionService:
    return ActionService(gateway)


def get_chat_service(gateway: DataGateway = Depends(get_gateway)) -> ChatService:
    return ChatService(gateway)
