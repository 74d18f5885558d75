from datetime import datetime, timedelta, timezone

import pytest

from debtdesk.core.context import UserContext
from debtdesk.db import InMemoryGateway
from debtdesk.models.schemas import Role

BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def case_row(
    i: int,
    amount: float = 100.0,
    client_id: str = "client-1",
    agent_id: str = "agent-1",
    status: str = "new",
    name: str = None,
    email: str = None,
    reference: str = None,
) -> dict:
    return {
        "id": f"case-{i}",
        "reference": reference or f"INV-{i:04d}",
        "debtor_name": name or f"Debtor {i}",
        "debtor_email": email or f"debtor{i}@example.com",
        "total_amount": amount,
        "currency_code": "EUR",
        "status": status,
        "client_id": client_id,
        "assigned_agent_id": agent_id,
        "created_at": (BASE_TIME + timedelta(hours=i)).isoformat(),
        "updated_at": (BASE_TIME + timedelta(hours=i, minutes=30)).isoformat(),
    }


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def agent():
    return UserContext(user_id="agent-1", role=Role.AGENT, email="agent1@debtdesk.example", display_name="Alice Agent")


@pytest.fixture
def other_agent():
    return UserContext(user_id="agent-2", role=Role.AGENT, email="agent2@debtdesk.example", display_name="Bob Agent")


@pytest.fixture
def client_user():
    return UserContext(user_id="user-c1", role=Role.CLIENT, email="ap@client.example", client_id="client-1")


@pytest.fixture
def admin():
    return UserContext(user_id="admin-1", role=Role.ADMIN, email="admin@debtdesk.example")
