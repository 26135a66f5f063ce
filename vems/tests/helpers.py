"""Shared helpers for the API tests."""

from vems.app.core.security import get_password_hash
from vems.app.models.user import User
from vems.app.models.enums import UserType
from vems.app.services.permissions import sync_user_roles

ADMIN_PASSWORD = "adminpass123"
EMPLOYEE_PASSWORD = "employeepass123"


async def create_user(db, role_ids, role_name=None, **fields):
    """Insert a user directly, optionally with one role."""
    password = fields.pop("password", "password123")
    fields.setdefault("user_type", UserType.EMPLOYEE)
    user = User(hashed_password=get_password_hash(password), **fields)
    db.add(user)
    await db.flush()
    if role_name:
        await sync_user_roles(db, user.id, [role_ids[role_name]])
    await db.commit()
    await db.refresh(user)
    return user


async def login(client, username, password) -> dict:
    """Log in through the API and return the Authorization header."""
    response = await client.post("/v1/auth/login", json={"login": username, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
