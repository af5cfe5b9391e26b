from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from pbac.features.users.auth import create_access_token
from pbac.features.users.models import User


async def make_user(db: AsyncSession, email: str, **fields) -> User:
    user = User(email=email, name=fields.pop("name", email.split("@")[0]), **fields)
    db.add(user)
    await db.commit()
    return user


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
