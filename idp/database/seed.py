"""
Demo clients and users for local development and tests.
"""

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from idp.config import settings
from idp.oauth.schemas import OAuthClient
from idp.user.schemas import User
from idp.user.service import create_local_user

DEMO_USERS = [
    {"email": "demo@example.com", "password": "password123", "name": "John Doe", "role": "user"},
    {"email": "admin@example.com", "password": "admin123", "name": "Admin User", "role": "admin"},
]


def demo_clients() -> list:
    clients = [
        {
            "client_id": "app-a",
            "client_secret": "app-a-secret",
            "name": "TaskFlow",
            "redirect_uris": ["http://localhost:3001/callback"],
            "extra_url": settings.app_a_url,
        },
        {
            "client_id": "app-b",
            "client_secret": "app-b-secret",
            "name": "DocVault",
            "redirect_uris": ["http://localhost:3002/callback"],
            "extra_url": settings.app_b_url,
        },
    ]
    for client in clients:
        extra_url = client.pop("extra_url")
        if extra_url:
            client["redirect_uris"].append(f"{extra_url.rstrip('/')}/callback")
    return clients


async def seed_demo_data(db: AsyncSession) -> None:
    """
    Insert the demo clients and users that are not present yet.
    """
    for client in demo_clients():
        existing = (
            await db.execute(
                select(OAuthClient).where(OAuthClient.client_id == client["client_id"])
            )
        ).scalar_one_or_none()
        if existing:
            existing.redirect_uris = client["redirect_uris"]
            continue
        db.add(OAuthClient.create(**client))
        logger.info(f"Seeded OAuth client {client['client_id']}")

    for user in DEMO_USERS:
        existing = (
            await db.execute(select(User).where(User.email == user["email"]))
        ).scalar_one_or_none()
        if existing:
            continue
        await create_local_user(db, **user)
        logger.info(f"Seeded user {user['email']}")
    await db.flush()
