#!/usr/bin/env python3
"""
Seed script: creates an admin, two engineers (with logins) and a finance user,
plus one submitted request pending assignment to the first engineer.
Run after migrations: python scripts/seed.py
"""

import asyncio
import os
import sys
from uuid import uuid4

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from claimflow.config import settings
from claimflow.auth.middleware import hash_api_key
from claimflow.models import Engineer, UserProfile
from claimflow.storage.repositories import create_request


# Demo API keys - printed for the user
USERS = [
    ("admin@claimflow.local", "Claims Admin", "admin", "sk_demo_admin_12345"),
    ("thabo@claimflow.local", "Thabo Mokoena", "engineer", "sk_demo_engineer_1"),
    ("anika@claimflow.local", "Anika Pillay", "engineer", "sk_demo_engineer_2"),
    ("finance@claimflow.local", "Finance Desk", "read_only_finance", "sk_demo_finance_1"),
]


async def seed():
    engine = create_async_engine(settings.database_url)
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        engineers: list[Engineer] = []
        for email, name, role, api_key in USERS:
            result = await session.execute(
                select(UserProfile).where(UserProfile.email == email)
            )
            user = result.scalar_one_or_none()
            if user:
                print(f"User {email} already exists, skipping")
                continue
            user = UserProfile(
                id=str(uuid4()),
                email=email,
                full_name=name,
                role=role,
                api_key_hash=hash_api_key(api_key),
            )
            session.add(user)
            await session.flush()
            if role == "engineer":
                engineer = Engineer(id=str(uuid4()), name=name, email=email, auth_user_id=user.id)
                session.add(engineer)
                engineers.append(engineer)
            print(f"Created {role} {email} (API key: {api_key})")
        await session.flush()

        if engineers:
            request, assessment = await create_request(
                session,
                {
                    "type": "insurance",
                    "claim_number": "CLM-DEMO-001",
                    "owner_name": "J. Naidoo",
                    "vehicle_make": "Toyota",
                    "vehicle_model": "Corolla",
                    "vehicle_registration": "CA 123-456",
                    "description": "Rear-end collision, bumper and boot lid damage",
                    "assigned_engineer_id": engineers[0].id,
                },
            )
            print(f"Created request {request.request_number} / {assessment.assessment_number}")

        await session.commit()

    await engine.dispose()
    print("Seed complete")


if __name__ == "__main__":
    asyncio.run(seed())
