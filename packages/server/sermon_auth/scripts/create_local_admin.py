"""
Script to create an initial organization administrator for local testing.

    python -m sermon_auth.scripts.create_local_admin --email admin@example.com --password ...
"""

import argparse
import asyncio
from datetime import datetime, timezone

from sqlmodel import select

from sermon_auth.core.credentials import hash_password, validate_password_strength
from sermon_auth.core.database import get_session_context, init_db
from sermon_auth.models.membership import Membership
from sermon_auth.models.organization import Organization
from sermon_auth.models.user import User
from sermon_auth_shared.schemas.common import Role


async def create_admin(email: str, password: str, org_slug: str, org_name: str) -> None:
    validate_password_strength(password)
    email = email.strip().lower()
    await init_db()

    async with get_session_context() as session:
        # 1. Ensure the organization exists
        result = await session.execute(select(Organization).where(Organization.slug == org_slug))
        org = result.scalar_one_or_none()
        if not org:
            org = Organization(name=org_name, slug=org_slug)
            session.add(org)
            print(f"Created organization '{org_slug}'.")

        # 2. Ensure the user exists with a verified email
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if not user:
            user = User(
                email=email,
                first_name=email.split("@")[0],
                password_hash=hash_password(password),
                is_email_verified=True,
            )
            session.add(user)
            print(f"Created user: {email}")
        else:
            print(f"User {email} already exists.")

        await session.flush()

        # 3. Ensure an active admin membership
        membership = await session.get(Membership, (user.id, org.id))
        if not membership:
            session.add(
                Membership(
                    user_id=user.id,
                    organization_id=org.id,
                    role=Role.ORGANIZATION_ADMIN.value,
                    is_active=True,
                    invitation_accepted_at=datetime.now(timezone.utc),
                )
            )
            print(f"Added {email} as OrganizationAdmin of '{org_slug}'.")

    print("Done.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a local organization admin.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--password", required=True, help="Password for the user")
    parser.add_argument("--org-slug", default="default", help="Organization slug")
    parser.add_argument("--org-name", default="Default Organization", help="Organization name")

    args = parser.parse_args()

    asyncio.run(create_admin(args.email, args.password, args.org_slug, args.org_name))
