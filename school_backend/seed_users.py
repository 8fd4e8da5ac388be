"""
Database seeding script for initial staff accounts.

Creates the first ADMIN (and optionally an ACCOUNTANT). Registration is
ADMIN only, so a fresh database needs this before anyone can sign in.

    python -m school_backend.seed_users --email admin@school.edu.pk --password 'Secret123'
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from school_backend.app.core.security import get_password_hash, is_strong_password
from school_backend.app.db.session import AsyncSessionLocal, Base, engine
from school_backend.app.main import app  # noqa: F401  registers every model with Base
from school_backend.app.models.enums import UserRole
from school_backend.app.models.user import User


async def ensure_user(db, email: str, password: str, role: UserRole) -> bool:
    """Create the account unless the email is taken. Returns True when created."""
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        print(f"ℹ️  {email} already exists, skipping")
        return False
    
    db.add(User(email=email, hashed_password=get_password_hash(password), role=role, is_active=True))
    print(f"✅ Created {role.value} user {email}")
    return True


async def seed_users(admin_email: str, admin_password: str, accountant_email: str = None, accountant_password: str = None):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    async with AsyncSessionLocal() as db:
        print("🌱 Starting user seeding...")
        created = await ensure_user(db, admin_email, admin_password, UserRole.ADMIN)
        if accountant_email:
            created = await ensure_user(db, accountant_email, accountant_password, UserRole.ACCOUNTANT) or created
        await db.commit()
    
    await engine.dispose()
    print("\n🎉 User seeding completed!" if created else "\nNothing to seed.")


def main():
    parser = argparse.ArgumentParser(description="Seed the first staff accounts")
    parser.add_argument("--email", required=True, help="ADMIN email")
    parser.add_argument("--password", required=True, help="ADMIN password")
    parser.add_argument("--accountant-email")
    parser.add_argument("--accountant-password")
    args = parser.parse_args()
    
    passwords = [args.password] + ([args.accountant_password] if args.accountant_email else [])
    if not all(p and is_strong_password(p) for p in passwords):
        parser.error("passwords need 8+ characters with an uppercase letter, a lowercase letter and a digit")
    
    asyncio.run(seed_users(args.email, args.password, args.accountant_email, args.accountant_password))


if __name__ == "__main__":
    main()
