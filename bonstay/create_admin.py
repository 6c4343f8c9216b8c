"""One-time script to create the schema and an admin account.

Usage:
    python -m bonstay.create_admin
"""

from __future__ import annotations

import getpass

from sqlalchemy import func

from bonstay.app.core.database import Base, SessionLocal, engine
from bonstay.app.core.security import get_password_hash

# Import all models so every table is registered on Base.metadata
from bonstay.app.models.lockout import Account, RoleEnum
from bonstay.app.services.accounts import clear_lockout, create_account


def main() -> None:
    Base.metadata.create_all(bind=engine)

    username = input("Username [admin]: ").strip() or "admin"
    password = getpass.getpass("Password: ")
    if not password:
        print("Error: password cannot be empty.")
        return

    db = SessionLocal()
    try:
        existing = db.query(Account).filter(
            func.lower(Account.username) == username.lower()
        ).first()
        if existing:
            # Reset password, unlock, activate, and ensure the admin role
            existing.hashed_password = get_password_hash(password)
            existing.is_active = True
            existing.role = RoleEnum.ADMIN
            clear_lockout(db, existing)
            db.commit()
            print("Admin account already exists: password reset and unlocked!")
            print(f"  ID:       {existing.id}")
            print(f"  Username: {username}")
            return

        account = create_account(
            db, username=username, password=password, role=RoleEnum.ADMIN
        )
        db.commit()
        db.refresh(account)

        print("Admin account created successfully!")
        print(f"  ID:       {account.id}")
        print(f"  Username: {username}")
        print("  Role:     ADMIN")
    finally:
        db.close()


if __name__ == "__main__":
    main()
