#!/usr/bin/env python3
"""
Script to create a new user interactively.

Usage:
    python scripts/create_user.py

    # Or with email as argument:
    python scripts/create_user.py admin@example.com --admin --verified

Uses the storage configured by STORAGE_BACKEND / DATABASE_PATH (.env is read).
"""

import argparse
import getpass
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from identity.auth import normalize_email, is_strong_password
from identity.errors import AuthError
from identity.services import ServiceContext


def main():
    parser = argparse.ArgumentParser(description="Create a new user")
    parser.add_argument("email", nargs="?", help="Email address")
    parser.add_argument("--phone", "-p", help="Phone number (e.g., +5511999999999)")
    parser.add_argument("--first-name", help="User's first name")
    parser.add_argument("--last-name", help="User's last name")
    parser.add_argument("--admin", action="store_true", help="Create the user with the admin role")
    parser.add_argument("--verified", action="store_true", help="Mark email (and phone) as verified")
    args = parser.parse_args()

    context = ServiceContext.create()

    # Get email
    email = args.email
    if not email:
        email = input("Email: ").strip()

    normalized = normalize_email(email or "")
    if not normalized:
        print(f"❌ Invalid email address: {email}")
        sys.exit(1)

    # Check if user already exists
    existing = context.find_user(normalized)
    if existing:
        print(f"❌ User with email {normalized} already exists!")
        print(f"   User ID: {existing.user_id}")
        sys.exit(1)

    # Get password
    password = getpass.getpass("Enter password: ")
    confirm = getpass.getpass("Confirm password: ")

    if password != confirm:
        print("❌ Passwords do not match!")
        sys.exit(1)

    if not is_strong_password(password):
        print("❌ Password must be 8 to 72 bytes with upper-case, lower-case and a digit!")
        sys.exit(1)

    # Create user
    try:
        user = context.create_user(
            email=normalized,
            password=password,
            phone=args.phone,
            first_name=args.first_name,
            last_name=args.last_name,
            admin=args.admin,
            verified=args.verified
        )
        print()
        print("✅ User created successfully!")
        print(f"   Email: {user.email}")
        print(f"   User ID: {user.user_id}")
        print(f"   Role: {user.role}")
        if user.phone:
            print(f"   Phone: {user.phone}")
        print(f"   Verified: {'Yes' if user.email_verified else 'No'}")
    except AuthError as e:
        print(f"❌ Failed to create user: {e.message}")
        sys.exit(1)
    finally:
        context.close()


if __name__ == "__main__":
    main()
