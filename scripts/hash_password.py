#!/usr/bin/env python3
"""
Print a bcrypt hash for manually repairing an account password.

Usage:
    python scripts/hash_password.py

Paste the output into the users.password column, for example:
    UPDATE users SET password = '<hash>', failed_login_attempts = 0,
        locked_until = NULL WHERE username = 'admin';
"""

import getpass

from volunteer_media.api.auth.jwt_handler import jwt_handler

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 72


def main():
    print("=" * 60)
    print("Volunteer Media - Password Hash Generator")
    print("=" * 60)
    print()

    password = getpass.getpass("Enter password to hash: ")
    confirm = getpass.getpass("Confirm password: ")

    if password != confirm:
        print("\nError: Passwords do not match!")
        return 1

    if not MIN_PASSWORD_LENGTH <= len(password) <= MAX_PASSWORD_LENGTH:
        print(f"\nError: Password must be {MIN_PASSWORD_LENGTH}-{MAX_PASSWORD_LENGTH} characters long!")
        return 1

    hashed = jwt_handler.hash_password(password)

    print()
    print(hashed)
    print()
    print("Store this in users.password and clear the lockout columns.")
    return 0


if __name__ == "__main__":
    exit(main())
