"""
Mint an access token for local testing.

Usage: python scripts/issue_token.py <subject> <ROLE> [employee_id]
"""
import sys
import os

sys.path.append(os.getcwd())

from leave_engine.schemas.auth import UserRole
from leave_engine.services.auth import create_access_token


def main(argv):
    if len(argv) < 3:
        print(__doc__.strip())
        return 1
    subject, role = argv[1], argv[2].upper()
    if role not in UserRole.__members__:
        print(f"Unknown role {role}. Choose one of: {', '.join(UserRole.__members__)}")
        return 1
    employee_id = argv[3] if len(argv) > 3 else None
    print(create_access_token(subject, role, employee_id=employee_id))
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
