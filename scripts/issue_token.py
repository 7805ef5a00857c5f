#!/usr/bin/env python
import argparse
import asyncio

from backend.app.db.session import SessionLocal
from backend.app.services.user_service import upsert_user
from backend.app.web.auth import ROLE_ADMIN, ROLE_USER, issue_token


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Issue an API bearer token")
    parser.add_argument("--user-id", type=int, required=True)
    parser.add_argument("--username", default=None)
    parser.add_argument("--role", choices=[ROLE_USER, ROLE_ADMIN], default=ROLE_USER)
    parser.add_argument(
        "--register",
        action="store_true",
        help="also create or refresh the user row",
    )
    return parser.parse_args()


async def main() -> None:
    args = parse_args()
    if args.register:
        async with SessionLocal() as session:
            await upsert_user(session, user_id=args.user_id, username=args.username)
            await session.commit()
    print(issue_token(args.user_id, role=args.role, username=args.username))


if __name__ == "__main__":
    asyncio.run(main())
