"""Create a user in the configured DB.

Usage:
  python scripts/create_user.py --username alice --email alice@example.com --password '...' --role Writer

NOTE: This is intended for local/dev. The password policy is not enforced here.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from mangati_platform.auth.crud import create_user
from mangati_platform.auth.roles import ALL_ROLES
from mangati_platform.config import load_config
from mangati_platform.db import connect, init_db


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--username", required=True)
    ap.add_argument("--email", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--role", choices=list(ALL_ROLES), default="Viewer")
    args = ap.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN)

    with connect(cfg.DB_DSN) as conn:
        u = create_user(
            conn,
            username=args.username,
            email=args.email,
            password=args.password,
            role=args.role,
            enforce_policy=False,
        )

    print("Created user:")
    print(u)


if __name__ == "__main__":
    main()
