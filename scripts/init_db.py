"""
Seed the first dataroom admin (idempotent).

Investors are invited from the admin UI and are never seeded here.

Usage:
  ADMIN_EMAIL=founder@example.com python scripts/init_db.py
"""
import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.dataroom.db import build_engine, make_sessionmaker
from app.dataroom.models import AdminUser


def seed_only(*, database_url: str | None = None) -> bool:
    """Create the ADMIN_EMAIL admin unless present. Returns True when a row was added."""
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@dataroom.local").strip().lower()
    admin_name = (os.environ.get("ADMIN_NAME") or "").strip() or None
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///dataroom.db").strip()

    engine = build_engine(db_url)
    s = make_sessionmaker(engine)()
    try:
        if s.query(AdminUser).filter(AdminUser.email == admin_email).one_or_none():
            print(f"Admin user already present: {admin_email}")
            return False
        s.add(AdminUser(email=admin_email, name=admin_name))
        s.commit()
        print(f"Created admin user: {admin_email}")
        return True
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()


def main() -> None:
    seed_only()


if __name__ == "__main__":
    main()
