"""Management CLI.

Usage:
    python -m orthoplan.cli seed            # Upsert applications, permissions, ADMIN role
    python -m orthoplan.cli list-tenants    # Show all tenants
"""

import sys

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from orthoplan.config import settings
from orthoplan.models.tenant import Tenant
from orthoplan.services.catalog import seed_catalog


def seed():
    engine = create_engine(settings.database_url_sync)
    with Session(engine) as session:
        counts = seed_catalog(session)
        session.commit()
    print(
        f"  Seeded {counts['applications']} application(s), "
        f"{counts['permissions']} permission(s), {counts['roles']} role(s)"
    )


def list_tenants():
    engine = create_engine(settings.database_url_sync)
    with Session(engine) as session:
        tenants = session.execute(select(Tenant).order_by(Tenant.created_at)).scalars().all()
        for t in tenants:
            print(f"  {t.id}  {t.name}")
    print(f"\n{len(tenants)} tenant(s)")


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "seed":
        seed()
    elif cmd == "list-tenants":
        list_tenants()
    else:
        print("Usage: python -m orthoplan.cli [seed|list-tenants]")
