#!/usr/bin/env python3
"""Seed the database with a demo tenant profile and mailbox integration.

Usage:
    python scripts/seed_tenant.py TENANT_ID [REFRESH_TOKEN] [PROVIDER]
"""

import asyncio
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from flowdeploy_engine.common.config import get_settings
from flowdeploy_engine.common.database import DatabaseManager
from flowdeploy_engine.tenants.service import TenantService

DEMO_BUSINESS = {
    "business": {
        "name": "Hot Tub Man",
        "emailDomain": "hottubman.example",
        "phone": "+1 555 0100",
        "currency": "USD",
        "timezone": "America/Edmonton",
    },
    "contact": {"phone": "+1 555 0100"},
    "services": [
        {"name": "Spa Service Call", "pricingType": "fixed", "price": 125, "description": "On-site diagnosis"},
    ],
    "rules": {"tone": "Friendly and direct", "allowPricing": False},
}

DEMO_LABELS = {"URGENT": "Label_1", "SALES": "Label_2", "SUPPORT": "Label_3", "MISC": "Label_4"}


async def seed_tenant(tenant_id: str, refresh_token: str | None, provider: str) -> None:
    settings = get_settings()
    db = DatabaseManager(settings)
    await db.init()
    await db.create_all()

    svc = TenantService()

    async with db.get_session() as session:
        await svc.upsert_profile(
            session,
            tenant_id,
            business_config=DEMO_BUSINESS,
            business_types=["Pools & Spas"],
            managers=[{"name": "Jillian", "email": "jillian@hottubman.example"}],
            suppliers=[{"name": "Aqua Supply", "email": "orders@aquasupply.example"}],
            label_map=DEMO_LABELS,
            provider_in_use=provider,
        )
        print(f"  [profile] {tenant_id}")
        if refresh_token:
            await svc.upsert_integration(session, tenant_id, provider, refresh_token=refresh_token)
            print(f"  [integration] {provider}")

    await db.close()
    print("\nDone.")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)
    asyncio.run(
        seed_tenant(
            sys.argv[1],
            sys.argv[2] if len(sys.argv) > 2 else None,
            sys.argv[3] if len(sys.argv) > 3 else "gmail",
        )
    )
