#!/usr/bin/env python3
############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# seed_dev_data.py: Seed database with development test data
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Seed development data for the LAB Chain directory."""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.db import crud
from backend.app.db.models import NodeStatus, RpcEndpointType
from backend.app.db.session import Database
from backend.app.services.accounts import AccountService
from backend.app.settings import get_settings

RPC_ENDPOINTS = [
    {"name": "LAB Chain Official", "endpoint": "https://rpc.labchain.la",
     "type": RpcEndpointType.OFFICIAL, "location": "Vientiane, LA", "features": "http,ws"},
    {"name": "Luang Prabang Community", "endpoint": "https://rpc.lpq.example",
     "type": RpcEndpointType.COMMUNITY, "location": "Luang Prabang, LA"},
]

BOOT_NODES = [
    {"name": "Vientiane Boot 1",
     "enode": "enode://3f1d12044546b76342d59d4a05532c14b85aa669704bfe1f864fe079415aa2c0"
              "2d743e03218e57a33fb94523adb54032871a6c51b2cc5514cb7c7e35b3ed0a99@10.10.0.2:30303",
     "location": "Vientiane, LA", "peers": 24},
]

BEACON_NODES = [
    {"name": "Vientiane Beacon", "enr": "enr:-Iu4QLm7bZGdAOTR1HZ5EvWUjVjhPPW8n9g4Ku4F",
     "endpoint": "http://10.10.0.3:5052", "location": "Vientiane, LA",
     "status": NodeStatus.SYNCING},
]


async def seed_admin(accounts: AccountService) -> None:
    """Create the first admin account if none exists."""
    if not await accounts.is_first_time_setup():
        print("Admin account already exists, skipping...")
        return
    result = await accounts.bootstrap_admin("admin", "admin12345")
    if not result.success:
        print(f"Could not create admin: {result.error}")
        return
    print(f"Created admin: {result.user.username}")


async def seed_directory(database: Database) -> None:
    """Create sample directory listings, skipping ones already present."""
    async with database.session() as db:
        for data in RPC_ENDPOINTS:
            if await crud.get_rpc_endpoint_by_url(db, data["endpoint"]):
                print(f"  RPC endpoint '{data['name']}' already exists, skipping...")
                continue
            await crud.create_rpc_endpoint(db, **data)
            print(f"  Created RPC endpoint: {data['name']}")

        for data in BOOT_NODES:
            if await crud.get_boot_node_by_enode(db, data["enode"]):
                print(f"  Boot node '{data['name']}' already exists, skipping...")
                continue
            await crud.create_boot_node(db, **data)
            print(f"  Created boot node: {data['name']}")

        for data in BEACON_NODES:
            if await crud.get_beacon_node_by_address(db, data["enr"]):
                print(f"  Beacon node '{data['name']}' already exists, skipping...")
                continue
            await crud.create_beacon_node(db, **data)
            print(f"  Created beacon node: {data['name']}")

        await db.commit()


async def main():
    """Main entry point."""
    print("=" * 60)
    print("LAB Chain Directory Development Data Seeder")
    print("=" * 60)
    print()

    settings = get_settings()
    database = Database.from_settings(settings)
    try:
        await database.create_all()

        print("Creating admin...")
        await seed_admin(AccountService(database, settings.password_min_length))

        print()
        print("Creating directory listings...")
        await seed_directory(database)
    finally:
        await database.dispose()

    print()
    print("=" * 60)
    print("Seeding complete!")
    print()
    print("Default credentials:")
    print("  admin / admin12345")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
