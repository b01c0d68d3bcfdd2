"""
Seed Permissions and Roles Script
This script populates the function_permissions, roles and
role_function_permissions tables using the config.
Can be run manually or as part of a nightly job.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from swarm_api.config.permissions_config import PERMISSION_MATRIX
from swarm_api.database.supabase_client import get_service_supabase
from supabase import Client
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def seed_permissions(supabase: Client):
    """Seed function permissions from config"""
    logger.info("Seeding permissions...")

    permissions = PERMISSION_MATRIX["permissions"]
    created_count = 0
    updated_count = 0
    failed = []

    for perm in permissions:
        try:
            existing = supabase.table("function_permissions")\
                .select("permission_id")\
                .eq("function_name", perm["name"])\
                .execute()

            if existing.data:
                supabase.table("function_permissions")\
                    .update({"description": perm["description"]})\
                    .eq("function_name", perm["name"])\
                    .execute()
                updated_count += 1
                logger.debug(f"Updated permission: {perm['name']}")
            else:
                supabase.table("function_permissions").insert({
                    "function_name": perm["name"],
                    "description": perm["description"]
                }).execute()
                created_count += 1
                logger.debug(f"Created permission: {perm['name']}")
        except Exception as e:
            logger.error(f"Error processing permission {perm['name']}: {e}")
            failed.append(perm["name"])

    logger.info(f"Permissions seeded: {created_count} created, {updated_count} updated, {len(failed)} failed")
    return created_count + updated_count, failed


def seed_roles(supabase: Client):
    """Seed roles from config and sync their permission links"""
    logger.info("Seeding roles...")

    roles = PERMISSION_MATRIX["roles"]
    created_count = 0
    updated_count = 0
    failed = []

    for role in roles:
        try:
            existing = supabase.table("roles")\
                .select("role_id")\
                .eq("role_name", role["name"])\
                .execute()

            if existing.data:
                supabase.table("roles")\
                    .update({"description": role["description"]})\
                    .eq("role_name", role["name"])\
                    .execute()
                role_id = existing.data[0]["role_id"]
                updated_count += 1
                logger.debug(f"Updated role: {role['name']}")
            else:
                result = supabase.table("roles").insert({
                    "role_name": role["name"],
                    "description": role["description"]
                }).execute()
                role_id = result.data[0]["role_id"]
                created_count += 1
                logger.debug(f"Created role: {role['name']}")

            sync_role_permissions(supabase, role_id, role["name"], role["permissions"])

        except Exception as e:
            logger.error(f"Error processing role {role['name']}: {e}")
            failed.append(role["name"])

    logger.info(f"Roles seeded: {created_count} created, {updated_count} updated, {len(failed)} failed")
    return created_count + updated_count, failed


def sync_role_permissions(supabase: Client, role_id: str, role_name: str, permission_names: list):
    """Make the role's permission links match the config exactly"""
    permission_result = supabase.table("function_permissions")\
        .select("permission_id")\
        .in_("function_name", permission_names)\
        .execute()

    if not permission_result.data:
        logger.warning(f"No permissions found for role {role_name}")
        return

    permission_ids = [p["permission_id"] for p in permission_result.data]

    existing_result = supabase.table("role_function_permissions")\
        .select("permission_id")\
        .eq("role_id", role_id)\
        .execute()

    existing_permission_ids = {p["permission_id"] for p in existing_result.data} if existing_result.data else set()

    new_links = [
        {"role_id": role_id, "permission_id": pid}
        for pid in permission_ids
        if pid not in existing_permission_ids
    ]

    if new_links:
        supabase.table("role_function_permissions").insert(new_links).execute()
        logger.debug(f"Linked {len(new_links)} permissions to role {role_name}")

    # Remove permissions that are no longer in the config
    permissions_to_remove = existing_permission_ids - set(permission_ids)
    if permissions_to_remove:
        supabase.table("role_function_permissions")\
            .delete()\
            .eq("role_id", role_id)\
            .in_("permission_id", list(permissions_to_remove))\
            .execute()
        logger.debug(f"Unlinked {len(permissions_to_remove)} permissions from role {role_name}")


def main():
    """Main function to seed permissions and roles"""
    supabase = get_service_supabase()

    logger.info("Starting permissions and roles seeding...")

    # Permissions first; roles link to them
    perm_count, failed_permissions = seed_permissions(supabase)
    role_count, failed_roles = seed_roles(supabase)

    logger.info(f"Total: {perm_count} permissions, {role_count} roles processed")
    if failed_permissions or failed_roles:
        logger.error(f"Seeding finished with failures: {failed_permissions + failed_roles}")
        sys.exit(1)
    logger.info("Seeding completed successfully!")


if __name__ == "__main__":
    main()
