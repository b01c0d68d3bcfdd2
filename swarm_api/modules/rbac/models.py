# Supabase tables: roles, function_permissions, role_function_permissions
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

roles:
- role_id: uuid (primary key)
- role_name: text (not null, unique) - e.g., "admin", "company_admin", "user"
- description: text (nullable)
- created_at: timestamp (default: now())

function_permissions:
- permission_id: uuid (primary key)
- function_name: text (not null, unique) - "<resource>:<action>", e.g. "agent:update"
- description: text (nullable)
- created_at: timestamp (default: now())

role_function_permissions:
- id: uuid (primary key)
- role_id: uuid (foreign key to roles.role_id, not null)
- permission_id: uuid (foreign key to function_permissions.permission_id, not null)
- unique constraint on (role_id, permission_id)

A user holds a named permission when any role they hold in any company
(user_companies.role_id) is linked to it.
"""
