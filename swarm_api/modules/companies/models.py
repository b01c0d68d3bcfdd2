# Supabase tables: companies, user_companies
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

companies:
- company_id: uuid (primary key)
- name: text (not null, unique)
- statutory_name: text (nullable)
- description: text (nullable)
- email: text (nullable)
- website: text (nullable)
- logo_url: text (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

user_companies:
- user_id: uuid (references auth.users.id, not null)
- company_id: uuid (foreign key to companies.company_id, not null, on delete cascade)
- role_id: uuid (foreign key to roles.role_id, not null)
- created_at: timestamp (default: now())
- unique constraint on (user_id, company_id)

A company must always keep at least one member whose role is
admin-equivalent (roles.role_name in ADMIN_ROLE_NAMES, default
admin, owner, company_admin).
"""
