# Supabase table: organizations
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

organizations:
- organization_id: uuid (primary key)
- organization_name: text (not null)
- description: text (nullable)
- user_id: uuid (owner, not null)
- company_id: uuid (nullable, foreign key to companies.company_id)
- template_id: uuid (nullable)
- metadata: jsonb (nullable)
- is_public: boolean (default: false)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
"""
