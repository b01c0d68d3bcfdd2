# Supabase table: agents
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

agents:
- agent_id: uuid (primary key)
- user_id: uuid (owner, references auth.users.id)
- company_id: uuid (nullable, foreign key to companies.company_id)
- agent_name: text (not null)
- description: text (nullable)
- route_path: text (nullable, unique) - e.g., "/api/agents/support-bot"
- agent_style: text (nullable)
- on_status: boolean (nullable)
- is_public: boolean (default: false)
- avatar_url: text (nullable)
- category_id: uuid (nullable)
- template_id: uuid (nullable)
- use_memory: boolean (nullable)
- use_tool: boolean (nullable)
- media_input: text[] (nullable)
- media_output: text[] (nullable)
- model_default: text (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
"""
