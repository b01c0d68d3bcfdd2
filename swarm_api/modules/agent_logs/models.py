# Supabase table: agent_logs
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

agent_logs:
- agent_log_id: uuid (primary key)
- agent_id: uuid (foreign key to agents.agent_id, not null, on delete cascade)
- user_id: uuid (nullable) - end user the log line was produced for
- message: text (not null)
- log_type: text (default: 'info') - info | warning | error | debug | conversation
- session_id: text (nullable)
- request_id: text (nullable)
- response_time_ms: integer (nullable)
- tokens_used: integer (nullable)
- cost: numeric (nullable)
- metadata: jsonb (nullable)
- created_at: timestamp (default: now())

Logs have no owner of their own: access follows the owning agent's
user_id / company_id (queried through an agents!inner embed).
"""
