"""
Permissions and Roles Configuration
This config defines the function permission matrix for every guarded resource
and the company roles that can be assigned through memberships.
Used by the seed script and by the access decision engine (admin permission names).
"""

CRUD_ACTIONS = ["create", "read", "update", "delete"]

# Define resources and their actions
MODULES = {
    "agent": {
        "resource": "agent",
        "actions": CRUD_ACTIONS + ["manage_prompts", "manage_tools", "manage_categories", "view_logs"],
        "description": "AI agent management"
    },
    "agent_log": {
        "resource": "agent_log",
        "actions": CRUD_ACTIONS,
        "description": "Agent conversation logs"
    },
    "company": {
        "resource": "company",
        "actions": CRUD_ACTIONS + ["manage_users", "manage_settings", "view_analytics", "manage_roles", "manage_billing"],
        "description": "Company and membership management"
    },
    "organization": {
        "resource": "organization",
        "actions": CRUD_ACTIONS,
        "description": "Organization management"
    },
    "team": {
        "resource": "team",
        "actions": CRUD_ACTIONS,
        "description": "Agent team management"
    },
    "tool": {
        "resource": "tool",
        "actions": CRUD_ACTIONS + ["manage_secrets", "manage_settings"],
        "description": "Tool management"
    },
    "llmstxt": {
        "resource": "llmstxt",
        "actions": CRUD_ACTIONS,
        "description": "llms.txt entry management"
    },
    "waitlist": {
        "resource": "waitlist",
        "actions": CRUD_ACTIONS,
        "description": "Waitlist entry management"
    },
    "system": {
        "resource": "system",
        "actions": ["manage_api_keys", "view_audit_logs", "manage_webhooks"],
        "description": "System administration"
    }
}

# Company roles assignable through user_companies.role_id
COMPANY_ROLES = {
    "company_admin": {
        "description": "Administers one company: its members and company-scoped resources",
        "permissions": ["company:read", "company:update", "company:manage_users"]
    },
    "user": {
        "description": "Regular company member",
        "permissions": ["company:read"]
    }
}

# System role granted every generated permission
SYSTEM_ADMIN_ROLE = "admin"


def permission_name(resource: str, action: str) -> str:
    return f"{resource}:{action}"


# Generate permission matrix
def get_permission_matrix():
    """
    Returns a dictionary with all permissions and their associated roles
    Format: {
        "permissions": [
            {"name": "agent:create", "resource": "agent", "action": "create", "description": "..."},
            ...
        ],
        "roles": [
            {"name": "company_admin", "description": "...", "permissions": ["company:read", ...]},
            ...
        ]
    }
    """
    permissions = []

    for module_name, module_config in MODULES.items():
        resource = module_config["resource"]
        for action in module_config["actions"]:
            permissions.append({
                "name": permission_name(resource, action),
                "resource": resource,
                "action": action,
                "description": f"{action.replace('_', ' ').capitalize()} {module_config['description'].lower()}"
            })

    roles = [
        {
            "name": name,
            "description": role_config["description"],
            "permissions": sorted(role_config["permissions"])
        }
        for name, role_config in COMPANY_ROLES.items()
    ]
    roles.append({
        "name": SYSTEM_ADMIN_ROLE,
        "description": "System administrator; every operation still requires the named permission",
        "permissions": sorted(p["name"] for p in permissions)
    })

    return {
        "permissions": permissions,
        "roles": roles
    }


# Export the matrix for use in seed scripts
PERMISSION_MATRIX = get_permission_matrix()
