from family_registry.routers import admin, audit, auth, documents, family_tree, health, members, notifications

__all__ = [
    "health",
    "auth",
    "members",
    "family_tree",
    "notifications",
    "documents",
    "admin",
    "audit",
]
