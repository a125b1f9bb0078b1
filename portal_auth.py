"""
Demo sign-in for the portal.

Any password is accepted; a user is matched by email only. This keeps the
portal usable for demos and is not an access control mechanism.
"""
import logging
import time
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

USER_ROLES = ("client", "admin")

DEMO_USERS = [
    {
        "id": "client-001",
        "email": "layla@example.com",
        "name": "Layla Odam",
        "company_name": "Example Corp",
        "role": "client",
        "created_at": "2024-01-01T00:00:00+00:00",
    },
    {
        "id": "client-002",
        "email": "john@acmecorp.com",
        "name": "John Smith",
        "company_name": "ACME Corporation",
        "role": "client",
        "created_at": "2024-01-01T00:00:00+00:00",
    },
    {
        "id": "admin-001",
        "email": "admin@portal.com",
        "name": "Admin User",
        "company_name": "Portal Admin",
        "role": "admin",
        "created_at": "2024-01-01T00:00:00+00:00",
    },
]


def all_users(store):
    users = store.load_users()
    if not users:
        users = [dict(u) for u in DEMO_USERS]
        store.save_users(users)
    return users

def login(email, store, password=None):
    needle = (email or "").strip().lower()
    if not needle:
        return None
    for user in all_users(store):
        if str(user.get("email", "")).lower() == needle:
            logger.info(f"Signed in {user['email']} ({user['role']})")
            return user
    logger.info(f"Sign-in failed for {email}")
    return None

def create_user(store, email, name, company_name, role="client"):
    if role not in USER_ROLES:
        raise ValueError(f"Unknown role '{role}'. Expected one of {list(USER_ROLES)}")
    users = all_users(store)
    if any(str(u.get("email", "")).lower() == email.strip().lower() for u in users):
        raise ValueError("User with this email already exists")
    user = {
        "id": f"client-{time.time_ns() // 1_000_000}",
        "email": email.strip(),
        "name": name,
        "company_name": company_name,
        "role": role,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    store.save_users(users + [user])
    return user

def client_scope(user):
    """Client id to scope store reads by; admins see every client."""
    if user is None:
        return None
    return None if user.get("role") == "admin" else user["id"]
