# Overview: Actor context and role decorators for API routes.

"""
Identity is supplied by the caller, not looked up here.

The gateway in front of the API authenticates the user and forwards:
- X-Actor-Id:   opaque identifier recorded on movements, payments and orders
- X-Actor-Role: one of ADMIN, WAREHOUSE, CASHIER, DRIVER

require_actor stores an Actor on flask.g; services receive actor_id explicitly.
"""

from dataclasses import dataclass
from functools import wraps

from flask import request, jsonify, g, current_app


ROLE_ADMIN = "ADMIN"
ROLE_WAREHOUSE = "WAREHOUSE"
ROLE_CASHIER = "CASHIER"
ROLE_DRIVER = "DRIVER"
VALID_ROLES = {ROLE_ADMIN, ROLE_WAREHOUSE, ROLE_CASHIER, ROLE_DRIVER}


@dataclass(frozen=True)
class Actor:
    actor_id: str
    role: str


def current_actor_id() -> str | None:
    actor = getattr(g, "actor", None)
    return actor.actor_id if actor else None


def require_actor(f):
    """
    Require actor headers and set g.actor.

    Returns 401 if X-Actor-Id is missing or X-Actor-Role is not a known role.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = (request.headers.get("X-Actor-Id") or "").strip()
        role = (request.headers.get("X-Actor-Role") or "").strip().upper()

        if not actor_id:
            return jsonify({"error": "Actor identity required"}), 401
        if role not in VALID_ROLES:
            return jsonify({"error": "Unknown actor role", "role": role or None}), 401

        g.actor = Actor(actor_id=actor_id, role=role)
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the actor to hold one of the given roles. ADMIN always passes.

    Must be stacked under @require_actor.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Actor identity required"}), 401

            if actor.role != ROLE_ADMIN and actor.role not in roles:
                current_app.logger.warning(
                    "Role denied: actor %s (%s) on %s %s, requires %s",
                    actor.actor_id, actor.role, request.method, request.path, ",".join(roles),
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
