# Overview: Request decorators that establish the account scope for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import Unauthorized
from .scope import Scope

ACCOUNT_HEADER = "X-Account-Id"
ACTOR_HEADER = "X-Actor"


def require_scope(f):
    """
    Require an account scope and make it available to the route.

    MULTI-TENANT: The fronting identity gateway injects the authenticated
    account id (and, when known, the acting user) as headers. Sets:
    - g.scope: Scope(account_id, actor)

    SECURITY: Returns 401 if the account header is missing or blank. The
    actor is taken from the gateway header, NOT from the request body, so it
    cannot be spoofed in the audit trail by a JSON field.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        account_id = (request.headers.get(ACCOUNT_HEADER) or "").strip()
        actor = (request.headers.get(ACTOR_HEADER) or "").strip() or None

        try:
            g.scope = Scope(account_id=account_id, actor=actor)
        except Unauthorized:
            return jsonify({"error": "Account scope required", "kind": "unauthorized"}), 401

        return f(*args, **kwargs)

    return decorated_function
