# Overview: Request decorators for API routes (tenant context).

from functools import wraps
from flask import request, jsonify, g

from .errors import LedgerError, ValidationError
from .services.masterdata_service import require_tenant as lookup_tenant
from .validation import coerce_int


TENANT_HEADER = "X-Tenant-ID"
USER_HEADER = "X-User-ID"


def require_tenant(f):
    """
    Establish tenant context from request headers.

    MULTI-TENANT: Authentication happens upstream; the gateway forwards the
    resolved ids. Sets the following Flask g attributes:
    - g.tenant_id: The tenant every read and write is scoped to - REQUIRED
    - g.user_id: The acting user, recorded on created rows (may be None)

    Returns 400 when the tenant header is missing or not an integer and
    404 when the tenant does not exist or is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            raw_tenant = request.headers.get(TENANT_HEADER)
            if not raw_tenant:
                raise ValidationError(f"{TENANT_HEADER} header is required", field=TENANT_HEADER)
            tenant_id = coerce_int(raw_tenant, TENANT_HEADER)

            raw_user = request.headers.get(USER_HEADER)
            user_id = coerce_int(raw_user, USER_HEADER) if raw_user else None

            lookup_tenant(tenant_id)
        except LedgerError as e:
            return jsonify(e.to_dict()), e.status_code

        g.tenant_id = tenant_id
        g.user_id = user_id

        return f(*args, **kwargs)

    return decorated_function
