"""
Middleware for handling multi-tenancy
"""
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from uuid import UUID
import logging

from stockbill.core.exceptions import BusinessRuleViolation

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Company-ID"


class TenantMiddleware(BaseHTTPMiddleware):
    """
    Extrae el tenant del header X-Company-ID y lo deja en request.state.

    El header es opcional (los tokens de contexto ya traen el tenant),
    pero si viene debe ser un UUID válido. La pertenencia del usuario a
    la empresa se valida en las dependencias de autenticación.
    """

    # Paths that don't require tenant context
    EXEMPT_PATHS = ("/docs", "/redoc", "/openapi.json", "/health")

    def _is_exempt(self, path: str) -> bool:
        return path == "/" or path.startswith(self.EXEMPT_PATHS)

    async def dispatch(self, request: Request, call_next):
        if self._is_exempt(request.url.path) or request.method == "OPTIONS":
            return await call_next(request)

        tenant_header = request.headers.get(TENANT_HEADER)
        if not tenant_header:
            return await call_next(request)

        try:
            tenant_id = UUID(tenant_header)
        except ValueError:
            logger.warning(f"Invalid {TENANT_HEADER} header on {request.url.path}: {tenant_header!r}")
            error = BusinessRuleViolation(
                f"Formato inválido de {TENANT_HEADER}. Debe ser un UUID válido",
                header=TENANT_HEADER
            )
            return JSONResponse(status_code=error.status_code, content=error.to_dict())

        request.state.tenant_id = tenant_id
        logger.debug(f"Request to {request.url.path} with tenant_id: {tenant_id}")

        response = await call_next(request)
        response.headers["X-Tenant-ID"] = str(tenant_id)
        return response
