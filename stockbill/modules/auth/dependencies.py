"""
Dependencias de autenticación para FastAPI.

La emisión de tokens vive en el servicio de identidad; aquí solo se
valida el JWT y se resuelve el tenant y el rol del usuario.
"""
from typing import List
from uuid import UUID
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session, selectinload
import jwt
import logging

from stockbill.dependencies.dbDependecies import get_db
from stockbill.core.exceptions import AuthenticationError, PermissionDeniedError, BusinessRuleViolation
from stockbill.modules.auth.models import User, UserCompany, UserRole
from stockbill.modules.auth.schemas import AuthContext
from stockbill.modules.auth.utils import decode_token

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)

ANY_ROLE = [UserRole.SUPER_ADMIN.value, UserRole.ADMIN.value, UserRole.MANAGER.value, UserRole.EMPLOYEE.value]
ADMIN_ROLES = [UserRole.SUPER_ADMIN.value, UserRole.ADMIN.value]
ADMIN_OR_MANAGER = [UserRole.SUPER_ADMIN.value, UserRole.ADMIN.value, UserRole.MANAGER.value]


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_auth_context(
        request: Request,
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: Session = Depends(get_db)
    ) -> AuthContext:
        """
        Obtener contexto de autenticación completo con tenant.
        Requiere X-Company-ID header o token de contexto.
        """
        if credentials is None:
            raise AuthenticationError()

        try:
            payload = decode_token(credentials.credentials)
            user_id = payload.get("sub")
            token_type = payload.get("type", "access")
            if user_id is None:
                raise AuthenticationError()
            user_uuid = UUID(str(user_id))
        except (jwt.PyJWTError, ValueError):
            raise AuthenticationError()

        user = db.query(User).options(
            selectinload(User.user_companies)
        ).filter(User.id == user_uuid).first()

        if user is None or not user.is_active:
            raise AuthenticationError()

        if token_type == "context":
            # Token de contexto ya trae tenant y rol
            tenant_id = payload.get("tenant_id")
            user_role = payload.get("user_role")
            try:
                tenant_uuid = UUID(str(tenant_id)) if tenant_id else None
            except ValueError:
                logger.warning(f"Context token with invalid tenant_id for user {user.id}")
                raise AuthenticationError()
            return AuthContext(
                user_id=user.id,
                tenant_id=tenant_uuid,
                user_role=user_role
            )

        company_id_str = request.headers.get("X-Company-ID") or getattr(request.state, 'tenant_id', None)
        if not company_id_str:
            return AuthContext(user_id=user.id)

        try:
            tenant_id = UUID(str(company_id_str))
        except ValueError:
            raise BusinessRuleViolation("ID de empresa inválido")

        membership = next(
            (uc for uc in user.user_companies if uc.company_id == tenant_id and uc.is_active),
            None
        )
        if membership is None:
            raise PermissionDeniedError("No tienes acceso a esta empresa", tenant_id=tenant_id)

        return AuthContext(user_id=user.id, tenant_id=tenant_id, user_role=membership.role)

    @staticmethod
    def require_role(allowed_roles: List[str]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)) -> AuthContext:
            if not auth_context.tenant_id:
                raise BusinessRuleViolation("Se requiere seleccionar una empresa")

            if auth_context.user_role not in allowed_roles:
                raise PermissionDeniedError(
                    f"Se requiere uno de estos roles: {', '.join(allowed_roles)}",
                    required_roles=allowed_roles,
                    user_role=auth_context.user_role
                )

            return auth_context
        return role_checker

    @staticmethod
    def require_any_role():
        return AuthDependencies.require_role(ANY_ROLE)

    @staticmethod
    def require_admin_or_manager():
        return AuthDependencies.require_role(ADMIN_OR_MANAGER)

    @staticmethod
    def require_admin():
        return AuthDependencies.require_role(ADMIN_ROLES)
