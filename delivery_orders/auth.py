from dataclasses import dataclass

from fastapi import Depends, FastAPI, HTTPException, Request, status

from delivery_orders.models import ActorRole

Role = ActorRole

USER_ID_HEADER = 'x-user-id'
ROLE_HEADER = 'x-user-role'
CUSTOMER_ID_HEADER = 'x-customer-id'
VENDOR_ID_HEADER = 'x-vendor-id'


@dataclass(frozen=True)
class Principal:
    id: int
    role: Role
    customer_id: int | None = None
    vendor_id: int | None = None
    active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def _optional_int(raw: str | None) -> int | None:
    if raw is None or raw.strip() == '':
        return None
    return int(raw)


def principal_from_headers(headers) -> Principal | None:
    # Identity is asserted by the upstream gateway that owns authentication.
    raw_user_id = headers.get(USER_ID_HEADER)
    raw_role = headers.get(ROLE_HEADER)
    if not raw_user_id or not raw_role:
        return None
    try:
        return Principal(
            id=int(raw_user_id),
            role=Role(raw_role.strip().lower()),
            customer_id=_optional_int(headers.get(CUSTOMER_ID_HEADER)),
            vendor_id=_optional_int(headers.get(VENDOR_ID_HEADER)),
        )
    except ValueError:
        return None


def install_principal_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def principal_middleware(request: Request, call_next):
        request.state.principal = principal_from_headers(request.headers)
        return await call_next(request)


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, 'principal', None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep
