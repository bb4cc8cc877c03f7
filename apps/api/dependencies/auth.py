from collections.abc import Callable
from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer


class Role(str, Enum):
    """Supported roles."""

    ADMIN = "admin"
    DOOR_STAFF = "door_staff"
    BUYER = "buyer"


class User:
    """Authenticated caller; ``phone`` pre-fills mobile money checkout."""

    def __init__(
        self,
        username: str,
        roles: tuple[Role, ...],
        *,
        display_name: str | None = None,
        phone: str | None = None,
    ):
        self.username = username
        self.roles = roles
        self.display_name = display_name or username
        self.phone = phone

    @property
    def is_authenticated(self) -> bool:
        return bool(self.roles)

    def has_role(self, role: Role) -> bool:
        return role in self.roles


TOKEN_USER_MAP: dict[str, tuple[str, tuple[Role, ...]]] = {
    "admin-token": ("admin", (Role.ADMIN, Role.DOOR_STAFF, Role.BUYER)),
    "door-token": ("door-staff", (Role.DOOR_STAFF,)),
    "buyer-token": ("buyer", (Role.BUYER,)),
}

bearer_scheme = HTTPBearer(auto_error=False)


def resolve_user_from_token(token: str | None) -> User:
    """Return the user associated with the bearer token.

    Requests without a token get an anonymous user with no roles; routes that
    require a role reject it with 403.
    """

    if token is None:
        return User(username="anonymous", roles=())

    if token not in TOKEN_USER_MAP:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    username, roles = TOKEN_USER_MAP[token]
    return User(username=username, roles=roles)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
) -> User:
    """Static token authentication stub.

    Tokens map to fixed users. A deployment replaces this dependency with one
    that verifies tokens against the identity provider.
    """

    cached = getattr(request.state, "user", None)
    if isinstance(cached, User):
        return cached

    token = credentials.credentials if credentials is not None else None
    user = resolve_user_from_token(token)
    request.state.user = user
    return user


def role_required(role: Role) -> Callable[..., User]:
    """Dependency factory ensuring the current user has the requested role."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not user.has_role(role):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


CurrentUser = Annotated[User, Depends(get_current_user)]