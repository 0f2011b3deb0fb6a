"""
Auth service: the user directory and the login operation.

The directory is built once at startup from settings and handed to the
request handlers through ``app.state``; there is no user table.
"""
import logging
from dataclasses import dataclass

from blog_api.config import Settings
from blog_api.exceptions import UnauthorizedError
from blog_api.security import create_access_token, verify_password

logger = logging.getLogger(__name__)

_BAD_CREDENTIALS = "Неверный логин или пароль"


@dataclass(frozen=True)
class User:
    id: int
    login: str
    password_hash: str
    role: str

    def public(self) -> dict:
        return {"id": self.id, "login": self.login, "role": self.role}


class UserDirectory:
    def __init__(self, users: list[User]) -> None:
        self._by_login = {user.login: user for user in users}
        self._by_id = {user.id: user for user in users}

    @classmethod
    def from_settings(cls, settings: Settings) -> "UserDirectory":
        admin = User(
            id=1,
            login=settings.ADMIN_LOGIN,
            password_hash=settings.ADMIN_PASSWORD_HASH,
            role="admin",
        )
        return cls([admin])

    def by_login(self, login: str) -> User | None:
        return self._by_login.get(login)

    def by_id(self, user_id: int) -> User | None:
        return self._by_id.get(user_id)


def login(directory: UserDirectory, login_name: str, password: str) -> dict:
    """
    Check the credentials and issue an access token.

    Unknown logins and wrong passwords get the same error message.
    """
    user = directory.by_login(login_name)
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Failed login attempt for %r", login_name)
        raise UnauthorizedError(_BAD_CREDENTIALS)

    token = create_access_token(subject=str(user.id), role=user.role)
    logger.info("User %s logged in", user.login)
    return {"token": token, "userRole": user.role}
