import logging
from typing import Optional

from passlib.context import CryptContext

from ...application.ports.password_hasher import PasswordHasher

logger = logging.getLogger(__name__)


class PasslibPasswordHasher(PasswordHasher):
    def __init__(self, context: Optional[CryptContext] = None) -> None:
        self.context = context or CryptContext(schemes=["bcrypt"], deprecated="auto")

    def hash(self, password: str) -> str:
        return self.context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        try:
            return self.context.verify(password, hashed)
        except ValueError:
            # Unrecognized or malformed stored hash
            logger.warning("Stored password hash could not be parsed")
            return False
