from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional, Protocol


class UserStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    REJECTED = "REJECTED"
    INACTIVE = "INACTIVE"


@dataclass(frozen=True)
class Role:
    name: str
    permissions: FrozenSet[str] = frozenset()


@dataclass
class UserDto:
    id: str
    email: str
    password_hash: str
    status: UserStatus
    phone_number: Optional[str] = None
    roles: List[Role] = field(default_factory=list)
    otp_enabled: bool = False
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def role_names(self) -> List[str]:
        # Ordered, duplicates dropped.
        return list(dict.fromkeys(role.name for role in self.roles))


@dataclass
class NewUser:
    email: str
    password_hash: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    middle_name: Optional[str] = None
    address: Optional[str] = None
    role_names: List[str] = field(default_factory=list)
    status: UserStatus = UserStatus.PENDING


class UserRepository(Protocol):
    def get_by_email(self, email: str) -> Optional[UserDto]:
        ...

    def get_by_id(self, user_id: str) -> Optional[UserDto]:
        ...

    def create(self, user: NewUser) -> UserDto:
        ...
