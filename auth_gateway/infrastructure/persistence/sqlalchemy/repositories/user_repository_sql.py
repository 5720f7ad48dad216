from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from .....models import Role as RoleRow, User, UserRole
from .....application.ports.user_repo import NewUser, Role, UserDto, UserRepository, UserStatus


class SqlUserRepository(UserRepository):
    def __init__(self, engine: Engine):
        self.engine = engine

    def _roles_for(self, session: Session, user_id: str) -> List[Role]:
        rows = session.exec(
            select(RoleRow)
            .join(UserRole, UserRole.role_id == RoleRow.id)
            .where(UserRole.user_id == user_id)
            .order_by(UserRole.id)
        ).all()
        return [Role(name=row.name, permissions=frozenset(row.permissions or [])) for row in rows]

    def _to_dto(self, session: Session, user: User) -> UserDto:
        return UserDto(
            id=user.id,
            email=user.email,
            password_hash=user.password,
            status=UserStatus(user.status),
            phone_number=user.contact_number,
            roles=self._roles_for(session, user.id),
            otp_enabled=bool(user.otp_enabled),
            first_name=user.first_name,
            last_name=user.last_name,
        )

    def _get_or_create_role(self, session: Session, name: str) -> RoleRow:
        role = session.exec(select(RoleRow).where(RoleRow.name == name)).first()
        if role is None:
            role = RoleRow(name=name, permissions=[])
            session.add(role)
            session.flush()
        return role

    def get_by_email(self, email: str) -> Optional[UserDto]:
        with Session(self.engine) as session:
            user = session.exec(select(User).where(User.email == email)).first()
            return self._to_dto(session, user) if user else None

    def get_by_id(self, user_id: str) -> Optional[UserDto]:
        with Session(self.engine) as session:
            user = session.exec(select(User).where(User.id == user_id)).first()
            return self._to_dto(session, user) if user else None

    def create(self, new_user: NewUser) -> UserDto:
        with Session(self.engine) as session:
            user = User(
                email=new_user.email,
                password=new_user.password_hash,
                first_name=new_user.first_name,
                last_name=new_user.last_name,
                middle_name=new_user.middle_name,
                contact_number=new_user.phone_number,
                address=new_user.address,
                status=new_user.status.value,
            )
            session.add(user)
            session.flush()
            for name in dict.fromkeys(new_user.role_names):
                role = self._get_or_create_role(session, name)
                session.add(UserRole(user_id=user.id, role_id=role.id))
            session.commit()
            session.refresh(user)
            return self._to_dto(session, user)

    def save_role(self, name: str, permissions: Iterable[str] = (), description: Optional[str] = None) -> Role:
        with Session(self.engine) as session:
            role = self._get_or_create_role(session, name)
            role.permissions = sorted(set(permissions))
            if description is not None:
                role.description = description
            session.add(role)
            session.commit()
            return Role(name=role.name, permissions=frozenset(role.permissions))

    def assign_role(self, user_id: str, role_name: str) -> None:
        with Session(self.engine) as session:
            role = self._get_or_create_role(session, role_name)
            existing = session.exec(
                select(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role.id)
            ).first()
            if existing:
                return
            session.add(UserRole(user_id=user_id, role_id=role.id))
            session.commit()

    def update_status(self, user_id: str, status: UserStatus) -> None:
        with Session(self.engine) as session:
            user = session.exec(select(User).where(User.id == user_id)).first()
            if not user:
                return
            user.status = status.value
            user.updated_at = datetime.now(timezone.utc)
            session.add(user)
            session.commit()

    def set_otp_enabled(self, user_id: str, enabled: bool) -> None:
        with Session(self.engine) as session:
            user = session.exec(select(User).where(User.id == user_id)).first()
            if not user:
                return
            user.otp_enabled = enabled
            user.updated_at = datetime.now(timezone.utc)
            session.add(user)
            session.commit()
