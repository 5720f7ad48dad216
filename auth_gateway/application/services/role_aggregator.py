from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Sequence

from ..ports.user_repo import Role


@dataclass(frozen=True)
class RoleAggregate:
    primary_role: str
    all_permissions: FrozenSet[str]


@dataclass(frozen=True)
class RoleAggregator:
    """Collapses a user's roles into one primary label and a permission union.

    Without a priority list the primary role is the first assigned one. With a
    priority list, listed roles win in list order; unlisted roles keep their
    assignment order after them.
    """
    fallback_role: str = "VISITOR"
    priority: Sequence[str] = field(default_factory=tuple)

    def primary_role(self, roles: Sequence[Role]) -> str:
        if not roles:
            return self.fallback_role
        if not self.priority:
            return roles[0].name
        rank = {name: i for i, name in enumerate(self.priority)}
        ordered = sorted(enumerate(roles), key=lambda item: (rank.get(item[1].name, len(rank)), item[0]))
        return ordered[0][1].name

    def aggregate(self, roles: Iterable[Role]) -> RoleAggregate:
        roles = list(roles)
        permissions = frozenset(p for role in roles for p in role.permissions)
        return RoleAggregate(primary_role=self.primary_role(roles), all_permissions=permissions)
