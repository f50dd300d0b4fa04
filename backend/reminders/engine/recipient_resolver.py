"""Recipient Resolver - Turns abstract recipients into user IDs"""
from typing import Iterable, Optional, Set

from .interfaces import Directory
from ..domain.entities import EntitySnapshotBase
from ..domain.enums import ProjectRole, UserRole
from ..domain.models import RecipientSpec
from ..utils.logger import get_logger

logger = get_logger(__name__)


class RecipientResolver:
    """
    Resolve a rule's recipients against the directory

    Organisation roles go through role membership, project roles are read
    off the project and the entity, explicit users are kept only if they
    exist. An empty result is a valid outcome.
    """

    def __init__(self, directory: Directory):
        self.directory = directory

    def resolve(self, targets: RecipientSpec, entity: EntitySnapshotBase) -> Set[str]:
        recipients = self.resolve_roles(targets.roles, entity)

        for project_role in targets.project_roles:
            user_id = self._project_role_member(project_role, entity)
            if user_id:
                recipients.add(user_id)

        for user_id in targets.specific_users:
            if self.directory.user_exists(user_id):
                recipients.add(user_id)
            else:
                logger.info(
                    f"Skipping unknown recipient {user_id}",
                    extra={"entity_id": entity.entity_id, "recipient_id": user_id}
                )

        return recipients

    def resolve_roles(self, roles: Iterable[UserRole], entity: EntitySnapshotBase) -> Set[str]:
        """Members of organisation roles (used for escalation targets too)"""
        members: Set[str] = set()
        for role in roles:
            found = self.directory.resolve_role_members(UserRole(role).value)
            if not found:
                logger.debug(
                    f"Role {UserRole(role).value} has no active members",
                    extra={"entity_id": entity.entity_id}
                )
            members.update(found)
        return members

    def _project_role_member(
        self,
        project_role: ProjectRole,
        entity: EntitySnapshotBase
    ) -> Optional[str]:
        if project_role == ProjectRole.PM:
            return self.directory.project_manager_of(entity.project_id)
        if project_role == ProjectRole.OWNER:
            return entity.owner_id()
        if project_role == ProjectRole.ASSIGNEE:
            return entity.assignee_id()
        return None
