"""Engine Collaborators - Interfaces the engine consumes"""
from typing import Iterable, Optional, Protocol, Set

from ..domain.entities import EntitySnapshotBase
from ..domain.enums import Channel, EntityKind
from ..domain.models import ProjectInfo


class EntityProvider(Protocol):
    """Supplies current snapshots of watchable entities (the CRUD data layer)"""

    def list_watchable_entities(self, kind: EntityKind) -> Iterable[EntitySnapshotBase]:
        ...

    def list_entity_ids(self, kind: EntityKind) -> Set[str]:
        """Every existing id of the kind, including documents that do not parse"""
        ...

    def get_entity(self, kind: EntityKind, entity_id: str) -> Optional[EntitySnapshotBase]:
        """None once deleted; raises MalformedEntityError for unparseable documents"""
        ...


class Directory(Protocol):
    """Role membership, project managers and user existence"""

    def resolve_role_members(self, role: str) -> Set[str]:
        ...

    def project_manager_of(self, project_id: str) -> Optional[str]:
        ...

    def get_project(self, project_id: str) -> Optional[ProjectInfo]:
        ...

    def user_exists(self, user_id: str) -> bool:
        ...


class ChannelTransport(Protocol):
    """Delivers one message to one recipient over an external channel"""

    async def send(
        self,
        channel: Channel,
        recipient_id: str,
        title: str,
        message: str,
        action_url: Optional[str]
    ) -> bool:
        ...
