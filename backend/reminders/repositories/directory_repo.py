"""Directory Repository - Users, roles and project managers"""
from typing import Optional, Set
from pymongo.collection import Collection

from .mongo_client import get_collection, from_document
from ..domain.models import ProjectInfo
from ..utils.logger import get_logger

logger = get_logger(__name__)

INACTIVE_USER_STATUSES = ["locked", "pending"]


class DirectoryRepository:
    """
    Read-only view over the portfolio users and projects collections

    Users look like ``{"user_id", "roles": [...], "status"}``; projects like
    ``{"project_id", "code", "name", "pm_id"}``.
    """

    USERS_COLLECTION = "users"
    PROJECTS_COLLECTION = "projects"

    def __init__(
        self,
        users: Optional[Collection] = None,
        projects: Optional[Collection] = None
    ):
        self._users: Collection = users if users is not None else get_collection(self.USERS_COLLECTION)
        self._projects: Collection = (
            projects if projects is not None else get_collection(self.PROJECTS_COLLECTION)
        )

    def resolve_role_members(self, role: str) -> Set[str]:
        """Active users holding a role"""
        cursor = self._users.find(
            {"roles": role, "status": {"$nin": INACTIVE_USER_STATUSES}},
            {"user_id": 1}
        )
        return {doc["user_id"] for doc in cursor}

    def project_manager_of(self, project_id: str) -> Optional[str]:
        """Manager of a project, if the project and manager are known"""
        project = self.get_project(project_id)
        return project.pm_id if project else None

    def get_project(self, project_id: str) -> Optional[ProjectInfo]:
        doc = from_document(self._projects.find_one({"project_id": project_id}))
        if doc:
            return ProjectInfo.model_validate(doc)
        return None

    def user_exists(self, user_id: str) -> bool:
        """Whether an active user with this ID exists"""
        return self._users.find_one({
            "user_id": user_id,
            "status": {"$nin": INACTIVE_USER_STATUSES}
        }) is not None
