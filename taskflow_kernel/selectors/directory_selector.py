"""
Directory query selector -- users by id and by role.
"""

from uuid import UUID

from sqlalchemy import select

from taskflow_kernel.domain.dtos import UserInfo
from taskflow_kernel.domain.workflow import Role
from taskflow_kernel.models.directory import UserModel
from taskflow_kernel.selectors.base import BaseSelector


class DirectorySelector(BaseSelector[UserModel]):

    def get_user(self, user_id: UUID) -> UserInfo | None:
        model = self.session.get(UserModel, user_id)
        return model.to_dto() if model is not None else None

    def list_users_by_role(self, role: Role) -> list[UserInfo]:
        """Active users holding ``role``, in a stable (email) order."""
        models = self.session.scalars(
            select(UserModel)
            .where(UserModel.role == Role(role).value, UserModel.is_active.is_(True))
            .order_by(UserModel.email)
        )
        return [model.to_dto() for model in models]
