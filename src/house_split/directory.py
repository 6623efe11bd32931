"""Users, groups, memberships, environments and categories."""

import logging

from .db import Database
from .exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from .ledger.rules import clean_text, require_active_member, require_group
from .models import Activity, Category, Environment, Group, Member, Role, User

logger = logging.getLogger(__name__)


class Directory:
    """Administration of the groups that bills are shared in."""

    def __init__(self, database: Database, default_environment_name: str = "Home"):
        """Initialize the directory."""
        self.db = database
        self.default_environment_name = default_environment_name

    def create_user(self, name: str, email: str) -> User:
        """
        Register a person.

        Raises:
            ValidationError: Blank name or e-mail, or e-mail already taken
        """
        name = clean_text(name) or ""
        email = (clean_text(email) or "").lower()
        if not name or not email:
            raise ValidationError("Name and e-mail are required")
        if self.db.get_user_by_email(email) is not None:
            raise ValidationError(f"E-mail {email} is already registered")

        user = self.db.insert_user(User(name=name, email=email))
        logger.info(f"Registered user {user.id} ({email})")
        return user

    def get_user(self, user_id: int) -> User:
        """Get a user or raise NotFoundError."""
        user = self.db.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def create_group(
        self, owner_id: int, name: str, description: str | None = None
    ) -> Group:
        """
        Create a group owned by a user.

        The owner joins as ADMIN and the group starts with one environment
        named after the configured default.

        Raises:
            ValidationError: Blank name
            NotFoundError: Owner does not exist
        """
        name = clean_text(name) or ""
        if not name:
            raise ValidationError("Group name is required")
        self.get_user(owner_id)

        with self.db.transaction():
            group = self.db.insert_group(
                Group(name=name, description=clean_text(description), owner_id=owner_id)
            )
            assert group.id is not None
            self.db.upsert_member(group.id, owner_id, "ADMIN")
            self.db.insert_environment(
                Environment(group_id=group.id, name=self.default_environment_name)
            )
            self.db.insert_activity(
                Activity(
                    group_id=group.id,
                    user_id=owner_id,
                    type="GROUP_CREATED",
                    description=f'Group "{name}" created',
                )
            )

        logger.info(f"Created group {group.id} '{name}' owned by user {owner_id}")
        return group

    def add_member(
        self,
        group_id: int,
        actor_id: int,
        user_id: int | None = None,
        email: str | None = None,
        role: Role = "MEMBER",
    ) -> Member:
        """
        Add a user to a group by id or e-mail.

        A former member is re-activated with their previous role.

        Raises:
            ValidationError: Neither user_id nor email given
            NotFoundError: Group or user missing
            ForbiddenError: Actor is not an active member
        """
        require_group(self.db, group_id)
        require_active_member(self.db, group_id, actor_id)

        if user_id is not None:
            user = self.get_user(user_id)
        elif email:
            found = self.db.get_user_by_email(email.strip().lower())
            if found is None:
                raise NotFoundError(f"User with e-mail {email}")
            user = found
        else:
            raise ValidationError("A user id or an e-mail is required")
        assert user.id is not None

        with self.db.transaction():
            member = self.db.upsert_member(group_id, user.id, role)
            self.db.insert_activity(
                Activity(
                    group_id=group_id,
                    user_id=actor_id,
                    type="MEMBER_ADDED",
                    description=f"{user.name} joined the group",
                )
            )

        logger.info(f"Added user {user.id} to group {group_id}")
        return member

    def leave_group(self, group_id: int, user_id: int) -> Member:
        """
        Deactivate a membership. History keeps pointing at the member.

        Raises:
            NotFoundError: Group missing or user not an active member
            InvalidStateError: The owner tries to leave
        """
        group = require_group(self.db, group_id)
        if group.owner_id == user_id:
            raise InvalidStateError("The group owner cannot leave the group")

        member = self.db.get_member(group_id, user_id)
        if member is None or not member.active or member.id is None:
            raise NotFoundError("Member", user_id)

        with self.db.transaction():
            self.db.set_member_active(member.id, False)
            self.db.insert_activity(
                Activity(
                    group_id=group_id,
                    user_id=user_id,
                    type="MEMBER_LEFT",
                    description=f"User {user_id} left the group",
                )
            )

        member.active = False
        logger.info(f"User {user_id} left group {group_id}")
        return member

    def list_members(self, group_id: int) -> list[Member]:
        """List the active members of a group."""
        require_group(self.db, group_id)
        return self.db.list_members(group_id)

    def list_groups(self, user_id: int) -> list[Group]:
        """List the live groups where the user is an active member."""
        return self.db.list_groups_for_user(user_id)

    def _require_owner(self, group_id: int, actor_id: int) -> Group:
        group = require_group(self.db, group_id)
        if group.owner_id != actor_id:
            raise ForbiddenError("Only the group owner can do this")
        return group

    def archive_group(self, group_id: int, actor_id: int) -> None:
        """
        Archive a group, removing its bills from every balance.

        Raises:
            NotFoundError: Group missing or already archived
            ForbiddenError: Actor is not the owner
        """
        self._require_owner(group_id, actor_id)
        self.db.set_group_archived(group_id)
        logger.info(f"Archived group {group_id}")

    def create_environment(
        self,
        group_id: int,
        actor_id: int,
        name: str,
        description: str | None = None,
    ) -> Environment:
        """
        Add an environment to a group.

        Raises:
            ValidationError: Blank name
            NotFoundError: Group missing or archived
            ForbiddenError: Actor is not an active member
        """
        name = clean_text(name) or ""
        if not name:
            raise ValidationError("Environment name is required")
        require_group(self.db, group_id)
        require_active_member(self.db, group_id, actor_id)

        environment = self.db.insert_environment(
            Environment(group_id=group_id, name=name, description=clean_text(description))
        )
        logger.info(f"Created environment {environment.id} '{name}' in group {group_id}")
        return environment

    def list_environments(self, group_id: int) -> list[Environment]:
        """List a group's live environments, newest first."""
        require_group(self.db, group_id)
        return self.db.list_environments(group_id)

    def archive_environment(self, environment_id: int, actor_id: int) -> None:
        """
        Archive an environment.

        Raises:
            NotFoundError: Environment missing or already archived
            ForbiddenError: Actor is not the group owner
        """
        environment = self.db.get_environment(environment_id)
        if environment is None or environment.archived:
            raise NotFoundError("Environment", environment_id)
        self._require_owner(environment.group_id, actor_id)

        self.db.set_environment_archived(environment_id)
        logger.info(f"Archived environment {environment_id}")

    def upsert_category(self, group_id: int, actor_id: int, name: str) -> Category:
        """
        Create a category, or bring back an archived one with the same name.

        Raises:
            ValidationError: Blank name
            NotFoundError: Group missing or archived
            ForbiddenError: Actor is not an active member
        """
        name = clean_text(name) or ""
        if not name:
            raise ValidationError("Category name is required")
        require_group(self.db, group_id)
        require_active_member(self.db, group_id, actor_id)

        category = self.db.upsert_category(group_id, name)
        logger.debug(f"Upserted category '{name}' in group {group_id}")
        return category

    def list_categories(self, group_id: int) -> list[Category]:
        """List a group's live categories by name."""
        require_group(self.db, group_id)
        return self.db.list_categories(group_id)
