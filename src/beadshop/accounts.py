"""Local user profiles and pending role assignments."""

import logging
from pathlib import Path

from .auth import Actor
from .document_store import DocumentStore
from .errors import ValidationError
from .models import Address, PendingRoleAssignment, Role, User, _utc_now

logger = logging.getLogger(__name__)


class AccountStore:
    """Manages User documents and PendingRoleAssignment documents."""

    def __init__(self, data_dir: Path):
        self.users = DocumentStore("users", data_dir)
        self.assignments = DocumentStore("pending_role_assignments", data_dir)

    def get_user(self, clerk_id: str) -> User | None:
        data = self.users.get(clerk_id)
        return User.from_dict(data) if data else None

    def list_users(self) -> list[User]:
        return [User.from_dict(d) for d in self.users.list_all()]

    def ensure_user(self, actor: Actor) -> User:
        """
        Create or refresh the local profile for an authenticated actor.

        If an unprocessed role assignment exists for the actor's email, it is
        applied to the profile and marked processed.
        """
        with self.users.lock():
            user = self.get_user(actor.user_id)
            if user is None:
                user = User(clerk_id=actor.user_id, email=actor.email or "", role=actor.role)
                logger.info("Created user profile for %s", actor.user_id)
            if actor.email:
                user.email = actor.email

            assignment = self.get_assignment(user.email) if user.email else None
            if assignment is not None and not assignment.processed:
                user.role = assignment.assigned_role
                assignment.processed = True
                assignment.processed_at = _utc_now()
                with self.assignments.lock():
                    self.assignments.write(assignment.email, assignment.to_dict())
                logger.info("Applied pending %s role to %s", user.role.value, user.email)

            user.updated_at = _utc_now()
            self.users.write(user.clerk_id, user.to_dict())
        return user

    def save_shipping_address(self, actor: Actor, address: Address) -> User:
        user = self.ensure_user(actor)
        with self.users.lock():
            user.shipping_address = address
            user.updated_at = _utc_now()
            self.users.write(user.clerk_id, user.to_dict())
        return user

    def get_assignment(self, email: str) -> PendingRoleAssignment | None:
        data = self.assignments.get(email.strip().lower())
        return PendingRoleAssignment.from_dict(data) if data else None

    def assign_role(self, email: str, role: Role, assigned_by: str) -> PendingRoleAssignment:
        """
        Record a role for an email address, replacing any earlier assignment.

        Raises:
            ValidationError: If the email is malformed.
        """
        email = email.strip().lower()
        if "@" not in email or email.startswith("@") or email.endswith("@"):
            raise ValidationError(f"Invalid email address: {email}", field="email")

        assignment = PendingRoleAssignment(email=email, assigned_role=role, assigned_by=assigned_by)
        with self.assignments.lock():
            self.assignments.write(email, assignment.to_dict())
        logger.info("%s assigned role %s to %s", assigned_by, role.value, email)
        return assignment

    def list_assignments(self) -> list[PendingRoleAssignment]:
        items = [PendingRoleAssignment.from_dict(d) for d in self.assignments.list_all()]
        items.sort(key=lambda a: a.created_at, reverse=True)
        return items
