"""
Taskboard - Team Service.

Teams, their member roles and invitations. Invitations come in two
kinds: by email (addressed to an existing user) and by link (anyone
holding the token). Both expire after INVITATION_EXPIRY_DAYS and are
single-use.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Callable, Mapping

from taskboard.config import settings
from taskboard.core.errors import NotFound, PermissionDenied, StaleState, ValidationError
from taskboard.core.notifications import notify_safely
from taskboard.core.permissions import is_team_admin, is_team_member, is_team_owner
from taskboard.data.db import InvitationDB, TeamDB, UserDB, apply_changes
from taskboard.data.models import (
    Actor,
    InvitationKind,
    InvitationStatus,
    NotificationType,
    Team,
    TeamInvitation,
    TeamMember,
    TeamRole,
)
from taskboard.data.updates import FieldUpdate, SetTo
from taskboard.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 32
_TOKEN_ALPHABET = string.ascii_letters + string.digits

# Only these fields may be edited through update_team.
_EDITABLE_FIELDS = frozenset({"name", "description"})


def generate_token(length: int = TOKEN_LENGTH) -> str:
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


class TeamService:
    def __init__(
        self,
        teams: TeamDB,
        invitations: InvitationDB,
        users: UserDB,
        notifier: NotificationPort,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._teams = teams
        self._invitations = invitations
        self._users = users
        self._notifier = notifier
        self._clock = clock

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    def _require(self, team_id: str) -> Team:
        team = self._teams.get_team(team_id)
        if team is None or team.is_deleted:
            raise NotFound("Team not found")
        return team

    def _require_admin(self, actor: Actor, team_id: str, action: str) -> Team:
        team = self._require(team_id)
        if not is_team_admin(team, actor.user_id):
            raise PermissionDenied(f"You do not have permission to {action}")
        return team

    async def create_team(self, actor: Actor, name: str, description: str | None = None) -> Team:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Team name is required")
        now = self._clock()
        team = self._teams.add(Team(
            id="",
            name=name,
            owner_id=actor.user_id,
            description=description,
            members=[TeamMember(actor.user_id, actor.display_name, TeamRole.OWNER, now)],
            created_at=now,
            updated_at=now,
        ))
        logger.info("Team created: %s '%s' by %s", team.id, team.name, actor.user_id)
        return team

    def get_team(self, team_id: str) -> Team | None:
        """The team, or None if it does not exist or was deleted."""
        team = self._teams.get_team(team_id)
        if team is None or team.is_deleted:
            return None
        return team

    def list_teams_for_user(self, user_id: str) -> list[Team]:
        return self._teams.teams_for_user(user_id)

    def update_team(self, actor: Actor, team_id: str, changes: Mapping[str, FieldUpdate]) -> Team:
        team = self._require_admin(actor, team_id, "edit this team")
        unknown = sorted(set(changes) - _EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Field '{unknown[0]}' cannot be changed directly")
        updated = apply_changes(team, changes)
        if not (updated.name or "").strip():
            raise ValidationError("Team name is required")
        updated.updated_at = self._clock()
        return self._teams.save(team, updated)

    def delete_team(self, actor: Actor, team_id: str) -> Team:
        team = self._require(team_id)
        if not is_team_owner(team, actor.user_id):
            raise PermissionDenied("Only the team owner can delete the team")
        now = self._clock()
        deleted = self._teams.update(team.id, {
            "is_deleted": SetTo(True),
            "deleted_at": SetTo(now),
            "updated_at": SetTo(now),
        })
        logger.info("Team %s deleted by %s", team.id, actor.user_id)
        return deleted

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def _notify(
        self, user_id: str, type: NotificationType, title: str, message: str, **refs: object,
    ) -> None:
        await notify_safely(self._notifier, user_id, type, title, message, **refs)

    async def remove_member(self, actor: Actor, team_id: str, user_id: str) -> Team:
        team = self._require_admin(actor, team_id, "remove team members")
        if user_id == team.owner_id:
            raise ValidationError("The team owner cannot be removed")
        if team.member(user_id) is None:
            raise NotFound("Member not found")

        updated = self._teams.update(team.id, {
            "members": SetTo([m for m in team.members if m.user_id != user_id]),
            "updated_at": SetTo(self._clock()),
        })
        logger.info("User %s removed from team %s by %s", user_id, team.id, actor.user_id)
        await self._notify(
            user_id, NotificationType.TEAM_LEAVE,
            "Removed from team", f'You were removed from team "{team.name}"',
            team_id=team.id,
        )
        return updated

    async def update_member_role(
        self, actor: Actor, team_id: str, user_id: str, role: TeamRole,
    ) -> Team:
        team = self._require(team_id)
        if not is_team_owner(team, actor.user_id):
            raise PermissionDenied("Only the team owner can change member roles")
        if user_id == team.owner_id:
            raise ValidationError("The team owner's role cannot be changed")
        if role == TeamRole.OWNER:
            raise ValidationError("Ownership cannot be granted through a role change")
        if team.member(user_id) is None:
            raise NotFound("Member not found")

        members = [
            TeamMember(m.user_id, m.user_name, role, m.joined_at, m.invited_by)
            if m.user_id == user_id else m
            for m in team.members
        ]
        updated = self._teams.update(team.id, {
            "members": SetTo(members),
            "updated_at": SetTo(self._clock()),
        })
        await self._notify(
            user_id, NotificationType.TEAM_PERMISSION_CHANGE,
            "Team role changed", f'Your role in team "{team.name}" is now {role.value}',
            team_id=team.id,
        )
        return updated

    async def leave_team(self, actor: Actor, team_id: str) -> Team:
        team = self._require(team_id)
        if team.owner_id == actor.user_id:
            raise ValidationError(
                "The owner cannot leave the team; delete it or transfer ownership first"
            )
        if team.member(actor.user_id) is None:
            raise NotFound("You are not a member of this team")

        updated = self._teams.update(team.id, {
            "members": SetTo([m for m in team.members if m.user_id != actor.user_id]),
            "updated_at": SetTo(self._clock()),
        })
        logger.info("User %s left team %s", actor.user_id, team.id)
        for member in updated.members:
            if is_team_admin(updated, member.user_id):
                await self._notify(
                    member.user_id, NotificationType.TEAM_LEAVE,
                    "Member left", f'{actor.display_name} left team "{team.name}"',
                    team_id=team.id,
                )
        return updated

    async def send_admin_announcement(self, actor: Actor, team_id: str, message: str) -> int:
        """Notify every other member; returns how many were addressed."""
        team = self._require_admin(actor, team_id, "send announcements")
        message = (message or "").strip()
        if not message:
            raise ValidationError("Announcement must not be empty")
        sent = 0
        for user_id in team.member_ids():
            if user_id == actor.user_id:
                continue
            await self._notify(
                user_id, NotificationType.TEAM_ADMIN_ANNOUNCEMENT,
                f"Announcement from {team.name}", message, team_id=team.id,
            )
            sent += 1
        return sent

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    def _new_invitation(
        self, actor: Actor, team: Team, kind: InvitationKind, **extra: object,
    ) -> TeamInvitation:
        now = self._clock()
        return self._invitations.add(TeamInvitation(
            id="",
            team_id=team.id,
            team_name=team.name,
            invited_by=actor.user_id,
            invited_by_name=actor.display_name,
            token=generate_token(),
            kind=kind,
            expires_at=now + timedelta(days=settings.INVITATION_EXPIRY_DAYS),
            created_at=now,
            **extra,
        ))

    async def invite_member(self, actor: Actor, team_id: str, email: str) -> TeamInvitation:
        team = self._require_admin(actor, team_id, "invite members")
        user = self._users.find_by_email(email)
        if user is None:
            raise NotFound("No user found with that email address")
        if team.member(user.id) is not None:
            raise ValidationError("This user is already a team member")

        invitation = self._new_invitation(
            actor, team, InvitationKind.EMAIL,
            invited_user_id=user.id, invited_email=user.email,
        )
        logger.info("User %s invited to team %s by %s", user.id, team.id, actor.user_id)
        await self._notify(
            user.id, NotificationType.TEAM_INVITATION,
            "Team invitation",
            f'{actor.display_name} invited you to join team "{team.name}"',
            team_id=team.id, invitation_id=invitation.id,
        )
        return invitation

    def create_invitation_link(self, actor: Actor, team_id: str) -> str:
        """Create a link invitation and return its path."""
        team = self._require_admin(actor, team_id, "invite members")
        invitation = self._new_invitation(actor, team, InvitationKind.LINK)
        logger.info("Invitation link created for team %s by %s", team.id, actor.user_id)
        return f"{settings.INVITATION_BASE_PATH.rstrip('/')}/{invitation.token}"

    def _expire_if_due(self, invitation: TeamInvitation, now: datetime) -> bool:
        """Mark a pending invitation expired once its deadline passes."""
        if invitation.status != InvitationStatus.PENDING or invitation.expires_at >= now:
            return False
        self._invitations.update(invitation.id, {"status": SetTo(InvitationStatus.EXPIRED)})
        logger.info("Invitation %s expired", invitation.id)
        return True

    def get_invitation_by_token(self, token: str) -> TeamInvitation | None:
        """A pending, unexpired invitation for *token*, else None."""
        invitation = self._invitations.get_by_token(token)
        if invitation is None or invitation.status != InvitationStatus.PENDING:
            return None
        if self._expire_if_due(invitation, self._clock()):
            return None
        return invitation

    def list_pending_invitations(self, team_id: str) -> list[TeamInvitation]:
        now = self._clock()
        pending = self._invitations.find(team_id=team_id, status=InvitationStatus.PENDING)
        return [i for i in pending if not self._expire_if_due(i, now)]

    def _add_member(self, team: Team, actor: Actor, invitation: TeamInvitation) -> Team:
        member = TeamMember(
            actor.user_id, actor.display_name, TeamRole.MEMBER,
            self._clock(), invitation.invited_by,
        )
        return self._teams.update(team.id, {
            "members": SetTo([*team.members, member]),
            "updated_at": SetTo(self._clock()),
        })

    def _mark(self, invitation: TeamInvitation, status: InvitationStatus) -> TeamInvitation:
        return self._invitations.update(invitation.id, {
            "status": SetTo(status),
            "responded_at": SetTo(self._clock()),
        })

    async def _join(self, actor: Actor, invitation: TeamInvitation, how: str) -> Team:
        team = self._teams.get_team(invitation.team_id)
        if team is None or team.is_deleted:
            raise NotFound("Team not found")
        if team.member(actor.user_id) is not None:
            self._mark(invitation, InvitationStatus.ACCEPTED)
            raise ValidationError("You are already a member of this team")

        updated = self._add_member(team, actor, invitation)
        self._mark(invitation, InvitationStatus.ACCEPTED)
        logger.info("User %s joined team %s %s", actor.user_id, team.id, how)
        await self._notify(
            invitation.invited_by, NotificationType.TEAM_INVITATION_ACCEPTED,
            "Invitation accepted",
            f'{actor.display_name} joined team "{team.name}" {how}',
            team_id=team.id, invitation_id=invitation.id,
        )
        return updated

    async def accept_invitation(self, actor: Actor, invitation_id: str) -> Team:
        invitation = self._invitations.get(invitation_id)
        if invitation is None:
            raise NotFound("Invitation not found")
        if self._expire_if_due(invitation, self._clock()):
            raise ValidationError("The invitation has expired")
        if invitation.status != InvitationStatus.PENDING:
            raise StaleState("This invitation has already been processed")
        if invitation.invited_user_id and invitation.invited_user_id != actor.user_id:
            raise PermissionDenied("This invitation is addressed to another user")
        return await self._join(actor, invitation, "by invitation")

    async def reject_invitation(self, actor: Actor, invitation_id: str) -> TeamInvitation:
        invitation = self._invitations.get(invitation_id)
        if invitation is None:
            raise NotFound("Invitation not found")
        if invitation.status != InvitationStatus.PENDING:
            raise StaleState("This invitation has already been processed")
        if invitation.invited_user_id and invitation.invited_user_id != actor.user_id:
            raise PermissionDenied("This invitation is addressed to another user")

        rejected = self._mark(invitation, InvitationStatus.REJECTED)
        await self._notify(
            invitation.invited_by, NotificationType.TEAM_INVITATION_REJECTED,
            "Invitation declined",
            f'{actor.display_name} declined the invitation to team "{invitation.team_name}"',
            team_id=invitation.team_id, invitation_id=invitation.id,
        )
        return rejected

    async def join_team_by_link(self, actor: Actor, token: str) -> Team:
        invitation = self.get_invitation_by_token(token)
        if invitation is None:
            raise NotFound("Invitation not found or expired")
        if invitation.kind != InvitationKind.LINK:
            raise ValidationError("This invitation is not a link invitation")
        return await self._join(actor, invitation, "through an invitation link")
