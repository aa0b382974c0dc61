"""Tests for taskboard.core.team_service: teams, roles and invitations."""

from datetime import datetime, timedelta

import pytest

from taskboard.core.errors import NotFound, PermissionDenied, StaleState, ValidationError
from taskboard.core.team_service import TOKEN_LENGTH, TeamService, generate_token
from taskboard.data.models import (
    Actor,
    InvitationKind,
    InvitationStatus,
    NotificationType,
    TeamRole,
    User,
)
from taskboard.data.updates import SetTo

NOW = datetime(2024, 3, 15, 10, 0)


@pytest.fixture
def dave(user_db):
    user_db.add_user(User(id="dave", display_name="Dave", email="dave@example.com"))
    return Actor("dave", "Dave")


def _service_at(team_service_deps, when: datetime) -> TeamService:
    team_db, invitation_db, user_db, notifier = team_service_deps
    return TeamService(team_db, invitation_db, user_db, notifier, clock=lambda: when)


@pytest.fixture
def deps(team_db, invitation_db, user_db, notifier):
    return team_db, invitation_db, user_db, notifier


def _token(link: str) -> str:
    return link.rsplit("/", 1)[-1]


class TestTokens:
    def test_token_shape(self):
        token = generate_token()
        assert len(token) == TOKEN_LENGTH
        assert token.isalnum()
        assert generate_token() != token


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------


class TestTeams:
    @pytest.mark.asyncio
    async def test_create_team(self, team_service, alice):
        team = await team_service.create_team(alice, "  Platform ", "infra")
        assert team.name == "Platform"
        assert team.owner_id == "alice"
        assert [(m.user_id, m.role) for m in team.members] == [("alice", TeamRole.OWNER)]
        assert [t.id for t in team_service.list_teams_for_user("alice")] == [team.id]

    @pytest.mark.asyncio
    async def test_name_required(self, team_service, alice):
        with pytest.raises(ValidationError):
            await team_service.create_team(alice, "")

    def test_update_team(self, team_service, team, alice, bob):
        updated = team_service.update_team(alice, team.id, {"description": SetTo("Core team")})
        assert updated.description == "Core team"
        with pytest.raises(ValidationError):
            team_service.update_team(alice, team.id, {"owner_id": SetTo("bob")})
        with pytest.raises(PermissionDenied):
            team_service.update_team(bob, team.id, {"name": SetTo("Bob's")})

    def test_delete_team(self, team_service, team, alice, bob):
        with pytest.raises(PermissionDenied):
            team_service.delete_team(bob, team.id)
        deleted = team_service.delete_team(alice, team.id)
        assert deleted.is_deleted
        assert team_service.get_team(team.id) is None


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


class TestMembers:
    @pytest.mark.asyncio
    async def test_remove_member(self, team_service, notifier, team, alice):
        updated = await team_service.remove_member(alice, team.id, "bob")
        assert updated.member("bob") is None
        args = notifier.notify.call_args.args
        assert args[:2] == ("bob", NotificationType.TEAM_LEAVE)

    @pytest.mark.asyncio
    async def test_owner_cannot_be_removed(self, team_service, team, alice):
        with pytest.raises(ValidationError):
            await team_service.remove_member(alice, team.id, "alice")

    @pytest.mark.asyncio
    async def test_member_cannot_remove(self, team_service, team, bob):
        with pytest.raises(PermissionDenied):
            await team_service.remove_member(bob, team.id, "carol")

    @pytest.mark.asyncio
    async def test_promote_to_admin(self, team_service, notifier, team, alice, bob):
        updated = await team_service.update_member_role(alice, team.id, "bob", TeamRole.ADMIN)
        assert updated.role_of("bob") == TeamRole.ADMIN
        args = notifier.notify.call_args.args
        assert args[:2] == ("bob", NotificationType.TEAM_PERMISSION_CHANGE)

        # admins can now manage members
        await team_service.remove_member(bob, team.id, "carol")

    @pytest.mark.asyncio
    async def test_role_change_rules(self, team_service, team, alice, bob):
        with pytest.raises(PermissionDenied):
            await team_service.update_member_role(bob, team.id, "carol", TeamRole.MEMBER)
        with pytest.raises(ValidationError):
            await team_service.update_member_role(alice, team.id, "alice", TeamRole.MEMBER)
        with pytest.raises(ValidationError):
            await team_service.update_member_role(alice, team.id, "bob", TeamRole.OWNER)
        with pytest.raises(NotFound):
            await team_service.update_member_role(alice, team.id, "dave", TeamRole.MEMBER)

    @pytest.mark.asyncio
    async def test_leave_team_notifies_admins(self, team_service, notifier, team, alice, carol):
        updated = await team_service.leave_team(carol, team.id)
        assert updated.member("carol") is None
        assert [c.args[0] for c in notifier.notify.call_args_list] == ["alice"]
        with pytest.raises(ValidationError):
            await team_service.leave_team(alice, team.id)

    @pytest.mark.asyncio
    async def test_announcement(self, team_service, notifier, team, alice, bob):
        sent = await team_service.send_admin_announcement(alice, team.id, " Release on Friday ")
        assert sent == 2
        recipients = [c.args[0] for c in notifier.notify.call_args_list]
        assert recipients == ["bob", "carol"]
        assert notifier.notify.call_args.args[3] == "Release on Friday"
        with pytest.raises(PermissionDenied):
            await team_service.send_admin_announcement(bob, team.id, "hi")
        with pytest.raises(ValidationError):
            await team_service.send_admin_announcement(alice, team.id, "  ")


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


class TestEmailInvitations:
    @pytest.mark.asyncio
    async def test_invite_and_accept(self, team_service, notifier, team, alice, dave):
        invitation = await team_service.invite_member(alice, team.id, " DAVE@example.com ")

        assert invitation.kind == InvitationKind.EMAIL
        assert invitation.invited_user_id == "dave"
        assert invitation.expires_at == NOW + timedelta(days=7)
        assert len(invitation.token) == TOKEN_LENGTH
        args, kwargs = notifier.notify.call_args
        assert args[:2] == ("dave", NotificationType.TEAM_INVITATION)
        assert kwargs["invitation_id"] == invitation.id

        joined = await team_service.accept_invitation(dave, invitation.id)

        member = joined.member("dave")
        assert member.role == TeamRole.MEMBER
        assert member.invited_by == "alice"
        args = notifier.notify.call_args.args
        assert args[:2] == ("alice", NotificationType.TEAM_INVITATION_ACCEPTED)

        with pytest.raises(StaleState):
            await team_service.accept_invitation(dave, invitation.id)

    @pytest.mark.asyncio
    async def test_unknown_email(self, team_service, team, alice):
        with pytest.raises(NotFound, match="email"):
            await team_service.invite_member(alice, team.id, "nobody@example.com")

    @pytest.mark.asyncio
    async def test_existing_member(self, team_service, team, alice):
        with pytest.raises(ValidationError):
            await team_service.invite_member(alice, team.id, "bob@example.com")

    @pytest.mark.asyncio
    async def test_member_cannot_invite(self, team_service, team, bob, dave):
        with pytest.raises(PermissionDenied):
            await team_service.invite_member(bob, team.id, "dave@example.com")

    @pytest.mark.asyncio
    async def test_only_invitee_can_respond(self, team_service, team, alice, bob, dave):
        invitation = await team_service.invite_member(alice, team.id, "dave@example.com")
        with pytest.raises(PermissionDenied):
            await team_service.accept_invitation(bob, invitation.id)
        with pytest.raises(PermissionDenied):
            await team_service.reject_invitation(bob, invitation.id)

    @pytest.mark.asyncio
    async def test_reject(self, team_service, team_db, notifier, team, alice, dave):
        invitation = await team_service.invite_member(alice, team.id, "dave@example.com")

        rejected = await team_service.reject_invitation(dave, invitation.id)

        assert rejected.status == InvitationStatus.REJECTED
        assert rejected.responded_at == NOW
        assert team_db.get_team(team.id).member("dave") is None
        args = notifier.notify.call_args.args
        assert args[:2] == ("alice", NotificationType.TEAM_INVITATION_REJECTED)

    @pytest.mark.asyncio
    async def test_expired(self, team_service, invitation_db, deps, team, alice, dave):
        invitation = await team_service.invite_member(alice, team.id, "dave@example.com")
        later = _service_at(deps, NOW + timedelta(days=8))

        with pytest.raises(ValidationError, match="expired"):
            await later.accept_invitation(dave, invitation.id)
        assert invitation_db.get(invitation.id).status == InvitationStatus.EXPIRED
        assert later.list_pending_invitations(team.id) == []

    @pytest.mark.asyncio
    async def test_accept_missing(self, team_service, dave):
        with pytest.raises(NotFound):
            await team_service.accept_invitation(dave, "missing")


class TestLinkInvitations:
    @pytest.mark.asyncio
    async def test_join_by_link(self, team_service, invitation_db, team, alice, dave):
        link = team_service.create_invitation_link(alice, team.id)
        assert link.startswith("/team-invitation/")
        token = _token(link)
        assert team_service.get_invitation_by_token(token) is not None
        assert len(team_service.list_pending_invitations(team.id)) == 1

        joined = await team_service.join_team_by_link(dave, token)

        assert joined.member("dave") is not None
        assert invitation_db.get_by_token(token).status == InvitationStatus.ACCEPTED
        assert team_service.get_invitation_by_token(token) is None

    @pytest.mark.asyncio
    async def test_link_is_single_use(self, team_service, user_db, team, alice, dave):
        token = _token(team_service.create_invitation_link(alice, team.id))
        await team_service.join_team_by_link(dave, token)

        user_db.add_user(User(id="erin", display_name="Erin"))
        with pytest.raises(NotFound):
            await team_service.join_team_by_link(Actor("erin", "Erin"), token)

    @pytest.mark.asyncio
    async def test_existing_member_uses_link(self, team_service, invitation_db, team, alice, bob):
        token = _token(team_service.create_invitation_link(alice, team.id))
        with pytest.raises(ValidationError, match="already a member"):
            await team_service.join_team_by_link(bob, token)
        assert invitation_db.get_by_token(token).status == InvitationStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_email_token_is_not_a_link(self, team_service, team, alice, dave):
        invitation = await team_service.invite_member(alice, team.id, "dave@example.com")
        with pytest.raises(ValidationError, match="link"):
            await team_service.join_team_by_link(dave, invitation.token)

    @pytest.mark.asyncio
    async def test_expired_link(self, team_service, deps, team, alice, dave):
        token = _token(team_service.create_invitation_link(alice, team.id))
        later = _service_at(deps, NOW + timedelta(days=7, seconds=1))
        assert later.get_invitation_by_token(token) is None
        with pytest.raises(NotFound):
            await later.join_team_by_link(dave, token)

    def test_unknown_team(self, team_service, alice):
        with pytest.raises(NotFound):
            team_service.create_invitation_link(alice, "missing")
