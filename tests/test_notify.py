from __future__ import annotations

from types import SimpleNamespace

from warden.constants import CASE_COLORS
from warden.database import initialize_database
from warden.moderation.models import AuditEvent, Disposition, ModerationAction
from warden.moderation.notify import case_summary
from warden.permissions import ExemptionPolicy
from warden.services.moderation_store import ModerationStore


def _action(**overrides) -> ModerationAction:
    fields = dict(
        id=1,
        case_id=7,
        kind="ban",
        target_id=1001,
        target_label="U1",
        operator_id=9001,
        operator_label="Mod",
        reason="spam",
        issued_at=1_700_000_000,
        duration=5400,
        active=True,
        origin_reference="https://discord.com/channels/1/2",
    )
    fields.update(overrides)
    return ModerationAction(**fields)


def test_case_summary_for_issue() -> None:
    embed = case_summary(_action(), AuditEvent.ISSUED, verb="banned", undo_verb="unbanned")

    assert embed.title == "Case 7: Banned"
    assert embed.color.value == CASE_COLORS["issued"]
    fields = {f.name: f.value for f in embed.fields}
    assert fields["Duration"] == "1 hour 30 minutes"
    assert fields["Status"] == "active"
    assert fields["Context"] == "https://discord.com/channels/1/2"
    assert "Ended by" not in fields


def test_case_summary_for_revoke() -> None:
    action = _action(active=False, removed=Disposition(9002, "Other", "appeal", 1_700_000_100))

    embed = case_summary(action, AuditEvent.REVOKED, verb="banned", undo_verb="unbanned", note="late")

    assert embed.title == "Case 7: Unbanned"
    fields = {f.name: f.value for f in embed.fields}
    assert fields["Ended by"] == "Other: appeal"
    assert fields["Note"] == "late"


def test_case_summary_without_verbs_falls_back_to_kind() -> None:
    embed = case_summary(_action(kind="mute", active=False, expired_at=1), AuditEvent.EXPIRED)

    assert embed.title == "Case 7: Mute (expired)"


async def test_initialize_database_creates_tables(tmp_path) -> None:
    path = str(tmp_path / "init.sqlite3")
    store = ModerationStore(path)

    await initialize_database(path, [store])

    assert await store.list_active() == []


def _bot(guild) -> SimpleNamespace:
    return SimpleNamespace(user=SimpleNamespace(id=1), get_guild=lambda gid: guild)


def _member(role_names=(), **perms) -> SimpleNamespace:
    flags = dict(administrator=False, ban_members=False, moderate_members=False, manage_messages=False)
    flags.update(perms)
    return SimpleNamespace(
        roles=[SimpleNamespace(name=n) for n in role_names],
        guild_permissions=SimpleNamespace(**flags),
    )


async def test_exemption_policy() -> None:
    members = {
        10: _member(["Moderator"]),
        11: _member(manage_messages=True),
        12: _member(["Regular"]),
    }
    guild = SimpleNamespace(owner_id=5, get_member=members.get)
    policy = ExemptionPolicy(_bot(guild), guild_id=42, owner_id=99, staff_role_names=["Staff", "Moderator"])

    assert await policy(99) is True
    assert await policy(1) is True
    assert await policy(5) is True
    assert await policy(10) is True
    assert await policy(11) is True
    assert await policy(12) is False
    assert await policy(13) is False
