from __future__ import annotations

import asyncio

from warden.moderation.models import ActionDraft, Disposition
from warden.services.moderation_store import ModerationStore

NOW = 1_700_000_000


def _draft(target_id: int = 1001, kind: str = "ban", duration: int | None = 3600, issued_at: int = NOW) -> ActionDraft:
    return ActionDraft(
        kind=kind,
        target_id=target_id,
        target_label=f"user-{target_id}",
        operator_id=9001,
        operator_label="Mod",
        reason="spam",
        issued_at=issued_at,
        duration=duration,
        origin_reference="https://discord.com/channels/1/2",
    )


def _by(reason: str | None = None, at: int = NOW + 10) -> Disposition:
    return Disposition(operator_id=9002, operator_label="Other mod", reason=reason, timestamp=at)


async def test_create_assigns_sequential_case_ids(store: ModerationStore) -> None:
    first = await store.create_action(_draft())
    second = await store.create_action(_draft(target_id=1002))

    assert (first.case_id, second.case_id) == (1, 2)
    assert first.active is True
    assert first.reason == "spam"
    assert first.expires_at == NOW + 3600
    assert first.origin_reference == "https://discord.com/channels/1/2"
    assert first.status == "active"


async def test_case_ids_continue_across_store_instances(store: ModerationStore, db_path: str) -> None:
    await store.create_action(_draft())

    reopened = ModerationStore(db_path)
    await reopened.init()
    record = await reopened.create_action(_draft(target_id=1002))

    assert record.case_id == 2


async def test_concurrent_creates_get_distinct_case_ids(store: ModerationStore) -> None:
    records = await asyncio.gather(*(store.create_action(_draft(target_id=2000 + i)) for i in range(5)))

    assert sorted(r.case_id for r in records) == [1, 2, 3, 4, 5]


async def test_find_active_matches_target_and_kind(store: ModerationStore) -> None:
    ban = await store.create_action(_draft(kind="ban"))
    await store.create_action(_draft(kind="mute"))

    found = await store.find_active(1001, "ban")
    assert found is not None and found.id == ban.id
    assert await store.find_active(1002, "ban") is None

    await store.update_on_revoke(ban.id, _by())
    assert await store.find_active(1001, "ban") is None


async def test_revoke_only_succeeds_once(store: ModerationStore) -> None:
    record = await store.create_action(_draft())

    revoked = await store.update_on_revoke(record.id, _by("appeal"))
    assert revoked is not None
    assert revoked.active is False
    assert revoked.removed is not None
    assert revoked.removed.reason == "appeal"
    assert revoked.removed.operator_label == "Other mod"
    assert revoked.status == "removed"

    assert await store.update_on_revoke(record.id, _by("again")) is None
    assert await store.update_on_expire(record.id, NOW + 3600) is None


async def test_expire_sets_expired_at_without_removed(store: ModerationStore) -> None:
    record = await store.create_action(_draft())

    expired = await store.update_on_expire(record.id, NOW + 3600)

    assert expired is not None
    assert expired.active is False
    assert expired.removed is None
    assert expired.expired_at == NOW + 3600
    assert expired.status == "expired"
    assert await store.update_on_revoke(record.id, _by()) is None


async def test_list_active_with_expiry_skips_indefinite_and_closed(store: ModerationStore) -> None:
    timed = await store.create_action(_draft(target_id=1, duration=600))
    await store.create_action(_draft(target_id=2, duration=None))
    closed = await store.create_action(_draft(target_id=3, duration=60))
    await store.update_on_revoke(closed.id, _by())

    pending = await store.list_active_with_expiry()

    assert [r.id for r in pending] == [timed.id]


async def test_list_active_by_target(store: ModerationStore) -> None:
    await store.create_action(_draft(target_id=1, kind="ban"))
    await store.create_action(_draft(target_id=1, kind="mute"))
    await store.create_action(_draft(target_id=2, kind="ban"))

    assert len(await store.list_active()) == 3
    assert {r.kind for r in await store.list_active(1)} == {"ban", "mute"}


async def test_history_is_newest_first_and_clamped(store: ModerationStore) -> None:
    for _ in range(3):
        record = await store.create_action(_draft())
        await store.update_on_revoke(record.id, _by())

    history = await store.list_for_target(1001, limit=0)
    assert [r.case_id for r in history] == [3]

    history = await store.list_for_target(1001, limit=10)
    assert [r.case_id for r in history] == [3, 2, 1]


async def test_expunge_reports_prior_state_once(store: ModerationStore) -> None:
    record = await store.create_action(_draft())

    result = await store.update_on_expunge(record.id, _by("mistake"))
    assert result is not None
    expunged, was_active = result
    assert was_active is True
    assert expunged.active is False
    assert expunged.expunged is not None and expunged.expunged.reason == "mistake"
    assert expunged.status == "expunged"

    assert await store.update_on_expunge(record.id, _by()) is None


async def test_expunge_of_closed_record(store: ModerationStore) -> None:
    record = await store.create_action(_draft())
    await store.update_on_expire(record.id, NOW + 3600)

    result = await store.update_on_expunge(record.id, _by())

    assert result is not None
    expunged, was_active = result
    assert was_active is False
    assert expunged.expired_at == NOW + 3600


async def test_get_by_case(store: ModerationStore) -> None:
    record = await store.create_action(_draft())

    assert (await store.get_by_case(record.case_id)) == record
    assert await store.get_by_case(99) is None
    assert await store.get(record.id) == record
