"""Tests for staffhub.core.events — lifecycle transitions and sign-ups."""

import logging
from datetime import datetime

import pytest

from staffhub.core.auth import Principal
from staffhub.core.errors import AuthorizationError, NotFoundError, PreconditionError, ValidationError
from staffhub.core.events import EventService
from staffhub.core.levels import LevelService
from staffhub.data.models import EventStatus

from conftest import FakeChannel

NEW_EVENT = {
    "name": "Spring Festival",
    "date": "2099-04-10",
    "time": "12:00",
    "duration": "5 hours",
    "location": "Park",
    "points": 150,
    "requiredLevel": "Level 1",
}


@pytest.fixture
def service(repo, notifier):
    return EventService(repo, notifier, clock=lambda: datetime(2030, 1, 1, 9, 0))


def _me(member):
    return Principal(id=member.id)


class TestCreate:
    @pytest.mark.asyncio
    async def test_draft_by_default_and_silent(self, service, channels, make_staff, admin):
        make_staff("A")
        event = await service.create_event(admin, NEW_EVENT)
        assert event.status == EventStatus.DRAFT
        assert event.signed_up_staff == []
        assert channels["telegram"].sent == []

    @pytest.mark.asyncio
    async def test_created_open_notifies_eligible(self, service, channels, make_staff, admin):
        a = make_staff("A")
        await service.create_event(admin, {**NEW_EVENT, "status": "open"})
        assert channels["telegram"].addresses == [a.telegram_chat_id]
        assert channels["whatsapp"].addresses == [a.phone]

    @pytest.mark.asyncio
    async def test_accepts_snake_case_keys(self, service, admin):
        data = {**NEW_EVENT}
        data.pop("requiredLevel")
        event = await service.create_event(admin, {**data, "required_level": "Level 2"})
        assert event.required_level == "Level 2"

    @pytest.mark.asyncio
    async def test_protected_fields_ignored(self, service, admin):
        event = await service.create_event(admin, {**NEW_EVENT, "signedUpStaff": ["x"], "pointsAwarded": ["x"]})
        assert event.signed_up_staff == []
        assert event.points_awarded == []

    @pytest.mark.asyncio
    async def test_invalid_input(self, service, admin):
        with pytest.raises(ValidationError):
            await service.create_event(admin, {**NEW_EVENT, "time": "noon"})
        with pytest.raises(ValidationError):
            await service.create_event(admin, {**NEW_EVENT, "status": "closed"})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("blank", ["date", "location", "requiredLevel"])
    async def test_required_fields_cannot_be_blank(self, service, repo, admin, blank):
        with pytest.raises(ValidationError):
            await service.create_event(admin, {**NEW_EVENT, blank: ""})
        assert repo.list_events() == []

    @pytest.mark.asyncio
    async def test_update_cannot_blank_the_date(self, service, repo, make_event, admin):
        event = make_event()
        with pytest.raises(ValidationError):
            await service.update_event(admin, event.id, {"date": ""})
        assert repo.get_event(event.id).date == event.date
        assert len(service.list_events(admin)) == 1

    @pytest.mark.asyncio
    async def test_staff_cannot_create(self, service, make_staff):
        with pytest.raises(AuthorizationError):
            await service.create_event(_me(make_staff("A")), NEW_EVENT)


class TestUpdate:
    @pytest.mark.asyncio
    async def test_location_only_notifies_signed_up(self, service, channels, make_staff, make_event, admin):
        a, b = make_staff("A"), make_staff("B")
        make_staff("Bystander")
        event = make_event(signed_up_staff=[a.id, b.id])

        await service.update_event(admin, event.id, {"location": "Rooftop"})

        assert channels["telegram"].addresses == [a.telegram_chat_id, b.telegram_chat_id]
        text = channels["telegram"].sent[0][1].text
        assert "Location: Main Hall → Rooftop" in text
        assert "Time:" not in text.split("*Current Event Details:*")[0]
        assert channels["whatsapp"].sent == []

    @pytest.mark.asyncio
    async def test_identical_payload_notifies_nobody(self, service, channels, make_staff, make_event, admin):
        a = make_staff("A")
        event = make_event(signed_up_staff=[a.id])
        await service.update_event(admin, event.id, {"location": event.location, "points": event.points})
        assert channels["telegram"].sent == []

    @pytest.mark.asyncio
    async def test_closed_event_notifies_confirmed_only(self, service, channels, make_staff, make_event, admin):
        a, b = make_staff("A"), make_staff("B")
        event = make_event(status=EventStatus.CLOSED, signed_up_staff=[a.id, b.id], confirmed_staff=[a.id])
        await service.update_event(admin, event.id, {"time": "19:00"})
        assert channels["telegram"].addresses == [a.telegram_chat_id]

    @pytest.mark.asyncio
    async def test_preserves_membership_and_history(self, service, repo, make_staff, make_event, admin):
        a = make_staff("A")
        event = make_event(
            status=EventStatus.CLOSED, signed_up_staff=[a.id], confirmed_staff=[a.id],
            points_awarded=[a.id], close_generation=2, sign_up_timestamps={a.id: "t"},
        )
        updated = await service.update_event(admin, event.id, {
            "name": "Renamed", "signedUpStaff": [], "closeGeneration": 0, "createdAt": "x",
        })
        assert updated.name == "Renamed"
        assert updated.signed_up_staff == [a.id]
        assert updated.confirmed_staff == [a.id]
        assert updated.points_awarded == [a.id]
        assert updated.sign_up_timestamps == {a.id: "t"}
        assert updated.close_generation == 2
        assert updated.created_at == event.created_at

    @pytest.mark.asyncio
    async def test_draft_to_open_sends_new_event(self, service, channels, make_staff, make_event, admin):
        a = make_staff("A")
        event = make_event(status=EventStatus.DRAFT)
        await service.update_event(admin, event.id, {"status": "open", "location": "Elsewhere"})
        assert channels["whatsapp"].addresses == [a.phone]
        assert "New Event Available" in channels["telegram"].sent[0][1].text

    @pytest.mark.asyncio
    async def test_draft_edit_is_silent(self, service, channels, make_staff, make_event, admin):
        make_staff("A")
        event = make_event(status=EventStatus.DRAFT)
        await service.update_event(admin, event.id, {"location": "Elsewhere"})
        assert channels["telegram"].sent == []

    @pytest.mark.asyncio
    async def test_cancelled_status_needs_dedicated_operations(self, service, make_event, admin):
        event = make_event()
        with pytest.raises(PreconditionError):
            await service.update_event(admin, event.id, {"status": "cancelled"})

    @pytest.mark.asyncio
    async def test_missing_event(self, service, admin):
        with pytest.raises(NotFoundError):
            await service.update_event(admin, "nope", {"location": "x"})

    @pytest.mark.asyncio
    async def test_publish(self, service, make_event, admin):
        event = make_event(status=EventStatus.DRAFT)
        assert (await service.publish_event(admin, event.id)).status == EventStatus.OPEN
        with pytest.raises(PreconditionError):
            await service.publish_event(admin, event.id)


class TestClose:
    @pytest.mark.asyncio
    async def test_first_close_then_reclose(self, service, channels, make_staff, make_event, admin):
        a, b, c = make_staff("A"), make_staff("B"), make_staff("C")
        event = make_event(signed_up_staff=[a.id, b.id, c.id])
        telegram = channels["telegram"]

        first = await service.close_event(admin, event.id, [a.id, b.id])

        assert first.event.status == EventStatus.CLOSED
        assert first.event.confirmed_staff == [a.id, b.id]
        assert first.event.close_generation == 1
        assert first.event.has_been_closed_before is True
        sent = dict(telegram.sent)
        assert set(sent) == {a.telegram_chat_id, b.telegram_chat_id, c.telegram_chat_id}
        assert "Congratulations" in sent[a.telegram_chat_id].text
        assert "not selected" in sent[c.telegram_chat_id].text

        telegram.sent.clear()
        second = await service.close_event(admin, event.id, [a.id, c.id])

        assert second.selection.added == [c.id]
        assert second.selection.removed == [b.id]
        assert second.event.close_generation == 2
        sent = dict(telegram.sent)
        assert set(sent) == {b.telegram_chat_id, c.telegram_chat_id}
        assert "Congratulations" in sent[c.telegram_chat_id].text
        assert "not selected" in sent[b.telegram_chat_id].text

    @pytest.mark.asyncio
    async def test_approved_must_be_signed_up(self, service, repo, make_staff, make_event, admin):
        a, b = make_staff("A"), make_staff("B")
        event = make_event(signed_up_staff=[a.id])
        with pytest.raises(ValidationError):
            await service.close_event(admin, event.id, [a.id, b.id])
        assert repo.get_event(event.id).status == EventStatus.OPEN

    @pytest.mark.asyncio
    async def test_cannot_close_draft_or_cancelled(self, service, make_event, admin):
        for status in (EventStatus.DRAFT, EventStatus.CANCELLED):
            event = make_event(status=status)
            with pytest.raises(PreconditionError):
                await service.close_event(admin, event.id, [])


class TestCancelAndReinstate:
    @pytest.mark.asyncio
    async def test_cancel_notifies_then_purges(self, service, repo, channels, make_staff, make_event, admin):
        a, b = make_staff("A"), make_staff("B")
        event = make_event(signed_up_staff=[a.id, b.id], sign_up_timestamps={a.id: "t1", b.id: "t2"})

        seen_during_send = []
        original_send = channels["email"].send

        async def spying_send(address, message):
            seen_during_send.append(list(repo.get_event(event.id).signed_up_staff))
            return await original_send(address, message)

        channels["email"].send = spying_send

        result = await service.cancel_event(admin, event.id)

        assert result.status == EventStatus.CANCELLED
        assert result.signed_up_staff == []
        assert result.sign_up_timestamps == {}
        assert channels["email"].addresses == [a.email, b.email]
        assert channels["telegram"].addresses == [a.telegram_chat_id, b.telegram_chat_id]
        assert channels["whatsapp"].addresses == [a.phone, b.phone]
        assert seen_during_send == [[a.id, b.id], [a.id, b.id]]
        stored = repo.get_event(event.id)
        assert stored.status == EventStatus.CANCELLED
        assert stored.signed_up_staff == []

    @pytest.mark.asyncio
    async def test_cancel_purges_even_if_delivery_fails(self, repo, make_staff, make_event, admin):
        from staffhub.core.dispatcher import NotificationDispatcher
        from staffhub.core.notifications import NotificationService

        failing = {name: FakeChannel(name, connected=False) for name in ("email", "telegram", "whatsapp")}
        notifier = NotificationService(
            repo, dispatcher=NotificationDispatcher(delay_seconds=0),
            channel_factory=lambda name, config: failing[name], background=False,
        )
        a = make_staff("A")
        event = make_event(signed_up_staff=[a.id])
        result = await EventService(repo, notifier).cancel_event(admin, event.id)
        assert result.signed_up_staff == []

    @pytest.mark.asyncio
    async def test_cancel_twice(self, service, make_event, admin):
        event = make_event()
        await service.cancel_event(admin, event.id)
        with pytest.raises(PreconditionError):
            await service.cancel_event(admin, event.id)

    @pytest.mark.asyncio
    async def test_reinstate(self, service, channels, make_staff, make_event, admin):
        a = make_staff("A")
        event = make_event(signed_up_staff=[a.id])
        await service.cancel_event(admin, event.id)
        for ch in channels.values():
            ch.sent.clear()

        reinstated = service.reinstate_event(admin, event.id)

        assert reinstated.status == EventStatus.OPEN
        assert reinstated.signed_up_staff == []
        assert all(ch.sent == [] for ch in channels.values())

    def test_reinstate_requires_cancelled(self, service, make_event, admin):
        with pytest.raises(PreconditionError):
            service.reinstate_event(admin, make_event().id)

    def test_delete(self, service, repo, make_event, admin):
        event = make_event()
        service.delete_event(admin, event.id)
        assert repo.get_event(event.id) is None
        with pytest.raises(NotFoundError):
            service.delete_event(admin, event.id)


class TestSignUp:
    def test_sign_up_records_timestamp(self, service, make_staff, make_event):
        a = make_staff("A")
        event = service.sign_up(_me(a), make_event().id)
        assert event.signed_up_staff == [a.id]
        assert a.id in event.sign_up_timestamps

    def test_twice_rejected(self, service, make_staff, make_event):
        a = make_staff("A")
        event = make_event()
        service.sign_up(_me(a), event.id)
        with pytest.raises(PreconditionError):
            service.sign_up(_me(a), event.id)

    @pytest.mark.parametrize("overrides", [
        {"status": EventStatus.DRAFT},
        {"status": EventStatus.CLOSED},
        {"status": EventStatus.CANCELLED},
        {"date": "2020-01-01"},
        {"required_level": "Level 2"},
    ])
    def test_rejected(self, service, repo, make_staff, make_event, overrides):
        a = make_staff("A")
        event = make_event(**overrides)
        with pytest.raises(PreconditionError):
            service.sign_up(_me(a), event.id)
        assert repo.get_event(event.id).signed_up_staff == []

    def test_deleted_level_denies_everyone(self, service, repo, make_staff, make_event, admin):
        senior = make_staff("Senior", level="Level 2")
        event = make_event(required_level="Level 2")
        LevelService(repo).delete_level(admin, "level-2")

        assert repo.get_event(event.id) is not None
        with pytest.raises(PreconditionError):
            service.sign_up(_me(senior), event.id)
        assert service.list_events(_me(senior)) == []

    def test_cancel_sign_up(self, service, make_staff, make_event):
        a = make_staff("A")
        event = make_event()
        service.sign_up(_me(a), event.id)
        after = service.cancel_sign_up(_me(a), event.id)
        assert after.signed_up_staff == []
        assert after.sign_up_timestamps == {}
        with pytest.raises(PreconditionError):
            service.cancel_sign_up(_me(a), event.id)

    def test_unknown_staff_or_event(self, service, make_staff, make_event):
        with pytest.raises(NotFoundError):
            service.sign_up(Principal(id="ghost"), make_event().id)
        with pytest.raises(NotFoundError):
            service.sign_up(_me(make_staff("A")), "nope")


class TestAdminSignUp:
    def test_bypasses_level_and_logs_override(self, service, make_staff, make_event, admin, caplog):
        junior = make_staff("Junior", level="Level 1")
        event = make_event(required_level="Level 2", date="2020-01-01")

        with caplog.at_level(logging.WARNING, logger="staffhub.core.events"):
            result = service.admin_sign_up(admin, event.id, [junior.id])

        assert result.added == [junior.id]
        assert result.event.signed_up_staff == [junior.id]
        assert any("override" in r.getMessage().lower() for r in caplog.records)

    def test_only_new_ids_added(self, service, make_staff, make_event, admin):
        a, b = make_staff("A"), make_staff("B")
        event = make_event(signed_up_staff=[a.id])
        result = service.admin_sign_up(admin, event.id, [a.id, b.id])
        assert result.added == [b.id]
        with pytest.raises(PreconditionError):
            service.admin_sign_up(admin, event.id, [a.id, b.id])

    def test_rejects_cancelled_and_unknown(self, service, make_staff, make_event, admin):
        a = make_staff("A")
        with pytest.raises(PreconditionError):
            service.admin_sign_up(admin, make_event(status=EventStatus.CANCELLED).id, [a.id])
        with pytest.raises(NotFoundError):
            service.admin_sign_up(admin, make_event().id, ["ghost"])

    def test_staff_cannot_use(self, service, make_staff, make_event):
        a = make_staff("A")
        with pytest.raises(AuthorizationError):
            service.admin_sign_up(_me(a), make_event().id, [a.id])


class TestListEvents:
    def test_admin_sees_everything(self, service, make_event, admin):
        for status in EventStatus:
            make_event(status=status)
        assert len(service.list_events(admin)) == 4

    def test_staff_visibility(self, service, make_staff, make_event):
        a = make_staff("A", level="Level 1")
        visible = make_event(name="Open L1")
        make_event(name="Draft", status=EventStatus.DRAFT)
        make_event(name="Senior only", required_level="Level 2")
        signed = make_event(name="Admin added me", required_level="Level 2", signed_up_staff=[a.id])
        names = {e.name for e in service.list_events(_me(a))}
        assert names == {visible.name, signed.name}
