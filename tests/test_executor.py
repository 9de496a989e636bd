"""Tests for notification delivery."""

from datetime import timedelta

import pytest

from herald.scheduling.executor import ReminderExecutor, dedupe
from herald.scheduling.platform import (
    AllowedMentions,
    ChannelUnavailableError,
    PlatformError,
)
from herald.scheduling.sync import EventRequest
from herald.scheduling.types import ItemCollection
from tests.conftest import (
    CHANNEL,
    CREATOR,
    WORKSPACE,
    FakePlatformClient,
    make_event,
    make_event_reminder,
    make_remote_event,
    make_reminder,
)


@pytest.fixture
def executor(client: FakePlatformClient) -> ReminderExecutor:
    return ReminderExecutor(client)


def test_dedupe_keeps_first_seen_order():
    assert dedupe(["a", "b", "a", "c", "b"]) == ["a", "b", "c"]


class TestReminders:
    """Tests for standalone reminders."""

    @pytest.mark.asyncio
    async def test_channel_reminder_mentions_everyone(self, executor, client, now):
        item = make_reminder(message="Standup in 5")

        assert await executor.fire(item, ItemCollection(items=[item]), now)

        [sent] = client.sent
        assert sent.channel_id == CHANNEL
        assert sent.content == "@everyone **Reminder:** Standup in 5"
        assert sent.allowed_mentions == AllowedMentions(everyone=True)

    @pytest.mark.asyncio
    async def test_personal_reminder_mentions_only_creator(self, executor, client, now):
        link = "https://discord.com/channels/guild-1/chan-1/msg-1"
        item = make_reminder(message=None, message_link=link)

        await executor.fire(item, ItemCollection(items=[item]), now)

        [sent] = client.sent
        assert sent.content == f"<@{CREATOR}> **Reminder:** {link}"
        assert sent.allowed_mentions == AllowedMentions(users=[CREATOR])
        assert "@everyone" not in sent.content

    @pytest.mark.asyncio
    async def test_delivery_errors_propagate(self, executor, client, now):
        client.send_errors[CHANNEL] = ChannelUnavailableError("deleted channel")
        item = make_reminder()

        with pytest.raises(ChannelUnavailableError):
            await executor.fire(item, ItemCollection(items=[item]), now)


class TestEventReminders:
    """Tests for event reminders and subscriber notification."""

    @pytest.mark.asyncio
    async def test_mentions_creator_and_subscribers(self, executor, client, now):
        start = now + timedelta(minutes=30)
        client.add_event(make_remote_event("evt-1", start))
        client.subscribers["evt-1"] = ["u-a", "u-b", "u-c"]
        event = make_event(1, "evt-1", trigger_at=start)
        reminder = make_event_reminder(2, "evt-1", event_start=start)
        collection = ItemCollection(items=[event, reminder])

        assert await executor.fire(reminder, collection, now)

        [sent] = client.sent
        recipients = [CREATOR, "u-a", "u-b", "u-c"]
        assert sent.content == (
            "⏰ **Game Night** starts in 30m!\n" + " ".join(f"<@{u}>" for u in recipients)
        )
        assert sent.allowed_mentions == AllowedMentions(users=recipients)

    @pytest.mark.asyncio
    async def test_creator_subscribed_is_mentioned_once(self, executor, client, now):
        start = now + timedelta(minutes=30)
        client.add_event(make_remote_event("evt-1", start))
        client.subscribers["evt-1"] = ["u-a", CREATOR]
        event = make_event(1, "evt-1", trigger_at=start)
        reminder = make_event_reminder(2, "evt-1", event_start=start)

        await executor.fire(reminder, ItemCollection(items=[event, reminder]), now)

        [sent] = client.sent
        assert sent.content.count(f"<@{CREATOR}>") == 1
        assert sent.allowed_mentions.users == [CREATOR, "u-a"]

    @pytest.mark.asyncio
    async def test_orphaned_reminder_sends_nothing(self, executor, client, now):
        reminder = make_event_reminder(2, "evt-1")
        collection = ItemCollection(items=[reminder])

        assert not await executor.fire(reminder, collection, now)
        assert client.sent == []
        assert collection.contains(reminder)

    @pytest.mark.asyncio
    async def test_remote_event_gone_detaches_local_items(self, executor, client, now):
        event = make_event(1, "evt-1")
        reminder = make_event_reminder(2, "evt-1")
        unrelated = make_reminder(3)
        collection = ItemCollection(items=[event, reminder, unrelated])

        assert not await executor.fire(reminder, collection, now)

        assert client.sent == []
        assert collection.items == [unrelated]
        assert collection.dirty

    @pytest.mark.asyncio
    async def test_subscriber_fetch_failure_keeps_items(self, executor, client, now):
        client.add_event(make_remote_event("evt-1"))
        client.subscriber_errors["evt-1"] = PlatformError("rate limited")
        event = make_event(1, "evt-1")
        reminder = make_event_reminder(2, "evt-1")
        collection = ItemCollection(items=[event, reminder])

        assert not await executor.fire(reminder, collection, now)

        assert client.sent == []
        assert collection.items == [event, reminder]

    @pytest.mark.asyncio
    async def test_event_item_sends_nothing(self, executor, client, now):
        event = make_event(1, "evt-1")
        assert not await executor.fire(event, ItemCollection(items=[event]), now)
        assert client.sent == []


class TestLiveSubscribers:
    """Subscribers are read from the platform at fire time."""

    @pytest.mark.asyncio
    async def test_mentions_subscribers_present_at_fire(
        self, scheduler, synchronizer, store, client, now
    ):
        await scheduler.initialize(client)
        created = await synchronizer.create_event(
            EventRequest(
                workspace_id=WORKSPACE,
                channel_id=CHANNEL,
                creator_id=CREATOR,
                name="Game Night",
                start_time=now + timedelta(minutes=30),
                remind_before=timedelta(minutes=30),
                event_channel_id="voice-1",
            ),
            now=now,
        )
        remote_id = created.remote.id
        client.subscribers[remote_id] = ["u-a"]

        # Interest changes between creation and the reminder firing
        client.subscribers[remote_id] = ["u-b"]
        report = await scheduler.check_all_items(now)
        client.subscribers[remote_id].append("u-c")
        await scheduler.check_all_items(now + timedelta(minutes=1))

        assert report.fired == 1
        [sent] = client.sent
        assert sent.content == (
            f"⏰ **Game Night** starts in 30m!\n<@{CREATOR}> <@u-b>"
        )
        assert sent.allowed_mentions == AllowedMentions(users=[CREATOR, "u-b"])
