"""Tests for event synchronization with the platform."""

from datetime import UTC, datetime, timedelta

import pytest

from herald.scheduling.platform import (
    EventLocationType,
    PlatformError,
    RemotePermissionError,
)
from herald.scheduling.store import ItemStore, StoreError
from herald.scheduling.sync import (
    EventRequest,
    EventSynchronizer,
    EventValidationError,
    apply_remote_state,
)
from herald.scheduling.types import (
    EventItem,
    EventReminderItem,
    ItemCollection,
    ItemType,
    ScheduledItem,
)
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

# Far enough ahead that inbound updates land in the future
FUTURE = datetime(2099, 6, 1, 18, 0, tzinfo=UTC)


def request(**overrides) -> EventRequest:
    fields = {
        "workspace_id": WORKSPACE,
        "channel_id": CHANNEL,
        "creator_id": CREATOR,
        "name": "Game Night",
        "start_time": datetime(2026, 1, 21, 18, 0, tzinfo=UTC),
        "event_channel_id": "voice-1",
    }
    fields.update(overrides)
    return EventRequest(**fields)


async def seed(store: ItemStore, *items: ScheduledItem) -> None:
    async with store.mutate(WORKSPACE) as collection:
        for item in items:
            collection.add(item)


class TestCreateEvent:
    """Tests for outbound event creation."""

    @pytest.mark.asyncio
    async def test_creates_remote_and_local_items(
        self, synchronizer: EventSynchronizer, store, client, now
    ):
        created = await synchronizer.create_event(
            request(remind_before=timedelta(minutes=30)), now=now
        )

        assert client.created_specs[0].name == "Game Night"
        assert client.created_specs[0].channel_id == "voice-1"
        assert created.event.scheduled_event_id == created.remote.id
        assert created.reminder is not None
        assert created.reminder.linked_event_id == created.remote.id
        assert created.reminder.trigger_at == datetime(2026, 1, 21, 17, 30, tzinfo=UTC)

        collection = await store.load(WORKSPACE)
        assert [item.id for item in collection.items] == [1, 2]
        assert isinstance(collection.items[0], EventItem)
        assert isinstance(collection.items[1], EventReminderItem)

    @pytest.mark.asyncio
    async def test_without_reminder(self, synchronizer, store, now):
        created = await synchronizer.create_event(request(), now=now)

        assert created.reminder is None
        collection = await store.load(WORKSPACE)
        assert len(collection.items) == 1

    @pytest.mark.asyncio
    async def test_external_event(self, synchronizer, client, now):
        await synchronizer.create_event(
            request(
                location_type=EventLocationType.EXTERNAL,
                event_channel_id=None,
                location="The Pub",
            ),
            now=now,
        )
        assert client.created_specs[0].location_type == EventLocationType.EXTERNAL
        assert client.created_specs[0].location == "The Pub"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": "   "},
            {"start_time": datetime(2026, 1, 20, 11, 0, tzinfo=UTC)},
            {"remind_before": timedelta(0)},
            # Reminder would land before now
            {"remind_before": timedelta(days=2)},
            {"location_type": EventLocationType.EXTERNAL},
            {"event_channel_id": None},
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_requests_create_nothing(
        self, synchronizer, store, client, now, overrides
    ):
        with pytest.raises(EventValidationError):
            await synchronizer.create_event(request(**overrides), now=now)

        assert client.created_specs == []
        assert (await store.load(WORKSPACE)).items == []

    @pytest.mark.asyncio
    async def test_remote_failure_persists_nothing(self, synchronizer, store, client, now):
        client.create_error = RemotePermissionError("Missing Permissions")

        with pytest.raises(PlatformError):
            await synchronizer.create_event(
                request(remind_before=timedelta(minutes=30)), now=now
            )

        assert (await store.load(WORKSPACE)).items == []

    @pytest.mark.asyncio
    async def test_local_failure_deletes_remote_event(self, store, client, now):
        path = store.path_for(WORKSPACE)
        path.parent.mkdir(parents=True)
        path.write_text("{not json")
        synchronizer = EventSynchronizer(store, client)

        with pytest.raises(StoreError):
            await synchronizer.create_event(request(), now=now)

        assert client.events == {}
        assert len(client.deleted) == 1

    @pytest.mark.asyncio
    async def test_requires_client(self, store, now):
        with pytest.raises(PlatformError):
            await EventSynchronizer(store).create_event(request(), now=now)


class TestRemoveItem:
    """Tests for removal and cascade."""

    @pytest.mark.asyncio
    async def test_removing_event_cascades(self, synchronizer, store, client, now):
        created = await synchronizer.create_event(
            request(remind_before=timedelta(minutes=30)), now=now
        )
        await seed(store, make_reminder(3))

        result = await synchronizer.remove_item(WORKSPACE, created.event.id)

        assert result is not None
        assert result.item.id == created.event.id
        assert [i.id for i in result.cascaded] == [created.reminder.id]
        assert result.remote_deleted
        assert created.remote.id not in client.events
        assert [i.id for i in (await store.load(WORKSPACE)).items] == [3]

    @pytest.mark.asyncio
    async def test_remote_already_gone_still_removes_locally(
        self, synchronizer, store, client
    ):
        await seed(store, make_event(1, "evt-1"), make_event_reminder(2, "evt-1"))

        result = await synchronizer.remove_item(WORKSPACE, 1)

        assert result is not None
        assert result.remote_deleted
        assert client.deleted == ["evt-1"]
        assert (await store.load(WORKSPACE)).items == []

    @pytest.mark.asyncio
    async def test_remote_delete_rejected_still_removes_locally(
        self, synchronizer, store, client
    ):
        async def forbidden(workspace_id, event_id):
            raise RemotePermissionError("Missing Permissions")

        client.delete_scheduled_event = forbidden
        await seed(store, make_event(1, "evt-1"))

        result = await synchronizer.remove_item(WORKSPACE, 1)

        assert result is not None
        assert not result.remote_deleted
        assert (await store.load(WORKSPACE)).items == []

    @pytest.mark.asyncio
    async def test_removing_reminder_leaves_event(self, synchronizer, store, client):
        await seed(store, make_event(1, "evt-1"), make_event_reminder(2, "evt-1"))

        result = await synchronizer.remove_item(WORKSPACE, 2)

        assert result is not None
        assert result.cascaded == []
        assert client.deleted == []
        assert [i.id for i in (await store.load(WORKSPACE)).items] == [1]

    @pytest.mark.asyncio
    async def test_type_filter_and_missing_item(self, synchronizer, store):
        await seed(store, make_reminder(1))

        assert await synchronizer.remove_item(WORKSPACE, 1, ItemType.EVENT) is None
        assert await synchronizer.remove_item(WORKSPACE, 42) is None
        assert len((await store.load(WORKSPACE)).items) == 1

    @pytest.mark.asyncio
    async def test_without_client_removes_locally(self, store):
        await seed(store, make_event(1, "evt-1"))

        result = await EventSynchronizer(store).remove_item(WORKSPACE, 1)

        assert result is not None
        assert not result.remote_deleted
        assert (await store.load(WORKSPACE)).items == []


class TestInbound:
    """Tests for remote edits and deletions."""

    @pytest.mark.asyncio
    async def test_update_moves_event_and_reminder(self, synchronizer, store):
        await seed(
            store,
            make_event(1, "evt-1"),
            make_event_reminder(2, "evt-1", remind_before=timedelta(minutes=15)),
        )
        before = make_remote_event("evt-1")
        after = make_remote_event(
            "evt-1", FUTURE, name="Board Games", description="Bring snacks"
        )

        changed = await synchronizer.handle_remote_update(before, after)

        assert {item.id for item in changed} == {1, 2}
        collection = await store.load(WORKSPACE)
        event, reminder = collection.items
        assert event.event_name == "Board Games"
        assert event.description == "Bring snacks"
        assert event.trigger_at == FUTURE
        assert reminder.event_name == "Board Games"
        assert reminder.trigger_at == FUTURE - timedelta(minutes=15)

    @pytest.mark.asyncio
    async def test_update_rearms_fired_items(self, synchronizer, store):
        await seed(
            store,
            make_event(1, "evt-1", active=False),
            make_event_reminder(2, "evt-1", active=False),
        )

        await synchronizer.handle_remote_update(None, make_remote_event("evt-1", FUTURE))

        collection = await store.load(WORKSPACE)
        assert all(item.active for item in collection.items)

    @pytest.mark.asyncio
    async def test_update_for_unknown_event_is_ignored(self, synchronizer, store):
        await seed(store, make_event(1, "evt-1"))

        changed = await synchronizer.handle_remote_update(
            None, make_remote_event("evt-other", FUTURE)
        )

        assert changed == []
        assert (await store.load(WORKSPACE)).items[0].trigger_at != FUTURE

    @pytest.mark.asyncio
    async def test_delete_removes_linked_items(self, synchronizer, store):
        await seed(
            store,
            make_event(1, "evt-1"),
            make_event_reminder(2, "evt-1"),
            make_reminder(3),
        )

        removed = await synchronizer.handle_remote_delete(make_remote_event("evt-1"))

        assert {item.id for item in removed} == {1, 2}
        assert [i.id for i in (await store.load(WORKSPACE)).items] == [3]

    @pytest.mark.asyncio
    async def test_delete_for_unknown_event_is_ignored(self, synchronizer, store):
        await seed(store, make_event(1, "evt-1"))
        assert await synchronizer.handle_remote_delete(make_remote_event("evt-2")) == []
        assert len((await store.load(WORKSPACE)).items) == 1

    def test_apply_remote_state_keeps_location_when_absent(self, now):
        event = make_event(1, "evt-1", location="The Pub")
        collection = ItemCollection(items=[event])

        apply_remote_state(collection, make_remote_event("evt-1", location=None), now)

        assert event.location == "The Pub"


class TestReconcile:
    """Tests for startup reconciliation."""

    @pytest.mark.asyncio
    async def test_applies_drift_and_drops_missing(
        self, synchronizer, store, client: FakePlatformClient
    ):
        client.add_event(make_remote_event("evt-1", FUTURE, name="Renamed"))
        client.fetch_errors["evt-3"] = PlatformError("rate limited")
        await seed(
            store,
            make_event(1, "evt-1"),
            make_event(2, "evt-gone"),
            make_event_reminder(3, "evt-gone"),
            make_event(4, "evt-3"),
        )

        touched = await synchronizer.reconcile(WORKSPACE)

        assert touched == 2
        collection = await store.load(WORKSPACE)
        assert [item.id for item in collection.items] == [1, 4]
        assert collection.get(1).event_name == "Renamed"
        assert collection.get(1).trigger_at == FUTURE
