"""Scheduling subsystem: time-triggered reminders and platform events.

Public API:
- ItemStore: Per-workspace JSON persistence
- Scheduler: Polling loop that fires due items
- EventSynchronizer: Keeps local event items in step with remote events
- ReminderExecutor: Delivers notifications for due items
- ScheduleCommands: Command and notification entry points
- SchedulingService: Wires everything together

Types:
- ScheduledItem and its variants EventItem, EventReminderItem, ReminderItem
- ItemCollection: A workspace's persisted document
- Recurrence: Frequency + interval rule
"""

from herald.scheduling.commands import CommandError, ScheduleCommands
from herald.scheduling.engine import Scheduler, TickReport
from herald.scheduling.executor import ReminderExecutor
from herald.scheduling.parsing import (
    format_recurrence,
    format_relative_time,
    parse_datetime,
    parse_duration,
    parse_recurrence,
    parse_relative_time,
    parse_time_expression,
)
from herald.scheduling.service import SchedulingService
from herald.scheduling.store import (
    ItemStore,
    StoreError,
    get_next_item_id,
    load_scheduled_items,
    save_scheduled_items,
)
from herald.scheduling.sync import EventRequest, EventSynchronizer
from herald.scheduling.types import (
    EventItem,
    EventReminderItem,
    ItemCollection,
    ItemType,
    Recurrence,
    ReminderItem,
    ScheduledItem,
)

__all__ = [
    "CommandError",
    "EventItem",
    "EventReminderItem",
    "EventRequest",
    "EventSynchronizer",
    "ItemCollection",
    "ItemStore",
    "ItemType",
    "Recurrence",
    "ReminderExecutor",
    "ReminderItem",
    "ScheduleCommands",
    "ScheduledItem",
    "Scheduler",
    "SchedulingService",
    "StoreError",
    "TickReport",
    "format_recurrence",
    "format_relative_time",
    "get_next_item_id",
    "load_scheduled_items",
    "parse_datetime",
    "parse_duration",
    "parse_recurrence",
    "parse_relative_time",
    "parse_time_expression",
    "save_scheduled_items",
]
