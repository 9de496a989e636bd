"""Schedule types.

Public types:
- ItemType: Discriminator for persisted items
- Recurrence: Frequency + interval rule for recurring items
- ScheduledItem: Base of the tagged item variant
- EventItem / EventReminderItem / ReminderItem: Per-type item shapes
- ItemCollection: A workspace's persisted document
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, fields
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any, ClassVar

from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)


class ItemType(StrEnum):
    EVENT = "event"
    EVENT_REMINDER = "event_reminder"
    REMINDER = "reminder"


class Frequency(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ItemValidationError(ValueError):
    """A persisted item does not match its type's shape."""


_COMPACT_RECURRENCE = re.compile(r"^(?:every)?(\d+)([dwmy])$")
_COMPACT_UNITS = {
    "d": Frequency.DAILY,
    "w": Frequency.WEEKLY,
    "m": Frequency.MONTHLY,
    "y": Frequency.YEARLY,
}
_FREQUENCY_OFFSETS = {
    Frequency.DAILY: "days",
    Frequency.WEEKLY: "weeks",
    Frequency.MONTHLY: "months",
    Frequency.YEARLY: "years",
}


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_instant(value: Any) -> datetime:
    """Parse an ISO-8601 instant, treating naive values as UTC."""
    if isinstance(value, datetime):
        instant = value
    elif isinstance(value, str):
        instant = datetime.fromisoformat(value)
    else:
        raise ValueError(f"Not an ISO instant: {value!r}")
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


@dataclass(frozen=True)
class Recurrence:
    """Recurrence rule: fire every ``interval`` units of ``frequency``."""

    frequency: Frequency
    interval: int = 1

    def __post_init__(self) -> None:
        if self.interval < 1:
            raise ValueError("Recurrence interval must be at least 1")

    def offset(self, steps: int = 1) -> relativedelta:
        unit = _FREQUENCY_OFFSETS[self.frequency]
        return relativedelta(**{unit: self.interval * steps})

    def next_after(self, anchor: datetime, now: datetime) -> datetime:
        """First occurrence of this rule strictly after ``now``.

        Occurrences are computed from ``anchor`` as ``anchor + k * step`` so
        month-end anchors do not drift (Jan 31 -> Feb 28 -> Mar 31).
        """
        steps = 1
        if self.frequency in (Frequency.DAILY, Frequency.WEEKLY) and now > anchor:
            period = timedelta(days=1 if self.frequency == Frequency.DAILY else 7)
            steps = max(1, (now - anchor) // (period * self.interval))
        candidate = anchor + self.offset(steps)
        while candidate <= now:
            steps += 1
            candidate = anchor + self.offset(steps)
        return candidate

    def to_dict(self) -> dict[str, Any]:
        return {"frequency": self.frequency.value, "interval": self.interval}

    @classmethod
    def from_compact(cls, text: str) -> Recurrence | None:
        """Parse the compact form: 1d, every1d, 2w, 1m, every1y."""
        match = _COMPACT_RECURRENCE.match(text.strip().lower())
        if not match:
            return None
        count, unit = match.groups()
        if int(count) < 1:
            return None
        return cls(frequency=_COMPACT_UNITS[unit], interval=int(count))

    @classmethod
    def from_value(cls, value: Any) -> Recurrence | None:
        """Load a persisted recurrence (dict, or legacy compact string)."""
        if value is None or value == "":
            return None
        if isinstance(value, Recurrence):
            return value
        if isinstance(value, str):
            parsed = cls.from_compact(value)
            if parsed is None:
                raise ValueError(f"Invalid recurrence: {value!r}")
            return parsed
        if isinstance(value, dict):
            try:
                frequency = Frequency(str(value["frequency"]).lower())
            except (KeyError, ValueError) as e:
                raise ValueError(f"Invalid recurrence: {value!r}") from e
            return cls(frequency=frequency, interval=int(value.get("interval", 1)))
        raise ValueError(f"Invalid recurrence: {value!r}")


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


_DATETIME_FIELDS = frozenset(
    {"trigger_at", "created_date", "last_triggered", "recurrence_anchor"}
)
_INT_FIELDS = frozenset({"id", "remind_before_ms"})


@dataclass(kw_only=True)
class ScheduledItem:
    """Fields shared by every persisted item."""

    id: int
    workspace_id: str
    channel_id: str
    creator_id: str
    trigger_at: datetime
    recurring: Recurrence | None = None
    created_date: datetime = field(default_factory=utcnow)
    last_triggered: datetime | None = None
    active: bool = True
    # First occurrence of a recurring rule; later occurrences count from it
    recurrence_anchor: datetime | None = None

    type: ClassVar[ItemType]
    # Legacy keys accepted on load, per field
    _aliases: ClassVar[dict[str, tuple[str, ...]]] = {"workspace_id": ("guildId",)}

    def is_due(self, now: datetime) -> bool:
        return self.active and self.trigger_at <= now

    def mark_fired(self, now: datetime) -> None:
        """Apply post-fire policy: deactivate, or advance to the next occurrence."""
        self.last_triggered = now
        if self.recurring is None:
            self.active = False
        else:
            if self.recurrence_anchor is None:
                self.recurrence_anchor = self.trigger_at
            self.trigger_at = self.recurring.next_after(self.recurrence_anchor, now)

    def reschedule(self, trigger_at: datetime) -> None:
        """Move the trigger instant, restarting any recurrence from it."""
        self.trigger_at = trigger_at
        self.recurrence_anchor = None

    @property
    def label(self) -> str:
        """Human-facing text for listings."""
        return ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "type": self.type.value}
        for f in fields(self):
            if f.name == "id":
                continue
            value = getattr(self, f.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, Recurrence):
                value = value.to_dict()
            data[_to_camel(f.name)] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduledItem:
        """Build the typed item for a raw payload, dispatching on ``type``.

        Raises:
            ItemValidationError: If the type is unknown or a field is invalid.
        """
        raw_type = data.get("type")
        item_cls = ITEM_CLASSES.get(str(raw_type))
        if item_cls is None:
            raise ItemValidationError(f"Unknown item type: {raw_type!r}")
        return item_cls._from_payload(data)

    @classmethod
    def _from_payload(cls, data: dict[str, Any]) -> ScheduledItem:
        aliases: dict[str, tuple[str, ...]] = {}
        for klass in reversed(cls.__mro__):
            aliases.update(klass.__dict__.get("_aliases", {}))

        kwargs: dict[str, Any] = {}
        consumed = {"type"}
        for f in fields(cls):
            keys = (_to_camel(f.name), *aliases.get(f.name, ()))
            key = next((k for k in keys if data.get(k) is not None), None)
            if key is None:
                continue
            consumed.update(keys)
            try:
                kwargs[f.name] = _coerce(f.name, data[key])
            except (TypeError, ValueError) as e:
                raise ItemValidationError(f"Invalid {key}: {e}") from e

        unknown = set(data) - consumed - {_to_camel(f.name) for f in fields(cls)}
        if unknown:
            logger.debug(
                "item_unknown_fields_dropped",
                extra={"schedule.item_id": data.get("id"), "fields": sorted(unknown)},
            )

        try:
            item = cls(**kwargs)
        except TypeError as e:
            raise ItemValidationError(f"Missing required field: {e}") from e
        item.validate()
        return item

    def validate(self) -> None:
        if self.id < 1:
            raise ItemValidationError("id must be a positive integer")


def _coerce(name: str, value: Any) -> Any:
    if name in _DATETIME_FIELDS:
        return parse_instant(value)
    if name in _INT_FIELDS:
        if isinstance(value, bool):
            raise ValueError(f"expected integer, got {value!r}")
        return int(value)
    if name == "recurring":
        return Recurrence.from_value(value)
    if name == "active":
        if not isinstance(value, bool):
            raise ValueError(f"expected boolean, got {value!r}")
        return value
    if name.endswith("_id"):
        return str(value)
    return value


@dataclass(kw_only=True)
class EventItem(ScheduledItem):
    """Local mirror of a remote scheduled event. Fires no notification."""

    scheduled_event_id: str
    event_name: str
    description: str | None = None
    cover_image_url: str | None = None
    location: str | None = None
    event_channel_id: str | None = None

    type: ClassVar[ItemType] = ItemType.EVENT
    _aliases: ClassVar[dict[str, tuple[str, ...]]] = {"event_name": ("message",)}

    @property
    def label(self) -> str:
        return self.event_name


@dataclass(kw_only=True)
class EventReminderItem(ScheduledItem):
    """Reminder derived from an event: fires ``remind_before_ms`` before it starts."""

    linked_event_id: str
    event_name: str
    remind_before_ms: int

    type: ClassVar[ItemType] = ItemType.EVENT_REMINDER
    _aliases: ClassVar[dict[str, tuple[str, ...]]] = {
        "linked_event_id": ("scheduledEventId",),
    }

    @property
    def remind_before(self) -> timedelta:
        return timedelta(milliseconds=self.remind_before_ms)

    @property
    def label(self) -> str:
        return self.event_name

    def align_to(self, event_start: datetime) -> None:
        """Recompute the trigger instant from the linked event's start."""
        self.reschedule(event_start - self.remind_before)

    def validate(self) -> None:
        super().validate()
        if self.remind_before_ms <= 0:
            raise ItemValidationError("remindBeforeMs must be positive")


@dataclass(kw_only=True)
class ReminderItem(ScheduledItem):
    """Standalone reminder, optionally recurring.

    With ``message_link`` set the reminder is personal: it addresses only its
    creator and links back to the message it was requested on.
    """

    message: str | None = None
    message_link: str | None = None

    type: ClassVar[ItemType] = ItemType.REMINDER

    @property
    def is_personal(self) -> bool:
        return self.message_link is not None

    @property
    def label(self) -> str:
        return self.message or self.message_link or ""

    def validate(self) -> None:
        super().validate()
        if not self.message and not self.message_link:
            raise ItemValidationError("reminder needs a message or messageLink")


ITEM_CLASSES: dict[str, type[ScheduledItem]] = {
    ItemType.EVENT.value: EventItem,
    ItemType.EVENT_REMINDER.value: EventReminderItem,
    ItemType.REMINDER.value: ReminderItem,
    "personal": ReminderItem,
}


def next_item_id(items: list[ScheduledItem], watermark: int = 0) -> int:
    """Max existing id (or the watermark, if higher) + 1."""
    return max(max((item.id for item in items), default=0), watermark) + 1


@dataclass
class ItemCollection:
    """A workspace's scheduled items, in stored order."""

    items: list[ScheduledItem] = field(default_factory=list)
    last_updated: datetime | None = None
    # Highest id ever allocated in this workspace; ids are never reused
    last_id: int = 0
    _dirty: bool = field(default=False, repr=False, compare=False)

    @property
    def dirty(self) -> bool:
        return self._dirty

    def mark_dirty(self) -> None:
        self._dirty = True

    def mark_clean(self) -> None:
        self._dirty = False

    def next_id(self) -> int:
        return next_item_id(self.items, self.last_id)

    def add(self, item: ScheduledItem) -> ScheduledItem:
        self.items.append(item)
        self.last_id = max(self.last_id, item.id)
        self.mark_dirty()
        return item

    def remove(self, item: ScheduledItem) -> bool:
        for index, existing in enumerate(self.items):
            if existing is item:
                del self.items[index]
                self.mark_dirty()
                return True
        return False

    def contains(self, item: ScheduledItem) -> bool:
        return any(existing is item for existing in self.items)

    def get(
        self, item_id: int, item_type: ItemType | None = None
    ) -> ScheduledItem | None:
        for item in self.items:
            if item.id == item_id and (item_type is None or item.type == item_type):
                return item
        return None

    def find_event(self, remote_id: str) -> EventItem | None:
        for item in self.items:
            if isinstance(item, EventItem) and item.scheduled_event_id == remote_id:
                return item
        return None

    def reminders_for(self, remote_id: str) -> list[EventReminderItem]:
        return [
            item
            for item in self.items
            if isinstance(item, EventReminderItem) and item.linked_event_id == remote_id
        ]

    def active_items(self, item_type: ItemType | None = None) -> list[ScheduledItem]:
        return [
            item
            for item in self.items
            if item.active and (item_type is None or item.type == item_type)
        ]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"items": [item.to_dict() for item in self.items]}
        if self.last_updated is not None:
            data["lastUpdated"] = self.last_updated.isoformat()
        if self.last_id:
            data["lastId"] = self.last_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ItemCollection:
        """Hydrate a collection, skipping items that fail validation."""
        items: list[ScheduledItem] = []
        for raw in data.get("items", []):
            if not isinstance(raw, dict):
                logger.warning(
                    "invalid_item_skipped", extra={"error.message": "not an object"}
                )
                continue
            try:
                items.append(ScheduledItem.from_dict(raw))
            except ItemValidationError as e:
                logger.warning(
                    "invalid_item_skipped",
                    extra={"schedule.item_id": raw.get("id"), "error.message": str(e)},
                )

        last_updated = None
        if raw_updated := data.get("lastUpdated"):
            try:
                last_updated = parse_instant(raw_updated)
            except ValueError:
                last_updated = None

        try:
            last_id = int(data.get("lastId") or 0)
        except (TypeError, ValueError):
            last_id = 0

        return cls(items=items, last_updated=last_updated, last_id=last_id)
