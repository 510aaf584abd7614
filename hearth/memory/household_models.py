"""
HEARTH Household Models

Data structures for people, their colours, and their weekly events.

Philosophy:
- Plain records, full-record replacement only
- Derived fields are recomputed, never set
- Decoding never raises: a bad record becomes an explicit skip
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from dateutil.parser import isoparse

from .recurrence import weekday_of

logger = logging.getLogger(__name__)


class MalformedRecordError(ValueError):
    """Raised when a record dict is missing a required field or has a bad value"""
    pass


def _parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO timestamp into a naive local datetime.

    Offsets (e.g. "+00:00" from a server) are converted to local time
    so every in-memory date compares with every other.
    """
    parsed = isoparse(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


@dataclass
class Color:
    """RGBA colour, every channel in [0, 1]"""
    red: float = 0.0
    green: float = 0.0
    blue: float = 1.0
    alpha: float = 1.0

    def __post_init__(self):
        for channel in ('red', 'green', 'blue', 'alpha'):
            value = getattr(self, channel)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError(f"Colour channel {channel} must be a number")
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"Colour channel {channel} out of range: {value}")
            setattr(self, channel, float(value))

    def to_dict(self) -> dict:
        return {
            'red': self.red,
            'green': self.green,
            'blue': self.blue,
            'alpha': self.alpha
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Color':
        return cls(
            red=data['red'],
            green=data['green'],
            blue=data['blue'],
            alpha=data['alpha']
        )


@dataclass
class Person:
    """
    A household member.

    Parents are the people events can be assigned to as responsible;
    everyone else is a family member who has events.
    """
    name: str
    color: Color = field(default_factory=Color)
    is_parent: bool = False
    owner_id: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        """Validate person data"""
        if not self.id:
            raise ValueError("Person ID cannot be empty")
        if not self.name or not self.name.strip():
            raise ValueError("Person name cannot be empty")
        if not isinstance(self.color, Color):
            raise TypeError("color must be Color")

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict"""
        return {
            'id': self.id,
            'name': self.name,
            'color': self.color.to_dict(),
            'isParent': self.is_parent,
            'ownerId': self.owner_id
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Person':
        """
        Create Person from dict.

        Raises:
            MalformedRecordError: If a required field is missing or invalid
        """
        try:
            is_parent = data['isParent']
            if not isinstance(is_parent, bool):
                raise TypeError("isParent must be a bool")
            return cls(
                id=data['id'],
                name=data['name'],
                color=Color.from_dict(data['color']),
                is_parent=is_parent,
                owner_id=data['ownerId']
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedRecordError(f"Invalid person record: {e!r}") from e


@dataclass
class Event:
    """
    A weekly household event.

    `day_of_week` (1=Sunday .. 7=Saturday) always follows `date`:
    it is recomputed on every assignment to `date` and cannot be set directly.
    """
    person_id: str
    event_name: str
    date: datetime
    responsible_person_id: str
    owner_id: str = ""
    is_recurring: bool = True
    recurrence_end_date: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    day_of_week: int = field(init=False)

    def __setattr__(self, name, value):
        if name == 'day_of_week':
            raise AttributeError("day_of_week is derived from date")
        if name == 'date':
            if not isinstance(value, datetime):
                raise TypeError("date must be datetime")
            object.__setattr__(self, 'day_of_week', weekday_of(value))
        object.__setattr__(self, name, value)

    def __post_init__(self):
        """Validate event data"""
        if not self.id:
            raise ValueError("Event ID cannot be empty")
        if not self.event_name or not self.event_name.strip():
            raise ValueError("Event name cannot be empty")
        if not self.person_id:
            raise ValueError("Event must reference a person")
        if not self.responsible_person_id:
            raise ValueError("Event must reference a responsible person")
        if self.recurrence_end_date is not None and not isinstance(
            self.recurrence_end_date, datetime
        ):
            raise TypeError("recurrence_end_date must be datetime")

    @property
    def effective_end_date(self) -> Optional[datetime]:
        """Recurrence end, only when the event actually recurs"""
        return self.recurrence_end_date if self.is_recurring else None

    @property
    def time_string(self) -> str:
        """Short time-of-day for display, e.g. '08:00'"""
        return self.date.strftime('%H:%M')

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict"""
        return {
            'id': self.id,
            'personId': self.person_id,
            'eventName': self.event_name,
            'date': self.date.isoformat(),
            'responsiblePersonId': self.responsible_person_id,
            'dayOfWeek': self.day_of_week,
            'ownerId': self.owner_id,
            'isRecurring': self.is_recurring,
            'recurrenceEndDate': (
                self.recurrence_end_date.isoformat()
                if self.recurrence_end_date else None
            )
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Event':
        """
        Create Event from dict. `dayOfWeek` must be present but is
        recomputed from `date`.

        Raises:
            MalformedRecordError: If a required field is missing or invalid
        """
        try:
            if not isinstance(data['dayOfWeek'], int):
                raise TypeError("dayOfWeek must be an int")
            is_recurring = data.get('isRecurring')
            if is_recurring is None:
                is_recurring = True
            if not isinstance(is_recurring, bool):
                raise TypeError("isRecurring must be a bool")
            end_raw = data.get('recurrenceEndDate')
            return cls(
                id=data['id'],
                person_id=data['personId'],
                event_name=data['eventName'],
                date=_parse_timestamp(data['date']),
                responsible_person_id=data['responsiblePersonId'],
                owner_id=data['ownerId'],
                is_recurring=is_recurring,
                recurrence_end_date=(
                    _parse_timestamp(end_raw) if end_raw else None
                )
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedRecordError(f"Invalid event record: {e!r}") from e


@dataclass
class DecodeResult:
    """Outcome of decoding one record: a record, or a skip with its reason"""
    record: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.record is not None


def decode_record(
    decoder: Callable[[dict], Any],
    data: Dict[str, Any]
) -> DecodeResult:
    """
    Decode one record dict without raising.

    Args:
        decoder: Person.from_dict or Event.from_dict
        data: Raw record dict

    Returns:
        DecodeResult with the record, or with an error reason
    """
    if not isinstance(data, dict):
        return DecodeResult(error=f"Record is not an object: {type(data).__name__}")
    try:
        return DecodeResult(record=decoder(data))
    except MalformedRecordError as e:
        return DecodeResult(error=str(e))


def decode_records(
    decoder: Callable[[dict], Any],
    documents: Iterable[Dict[str, Any]]
) -> List[Any]:
    """
    Decode a batch, dropping malformed records.

    Skips are logged and filtered out; they never fail the batch.
    """
    records = []
    for data in documents:
        result = decode_record(decoder, data)
        if result.ok:
            records.append(result.record)
        else:
            logger.warning(f"Skipping malformed record: {result.error}")
    return records


def create_person(
    name: str,
    is_parent: bool = False,
    color: Optional[Color] = None,
    owner_id: str = ""
) -> Person:
    """
    Factory function to create a new person.

    Args:
        name: Display name
        is_parent: Whether the person can be responsible for events
        color: Display colour (default: opaque blue)
        owner_id: Owning account id (stamped by the coordinator when synced)

    Returns:
        New Person with a fresh id
    """
    return Person(
        name=name.strip(),
        color=color or Color(),
        is_parent=is_parent,
        owner_id=owner_id
    )


def create_event(
    person_id: str,
    event_name: str,
    date: datetime,
    responsible_person_id: str,
    is_recurring: bool = True,
    recurrence_end_date: Optional[datetime] = None,
    owner_id: str = ""
) -> Event:
    """
    Factory function to create a new event.

    Returns:
        New Event with a fresh id and day_of_week derived from date
    """
    return Event(
        person_id=person_id,
        event_name=event_name.strip(),
        date=date,
        responsible_person_id=responsible_person_id,
        owner_id=owner_id,
        is_recurring=is_recurring,
        recurrence_end_date=recurrence_end_date
    )
