"""Data models for authorizations and per-location settings."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

AUTHORIZATION_TTL_SECONDS = 6 * 60


@dataclass(frozen=True)
class Person:
    """Someone who may request access to a location.

    Attributes:
        name: Display name, used in admin summaries
        phone: Phone number in E.164 form (e.g. "+15551234567")
        no_notify: If True, leave this person out of admin summaries
    """

    name: str
    phone: str
    no_notify: bool = False

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Person":
        """Create a Person from a stored document.

        Args:
            doc: Mapping with name, phone and optional no_notify

        Returns:
            Person instance
        """
        return cls(
            name=doc["name"],
            phone=doc["phone"],
            no_notify=bool(doc.get("no_notify", False)),
        )

    def to_document(self) -> Dict[str, Any]:
        """Convert to a document for storage.

        The no_notify flag is only written when set so that the document
        matches the ones the SMS webhook stores.
        """
        doc: Dict[str, Any] = {"name": self.name, "phone": self.phone}
        if self.no_notify:
            doc["no_notify"] = True
        return doc


@dataclass(frozen=True)
class Authorization:
    """A one-time, time-limited permission for a person to be let in.

    Attributes:
        id: Unique identifier (hex ObjectId in MongoDB)
        person: Who requested the authorization
        at: Creation time; the store expires the record 6 minutes later
        location_id: Location the authorization was created for
    """

    id: str
    person: Person
    at: datetime
    location_id: str

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Authorization":
        """Create an Authorization from a stored document.

        Args:
            doc: Mapping with _id, person, at and for

        Returns:
            Authorization instance
        """
        return cls(
            id=str(doc["_id"]),
            person=Person.from_document(doc["person"]),
            at=doc["at"],
            location_id=doc["for"],
        )


@dataclass
class LocationSettings:
    """Per-location settings.

    Attributes:
        location_id: ID of this location
        allowed_people: People allowed to request access
        notify_numbers: Numbers to notify whenever access is granted
        access_number: Number people are told to dial at the entrance
    """

    location_id: str
    allowed_people: List[Person] = field(default_factory=list)
    notify_numbers: List[str] = field(default_factory=list)
    access_number: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "LocationSettings":
        """Create LocationSettings from a stored document."""
        return cls(
            location_id=doc["_id"],
            allowed_people=[Person.from_document(p) for p in doc.get("allowed_people", [])],
            notify_numbers=list(doc.get("notify_numbers", [])),
            access_number=doc.get("access_number"),
        )

    def to_document(self) -> Dict[str, Any]:
        """Convert to a document for storage."""
        doc: Dict[str, Any] = {
            "_id": self.location_id,
            "allowed_people": [p.to_document() for p in self.allowed_people],
            "notify_numbers": list(self.notify_numbers),
        }
        if self.access_number:
            doc["access_number"] = self.access_number
        return doc

    def find_person(self, phone: str) -> Optional[Person]:
        """Find an allowed person by phone number.

        Args:
            phone: Phone number to look up

        Returns:
            The matching Person, or None if the number is not allowed
        """
        for person in self.allowed_people:
            if person.phone == phone:
                return person
        return None


class ChangeType(Enum):
    """Kinds of change-feed events the core reacts to."""

    INSERT = "insert"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    """One event from the authorization change feed.

    Delete events only carry the id of the removed authorization.
    """

    operation: ChangeType
    authorization_id: str
    authorization: Optional[Authorization] = None

    @classmethod
    def insert(cls, authorization: Authorization) -> "ChangeEvent":
        """Build an insert event for a new authorization."""
        return cls(ChangeType.INSERT, authorization.id, authorization)

    @classmethod
    def delete(cls, authorization_id: str) -> "ChangeEvent":
        """Build a delete event for a removed authorization."""
        return cls(ChangeType.DELETE, authorization_id)
