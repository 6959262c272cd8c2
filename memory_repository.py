"""In-memory implementation of ContactRepository (no DB)."""

from datetime import datetime
from typing import Callable, Dict, List

from db_models import PRIMARY, Contact, as_utc
from repository import contact_from_row, utc_now


class InMemoryContactRepository:
    """Stores contacts in a dict keyed by id. Ids are handed out in creation order."""

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._rows: Dict[int, dict] = {}
        self._last_id = 0
        self._clock = clock

    def _now(self) -> datetime:
        return as_utc(self._clock())

    def _live(self) -> List[Contact]:
        return [
            contact_from_row(row)
            for _, row in sorted(self._rows.items())
            if row["deletedAt"] is None
        ]

    def find_live(self, email=None, phone=None):
        if not email and not phone:
            return []
        return [
            c for c in self._live()
            if (email and c.email == email) or (phone and c.phoneNumber == phone)
        ]

    def find_live_by_id(self, contact_id):
        row = self._rows.get(contact_id)
        if row is None or row["deletedAt"] is not None:
            return None
        return contact_from_row(row)

    def find_all_in_cluster(self, primary_id):
        return [c for c in self._live() if c.id == primary_id or c.linkedId == primary_id]

    def insert(self, email, phone, linked_id=None, precedence=PRIMARY, contact_id=None, created_at=None):
        if contact_id is None:
            contact_id = self._last_id + 1
        elif contact_id in self._rows:
            raise ValueError(f"Contact {contact_id} already exists")
        self._last_id = max(self._last_id, contact_id)

        now = self._now()
        self._rows[contact_id] = {
            "id": contact_id,
            "email": email,
            "phoneNumber": phone,
            "linkedId": linked_id,
            "linkPrecedence": precedence,
            "createdAt": as_utc(created_at) if created_at else now,
            "updatedAt": now,
            "deletedAt": None,
        }
        return contact_id

    def demote_to_secondary(self, contact_id, new_linked_id):
        row = self._rows.get(contact_id)
        if row is None:
            return
        row.update(linkPrecedence="secondary", linkedId=new_linked_id, updatedAt=self._now())

    def repoint_secondaries(self, old_primary_id, new_primary_id):
        now = self._now()
        for row in self._rows.values():
            if row["linkedId"] == old_primary_id:
                row.update(linkedId=new_primary_id, updatedAt=now)

    def soft_delete(self, contact_id):
        row = self._rows.get(contact_id)
        if row is None or row["deletedAt"] is not None:
            return False
        now = self._now()
        row.update(deletedAt=now, updatedAt=now)
        return True

