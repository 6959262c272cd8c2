"""Contact consolidation.

identify() matches the incoming email/phone against stored contacts, picks the
canonical primary (merging clusters when a request ties several together),
records any unseen email/phone combination as a new secondary and returns the
consolidated view of the cluster.

Every function takes the repository explicitly; callers wrap identify() in a
single transaction so a merge is never half-applied.
"""

import logging
from typing import List, NamedTuple, Optional

from db_models import PRIMARY, SECONDARY, Contact, ContactResponse, PrimaryContact
from errors import EmptyRequestError, IntegrityError
from repository import ContactRepository

logger = logging.getLogger(__name__)


class Resolution(NamedTuple):
    survivor: PrimaryContact
    losers: List[PrimaryContact]


def find_matches(repo: ContactRepository, email: Optional[str], phone: Optional[str]) -> List[Contact]:
    if not email and not phone:
        return []
    return repo.find_live(email or None, phone or None)


def resolve_primary(repo: ContactRepository, matches: List[Contact]) -> Resolution:
    unique = {contact.id: contact for contact in matches}

    candidates = {}
    for contact in unique.values():
        if isinstance(contact, PrimaryContact):
            candidates[contact.id] = contact
            continue

        primary = repo.find_live_by_id(contact.linkedId)
        if primary is None:
            raise IntegrityError(
                f"Contact {contact.id} links to {contact.linkedId}, which does not exist or is deleted"
            )
        if not isinstance(primary, PrimaryContact):
            raise IntegrityError(
                f"Contact {contact.id} links to {contact.linkedId}, which is not a primary contact"
            )
        candidates[primary.id] = primary

    if not candidates:
        raise IntegrityError("Matched contacts but found no primary contact for them")

    ordered = sorted(candidates.values(), key=lambda c: c.seniority)
    return Resolution(survivor=ordered[0], losers=ordered[1:])


def merge_clusters(repo: ContactRepository, survivor: PrimaryContact, losers: List[PrimaryContact]) -> None:
    """Demote each losing primary under the survivor and move its secondaries along."""
    for loser in losers:
        repo.demote_to_secondary(loser.id, survivor.id)
        repo.repoint_secondaries(loser.id, survivor.id)
        logger.info("Merged primary contact %s into %s", loser.id, survivor.id)


def needs_secondary(cluster: List[Contact], email: Optional[str], phone: Optional[str]) -> bool:
    if email and phone:
        return not any(c.email == email and c.phoneNumber == phone for c in cluster)
    if email:
        return not any(c.email == email for c in cluster)
    if phone:
        return not any(c.phoneNumber == phone for c in cluster)
    return False


def fill_gap(
    repo: ContactRepository, survivor: PrimaryContact, email: Optional[str], phone: Optional[str]
) -> Optional[int]:
    """Create a secondary when the request carries a combination the cluster lacks."""
    cluster = repo.find_all_in_cluster(survivor.id)
    if not needs_secondary(cluster, email, phone):
        return None

    contact_id = repo.insert(email or None, phone or None, survivor.id, SECONDARY)
    logger.info("Created secondary contact %s under %s", contact_id, survivor.id)
    return contact_id


def assemble(repo: ContactRepository, survivor: PrimaryContact) -> ContactResponse:
    emails = []
    phone_numbers = []
    secondary_ids = []

    if survivor.email:
        emails.append(survivor.email)
    if survivor.phoneNumber:
        phone_numbers.append(survivor.phoneNumber)

    for contact in repo.find_all_in_cluster(survivor.id):
        if contact.id == survivor.id:
            continue
        secondary_ids.append(contact.id)
        if contact.email and contact.email not in emails:
            emails.append(contact.email)
        if contact.phoneNumber and contact.phoneNumber not in phone_numbers:
            phone_numbers.append(contact.phoneNumber)

    return ContactResponse(
        primaryContactId=survivor.id,
        emails=emails,
        phoneNumbers=phone_numbers,
        secondaryContactIds=secondary_ids,
    )


def identify(
    repo: ContactRepository,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    allow_empty: bool = True,
) -> ContactResponse:
    email = email or None
    phone = phone or None

    if email is None and phone is None and not allow_empty:
        raise EmptyRequestError("Either email or phoneNumber must be provided")

    matches = find_matches(repo, email, phone)
    logger.debug("Found %d matching contacts", len(matches))

    if not matches:
        contact_id = repo.insert(email, phone, None, PRIMARY)
        logger.info("Created new primary contact %s", contact_id)
        return ContactResponse(
            primaryContactId=contact_id,
            emails=[email] if email else [],
            phoneNumbers=[phone] if phone else [],
            secondaryContactIds=[],
        )

    survivor, losers = resolve_primary(repo, matches)
    if losers:
        merge_clusters(repo, survivor, losers)

    fill_gap(repo, survivor, email, phone)
    return assemble(repo, survivor)
