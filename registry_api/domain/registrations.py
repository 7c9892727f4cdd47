# SPDX-License-Identifier: Apache-2.0

"""
Registration domain logic.

Pure functions for submission validation, queue filtering and counters. No
function here touches the store or the request context.
"""

from datetime import date
from typing import Any, Dict, Iterable, List, Optional
from dataclasses import dataclass, field

from ..exceptions import ValidationException
from ..models.entities import OPTIONAL_TEXT_FIELDS, RegistrationRecord
from ..models.enums import RegistrationStatus, RegistrationType
from ..models.responses import RegistrationStats


REQUIRED_TEXT_FIELDS = ('person_full_name', 'person_place_of_event')
MAX_NOTES_LENGTH = 2000


@dataclass
class ValidationResult:
    """Result of submission validation, errors in field order."""
    is_valid: bool
    errors: List[Dict[str, str]] = field(default_factory=list)

    @property
    def first_error(self) -> Optional[Dict[str, str]]:
        return self.errors[0] if self.errors else None


def check_submission(payload: Dict[str, Any]) -> ValidationResult:
    """
    Collect every problem with a submission payload.

    Args:
        payload: Raw submission body

    Returns:
        ValidationResult whose errors follow the form's field order
    """
    errors = []

    registration_type = payload.get('registration_type')
    if not isinstance(registration_type, str) or registration_type not in {t.value for t in RegistrationType}:
        errors.append({
            'field': 'registration_type',
            'message': "Registration type must be 'birth' or 'death'"
        })

    if not _non_blank(payload.get('person_full_name')):
        errors.append({'field': 'person_full_name', 'message': 'Full name is required'})

    if _parse_event_date(payload.get('person_date_of_event')) is None:
        errors.append({
            'field': 'person_date_of_event',
            'message': 'Date of event must be a valid date (YYYY-MM-DD)'
        })

    if not _non_blank(payload.get('person_place_of_event')):
        errors.append({'field': 'person_place_of_event', 'message': 'Place of event is required'})

    for name in OPTIONAL_TEXT_FIELDS:
        value = payload.get(name)
        if value is not None and not isinstance(value, str):
            errors.append({'field': name, 'message': f'{name} must be text'})

    notes = payload.get('additional_notes')
    if isinstance(notes, str) and len(notes) > MAX_NOTES_LENGTH:
        errors.append({
            'field': 'additional_notes',
            'message': f'Additional notes cannot exceed {MAX_NOTES_LENGTH} characters'
        })

    return ValidationResult(is_valid=not errors, errors=errors)


def validate_submission(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a submission and return the cleaned field values.

    Raises:
        ValidationException: naming the first offending field
    """
    if not isinstance(payload, dict):
        raise ValidationException('Request body must be a JSON object', field='body')

    result = check_submission(payload)
    if not result.is_valid:
        first = result.first_error
        raise ValidationException(
            first['message'],
            field=first['field'],
            validation_errors=result.errors
        )

    cleaned = {
        'registration_type': payload['registration_type'],
        'person_date_of_event': _parse_event_date(payload['person_date_of_event']),
    }
    for name in REQUIRED_TEXT_FIELDS:
        cleaned[name] = payload[name].strip()
    for name in OPTIONAL_TEXT_FIELDS:
        value = payload.get(name)
        cleaned[name] = (value.strip() or None) if isinstance(value, str) else None
    return cleaned


def build_registration(payload: Dict[str, Any], user_id: str) -> RegistrationRecord:
    """Create a new pending record owned by ``user_id`` from a raw payload."""
    cleaned = validate_submission(payload)
    return RegistrationRecord(
        **cleaned,
        user_id=user_id,
        status=RegistrationStatus.PENDING
    )


def filter_registrations(
    records: Iterable[RegistrationRecord],
    term: Optional[str]
) -> List[RegistrationRecord]:
    """
    Search the review queue by full name or place of event.

    Args:
        records: Records to filter, in display order
        term: Search term; empty or blank returns everything

    Returns:
        Matching records, order preserved
    """
    records = list(records)
    if not term or not term.strip():
        return records

    needle = term.strip().lower()
    return [
        record for record in records
        if needle in record.person_full_name.lower()
        or needle in record.person_place_of_event.lower()
    ]


def compute_stats(records: Iterable[RegistrationRecord]) -> RegistrationStats:
    """Counters for the admin dashboard."""
    counts = {status.value: 0 for status in RegistrationStatus}
    for record in records:
        counts[RegistrationStatus(record.status).value] += 1

    return RegistrationStats(
        pending_review=counts['pending'] + counts['under_review'],
        approved=counts['approved'],
        rejected=counts['rejected'],
        total=sum(counts.values())
    )


def _non_blank(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _parse_event_date(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None
