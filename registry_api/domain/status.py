# SPDX-License-Identifier: Apache-2.0

"""
Display mapping for registration statuses.
"""

from dataclasses import dataclass
from typing import assert_never

from ..models.enums import RegistrationStatus


@dataclass(frozen=True)
class StatusPresentation:
    """How a status is shown to citizens and reviewers."""
    label: str
    tone: str
    icon: str


def present_status(status: RegistrationStatus) -> StatusPresentation:
    """
    Map a status to its label, tone and icon.

    Adding a status to RegistrationStatus without a case here fails type
    checking at the assert_never call.
    """
    status = RegistrationStatus(status)
    match status:
        case RegistrationStatus.PENDING:
            return StatusPresentation(label="Submitted", tone="pending", icon="clock")
        case RegistrationStatus.UNDER_REVIEW:
            return StatusPresentation(label="Under Review", tone="review", icon="alert-circle")
        case RegistrationStatus.APPROVED:
            return StatusPresentation(label="Approved", tone="approved", icon="check-circle")
        case RegistrationStatus.REJECTED:
            return StatusPresentation(label="Rejected", tone="rejected", icon="x-circle")
        case _:
            assert_never(status)
