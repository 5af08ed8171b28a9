"""
Member registration and status changes.
"""
import logging

from django.utils.dateparse import parse_date

from gymdesk.exceptions import NotFoundError
from .models import Member, MembershipStatus

logger = logging.getLogger(__name__)

PROFILE_FIELDS = [
    'first_name', 'last_name', 'email', 'phone', 'date_of_birth', 'age_group',
    'emergency_contact_name', 'emergency_contact_phone', 'medical_notes',
]


def register_member(**profile):
    """
    Create a member from kiosk or admin registration.

    Blank emails are stored as NULL so the unique constraint only applies to
    members who gave one. The age group is derived from the date of birth when
    not supplied. Raises django ValidationError on bad input.
    """
    data = {field: profile[field] for field in PROFILE_FIELDS if field in profile}

    email = (data.get('email') or '').strip().lower()
    data['email'] = email or None

    if isinstance(data.get('date_of_birth'), str):
        data['date_of_birth'] = parse_date(data['date_of_birth']) if data['date_of_birth'] else None

    if not data.get('age_group') and data.get('date_of_birth'):
        data['age_group'] = Member.age_group_for(data['date_of_birth'])

    member = Member(**data)
    member.full_clean()
    member.save()

    logger.info(f"Registered member {member.pk} ({member.full_name})")
    return member


def set_membership_status(member_id, status):
    """Deactivate, suspend or reactivate a member."""
    status = MembershipStatus(status)

    try:
        member = Member.objects.get(pk=member_id)
    except Member.DoesNotExist:
        raise NotFoundError(f"Member {member_id} not found")

    if member.membership_status != status:
        member.membership_status = status
        member.save(update_fields=['membership_status', 'updated_at'])
        logger.info(f"Member {member.pk} is now {status.value}")

    return member
