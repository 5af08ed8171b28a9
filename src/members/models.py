from datetime import date

from django.db import models


class MembershipStatus(models.TextChoices):
    ACTIVE = 'active', 'Active'
    INACTIVE = 'inactive', 'Inactive'
    SUSPENDED = 'suspended', 'Suspended'


class Member(models.Model):
    """A person attending classes. Never deleted, only deactivated or suspended."""
    AGE_GROUP_CHOICES = [
        ('infant', 'Infant (under 8)'),
        ('junior', 'Junior (8-15)'),
        ('senior', 'Senior (16+)'),
    ]

    JUNIOR_MIN_AGE = 8
    SENIOR_MIN_AGE = 16

    # Identity
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(unique=True, null=True, blank=True)
    phone = models.CharField(max_length=20, blank=True)

    # Demographics
    date_of_birth = models.DateField(null=True, blank=True)
    age_group = models.CharField(max_length=10, choices=AGE_GROUP_CHOICES)

    # Safety
    emergency_contact_name = models.CharField(max_length=100, blank=True)
    emergency_contact_phone = models.CharField(max_length=20, blank=True)
    medical_notes = models.TextField(blank=True, help_text="Injuries, conditions, allergies")

    membership_status = models.CharField(max_length=10, choices=MembershipStatus.choices,
                                         default=MembershipStatus.ACTIVE)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.full_name

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self):
        return self.membership_status == MembershipStatus.ACTIVE

    @classmethod
    def age_group_for(cls, date_of_birth, today=None):
        """Returns the age group a date of birth falls into."""
        today = today or date.today()
        age = today.year - date_of_birth.year - (
            (today.month, today.day) < (date_of_birth.month, date_of_birth.day)
        )
        if age < cls.JUNIOR_MIN_AGE:
            return 'infant'
        elif age < cls.SENIOR_MIN_AGE:
            return 'junior'
        return 'senior'

    class Meta:
        ordering = ['last_name', 'first_name']
