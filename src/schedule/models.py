from datetime import datetime, timedelta

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from members.models import Member


class GymClass(models.Model):
    """Recurring weekly class template. One occurrence is a (class, date) pair."""
    DAY_OF_WEEK_CHOICES = [
        (0, 'Sunday'),
        (1, 'Monday'),
        (2, 'Tuesday'),
        (3, 'Wednesday'),
        (4, 'Thursday'),
        (5, 'Friday'),
        (6, 'Saturday'),
    ]

    name = models.CharField(max_length=100)
    slug = models.SlugField(max_length=100, unique=True)
    age_group = models.CharField(max_length=10, choices=Member.AGE_GROUP_CHOICES)

    # Schedule
    day_of_week = models.PositiveSmallIntegerField(
        choices=DAY_OF_WEEK_CHOICES,
        validators=[MinValueValidator(0), MaxValueValidator(6)],
    )
    start_time = models.TimeField()
    duration_minutes = models.PositiveIntegerField(default=60)

    # Capacity & Pricing
    max_capacity = models.PositiveIntegerField(default=20)
    drop_in_price = models.DecimalField(max_digits=8, decimal_places=2)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.get_day_of_week_display()} {self.start_time:%H:%M})"

    @property
    def end_time(self):
        return (datetime.combine(datetime.min, self.start_time) +
                timedelta(minutes=self.duration_minutes)).time()

    def occurs_on(self, session_date):
        """Check if the class runs on the given date (0 = Sunday)."""
        return session_date.isoweekday() % 7 == self.day_of_week

    class Meta:
        ordering = ['day_of_week', 'start_time']
        verbose_name = 'Class'
        verbose_name_plural = 'Classes'
        constraints = [
            models.CheckConstraint(
                condition=models.Q(day_of_week__gte=0, day_of_week__lte=6),
                name='gymclass_day_of_week_range',
            ),
        ]
