import uuid

from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model with signal delivery preferences"""
    DISTANCE_UNIT_CHOICES = [
        ('mile', 'Mile'),
        ('km', 'Kilometer'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Push target & preferences
    device_token = models.CharField(max_length=200, blank=True, default='')
    is_offline = models.BooleanField(default=False)
    distance_unit = models.CharField(max_length=10, choices=DISTANCE_UNIT_CHOICES, default='mile')

    class Meta:
        db_table = 'users'

    def __str__(self):
        return f"{self.username} ({self.get_distance_unit_display()})"
