from django.db import models
from django.conf import settings


class UserLocation(models.Model):
    """
    Current location of a user (one live row per user, 24h TTL).

    The encrypted columns are the authoritative coordinates. The plaintext
    columns only back the coarse bounding-box prefilter in proximity queries.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='current_location'
    )

    encrypted_latitude = models.TextField()
    encrypted_longitude = models.TextField()

    latitude = models.FloatField(db_index=True)
    longitude = models.FloatField(db_index=True)

    created_at = models.DateTimeField()
    expires_at = models.DateTimeField(db_index=True)

    class Meta:
        db_table = 'user_locations'

    def __str__(self):
        return f"Location of {self.user_id} (expires {self.expires_at:%Y-%m-%d %H:%M})"
