import uuid

from django.db import models
from django.conf import settings


class Signal(models.Model):
    """A proximity signal propagated outward in one-unit rings from its origin."""

    STATUS_PENDING = 'pending'
    STATUS_ACTIVE = 'active'
    STATUS_EXPIRED = 'expired'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_EXPIRED, 'Expired'),
    ]

    UNIT_CHOICES = [
        ('mile', 'Mile'),
        ('km', 'Kilometer'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='sent_signals'
    )

    # Origin
    latitude = models.FloatField()
    longitude = models.FloatField()

    # Reach, in the sender's unit at send time
    max_distance = models.FloatField()
    distance_unit = models.CharField(max_length=10, choices=UNIT_CHOICES, default='mile')

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)

    response_to = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='responses'
    )

    # Timestamps
    sent_at = models.DateTimeField()
    expires_at = models.DateTimeField(db_index=True)

    class Meta:
        db_table = 'signals'
        ordering = ['-sent_at']
        indexes = [
            models.Index(fields=['sender', 'status', 'sent_at'], name='signal_sender_status_idx'),
        ]

    def __str__(self):
        return f"Signal {self.id} - {self.sender_id} - {self.status}"


class SignalReceipt(models.Model):
    """Records that a receiver was reached by a signal (at most once per pair)."""

    signal = models.ForeignKey(
        Signal,
        on_delete=models.CASCADE,
        related_name='receipts'
    )

    receiver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='signal_receipts'
    )

    distance = models.FloatField()
    direction = models.CharField(max_length=2)

    responded = models.BooleanField(default=False)

    received_at = models.DateTimeField()
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'signal_receipts'
        ordering = ['-received_at']
        constraints = [
            models.UniqueConstraint(
                fields=['signal', 'receiver'],
                name='unique_signal_receiver'
            )
        ]

    def __str__(self):
        return f"Receipt {self.id} - Signal {self.signal_id} -> {self.receiver_id}"
