from rest_framework import serializers

from .models import Signal, SignalReceipt


class SignalSendSerializer(serializers.Serializer):
    """Input for sending a signal. Range checks happen in the engine."""
    senderID = serializers.UUIDField()
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()
    maxDistance = serializers.FloatField(required=False, allow_null=True)


class SignalRespondSerializer(serializers.Serializer):
    """Input for responding to a received signal"""
    responderID = serializers.UUIDField()
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()
    maxDistance = serializers.FloatField(required=False, allow_null=True)


class SignalSerializer(serializers.ModelSerializer):
    senderID = serializers.UUIDField(source='sender_id', read_only=True)
    maxDistance = serializers.FloatField(source='max_distance', read_only=True)
    distanceUnit = serializers.CharField(source='distance_unit', read_only=True)
    sentAt = serializers.DateTimeField(source='sent_at', read_only=True)
    expiresAt = serializers.DateTimeField(source='expires_at', read_only=True)
    responseTo = serializers.UUIDField(source='response_to_id', read_only=True, allow_null=True)

    class Meta:
        model = Signal
        fields = ['id', 'senderID', 'latitude', 'longitude', 'maxDistance',
                  'distanceUnit', 'status', 'sentAt', 'expiresAt', 'responseTo']


class ReceivedSignalSerializer(serializers.ModelSerializer):
    """A receipt as shown to its receiver (no sender coordinates)"""
    signalID = serializers.UUIDField(source='signal_id', read_only=True)
    senderID = serializers.UUIDField(source='signal.sender_id', read_only=True)
    distanceUnit = serializers.CharField(source='signal.distance_unit', read_only=True)
    receivedAt = serializers.DateTimeField(source='received_at', read_only=True)
    respondedAt = serializers.DateTimeField(source='responded_at', read_only=True, allow_null=True)

    class Meta:
        model = SignalReceipt
        fields = ['signalID', 'senderID', 'distance', 'distanceUnit', 'direction',
                  'responded', 'receivedAt', 'respondedAt']
