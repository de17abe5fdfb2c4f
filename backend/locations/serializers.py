from rest_framework import serializers


class LocationUpdateSerializer(serializers.Serializer):
    """Input for a location update. Coordinate ranges are checked by the store."""
    userID = serializers.UUIDField()
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()
