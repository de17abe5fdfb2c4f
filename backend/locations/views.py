from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from accounts.directory import UserNotFound
from common.validation import ValidationError
from services.container import get_container
from .serializers import LocationUpdateSerializer
from .store import LocationNotFound


# ==================== Location APIs ====================

@api_view(['POST'])
def update_location(request):
    """Store the user's current location (replaces the previous one, 24h TTL)"""
    serializer = LocationUpdateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        record = get_container().store.update(data['userID'], data['latitude'], data['longitude'])
    except ValidationError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except UserNotFound as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)

    return Response({
        'userID': str(record.user_id),
        'expiresAt': record.expires_at.isoformat(),
    }, status=status.HTTP_200_OK)


@api_view(['GET'])
def nearby_users(request, user_id):
    """
    Users around the caller's live location.

    Query params:
        distance: reach in the caller's unit (default SIGNAL_MAX_DISTANCE)
    """
    try:
        users = get_container().store.nearby_users_for(user_id, request.query_params.get('distance'))
    except ValidationError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except (UserNotFound, LocationNotFound) as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)

    return Response({
        'count': len(users),
        'users': [user.as_dict() for user in users],
    })
