from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from common.validation import ValidationError
from services.container import get_container
from services.propagation import (
    CooldownActive,
    NotAuthorized,
    UserNotFound,
    UserOffline,
)
from .serializers import (
    SignalSendSerializer,
    SignalRespondSerializer,
    SignalSerializer,
    ReceivedSignalSerializer,
)


def _error_response(exc):
    """Map a propagation error to an HTTP response."""
    if isinstance(exc, ValidationError):
        return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, NotAuthorized):
        return Response({'error': str(exc)}, status=status.HTTP_403_FORBIDDEN)
    if isinstance(exc, UserNotFound):
        return Response({'error': str(exc)}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, UserOffline):
        return Response({'error': str(exc)}, status=status.HTTP_409_CONFLICT)
    if isinstance(exc, CooldownActive):
        return Response(
            {'error': str(exc), 'remaining_seconds': exc.remaining_seconds},
            status=status.HTTP_429_TOO_MANY_REQUESTS
        )
    raise exc


# ==================== Signal APIs ====================

@api_view(['POST'])
def send_signal(request):
    """Send a signal from the sender's current position"""
    serializer = SignalSendSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        signal = get_container().engine.send(
            data['senderID'],
            data['latitude'],
            data['longitude'],
            data.get('maxDistance'),
        )
    except (ValidationError, UserNotFound, UserOffline, CooldownActive) as e:
        return _error_response(e)

    return Response(SignalSerializer(signal).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
def respond_to_signal(request, signal_id):
    """Answer a received signal with a new signal from the responder"""
    serializer = SignalRespondSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        signal = get_container().engine.respond(
            signal_id,
            data['responderID'],
            data['latitude'],
            data['longitude'],
            data.get('maxDistance'),
        )
    except (ValidationError, NotAuthorized, UserNotFound, UserOffline) as e:
        return _error_response(e)

    return Response(SignalSerializer(signal).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
def received_signals(request, user_id):
    """Signals received by the user in the last 24 hours, newest first"""
    try:
        receipts = get_container().engine.received_signals(user_id)
    except UserNotFound as e:
        return _error_response(e)

    return Response({
        'count': len(receipts),
        'signals': ReceivedSignalSerializer(receipts, many=True).data,
    })
