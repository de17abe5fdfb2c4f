"""
Realtime app for WebSocket proximity streaming.

This app provides:
- An in-memory subscription hub that fans out location updates to
  subscribers within their radius
- The location stream WebSocket consumer
- Notification helpers for pushing signal alerts to connected users

Key Components:
    - hub.py: ProximitySubscriptionHub (registry + distance-filtered broadcast)
    - consumers/: WebSocket consumers
    - notifications.py: signal_received events on the user's personal group

Usage:
    from realtime.hub import ProximitySubscriptionHub
    from realtime.notifications import notify_signal_received
"""
