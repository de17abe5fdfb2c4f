"""
Services package - Business logic layer.

This package contains the business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - propagation: Signal sending and ring-by-ring propagation
    - container: Per-process wiring of codec, store, hub, notifier and engine
"""
