"""
Realtime sync gateway.

- connection_manager.py: ConnectionManager facade
- main.py: FastAPI router (/ws, /ws/health) and lifespan hook
- components/: registry, liveness monitor, handshake, dispatcher, endpoints
"""
