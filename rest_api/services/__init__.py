"""
REST API services.
"""

from rest_api.services.events import publish_entity_event

__all__ = ["publish_entity_event"]
