"""Clients for the VisionMate REST API."""

from visionmate.services.auth import AuthService
from visionmate.services.persistence import BackgroundWrites, PersistenceClient


__all__ = ["AuthService", "BackgroundWrites", "PersistenceClient"]
