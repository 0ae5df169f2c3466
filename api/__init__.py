"""Trigger API: framework-free core plus its HTTP surface."""

from .trigger import TriggerAPI

__all__ = ["TriggerAPI"]
