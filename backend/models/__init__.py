"""
Heartbeat Watcher Models Package

Import all models here to ensure they are registered with SQLAlchemy's metadata.
"""

from .models import Base, DowntimeEvent, Heartbeat

__all__ = ['Base', 'DowntimeEvent', 'Heartbeat']
