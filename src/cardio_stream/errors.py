"""
Error Types
===========

Exception hierarchy for the acquisition and analysis pipeline.

Handling Rules:
    - LinkError and subclasses never escape the device link; they are
      funnelled into the reconnection policy.
    - DecodeError is counted and logged by ingest; the frame is dropped.
    - PersistenceError propagates to the caller, which keeps working on
      whatever history it has cached.
    - ProfileLockedError guards the personal profile while a recording runs.
"""

class CardioStreamError(Exception):
    """Base class for all CardioStream errors."""

class LinkError(CardioStreamError):
    """Transient failure of the sensor link."""

class ConnectTimeoutError(LinkError):
    """Opening the link did not complete within the connect timeout."""

class ServiceDiscoveryError(LinkError):
    """No compatible notifying characteristic was found on the device."""

class NotifySubscribeError(LinkError):
    """Enabling notifications on the data channel failed."""

class DecodeError(CardioStreamError):
    """A frame line could not be parsed into samples."""

class PersistenceError(CardioStreamError):
    """Loading or saving a session or user profile failed."""

class ProfileLockedError(CardioStreamError):
    """The personal profile cannot be replaced during a recording."""
