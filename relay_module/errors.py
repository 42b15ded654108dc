"""Exceptions raised across the relay seams."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay failures."""


class TransportError(RelayError):
    """The upstream backend could not be reached or returned an error status."""


class ClientDisconnected(RelayError):
    """The client went away; ends the session without being a failure."""


class ClientProtocolError(RelayError):
    """The client sent a frame that is not a valid inbound message."""
