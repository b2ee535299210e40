"""Error taxonomy shared by the core and adapters.

None of these are fatal to the process: transport errors skip one unit of
work, store errors abort the current cycle and the next tick starts fresh.
"""

from __future__ import annotations


class NewsRelayError(Exception):
    """Base class for newsrelay errors."""


class TransportError(NewsRelayError):
    """Feed fetch or outbound message send failed."""


class StoreUnavailable(NewsRelayError):
    """Backing store could not be reached after the retry budget."""
