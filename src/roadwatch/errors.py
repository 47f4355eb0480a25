"""
Error Taxonomy
==============

Exceptions raised by the Roadwatch core.

None of these are fatal to the process. Each one has a deterministic
recovery path:

    - TransientFetchFailure: the scheduler keeps the previous snapshot
      and retries on the next tick.
    - StreamUnavailable: the recommendation service resolves straight
      to the fallback table without attempting a partial decode.
    - StreamInterrupted: the recommendation service stops reading and
      resolves with whatever the decoder has accumulated.

Partial JSON parse failures in the middle of a stream are NOT
exceptions; the decoder counts them and waits for more data.
"""


class RoadwatchError(Exception):
    """Base exception for all Roadwatch errors."""
    pass


class ConfigurationError(RoadwatchError):
    """Raised when configuration selects something that cannot be built."""
    pass


class TransientFetchFailure(RoadwatchError):
    """Raised when a congestion or accident snapshot fetch fails."""
    pass


class StreamUnavailable(RoadwatchError):
    """Raised when a recommendation stream cannot be opened or read incrementally."""
    pass


class StreamInterrupted(RoadwatchError):
    """Raised when a recommendation stream fails after it started delivering."""
    pass
