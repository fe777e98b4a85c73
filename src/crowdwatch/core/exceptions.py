"""Error taxonomy for the sale watcher."""


class CrowdwatchError(Exception):
    """Base class for all service errors."""


class ChainConnectionError(CrowdwatchError):
    """Transport to the chain node could not be opened or closed unexpectedly.

    Recovered by the connection manager's reconnect loop; never fatal.
    """


class StaleBindingError(ChainConnectionError):
    """A contract binding was used after its connection generation ended."""


class BindingError(CrowdwatchError):
    """Malformed contract address or ABI. Fatal at startup."""


class EventProcessingError(CrowdwatchError):
    """Decoding or enriching a single event failed."""


class QueryError(CrowdwatchError):
    """A status read failed or the binding is momentarily unavailable.

    Callers should treat it as transient.
    """
