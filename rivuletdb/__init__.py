"""Values, merging, keys, signed messages, contracts, transports and a peer node."""

__version__ = "0.1.0"

__all__ = ["accept", "contract", "crypto", "node", "protocol", "schema", "tcp", "transport"]