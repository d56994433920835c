"""
PQ protocol version 3.0: message elements, buffering, transactions and type I/O.

Nothing in this package performs I/O; `dxpq.protocol.client3.Connection`
drives transactions over a supplied byte-stream.
"""
