##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Driver package for connecting to PostgreSQL via a data stream(sockets).

`dxpq.driver.pq3` is the blocking driver; `dxpq.driver.aio` is the asyncio
driver. Both run the same protocol exchanges.
"""
__all__ = ['IP4', 'IP6', 'Host', 'Unix', 'Stream', 'connect', 'default']

from .pq3 import default

IP4 = default.ip4
IP6 = default.ip6
Host = default.host
Unix = default.unix
Stream = default.stream

connect = default.connect
