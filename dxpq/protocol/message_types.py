##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Interned message type codes.

``message_types[n]`` is the single byte ``bytes((n,))``. The buffer takes the
type code of every message it extracts from this table, so the codes can be
compared to the message classes' `type` attribute using `is`.
"""
message_types = tuple(map(bytes, zip(range(256))))
