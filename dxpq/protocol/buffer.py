##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Message stream buffer.

Data read from the server is written into a `pq_message_stream`; complete
messages are read back out as `(type, body)` pairs. Incomplete trailing data
stays in the buffer until the rest of it is written.
"""
__all__ = ['pq_message_stream']

import struct
from .message_types import message_types
from .. import exceptions as pg_exc

xl_unpack = struct.Struct('!xL').unpack_from

class pq_message_stream(object):
	'provide a message stream from a data stream'
	_limit = 512 * 4

	def __init__(self):
		self._data = bytearray()
		self._start = 0

	def truncate(self):
		"remove all data in the buffer"
		del self._data[:]
		self._start = 0

	def _rtruncate(self):
		"[internal] remove the consumed data"
		del self._data[:self._start]
		self._start = 0

	def _size_at(self, pos):
		length, = xl_unpack(self._data, pos)
		if length < 4:
			raise pg_exc.ProtocolError(
				"invalid message size '%d'" %(length,),
				details = {'severity': 'FATAL'}
			)
		return length

	def has_message(self):
		"if the buffer has a message available"
		if len(self._data) - self._start < 5:
			return False
		length = self._size_at(self._start)
		return (len(self._data) - self._start) >= length + 1

	def __len__(self):
		"number of messages in buffer"
		count = 0
		pos = self._start
		end = len(self._data)
		while end - pos >= 5:
			length = self._size_at(pos)
			pos += length + 1
			if pos > end:
				break
			count += 1
		return count

	def size(self):
		"number of bytes held by the buffer, complete messages or not"
		return len(self._data) - self._start

	def _get_message(self, mtypes = message_types):
		pos = self._start
		if len(self._data) - pos < 5:
			return None
		length = self._size_at(pos)
		end = pos + length + 1
		if end > len(self._data):
			# Not enough data for message.
			return None
		typ = mtypes[self._data[pos]]
		body = bytes(self._data[pos+5:end])
		self._start = end
		return (typ, body)

	def next_message(self):
		if self._start > self._limit:
			self._rtruncate()
		return self._get_message()

	def __iter__(self):
		return self

	def __next__(self):
		msg = self.next_message()
		if msg is None:
			raise StopIteration
		return msg

	def read(self, num = 0xFFFFFFFF):
		if self._start > self._limit:
			self._rtruncate()

		l = []
		while len(l) < num:
			msg = self._get_message()
			if msg is None:
				break
			l.append(msg)
		return l

	def write(self, data):
		# Always append data; it's a stream.
		self._data.extend(data)
