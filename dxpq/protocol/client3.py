##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Protocol version 3.0 client and tools.

`Connection` moves transactions(`dxpq.protocol.xact3`) over a byte-stream. It
never blocks on its own: `step()` reports the direction the stream must become
ready for when it cannot make progress, leaving the waiting to the caller.
"""
import os
from traceback import format_exception_only

from ..python.socket import WouldBlock
from .. import exceptions as pg_exc
from . import element3 as element
from . import xact3 as xact
from .buffer import pq_message_stream

#: Bytes requested per read; bounds the number of messages buffered at once.
default_read_size = 1024 * 8

def client_error(code, message, severity = 'FATAL', **details):
	'Create an `element.ClientError` describing a client side failure.'
	return element.ClientError(
		severity = severity, code = code, message = message, **details
	)

class Connection(object):
	"""
	A PQ 3.0 connection over a byte-stream.

	Transactions are pushed one at a time and driven by `step()`. Once a
	transaction completes, `xact` is `None` and the next one may be pushed.
	Any exception raised while reading, writing, or parsing terminates the
	current transaction, closes the stream, and sets `failed`.
	"""
	def __init__(self, stream, read_size = default_read_size):
		self.stream = stream
		self.read_size = read_size
		self.message_buffer = pq_message_stream()
		self.xact = None
		self.failed = False
		#: Transaction status byte from the last ReadyForQuery.
		self.xact_state = None
		#: Total number of bytes written to the stream.
		self.bytes_written = 0
		self._out = b''
		self._unconsumed = []

	def __repr__(self):
		return '<%s.%s %r %s>' %(
			type(self).__module__,
			type(self).__name__,
			self.stream,
			'failed' if self.failed else repr(self.xact_state),
		)

	@property
	def closed(self):
		return self.stream is None or self.stream.closed

	def buffered(self):
		'The number of bytes read from the stream, but not yet consumed.'
		return self.message_buffer.size()

	def push(self, x):
		if self.xact is not None:
			raise RuntimeError("protocol transaction already in progress")
		if self.failed:
			raise RuntimeError("cannot push transaction on failed connection")
		self._out = b''
		self.xact = x

	def _fail(self, x, exception, error_message):
		x.fail(exception, error_message)
		self.failed = True
		self.close()

	def close(self):
		stream = self.stream
		if stream is not None and not stream.closed:
			stream.close()

	def abort(self, exception):
		"""
		Terminate the current transaction with the I/O `exception` raised while
		waiting on the stream. The connection is unusable afterwards.
		"""
		x = self.xact
		self.xact = None
		if x is not None:
			self._fail(x, exception, client_error(
				pg_exc.CONNECTION.FAILURE,
				"connection failure: " + (getattr(exception, 'strerror', None) or str(exception))
			))
		else:
			self.failed = True
			self.close()

	def abandon(self):
		"""
		Forget the current transaction and the data read for it. Only useful
		when the connection is about to be terminated.
		"""
		self.xact = None
		self._out = b''
		self._unconsumed = []
		self.message_buffer.truncate()

	def _send(self, x, sent):
		if not self._out:
			self._out = b''.join([bytes(m) for m in x.messages])
		n = self.stream.write(self._out)
		if n is WouldBlock:
			return xact.Sending
		self.bytes_written += n
		self._out = self._out[n:]
		if not self._out:
			sent()
		return None

	def _receive(self, put):
		messages = self._unconsumed
		if not messages:
			messages = self.message_buffer.read()
			if not messages:
				data = self.stream.read(self.read_size)
				if data is WouldBlock:
					return xact.Receiving
				if not data:
					raise pg_exc.ConnectionFailureError(
						"server closed the connection unexpectedly",
						details = {
							'severity' : 'FATAL',
							'hint' : 'The server may have terminated abnormally or been shut down.',
						}
					)
				self.message_buffer.write(data)
				messages = self.message_buffer.read()
				if not messages:
					# Partial message.
					return None
		count = put(messages)
		self._unconsumed = messages[count:]
		return None

	def step(self):
		"""
		Make progress on the current transaction.

		Returns `None` when progress was made, or `xact.Sending`/`xact.Receiving`
		when the stream would block in that direction.
		"""
		x = self.xact
		if x is None:
			return None
		try:
			direction, method = x.state
			if direction is xact.Sending:
				blocked = self._send(x, method)
			else:
				blocked = self._receive(method)
		except pg_exc.Error as err:
			if not err.fatal:
				raise
			self._fail(x, err, client_error(
				str(err.code), err.message,
				**{k : v for k, v in err.details.items() if k != 'severity'}
			))
		except OSError as err:
			self._fail(x, err, client_error(
				pg_exc.CONNECTION.FAILURE,
				"connection failure: " + (getattr(err, 'strerror', None) or str(err))
			))
		else:
			if blocked is not None:
				return blocked

		if x.state is xact.Complete:
			self.xact = None
			if x.last_ready is not None:
				self.xact_state = x.last_ready
			if x.fatal is True:
				self.failed = True
				self.close()
			elif isinstance(x, xact.Closing):
				self.close()
		return None

class ConnectionAttempt(object):
	"""
	When a PQv3 connection attempt is made, but not successfully established, a
	ConnectionAttempt can be used to document the attempt in order to provide
	detailed information about the failure.

	Instances of this class are found in `dxpq.exceptions.ConnectError.failures`.

	Properties:

	 ssl_negotiation
	  True if SSL was required
	  False if SSL was attempted, but the connection could continue without it
	  None if SSL negotiation was not attempted
	"""
	exception_string = staticmethod(format_exception_only)
	__slots__ = (
		'ssl_negotiation',
		'socket_creator',
		'exception',
	)

	def __init__(self,
		ssl_negotiation,
		socket_creator,
		exception,
	):
		self.ssl_negotiation = ssl_negotiation
		self.socket_creator = socket_creator
		self.exception = exception

	def __repr__(self):
		return '%s.%s(%r, %r, %r)' %(
			type(self).__module__,
			type(self).__name__,
			self.ssl_negotiation,
			self.socket_creator,
			self.exception,
		)

	def __str__(self):
		if self.ssl_negotiation is True:
			ssl = 'SSL'
		elif self.ssl_negotiation is False:
			ssl = 'SSL then NOSSL'
		elif self.ssl_negotiation is None:
			ssl = 'NOSSL'
		else:
			ssl = '<unexpected ssl_negotiation configuration>'
		excstr = ''.join(self.exception_string(type(self.exception), self.exception))
		return str(self.socket_creator) \
			+ ' -> (' + ssl + ')' \
			+ os.linesep + excstr.strip()
