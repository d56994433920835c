##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
A scripted PostgreSQL server for exercising the drivers without a cluster.

`Server` holds the script: the responses to the statements it knows, the
authentication method, and the records of what the clients did. Each call of
`Server.connect` produces a `Backend`, the stream given to the client::

	server = Server({'SELECT 1' : Result([('?column?', INT4OID)], [(1,)])})
	c = Connection(StreamConnector(stream_factory = server.connect, user = 'test'))

Backend output is produced lazily, as the client reads it, so the rows generated
ahead of the client can be measured(`Server.rows_sent`).
"""
import asyncio
from collections import deque

from scramp import ScramMechanism, ScramException

from .. import string as pg_str
from ..types import TEXTOID, INT4OID
from ..python.socket import WouldBlock
from ..protocol import element3 as element
from ..protocol.typstruct import ulong_unpack
from ..protocol.typio import default_registry, TextFormat
from ..protocol.negotiate3 import md5_response

__all__ = [
	'Result', 'ServerError', 'ServerNotice', 'Notification', 'Parameter',
	'Status', 'Disconnect', 'Pause', 'Server', 'Backend',
	'TEXTOID', 'INT4OID',
]

class Result(object):
	"""
	The result of a statement. `columns` is a sequence of `(name, type_id)`;
	`rows` an iterable of tuples of Python values. The command tag defaults to
	``SELECT n``.
	"""
	def __init__(self, columns = (), rows = (), tag = None):
		self.columns = list(columns)
		self.rows = rows
		self.tag = tag

class ServerError(object):
	def __init__(self, code, message, severity = 'ERROR', **fields):
		self.fields = dict(fields)
		self.fields['code'] = code
		self.fields['message'] = message
		self.fields['severity'] = severity

	def message(self, cls = element.Error):
		return cls(**{k : v.encode('utf-8') for k, v in self.fields.items()})

class ServerNotice(ServerError):
	def __init__(self, code, message, severity = 'NOTICE', **fields):
		super().__init__(code, message, severity = severity, **fields)

	def message(self, cls = element.Notice):
		return super().message(cls = cls)

class Notification(object):
	def __init__(self, channel, payload = '', pid = 4242):
		self.channel = channel
		self.payload = payload
		self.pid = pid

	def message(self):
		return element.Notify(
			self.pid, self.channel.encode('utf-8'), self.payload.encode('utf-8')
		)

class Parameter(object):
	'A ParameterStatus report.'
	def __init__(self, name, value):
		self.name = name
		self.value = value

	def message(self):
		return element.ShowOption(
			self.name.encode('utf-8'), self.value.encode('utf-8')
		)

class Status(object):
	'Change the transaction status reported by the next ReadyForQuery.'
	def __init__(self, xact_state):
		self.xact_state = xact_state

class Disconnect(object):
	'The server closes the connection.'

class Pause(object):
	"""
	The statement runs until a cancel request arrives, then fails with
	query_canceled.
	"""

def frame(msg):
	return msg.bytes()

class Server(object):
	"""
	The script and the records of the backends.

	`queries` maps statements to responses: a `Result`, an error or notice, a
	list of those, or a callable given the decoded parameters returning one of
	those. `statements` maps statements to their `(parameter_types, columns)`
	for the extended protocol; the parameter types default to text and the
	columns to those of the `Result` response.
	"""
	default_parameters = (
		('server_version', '16.2'),
		('server_encoding', 'UTF8'),
		('client_encoding', 'UTF8'),
		('DateStyle', 'ISO, MDY'),
		('integer_datetimes', 'on'),
	)

	def __init__(self,
		queries = None,
		statements = None,
		auth = 'trust',
		password = None,
		parameters = (),
		pid = 4242,
		key = 0x5eed,
		blocking = True,
		write_limit = None,
	):
		self.queries = dict(queries or ())
		self.statements = dict(statements or ())
		self.auth = auth
		self.password = password
		self.parameters = list(self.default_parameters) + list(parameters)
		self.pid = pid
		self.key = key
		self.blocking = blocking
		self.write_limit = write_limit

		self.backends = []
		self.startups = []
		self.cancel_requests = []
		#: frontend message types received, in order
		self.received = []
		self.closed_statements = []
		self.executed = []
		self.rows_sent = 0

	def connect(self):
		b = Backend(self, blocking = self.blocking)
		self.backends.append(b)
		return b

	@property
	def backend(self):
		'The last backend created for a connection(not a cancellation).'
		for b in reversed(self.backends):
			if b.startup is not None:
				return b
		return None

	def response(self, sql, args = None):
		r = self.queries.get(sql)
		if r is None:
			word = sql.split()[0] if sql.split() else sql
			return [ServerError(
				'42601', 'syntax error at or near "%s"' %(word,), position = '1'
			)]
		if callable(r):
			r = r(args)
		if not isinstance(r, (list, tuple)):
			r = [r]
		return list(r)

	def describe(self, sql):
		'The parameter types and the columns of the statement.'
		if sql in self.statements:
			types, columns = self.statements[sql]
			return tuple(types), None if columns is None else list(columns)
		types = (TEXTOID,) * pg_str.count_parameters(sql)
		columns = None
		r = self.queries.get(sql)
		if not callable(r):
			for item in (r if isinstance(r, (list, tuple)) else [r]):
				if isinstance(item, Result) and item.columns:
					columns = item.columns
		return types, columns

class Backend(object):
	"""
	The server side of one connection, presented as a client stream.
	"""
	salt = b'\x01\x02\x03\x04'

	def __init__(self, server, blocking = True):
		self.server = server
		self.blocking = blocking
		self.closed = False
		self.eof = False
		self.terminated = False
		self.startup = None
		self.xact_state = b'I'
		#: The output is waiting on an event that has not happened.
		self.paused = False
		self.bytes_received = 0
		self.writes = 0
		self.reads = 0
		self._inbox = bytearray()
		self._buffer = bytearray()
		self._pending = deque()
		self._started = False
		self._skip = False
		self._scram = None
		self._prepared = {}
		self._portal = None
		self._toggle = False

	def __repr__(self):
		return '<%s.%s %r>' %(
			type(self).__module__, type(self).__name__, self.startup,
		)

	##
	# Stream interface.
	def setblocking(self, blocking):
		self.blocking = blocking

	def fileno(self):
		return -1

	def close(self):
		self.closed = True

	def wait(self, reading, timeout = None):
		# A paused backend stays silent for the whole timeout.
		return not (reading and self.paused and timeout is not None)

	async def async_wait(self, reading):
		await asyncio.sleep(0)

	def _would_block(self):
		if self.blocking:
			return False
		self._toggle = not self._toggle
		return self._toggle

	def write(self, data):
		if self.closed:
			raise OSError("write on closed stream")
		if self.eof:
			raise BrokenPipeError(32, "Broken pipe")
		if self._would_block():
			return WouldBlock
		data = bytes(data)
		if self.server.write_limit is not None:
			data = data[:self.server.write_limit]
		self.writes += 1
		self.bytes_received += len(data)
		self._inbox += data
		self._process()
		return len(data)

	def read(self, max_bytes):
		if self.closed:
			raise OSError("read on closed stream")
		if self._would_block():
			return WouldBlock
		self.reads += 1
		buf = self._buffer
		while len(buf) < max_bytes and self._pending and not self.eof:
			try:
				data = next(self._pending[0])
			except StopIteration:
				self._pending.popleft()
				continue
			if data is WouldBlock:
				if buf:
					break
				if self.blocking:
					raise AssertionError("blocking read on a paused backend")
				self.paused = True
				return WouldBlock
			self.paused = False
			buf += data
		if not buf:
			if self.eof:
				return b''
			raise AssertionError("read with no pending output would block forever")
		data = bytes(buf[:max_bytes])
		del buf[:max_bytes]
		return data

	##
	# Server side.
	def _emit(self, frames):
		self._pending.append(iter(frames))

	def _process(self):
		inbox = self._inbox
		while inbox and not self.eof:
			if not self._started:
				r = element.decode_startup(inbox)
				if r is element.NeedMoreData:
					return
				msg, size = r
				del inbox[:size]
				self._startup_message(msg)
			else:
				if len(inbox) < 5:
					return
				size = ulong_unpack(bytes(inbox[1:5])) + 1
				if len(inbox) < size:
					return
				typ = bytes(inbox[0:1])
				body = bytes(inbox[5:size])
				del inbox[:size]
				self.server.received.append(typ)
				if typ == b'p':
					self._password_message(body)
				else:
					self._message(element.parse_body(
						typ, body, element.frontend_messages
					))

	def _startup_message(self, msg):
		if isinstance(msg, element.CancelRequest):
			self.server.cancel_requests.append((msg.pid, msg.key))
			self.eof = True
			return
		if msg is element.NegotiateSSLMessage:
			self._emit([b'N'])
			return
		self._started = True
		self.startup = {
			k.decode('utf-8') : v.decode('utf-8') for k, v in msg.items()
		}
		self.server.startups.append(self.startup)

		auth = self.server.auth
		if auth == 'trust':
			self._authenticated()
		elif auth == 'cleartext':
			self._emit([frame(element.Authentication(element.AuthRequest_Cleartext))])
		elif auth == 'md5':
			self._emit([frame(element.Authentication(element.AuthRequest_MD5, self.salt))])
		elif auth == 'scram':
			self._emit([frame(element.Authentication(
				element.AuthRequest_SASL, b'SCRAM-SHA-256\x00\x00'
			))])
		elif auth == 'gss':
			self._emit([frame(element.Authentication(element.AuthRequest_GSS))])
		elif auth == 'stall':
			self._emit(self._stall())
		else:
			raise ValueError("unknown auth method: " + repr(auth))

	def _password_message(self, body):
		auth = self.server.auth
		password = (self.server.password or '').encode('utf-8')
		if auth == 'cleartext':
			ok = body[:-1] == password
		elif auth == 'md5':
			ok = body[:-1] == md5_response(
				self.startup['user'].encode('utf-8'), password, self.salt
			)
		elif auth == 'scram':
			if self._scram is None:
				mechanism, rest = body.split(b'\x00', 1)
				m = ScramMechanism()
				info = m.make_auth_info(self.server.password)
				self._scram = m.make_server(lambda username: info)
				self._scram.set_client_first(rest[4:].decode('utf-8'))
				self._emit([frame(element.Authentication(
					element.AuthRequest_SASLContinue,
					self._scram.get_server_first().encode('utf-8')
				))])
				return
			try:
				self._scram.set_client_final(body.decode('utf-8'))
			except ScramException:
				ok = False
			else:
				ok = True
				self._emit([frame(element.Authentication(
					element.AuthRequest_SASLFinal,
					self._scram.get_server_final().encode('utf-8')
				))])
		else:
			ok = False

		if ok:
			self._authenticated()
		else:
			self._emit(self._fatal(ServerError(
				'28P01',
				'password authentication failed for user "%s"' %(self.startup['user'],),
				severity = 'FATAL',
			)))

	def _stall(self):
		while True:
			yield WouldBlock

	def _fatal(self, error):
		yield frame(error.message())
		self.eof = True

	def _authenticated(self):
		server = self.server
		frames = [frame(element.Authentication(element.AuthRequest_OK))]
		for k, v in server.parameters:
			frames.append(frame(Parameter(k, v).message()))
		frames.append(frame(element.KillInformation(server.pid, server.key)))
		frames.append(frame(element.Ready(b'I')))
		self._emit(frames)

	def _ready(self):
		yield frame(element.Ready(self.xact_state))

	def _sync(self):
		self._skip = False
		yield from self._ready()

	def _message(self, msg):
		t = msg.type
		if t == element.Disconnect.type:
			self.terminated = True
			self.eof = True
			return
		if t == element.Synchronize.type:
			self._emit(self._sync())
			return
		if t == element.Flush.type:
			return

		if t == element.Query.type:
			self._emit(self._query(msg.data.decode('utf-8')))
		elif t == element.Parse.type:
			self._emit(self._parse(msg))
		elif t == element.Describe.type:
			self._emit(self._describe(msg))
		elif t == element.Bind.type:
			self._emit(self._bind(msg))
		elif t == element.Execute.type:
			self._emit(self._execute(msg))
		elif t == element.Close.type:
			self._emit(self._close(msg))
		else:
			raise AssertionError("unexpected frontend message: " + repr(msg))

	def _error(self, error):
		if self.xact_state == b'T':
			self.xact_state = b'E'
		self._skip = True
		return frame(error.message())

	def _result(self, items, formats = None):
		"""
		Produce the frames of the response items; stops after an error or a
		disconnect.
		"""
		server = self.server
		registry = default_registry
		for item in items:
			if isinstance(item, Result):
				if formats is None:
					fmts = [TextFormat] * len(item.columns)
					if item.columns:
						yield frame(element.TupleDescriptor([
							(name.encode('utf-8'), 0, 0, type_id, -1, -1, TextFormat)
							for name, type_id in item.columns
						]))
				else:
					fmts = formats
				count = 0
				for row in item.rows:
					count += 1
					server.rows_sent += 1
					yield frame(element.Tuple([
						registry.encode(v, type_id, fmt)
						for v, (name, type_id), fmt in zip(row, item.columns, fmts)
					]))
				tag = item.tag if item.tag is not None else 'SELECT %d' %(count,)
				yield frame(element.Complete(tag.encode('ascii')))
			elif isinstance(item, ServerNotice):
				yield frame(item.message())
			elif isinstance(item, ServerError):
				yield self._error(item)
				return
			elif isinstance(item, Status):
				self.xact_state = item.xact_state
			elif isinstance(item, Disconnect):
				self.eof = True
				return
			elif isinstance(item, Pause):
				while not server.cancel_requests:
					yield WouldBlock
				yield self._error(ServerError(
					'57014', 'canceling statement due to user request'
				))
				return
			else:
				yield frame(item.message())

	def _query(self, sql):
		self.server.executed.append((sql, None))
		if not sql.strip():
			yield frame(element.NullMessage)
		else:
			yield from self._result(self.server.response(sql))
		self._skip = False
		if not self.eof:
			yield from self._ready()

	def _parse(self, msg):
		if self._skip:
			return
		sql = msg.statement.decode('utf-8')
		if sql not in self.server.queries:
			yield self._error(self.server.response(sql)[0])
			return
		self._prepared[msg.name] = sql
		yield frame(element.ParseCompleteMessage)

	def _describe(self, msg):
		if self._skip:
			return
		sql = self._prepared.get(msg.data)
		if sql is None:
			yield self._error(ServerError(
				'26000', 'prepared statement "%s" does not exist' %(msg.data.decode('utf-8'),)
			))
			return
		types, columns = self.server.describe(sql)
		yield frame(element.AttributeTypes(types))
		if columns is None:
			yield frame(element.NoDataMessage)
		else:
			yield frame(element.TupleDescriptor([
				(name.encode('utf-8'), 0, 0, type_id, -1, -1, TextFormat)
				for name, type_id in columns
			]))

	def _bind(self, msg):
		if self._skip:
			return
		sql = self._prepared.get(msg.statement)
		if sql is None:
			yield self._error(ServerError(
				'26000', 'prepared statement "%s" does not exist' %(msg.statement.decode('utf-8'),)
			))
			return
		types, columns = self.server.describe(sql)
		aformats = [int.from_bytes(x, 'big') for x in msg.aformats]
		if len(aformats) <= 1:
			aformats = (aformats or [TextFormat]) * len(msg.arguments)
		args = tuple([
			default_registry.decode(type_id, fmt, raw)
			for raw, type_id, fmt in zip(msg.arguments, types, aformats)
		])
		rformats = [int.from_bytes(x, 'big') for x in msg.rformats]
		if columns is not None and len(rformats) <= 1:
			rformats = (rformats or [TextFormat]) * len(columns)
		self._portal = (sql, args, rformats)
		yield frame(element.BindCompleteMessage)

	def _execute(self, msg):
		if self._skip:
			return
		sql, args, rformats = self._portal
		self.server.executed.append((sql, args))
		items = self.server.response(sql, args)
		yield from self._result(items, formats = rformats)

	def _close(self, msg):
		if self._skip:
			return
		self._prepared.pop(msg.data, None)
		self.server.closed_statements.append(msg.data)
		yield frame(element.CloseCompleteMessage)
