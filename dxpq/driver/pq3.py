##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PostgreSQL driver using PQ version 3.0.

The protocol exchanges are written once, as generators(the ``_g_`` methods of
`Database`). A generator yields when the connection must wait:

 `xact.Sending` or `xact.Receiving`
  The stream would block; wait for it to become writable or readable.
 a callable
  A blocking call, like creating a socket; the runner calls it and sends the
  result back into the generator, or throws its exception.

`Connection` runs them by blocking on the stream. `dxpq.driver.aio` awaits it.
"""
import re
import socket
import ssl
import time
import warnings
import weakref
from collections import deque, OrderedDict
from functools import partial
from operator import itemgetter
from struct import error as struct_error

from .. import exceptions as pg_exc
from .. import string as pg_str
from .. import iri as pg_iri
from ..encodings.aliases import get_python_name
from ..types import Row, Column
from ..python.socket import SocketFactory, SocketStream, WouldBlock
from ..protocol import xact3 as xact
from ..protocol import element3 as element
from ..protocol import client3 as client
from ..protocol.negotiate3 import PasswordProvider
from ..protocol.typio import default_registry, process_tuple, \
	TextFormat, BinaryFormat

##
# Connection states.
DISCONNECTED = 'disconnected'
CONNECTING = 'connecting'
AUTHENTICATING = 'authenticating'
READY = 'ready'
QUERYING = 'querying'
STREAMING = 'streaming'
CLOSED = 'closed'
FAILED = 'failed'

##
# Transaction status.
IDLE = 'idle'
IN_TRANSACTION = 'in transaction'
FAILED_TRANSACTION = 'failed transaction'
xact_state_to_status = {
	b'I' : IDLE,
	b'T' : IN_TRANSACTION,
	b'E' : FAILED_TRANSACTION,
}

wire_formats = {
	TextFormat : element.StringFormat,
	BinaryFormat : element.BinaryFormat,
}

version_re = re.compile(r'(\d+)(?:\.(\d+))?(?:\.(\d+))?')

class EndOfResultsType(object):
	"""
	The type of the `EndOfResults` sentinel returned by `next_row` when the
	result set is exhausted.
	"""
	__slots__ = ()

	def __new__(typ):
		return EndOfResults

	def __repr__(self):
		return 'EndOfResults'
EndOfResults = object.__new__(EndOfResultsType)

def run(g, wait):
	"""
	Run the generator to completion, blocking on `wait(reading)` whenever it
	yields a direction.
	"""
	send = g.send
	value = None
	while True:
		try:
			req = send(value)
		except StopIteration as stop:
			return stop.value
		send = g.send
		value = None
		try:
			if req.__class__ is bool:
				wait(req)
			else:
				value = req()
		except Exception as err:
			send = g.throw
			value = err
		except BaseException:
			# Interrupted; let the generator release its resources.
			g.close()
			raise

class Statement(object):
	"""
	A statement prepared on the server.

	`description` is the `element.TupleDescriptor` of the statement's result
	or `None` if it returns no rows.
	"""
	__slots__ = ('name', 'string', 'parameter_types', 'description', 'closed')

	def __init__(self, name, string):
		self.name = name
		self.string = string
		self.parameter_types = ()
		self.description = None
		self.closed = False

	def __repr__(self):
		return '<%s.%s %r %r>' %(
			type(self).__module__, type(self).__name__, self.name, self.string
		)

class Output(object):
	"""
	The result of one query: the row description, the rows, and the completion.

	Eager outputs hold the raw rows of the last result set; streaming outputs
	pull them from the connection as they are requested. Rows are decoded when
	they are read.
	"""
	_xact = None
	_complete = None
	_columns = None
	_keymap = None
	_procs = None

	def __init__(self, database, streaming = False):
		self._database = weakref.ref(database)
		self._generation = database._generation
		self.streaming = streaming
		self._rows = deque()
		self._done = False
		self._closed = False

	def __repr__(self):
		return '<%s.%s %s%s>' %(
			type(self).__module__,
			type(self).__name__,
			'streaming' if self.streaming else 'eager',
			' closed' if self.closed else '',
		)

	@property
	def closed(self) -> bool:
		if self._closed:
			return True
		db = self._database()
		return db is None or db._generation != self._generation

	def _check(self):
		"""
		Raise `CursorClosedError` if the cursor cannot be read; the next query
		and the closure of the connection invalidate it. Returns the connection.
		"""
		if self._closed:
			raise pg_exc.CursorClosedError("cursor is closed")
		db = self._database()
		if db is None or db._generation != self._generation:
			raise pg_exc.CursorClosedError(
				"cursor was invalidated by a subsequent query or the connection's closure",
				details = {
					'hint' : 'Consume the results of a cursor before issuing the next query.',
				}
			)
		return db

	def _describe(self, descriptor, formats, encoding):
		if descriptor is None:
			self._columns = None
			self._keymap = None
			self._procs = None
			return
		if formats is None:
			formats = [x[6] for x in descriptor]
		self._columns = tuple([
			Column(
				x[0].decode(encoding), x[3], x[4], x[5], fmt, x[1], x[2]
			)
			for x, fmt in zip(descriptor, formats)
		])
		km = {}
		for i in range(len(self._columns) - 1, -1, -1):
			km[self._columns[i].name] = i
		self._keymap = km
		db = self._database()
		self._procs = [
			db.registry.unpacker(c.type_id, c.format, encoding)
			for c in self._columns
		]

	def _load(self, messages, descriptor, formats, encoding):
		'Hold the last result set found in the messages.'
		pending = descriptor
		rows = []
		for msg in messages:
			t = msg.type
			if t is element.Tuple.type:
				rows.append(msg)
			elif t is element.TupleDescriptor.type:
				pending = msg
				formats = None
			elif t is element.Complete.type or t is element.Null.type:
				self._describe(pending, formats, encoding)
				self._rows = deque(rows)
				self._complete = msg if t is element.Complete.type else None
				pending = None
				rows = []
		self._done = True

	def _raise_column_decode_error(self, procs, tup, itemnum):
		col = self._columns[itemnum]
		err = pg_exc.ColumnDecodeError(
			"failed to decode column %r of type %s(%d)" %(
				col.name, col.type_name or 'unknown', col.type_id
			),
			details = {
				'detail' : 'raw data: ' + repr(tup[itemnum])[:64],
			}
		)
		err.column = itemnum
		err.type_id = col.type_id
		raise err

	def _decode(self, raw):
		return Row.from_sequence(
			self._keymap,
			process_tuple(self._procs, raw, self._raise_column_decode_error)
		)

	def row_description(self):
		"""
		The `dxpq.types.Column` descriptors of the result set; `None` when the
		statement returns no rows.
		"""
		self._check()
		return self._columns

	@property
	def column_names(self):
		if self._columns is None:
			return None
		return tuple([c.name for c in self._columns])

	def rows_affected(self):
		"""
		The row count of the command completion; `None` when it is not known
		yet or the command does not report one.
		"""
		self._check()
		if self._complete is None:
			return None
		return self._complete.extract_count()

	def command(self):
		'The command of the completion tag, e.g. ``"SELECT"``.'
		self._check()
		if self._complete is None:
			return None
		cmd = self._complete.extract_command()
		return cmd.decode('ascii') if cmd is not None else None

class Cursor(Output):
	"""
	The result of `Connection.execute`.

	Rows are read with `next_row`, which returns `EndOfResults` once the
	result set is exhausted, or the `fetch*` methods and iteration.
	"""
	arraysize = 1

	def __iter__(self):
		return self

	def __next__(self):
		r = self.next_row()
		if r is EndOfResults:
			raise StopIteration
		return r

	def __enter__(self):
		return self

	def __exit__(self, typ, val, tb):
		self.close()

	def next_row(self):
		db = self._check()
		if self._done:
			if not self._rows:
				return EndOfResults
			raw = self._rows.popleft()
		else:
			raw = db._run(db._g_next_row(self))
			if raw is EndOfResults:
				return raw
		return self._decode(raw)

	def fetchone(self):
		r = self.next_row()
		return None if r is EndOfResults else r

	def fetchmany(self, size = None):
		if size is None:
			size = self.arraysize
		l = []
		while len(l) < size:
			r = self.next_row()
			if r is EndOfResults:
				break
			l.append(r)
		return l

	def fetchall(self):
		return list(self)

	def close(self):
		"""
		Close the cursor. An unfinished streaming cursor reads and discards
		the rest of its results first.
		"""
		if self._closed:
			return
		self._closed = True
		self._rows.clear()
		db = self._database()
		if db is not None and db._generation == self._generation and not self._done:
			db._run(db._g_finish(self))

class PreparedStatement(object):
	"""
	A statement prepared by `Connection.prepare`.

	Calling the statement executes it with the given parameters and returns
	all of its rows.
	"""
	def __init__(self, database, statement):
		self.database = database
		self.statement = statement
		self._generation = database._connection_generation

	def __repr__(self):
		return '<%s.%s %r%s>' %(
			type(self).__module__,
			type(self).__name__,
			self.string,
			' closed' if self.closed else '',
		)

	@property
	def string(self):
		return self.statement.string

	@property
	def closed(self) -> bool:
		return self.statement.closed or \
			self._generation != self.database._connection_generation

	@property
	def parameter_types(self):
		'The type Oids of the statement parameters.'
		return tuple(self.statement.parameter_types)

	@property
	def column_types(self):
		'The type Oids of the result columns; `None` if no rows are returned.'
		desc = self.statement.description
		if desc is None:
			return None
		return tuple(map(itemgetter(3), desc))

	@property
	def column_names(self):
		desc = self.statement.description
		if desc is None:
			return None
		enc = self.database.encoding
		return tuple([x[0].decode(enc) for x in desc])

	def _check(self):
		if self.closed:
			raise pg_exc.StatementNameError(
				"prepared statement is closed",
				details = {'detail' : self.statement.name.decode('ascii')}
			)

	def execute(self, parameters = (), stream = False):
		self._check()
		db = self.database
		return db._run(db._g_execute_prepared(
			self.statement, tuple(parameters), stream, db.cursor_type
		))

	def __call__(self, *parameters):
		with self.execute(parameters) as c:
			return c.fetchall()

	def first(self, *parameters):
		"""
		Execute the statement and return the first column of the first row if
		there is only one column; the first row otherwise. Statements that
		return no rows give the affected row count.
		"""
		with self.execute(parameters) as c:
			return first_of(c, c.fetchone())

	def close(self):
		'Close the statement on the server with the next request.'
		if not self.closed:
			self.database._discard_statement(self.statement)

def first_of(c, row):
	if c.row_description() is None:
		return c.rows_affected()
	if row is None:
		return None
	return row[0] if len(row) == 1 else row

class Database(object):
	"""
	The state of a connection and the protocol exchanges performed on it.
	Use `Connection`, or `dxpq.driver.aio.AsyncConnection`.
	"""
	cursor_type = Output
	statement_type = None

	pq = None
	backend_id = None
	_key = None
	_stream_factory = None
	_tls = None
	#: Monotonic time at which connection establishment times out.
	_deadline = None
	#: Error raised by the last failed query.
	last_error = None

	def __init__(self, connector):
		self.connector = connector
		self.registry = connector.registry
		self.state = DISCONNECTED
		#: Server parameters reported by ParameterStatus messages.
		self.settings = {}
		#: NotificationResponse messages; `(channel, payload, pid)` triples.
		self.notifications = deque()
		#: Callables given the `dxpq.exceptions.Warning` of every notice; a
		#: receiver returning `True` stops it from being emitted with `warnings`.
		self.notice_receivers = []
		self.encoding = 'utf-8'
		self._generation = 0
		self._connection_generation = 0
		self._streaming = None
		self._statements = OrderedDict()
		self._garbage = []
		self._statement_count = 0

	def __repr__(self):
		return '<%s.%s[%s] %s>' %(
			type(self).__module__,
			type(self).__name__,
			self.connector._pq_iri,
			self.state,
		)

	@property
	def closed(self) -> bool:
		return self.state in (DISCONNECTED, CLOSED, FAILED)

	@property
	def transaction_status(self):
		if self.pq is None:
			return None
		return xact_state_to_status.get(self.pq.xact_state)

	@property
	def server_version(self):
		return self.settings.get('server_version')

	@property
	def version_info(self):
		'The server version as a tuple of integers.'
		sv = self.server_version
		if sv is None:
			return None
		m = version_re.match(sv)
		if m is None:
			return None
		return tuple([int(x) for x in m.groups() if x is not None])

	##
	# Asynchronous messages.
	def _decode_fields(self, msg):
		if isinstance(msg, element.ClientError):
			return dict(msg)
		enc = self.encoding
		return {k : v.decode(enc, 'replace') for k, v in msg.items()}

	def _emit_warning(self, w):
		for receiver in list(self.notice_receivers):
			if receiver(w) is True:
				return
		warnings.warn(w, stacklevel = 4)

	def _receive_async(self, msg):
		t = msg.type
		if t is element.ShowOption.type:
			name = msg.name.decode('ascii', 'replace')
			value = msg.value.decode(self.encoding, 'replace')
			self.settings[name] = value
			if name == 'client_encoding':
				pyname = get_python_name(value)
				if pyname is None:
					self._emit_warning(pg_exc.Warning(
						"no Python codec for client_encoding %r" %(value,),
						details = {'hint' : 'Strings are decoded as %s.' %(self.encoding,)}
					))
				else:
					self.encoding = pyname
		elif t is element.Notify.type:
			enc = self.encoding
			self.notifications.append((
				msg.channel.decode(enc, 'replace'),
				msg.payload.decode(enc, 'replace'),
				msg.pid,
			))
		elif t is element.Notice.type:
			d = self._decode_fields(msg)
			code = d.pop('code', '00000')
			message = d.pop('message', '')
			self._emit_warning(
				pg_exc.WarningLookup(code)(message, code = code, details = d)
			)

	def _dispatch(self, x):
		for msg in x.asyncs():
			self._receive_async(msg)

	##
	# Errors.
	def _error_lookup(self, em, lookup = pg_exc.ErrorLookup):
		d = self._decode_fields(em)
		code = d.pop('code', None) or pg_exc.IE
		message = d.pop('message', None)
		return lookup(code)(message, code = code, details = d)

	def _pq_error(self, x):
		'The exception describing the failure of the transaction, if any.'
		if x.fatal is None:
			return None
		if isinstance(x.exception, pg_exc.Error):
			return x.exception
		if isinstance(x, xact.Instruction) and x.fatal is not True:
			# The connection survives statement errors.
			err = self._error_lookup(x.error_message, pg_exc.QueryErrorLookup)
		else:
			err = self._error_lookup(x.error_message)
		if x.exception is not None:
			err.__cause__ = x.exception
		return err

	def _fail(self):
		self.state = FAILED
		self._streaming = None
		self._generation += 1
		self._connection_generation += 1
		if self.pq is not None:
			self.pq.close()

	def _xact_done(self, x):
		'Update the state after the completion of the transaction; raise its error.'
		if self._streaming is not None and self._streaming[1] is x:
			self._streaming = None
		if x.fatal is True or self.pq.failed:
			self._fail()
		elif self.state in (QUERYING, STREAMING):
			self.state = READY
		err = self._pq_error(x)
		if err is not None:
			self.last_error = err
			raise err

	##
	# Protocol exchanges.
	def _g_step(self, x):
		pq = self.pq
		while pq.xact is x:
			blocked = pq.step()
			self._dispatch(x)
			if blocked is None:
				return
			try:
				yield blocked
			except OSError as err:
				pq.abort(err)
				self._dispatch(x)
				return

	def _g_complete(self, x):
		while self.pq.xact is x:
			yield from self._g_step(x)

	def _attempts(self):
		"""
		The `(tls, factory)` pairs to try; `tls` is `True` when TLS is required,
		`False` when it is attempted, and `None` when it is not negotiated.
		"""
		factories = list(self.connector.stream_factory_sequence())
		mode = self.connector.tls_mode
		if mode == 'prefer':
			return [(tls, f) for f in factories for tls in (False, None)]
		elif mode == 'require':
			return [(True, f) for f in factories]
		return [(None, f) for f in factories]

	def _prepare_stream(self, stream):
		return stream

	def _established(self, stream):
		pass

	def _remaining(self):
		'Seconds left before establishment times out; `None` for no limit.'
		if self._deadline is None:
			return None
		return max(self._deadline - time.monotonic(), 0.0)

	def _g_open(self):
		if self.state is not DISCONNECTED:
			if self.state in (CLOSED, FAILED):
				raise pg_exc.ConnectionDoesNotExistError(
					"cannot reopen a %s connection" %(self.state,)
				)
			return
		self.state = CONNECTING
		connector = self.connector
		if connector.connect_timeout is not None:
			self._deadline = time.monotonic() + connector.connect_timeout
		try:
			yield from self._g_establish(connector)
		finally:
			self._deadline = None

	def _g_establish(self, connector):
		failures = []
		cause = None
		try:
			attempts = list(self._attempts())
		except OSError as err:
			attempts = ()
			cause = err

		skip = None
		for (tls, factory) in attempts:
			if skip is factory:
				# The TLS attempt failed for reasons TLS does not fix.
				continue
			skip = None
			self.state = CONNECTING
			try:
				stream = yield partial(
					connector.create_stream, factory, tls, self._remaining()
				)
			except (OSError, pg_exc.ConnectionError) as err:
				failures.append(client.ConnectionAttempt(tls, factory, err))
				cause = err
				if tls is False and not isinstance(err, ssl.SSLError):
					skip = factory
				continue

			try:
				self.pq = client.Connection(
					self._prepare_stream(stream), read_size = connector.read_size
				)
				neg = xact.Negotiation(
					element.Startup(connector._startup_parameters),
					connector._credentials,
				)
				self.state = AUTHENTICATING
				self.pq.push(neg)
				yield from self._g_complete(neg)
			except BaseException:
				# Credential providers and interrupts; nothing to retry.
				stream.close()
				self._fail()
				raise

			err = self._pq_error(neg)
			if err is None:
				if neg.killinfo is not None:
					self.backend_id = neg.killinfo.pid
					self._key = neg.killinfo.key
				self._stream_factory = factory
				self._tls = tls
				self._established(self.pq.stream)
				self.state = READY
				return
			self.pq.close()
			if isinstance(err, pg_exc.AuthenticationError):
				self._fail()
				self.last_error = err
				raise err
			failures.append(client.ConnectionAttempt(tls, factory, err))
			cause = err
			if tls is False:
				skip = factory

		self._fail()
		ce = pg_exc.ConnectError(
			"could not establish connection to server",
			details = {
				'severity' : 'FATAL',
				'detail' : '\n'.join([str(x) for x in failures]) or None,
			}
		)
		ce.failures = tuple(failures)
		self.last_error = ce
		raise ce from cause

	def _g_close(self):
		if self.state in (DISCONNECTED, CLOSED, FAILED):
			if self.state is DISCONNECTED:
				self.state = CLOSED
			return
		pq = self.pq
		try:
			if not pq.closed and not pq.failed:
				pq.abandon()
				x = xact.Closing()
				pq.push(x)
				yield from self._g_complete(x)
		finally:
			pq.close()
			self.state = CLOSED
			self._streaming = None
			self._generation += 1
			self._connection_generation += 1

	def _g_finish_xact(self, x):
		'Read and discard the rest of the transaction.'
		while self.pq.xact is x:
			x.completed.clear()
			yield from self._g_step(x)
		x.completed.clear()
		self._xact_done(x)

	def _g_finish(self, cursor):
		cursor._done = True
		yield from self._g_finish_xact(cursor._xact)

	def _g_ready(self):
		"""
		Prepare for a new request: check the state and resolve the streaming
		cursor. Invalidates the outstanding cursors.
		"""
		if self.state is STREAMING:
			ref, x = self._streaming
			cursor = ref()
			if cursor is not None and not self.connector.implicit_drain:
				raise pg_exc.CursorStillOpenError(
					"cannot execute while a streaming cursor is open",
					details = {
						'hint' : 'Exhaust or close the cursor; or enable implicit_drain.',
					}
				)
			try:
				if cursor is not None:
					cursor._closed = True
					cursor._rows.clear()
					yield from self._g_finish(cursor)
				else:
					yield from self._g_finish_xact(x)
			except pg_exc.QueryError:
				if self.state is not READY:
					raise
				# The drained query's error is left in `last_error`.
		if self.state is not READY:
			if self.state in (DISCONNECTED, CLOSED, FAILED):
				raise pg_exc.ConnectionDoesNotExistError(
					"connection is %s" %(self.state,)
				)
			raise pg_exc.ConnectionError(
				"connection is busy(%s)" %(self.state,),
				details = {'severity' : 'ERROR'}
			)
		self._generation += 1

	def _check_parameters(self, sql, parameters):
		expected = pg_str.count_parameters(sql)
		given = 0 if parameters is None else len(parameters)
		if expected != given:
			raise pg_exc.BindError(
				"statement requires %d parameters, %d given" %(expected, given),
				details = {'detail' : sql[:128]}
			)

	def _garbage_commands(self):
		l = [element.CloseStatement(name) for name in self._garbage]
		del self._garbage[:]
		return l

	def _discard_statement(self, st):
		st.closed = True
		if self.state not in (CLOSED, FAILED):
			self._garbage.append(st.name)

	def _cache_statement(self, sql, st):
		self._statements[sql] = st
		limit = self.connector.statement_cache_size
		while len(self._statements) > limit:
			k, old = self._statements.popitem(last = False)
			self._discard_statement(old)

	def _g_prepare(self, sql):
		self._statement_count += 1
		name = ('dxpq_%d' %(self._statement_count,)).encode('ascii')
		x = xact.Instruction(self._garbage_commands() + [
			element.Parse(name, sql.encode(self.encoding), ()),
			element.DescribeStatement(name),
			element.SynchronizeMessage,
		])
		self.pq.push(x)
		self.state = QUERYING
		yield from self._g_complete(x)
		self._xact_done(x)

		st = Statement(name, sql)
		for msg in x.completed:
			if msg.type is element.AttributeTypes.type:
				st.parameter_types = tuple(msg)
			elif msg.type is element.TupleDescriptor.type:
				st.description = msg
		return st

	def _g_run(self, x, cursor, descriptor = None, formats = None):
		self.pq.push(x)
		cursor._xact = x
		if not cursor.streaming:
			self.state = QUERYING
			yield from self._g_complete(x)
			self._xact_done(x)
			cursor._load(x.completed, descriptor, formats, self.encoding)
			x.completed.clear()
			return cursor

		self.state = STREAMING
		self._streaming = (weakref.ref(cursor), x)
		cursor._describe(descriptor, formats, self.encoding)
		skip = (
			element.ParseComplete.type,
			element.BindComplete.type,
			element.CloseComplete.type,
		)
		c = x.completed
		while True:
			while c and c[0].type in skip:
				c.popleft()
			if c:
				t = c[0].type
				if t is element.TupleDescriptor.type:
					cursor._describe(c.popleft(), None, self.encoding)
				elif t is element.Error.type:
					yield from self._g_finish(cursor)
				return cursor
			if x.state is xact.Complete:
				yield from self._g_finish(cursor)
				return cursor
			yield from self._g_step(x)

	def _g_execute(self, sql, parameters, stream, cursor_type):
		self._check_parameters(sql, parameters)
		yield from self._g_ready()
		if not parameters:
			x = xact.Instruction((element.Query(sql.encode(self.encoding)),))
			return (yield from self._g_run(x, cursor_type(self, stream)))

		st = self._statements.get(sql)
		if st is None:
			st = yield from self._g_prepare(sql)
			try:
				return (yield from self._g_execute_statement(
					st, parameters, stream, cursor_type
				))
			finally:
				self._cache_statement(sql, st)
		else:
			self._statements.move_to_end(sql)
			return (yield from self._g_execute_statement(
				st, parameters, stream, cursor_type
			))

	def _g_execute_prepared(self, st, parameters, stream, cursor_type):
		yield from self._g_ready()
		return (yield from self._g_execute_statement(
			st, parameters, stream, cursor_type
		))

	def _encode_parameters(self, st, parameters):
		types = st.parameter_types
		if len(parameters) != len(types):
			raise pg_exc.BindError(
				"statement requires %d parameters, %d given" %(
					len(types), len(parameters)
				),
				details = {'detail' : st.string[:128]}
			)
		aformats = []
		args = []
		encode = self.registry.encode_parameter
		for i, (value, type_id) in enumerate(zip(parameters, types)):
			try:
				fmt, data = encode(value, type_id, self.encoding)
			except (TypeError, ValueError, ArithmeticError, UnicodeError, struct_error) as err:
				raise pg_exc.BindError(
					"could not encode parameter $%d as type %s" %(i + 1, type_id),
					details = {'detail' : repr(value)[:64]}
				) from err
			aformats.append(wire_formats[fmt])
			args.append(data)
		return aformats, args

	def _g_execute_statement(self, st, parameters, stream, cursor_type):
		aformats, args = self._encode_parameters(st, parameters)
		if st.description is None:
			formats = ()
		else:
			formats = [self.registry.result_format(x[3]) for x in st.description]
		x = xact.Instruction(self._garbage_commands() + [
			element.Bind(b'', st.name, aformats, args, [wire_formats[f] for f in formats]),
			element.Execute(b'', 0),
			element.SynchronizeMessage,
		])
		return (yield from self._g_run(
			x, cursor_type(self, stream), st.description, formats
		))

	def _g_next_row(self, cursor):
		x = cursor._xact
		c = x.completed
		while not cursor._done:
			if c:
				msg = c.popleft()
				t = msg.type
				if t is element.Tuple.type:
					return msg
				elif t is element.Complete.type or t is element.Null.type:
					if t is element.Complete.type:
						cursor._complete = msg
					yield from self._g_finish(cursor)
				elif t is element.Error.type:
					yield from self._g_finish(cursor)
			elif x.state is xact.Complete:
				yield from self._g_finish(cursor)
			else:
				yield from self._g_step(x)
		return EndOfResults

	def _g_prepare_statement(self, sql):
		yield from self._g_ready()
		return (yield from self._g_prepare(sql))

	def _cancel(self):
		"""
		Send a CancelRequest for the backend over a new stream and wait for
		the server to close it.
		"""
		if self.backend_id is None or self._stream_factory is None:
			raise pg_exc.ConnectionDoesNotExistError(
				"no backend to cancel; the connection was not established"
			)
		stream = self.connector.create_stream(
			self._stream_factory, self._tls, self.connector.connect_timeout
		)
		try:
			data = bytes(element.CancelRequest(self.backend_id, self._key))
			while data:
				n = stream.write(data)
				if n is WouldBlock:
					stream.wait(False)
					continue
				data = data[n:]
			while True:
				r = stream.read(64)
				if r is WouldBlock:
					stream.wait(True)
				elif not r:
					break
		finally:
			stream.close()

class Connection(Database):
	"""
	A blocking connection.

		>>> c = dxpq.open('pq://user@localhost/postgres')
		>>> c.execute("SELECT $1::int", [1]).fetchone()
		(1,)
	"""
	cursor_type = Cursor
	statement_type = PreparedStatement

	def _wait(self, reading):
		timeout = self._remaining()
		if timeout is None:
			self.pq.stream.wait(reading)
		elif timeout <= 0 or not self.pq.stream.wait(reading, timeout):
			raise socket.timeout("timed out waiting for the server")

	def _prepare_stream(self, stream):
		setblocking = getattr(stream, 'setblocking', None)
		if self._deadline is not None and setblocking is not None:
			# Establishment waits with the remaining time.
			setblocking(False)
		return stream

	def _established(self, stream):
		setblocking = getattr(stream, 'setblocking', None)
		if self._deadline is not None and setblocking is not None:
			setblocking(True)

	def _run(self, g):
		return run(g, self._wait)

	def __enter__(self):
		if self.state is DISCONNECTED:
			self.open()
		return self

	def __exit__(self, typ, val, tb):
		self.close()

	def open(self):
		'Establish the connection to the server.'
		self._run(self._g_open())

	connect = open

	def close(self):
		'Terminate the connection; idempotent.'
		self._run(self._g_close())

	def execute(self, sql, parameters = None, stream = False) -> Cursor:
		"""
		Execute the SQL with the given parameters(``$1``, ``$2``, ...) and
		return the `Cursor` of its result.

		Statements with parameters use the extended protocol through the
		statement cache. `stream` reads the rows from the server as they are
		requested instead of at once.
		"""
		return self._run(self._g_execute(
			sql, None if parameters is None else tuple(parameters), stream,
			self.cursor_type,
		))

	def prepare(self, sql) -> PreparedStatement:
		st = self._run(self._g_prepare_statement(sql))
		return self.statement_type(self, st)

	def cancel(self):
		"""
		Ask the server to cancel the running query. Racy; the query may finish
		before the request arrives.
		"""
		self._cancel()

class Connector(object):
	"""
	All arguments to Connector are keywords. At the very least, user
	must be provided.

	Calling the connector creates a connection; `connect` opens it as well.
	"""
	#: Accepted `tls_mode` values; sslmode is translated by `dxpq.clientparameters`.
	tls_modes = ('disable', 'prefer', 'require')

	@property
	def _pq_iri(self):
		return pg_iri.serialize(
			{
				k : v for k,v in self.__dict__.items()
				if v is not None and not k.startswith('_') and k in (
					'user', 'password', 'host', 'port', 'database', 'unix', 'settings'
				)
			},
			obscure_password = True
		)

	def __repr__(self):
		return '{mod}.{name}({iri!r})'.format(
			mod = type(self).__module__,
			name = type(self).__name__,
			iri = self._pq_iri,
		)

	def stream_factory_sequence(self):
		"""
		The factories of the streams to attempt a connection with, in order.
		"""
		raise NotImplementedError

	def create_stream(self, factory, tls, timeout = None):
		"""
		Create a byte-stream using the factory. `tls` is the attempt's TLS flag;
		`timeout` the seconds left for establishing the connection.
		"""
		raise NotImplementedError

	def __init__(self,
		user : str = None,
		password : str = None,
		credentials : "credential provider(dxpq.protocol.negotiate3)" = None,
		database : str = None,
		settings : "startup settings(dict)" = None,
		tls_mode : ('disable', 'prefer', 'require') = 'prefer',
		connect_timeout : float = None,
		application_name : str = None,
		implicit_drain : bool = False,
		statement_cache_size : int = 64,
		read_size : int = client.default_read_size,
		registry = default_registry,
		sslcrtfile : "filepath" = None,
		sslkeyfile : "filepath" = None,
		sslrootcrtfile : "filepath" = None,
		driver = None,
	):
		if user is None:
			raise TypeError("'user' is a required keyword")
		if tls_mode not in self.tls_modes:
			raise ValueError("invalid tls_mode: " + repr(tls_mode))
		self.driver = driver
		self.user = user
		self.password = password
		self.database = database
		self.settings = dict(settings or ())
		self.tls_mode = tls_mode
		self.connect_timeout = None if connect_timeout is None else float(connect_timeout)
		self.application_name = application_name
		self.implicit_drain = implicit_drain
		self.statement_cache_size = int(statement_cache_size)
		self.read_size = int(read_size)
		self.registry = registry
		self.sslcrtfile = sslcrtfile
		self.sslkeyfile = sslkeyfile
		self.sslrootcrtfile = sslrootcrtfile

		self._credentials = credentials if credentials is not None else \
			PasswordProvider(user, password)

		# Startup message parameters.
		tnkw = {
			'client_min_messages' : 'WARNING',
			'client_encoding' : 'UTF8',
			# Text dates and timestamps are parsed in ISO format.
			'datestyle' : 'ISO',
		}
		if self.application_name is not None:
			tnkw['application_name'] = self.application_name
		if self.settings:
			s = dict(self.settings)
			if 'search_path' in s:
				sp = s.get('search_path')
				if sp is None:
					s.pop('search_path')
				elif not isinstance(sp, str):
					s['search_path'] = ','.join(
						pg_str.quote_ident(x) for x in sp
					)
			tnkw.update(s)

		tnkw['user'] = self.user
		if self.database is not None:
			tnkw['database'] = self.database

		self._startup_parameters = {
			k.encode('utf-8') : \
			v.encode('utf-8') if type(v) is str else str(v).encode('utf-8')
			for k, v in tnkw.items()
		}
		self._socket_secure = {
			'keyfile' : self.sslkeyfile,
			'certfile' : self.sslcrtfile,
			'ca_certs' : self.sslrootcrtfile,
		}

	def __call__(self):
		driver = self.driver if self.driver is not None else default
		return driver.connection(self)

	def connect(self):
		c = self()
		try:
			c.open()
		except BaseException:
			c.close()
			raise
		return c

class StreamConnector(Connector):
	"""
	Connector for a supplied byte-stream.

	`stream_factory` is called with no arguments for the connection, and
	again for each cancellation, and returns an object implementing the
	stream interface of `dxpq.python.socket`. TLS is the stream's concern.
	"""
	def __init__(self, stream_factory = None, **kw):
		if stream_factory is None:
			raise TypeError("'stream_factory' is a required keyword")
		self.stream_factory = stream_factory
		kw['tls_mode'] = 'disable'
		super().__init__(**kw)

	def stream_factory_sequence(self):
		return (self.stream_factory,)

	def create_stream(self, factory, tls, timeout = None):
		return factory()

class SocketConnector(Connector):
	'abstract connector for using `socket` and `ssl`'

	def create_stream(self, factory, tls, timeout = None):
		"""
		Connect a socket using the factory, negotiate TLS when `tls` is not
		`None`, and return the `SocketStream`.
		"""
		if timeout is not None and timeout <= 0:
			raise socket.timeout("timed out")
		sock = factory(timeout = timeout)
		try:
			if timeout is not None:
				# The SSL negotiation and handshake share the deadline.
				sock.settimeout(timeout)
			if tls is not None:
				sock.sendall(bytes(element.NegotiateSSLMessage))
				status = sock.recv(1)
				if status == b'S':
					sock = factory.secure(sock)
				elif status == b'N':
					if tls is True:
						raise pg_exc.ConnectError(
							"server refused TLS negotiation, but tls_mode is 'require'",
							details = {'severity' : 'FATAL'}
						)
				else:
					raise pg_exc.ProtocolError(
						"unexpected response to SSL negotiation: %r" %(status,),
						details = {'severity' : 'FATAL'}
					)
			sock.settimeout(None)
			return SocketStream(sock)
		except Exception:
			sock.close()
			raise

class IP4(SocketConnector):
	'Connector for establishing IPv4 connections'
	ipv = 4

	def stream_factory_sequence(self):
		return (self._socketcreator,)

	def __init__(self,
		host : "IPv4 Address (str)" = None,
		port : int = None,
		ipv = 4,
		**kw
	):
		if ipv != self.ipv:
			raise TypeError("'ipv' keyword must be '4'")
		if host is None:
			raise TypeError("'host' is a required keyword and cannot be 'None'")
		if port is None:
			raise TypeError("'port' is a required keyword and cannot be 'None'")
		self.host = host
		self.port = int(port)
		super().__init__(**kw)
		# constant socket connector
		self._socketcreator = SocketFactory(
			(socket.AF_INET, socket.SOCK_STREAM),
			(self.host, self.port),
			self._socket_secure,
		)

class IP6(SocketConnector):
	'Connector for establishing IPv6 connections'
	ipv = 6

	def stream_factory_sequence(self):
		return (self._socketcreator,)

	def __init__(self,
		host : "IPv6 Address (str)" = None,
		port : int = None,
		ipv = 6,
		**kw
	):
		if ipv != self.ipv:
			raise TypeError("'ipv' keyword must be '6'")
		if host is None:
			raise TypeError("'host' is a required keyword and cannot be 'None'")
		if port is None:
			raise TypeError("'port' is a required keyword and cannot be 'None'")
		self.host = host
		self.port = int(port)
		super().__init__(**kw)
		# constant socket connector
		self._socketcreator = SocketFactory(
			(socket.AF_INET6, socket.SOCK_STREAM),
			(self.host, self.port),
			self._socket_secure,
		)

class Unix(SocketConnector):
	'Connector for establishing unix domain socket connections'

	def stream_factory_sequence(self):
		return (self._socketcreator,)

	def __init__(self, unix = None, **kw):
		if unix is None:
			raise TypeError("'unix' is a required keyword and cannot be 'None'")
		self.unix = unix
		super().__init__(**kw)
		# constant socket connector
		self._socketcreator = SocketFactory(
			(socket.AF_UNIX, socket.SOCK_STREAM), self.unix, self._socket_secure,
		)

class Host(SocketConnector):
	"""
	Connector for establishing hostname based connections.

	This connector exercises socket.getaddrinfo.
	"""
	def stream_factory_sequence(self):
		"""
		Return a list of `SocketFactory`s based on the results of
		`socket.getaddrinfo`.
		"""
		return [
			# (AF, socktype, proto), (IP, Port)
			SocketFactory(x[0:3], x[4][:2], self._socket_secure)
			for x in socket.getaddrinfo(
				self.host, self.port, self._address_family, socket.SOCK_STREAM
			)
		]

	def __init__(self,
		host : str = None,
		port : (str, int) = None,
		ipv : int = None,
		address_family : "address family to use(AF_INET,AF_INET6)" = None,
		**kw
	):
		if host is None:
			raise TypeError("'host' is a required keyword")
		if port is None:
			raise TypeError("'port' is a required keyword")

		if address_family is not None and ipv is not None:
			raise TypeError("'ipv' and 'address_family' on mutually exclusive")

		if ipv is None:
			self._address_family = address_family or socket.AF_UNSPEC
		elif ipv == 4:
			self._address_family = socket.AF_INET
		elif ipv == 6:
			self._address_family = socket.AF_INET6
		else:
			raise TypeError("unknown IP version selected: 'ipv' = " + repr(ipv))
		self.host = host
		self.port = int(port)
		super().__init__(**kw)

class Driver(object):
	"""
	Create connectors and connections.
	"""
	def __init__(self, connection = Connection):
		self.connection = connection

	def __repr__(self):
		return '%s.%s(%s)' %(
			type(self).__module__, type(self).__name__, self.connection.__name__,
		)

	def ip4(self, **kw):
		return IP4(driver = self, **kw)

	def ip6(self, **kw):
		return IP6(driver = self, **kw)

	def host(self, **kw):
		return Host(driver = self, **kw)

	def unix(self, **kw):
		return Unix(driver = self, **kw)

	def stream(self, **kw):
		return StreamConnector(driver = self, **kw)

	def fit(self,
		unix = None,
		host = None,
		port = None,
		stream_factory = None,
		**kw
	) -> Connector:
		"""
		Create the appropriate `Connector` based on the parameters.

		This also protects against mutually exclusive parameters.
		"""
		if stream_factory is not None:
			if unix is not None or host is not None:
				raise TypeError("'stream_factory' and 'unix' or 'host' keywords are exclusive")
			return self.stream(stream_factory = stream_factory, **kw)
		if unix is not None:
			if host is not None:
				raise TypeError("'unix' and 'host' keywords are exclusive")
			# The port is part of the socket path.
			return self.unix(unix = unix, **kw)
		else:
			if host is None or port is None:
				raise TypeError("'host' and 'port', or 'unix' must be supplied")
			# We have a host and a port.
			# If it's an IP address, IP4 or IP6 should be selected.
			if ':' in host:
				# There's a ':' in host, good chance that it's IPv6.
				try:
					socket.inet_pton(socket.AF_INET6, host)
					kw.pop('ipv', None)
					return self.ip6(host = host, port = port, **kw)
				except OSError:
					pass

			# Not IPv6, maybe IPv4...
			try:
				socket.inet_aton(host)
				# It's IP4
				kw.pop('ipv', None)
				return self.ip4(host = host, port = port, **kw)
			except OSError:
				pass

			# neither host, nor port are None, probably a hostname.
			return self.host(host = host, port = port, **kw)

	def connect(self, **kw) -> Connection:
		"""
		Create and open a connection; see `Connector` for the keywords.
		"""
		return self.fit(**kw).connect()

default = Driver()
