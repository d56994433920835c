##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
asyncio driver.

The connection runs the same protocol exchanges as the blocking driver; when
the stream would block, it awaits the stream's readiness instead of waiting on
it. Blocking calls, like connecting a socket, run in the loop's executor.

	>>> c = await dxpq.driver.aio.connect(host = 'localhost', port = 5432, user = 'postgres')
	>>> async with await c.execute("SELECT 1", stream = True) as cur:
	...  async for row in cur:
	...   print(row)
"""
import asyncio
import socket

from . import pq3

class AsyncCursor(pq3.Output):
	"""
	The result of `AsyncConnection.execute`. Supports ``async for`` and
	``async with``.
	"""
	arraysize = 1

	def __aiter__(self):
		return self

	async def __anext__(self):
		r = await self.next_row()
		if r is pq3.EndOfResults:
			raise StopAsyncIteration
		return r

	async def __aenter__(self):
		return self

	async def __aexit__(self, typ, val, tb):
		await self.close()

	async def next_row(self):
		db = self._check()
		if self._done:
			if not self._rows:
				return pq3.EndOfResults
			raw = self._rows.popleft()
		else:
			raw = await db._run(db._g_next_row(self))
			if raw is pq3.EndOfResults:
				return raw
		return self._decode(raw)

	async def fetchone(self):
		r = await self.next_row()
		return None if r is pq3.EndOfResults else r

	async def fetchmany(self, size = None):
		if size is None:
			size = self.arraysize
		l = []
		while len(l) < size:
			r = await self.next_row()
			if r is pq3.EndOfResults:
				break
			l.append(r)
		return l

	async def fetchall(self):
		return [r async for r in self]

	async def close(self):
		if self._closed:
			return
		self._closed = True
		self._rows.clear()
		db = self._database()
		if db is not None and db._generation == self._generation and not self._done:
			await db._run(db._g_finish(self))

class AsyncPreparedStatement(pq3.PreparedStatement):
	async def execute(self, parameters = (), stream = False):
		self._check()
		db = self.database
		return await db._run(db._g_execute_prepared(
			self.statement, tuple(parameters), stream, db.cursor_type
		))

	async def __call__(self, *parameters):
		async with await self.execute(parameters) as c:
			return await c.fetchall()

	async def first(self, *parameters):
		async with await self.execute(parameters) as c:
			return pq3.first_of(c, await c.fetchone())

class AsyncConnection(pq3.Database):
	"""
	A connection for use with asyncio. Operations are coroutines; the
	connection must only be used by one task at a time.
	"""
	cursor_type = AsyncCursor
	statement_type = AsyncPreparedStatement

	def _prepare_stream(self, stream):
		setblocking = getattr(stream, 'setblocking', None)
		if setblocking is not None:
			setblocking(False)
		return stream

	async def _wait(self, reading):
		timeout = self._remaining()
		if timeout is None:
			await self.pq.stream.async_wait(reading)
			return
		if timeout <= 0:
			raise socket.timeout("timed out waiting for the server")
		try:
			await asyncio.wait_for(self.pq.stream.async_wait(reading), timeout)
		except asyncio.TimeoutError:
			raise socket.timeout("timed out waiting for the server") from None

	def _abort(self, exception):
		if self.pq is not None and not self.pq.failed:
			self.pq.abort(exception)
		if self.state not in (pq3.CLOSED, pq3.DISCONNECTED):
			self._fail()

	async def _run(self, g):
		"""
		Run the generator on the event loop. A cancelled task leaves the
		protocol in an unknown position, so the connection is failed.
		"""
		loop = asyncio.get_running_loop()
		send = g.send
		value = None
		try:
			while True:
				try:
					req = send(value)
				except StopIteration as stop:
					return stop.value
				send = g.send
				value = None
				try:
					if req.__class__ is bool:
						await self._wait(req)
					else:
						value = await loop.run_in_executor(None, req)
				except Exception as err:
					send = g.throw
					value = err
		except asyncio.CancelledError as err:
			g.close()
			self._abort(err)
			raise

	async def __aenter__(self):
		if self.state is pq3.DISCONNECTED:
			await self.open()
		return self

	async def __aexit__(self, typ, val, tb):
		await self.close()

	async def open(self):
		await self._run(self._g_open())

	connect = open

	async def close(self):
		await self._run(self._g_close())

	async def execute(self, sql, parameters = None, stream = False) -> AsyncCursor:
		'Execute the SQL; see `dxpq.driver.pq3.Connection.execute`.'
		return await self._run(self._g_execute(
			sql, None if parameters is None else tuple(parameters), stream,
			self.cursor_type,
		))

	async def prepare(self, sql) -> AsyncPreparedStatement:
		st = await self._run(self._g_prepare_statement(sql))
		return self.statement_type(self, st)

	async def cancel(self):
		'Ask the server to cancel the running query; racy.'
		loop = asyncio.get_running_loop()
		await loop.run_in_executor(None, self._cancel)

class Driver(pq3.Driver):
	"""
	Create connectors whose connections are `AsyncConnection` instances.
	"""
	def __init__(self, connection = AsyncConnection):
		super().__init__(connection = connection)

	async def connect(self, **kw) -> AsyncConnection:
		c = self.fit(**kw)()
		try:
			await c.open()
		except BaseException:
			await c.close()
			raise
		return c

default = Driver()

async def connect(**kw) -> AsyncConnection:
	'Create and open an `AsyncConnection`; see `dxpq.driver.pq3.Connector`.'
	return await default.connect(**kw)
