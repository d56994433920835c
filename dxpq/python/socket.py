##
# .python.socket - additional tools for working with sockets
##
"""
Socket creation and the byte-stream interface used by the protocol layer.

The protocol connection never touches a socket directly; it reads and writes a
*stream* object with the following interface:

	read(max_bytes) -> bytes | WouldBlock
		``b''`` signals end of stream.
	write(data) -> int | WouldBlock
		The number of bytes written.
	close()
	wait(reading, timeout = None)
		Block until the stream is readable(``reading``) or writable.
	async_wait(reading)
		Coroutine form of `wait`.

`SocketStream` implements it for real sockets.
"""
import asyncio
import select
import socket
import ssl

__all__ = ['WouldBlock', 'SocketStream', 'SocketFactory']

class WouldBlockType(object):
	"""
	The type of the `WouldBlock` sentinel returned by non-blocking streams.
	"""
	__slots__ = ()

	def __new__(typ):
		return WouldBlock

	def __repr__(self):
		return 'WouldBlock'
WouldBlock = object.__new__(WouldBlockType)

class SocketStream(object):
	"""
	A byte-stream over a connected socket.

	In blocking mode, `read` and `write` only return once data moved. In
	non-blocking mode, they return `WouldBlock` when the socket is not ready.
	"""
	would_block_exceptions = (
		BlockingIOError,
		InterruptedError,
		ssl.SSLWantReadError,
		ssl.SSLWantWriteError,
	)

	def __init__(self, socket, blocking = True):
		self.socket = socket
		self.socket.setblocking(blocking)
		self.blocking = blocking

	def __repr__(self):
		return '<{mod}.{name} {sock!r}>'.format(
			mod = type(self).__module__,
			name = type(self).__name__,
			sock = self.socket,
		)

	def setblocking(self, blocking):
		self.socket.setblocking(blocking)
		self.blocking = blocking

	def fileno(self):
		return self.socket.fileno()

	def read(self, max_bytes):
		try:
			return self.socket.recv(max_bytes)
		except self.would_block_exceptions:
			return WouldBlock

	def write(self, data):
		try:
			return self.socket.send(data)
		except self.would_block_exceptions:
			return WouldBlock

	def close(self):
		sock = self.socket
		if sock is not None:
			self.socket = None
			sock.close()

	@property
	def closed(self):
		return self.socket is None

	def _ready(self, reading):
		if reading and isinstance(self.socket, ssl.SSLSocket):
			# Decrypted data may already be pending inside the SSL object.
			return self.socket.pending() > 0
		return False

	def wait(self, reading, timeout = None):
		if self._ready(reading):
			return True
		if reading:
			r, w, x = select.select((self.socket,), (), (), timeout)
			return bool(r)
		else:
			r, w, x = select.select((), (self.socket,), (), timeout)
			return bool(w)

	async def async_wait(self, reading):
		if self._ready(reading):
			return
		loop = asyncio.get_running_loop()
		fut = loop.create_future()
		fd = self.socket.fileno()
		def ready():
			if not fut.done():
				fut.set_result(None)
		if reading:
			loop.add_reader(fd, ready)
			try:
				await fut
			finally:
				loop.remove_reader(fd)
		else:
			loop.add_writer(fd, ready)
			try:
				await fut
			finally:
				loop.remove_writer(fd)

class SocketFactory(object):
	"""
	Object used to create a socket and connect it.

	This is, more or less, a specialized partial() for socket creation.
	"""

	@property
	def _security_context(self):
		if self._security_context_ii is None:
			ctx = self._security_context_ii = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
			ctx.check_hostname = False

			ca = self.socket_secure.get('ca_certs')
			if ca is not None:
				ctx.load_verify_locations(ca)
			else:
				ctx.verify_mode = ssl.CERT_NONE

			cf = self.socket_secure.get('certfile')
			kf = self.socket_secure.get('keyfile')
			if cf is not None:
				ctx.load_cert_chain(cf, keyfile = kf)

		return self._security_context_ii

	def secure(self, socket: socket.socket):
		"""
		Secure a socket with SSL.
		"""
		return self._security_context.wrap_socket(socket)

	def __call__(self, timeout = None):
		s = socket.socket(*self.socket_create)
		try:
			s.settimeout(float(timeout) if timeout is not None else None)
			s.connect(self.socket_connect)
			s.settimeout(None)
		except Exception:
			s.close()
			raise
		return s

	def __init__(self,
		socket_create,
		socket_connect,
		socket_secure = None,
		socket_security_context = None
	):
		self._security_context_ii = socket_security_context
		self.socket_create = socket_create
		self.socket_connect = socket_connect
		self.socket_secure = socket_secure or {}

	def __str__(self):
		return 'socket' + repr(self.socket_connect)

