##
# .test.test_python
##
import unittest
import socket

from ..python.socket import SocketStream, SocketFactory, WouldBlock

class test_socket(unittest.TestCase):
	def setUp(self):
		self.a, self.b = socket.socketpair()

	def tearDown(self):
		self.a.close()
		self.b.close()

	def testBlockingStream(self):
		s = SocketStream(self.a)
		self.assertEqual(s.write(b'data'), 4)
		self.assertEqual(self.b.recv(10), b'data')
		self.b.sendall(b'reply')
		self.assertTrue(s.wait(True, timeout = 5))
		self.assertEqual(s.read(10), b'reply')
		self.assertTrue(s.wait(False, timeout = 5))
		self.b.close()
		self.assertEqual(s.read(10), b'')

	def testNonBlockingStream(self):
		s = SocketStream(self.a, blocking = False)
		self.assertIs(s.read(10), WouldBlock)
		self.assertFalse(s.wait(True, timeout = 0))
		self.b.sendall(b'x')
		self.assertTrue(s.wait(True, timeout = 5))
		self.assertEqual(s.read(10), b'x')
		s.setblocking(True)
		self.assertTrue(s.blocking)

	def testClose(self):
		s = SocketStream(self.a)
		self.assertFalse(s.closed)
		s.close()
		self.assertTrue(s.closed)
		# idempotent
		s.close()

	def testWouldBlockSingleton(self):
		self.assertIs(type(WouldBlock)(), WouldBlock)
		self.assertEqual(repr(WouldBlock), 'WouldBlock')

class test_socket_factory(unittest.TestCase):
	def testConnect(self):
		listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
		try:
			listener.bind(('127.0.0.1', 0))
			listener.listen(1)
			addr = listener.getsockname()
			sf = SocketFactory(
				(socket.AF_INET, socket.SOCK_STREAM, 0), addr
			)
			s = sf(timeout = 5)
			try:
				self.assertEqual(s.getpeername(), addr)
				self.assertIsNone(s.gettimeout())
			finally:
				s.close()
			self.assertEqual(str(sf), 'socket' + repr(addr))
		finally:
			listener.close()

if __name__ == '__main__':
	unittest.main()
