##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
import unittest
import struct

from .. import exceptions as pg_exc
from ..protocol import element3 as e3
from ..protocol import buffer as pq_buf
from ..protocol import typstruct as pg_typstruct
from ..protocol.version import V3_0, CancelRequestCode

class test_buffer(unittest.TestCase):
	def setUp(self):
		self.buffer = pq_buf.pq_message_stream()

	def testMultiByteMessage(self):
		b = self.buffer
		b.write(b's')
		self.assertIsNone(b.next_message())
		b.write(b'\x00\x00')
		self.assertIsNone(b.next_message())
		b.write(b'\x00\x10')
		self.assertIsNone(b.next_message())
		data = b'twelve_chars'
		b.write(data)
		self.assertEqual(b.next_message(), (b's', data))

	def testSingleByteMessage(self):
		b = self.buffer
		b.write(b's')
		self.assertIsNone(b.next_message())
		b.write(b'\x00')
		self.assertIsNone(b.next_message())
		b.write(b'\x00\x00\x05')
		self.assertIsNone(b.next_message())
		b.write(b'b')
		self.assertEqual(b.next_message(), (b's', b'b'))

	def testEmptyMessage(self):
		b = self.buffer
		b.write(b'x')
		self.assertIsNone(b.next_message())
		b.write(b'\x00\x00\x00')
		self.assertIsNone(b.next_message())
		b.write(b'\x04')
		self.assertEqual(b.next_message(), (b'x', b''))

	def testInvalidLength(self):
		b = self.buffer
		b.write(b'y\x00\x00\x00\x03')
		self.assertRaises(pg_exc.ProtocolError, b.next_message)

	def testRemainder(self):
		b = self.buffer
		b.write(b'r\x00\x00\x00\x05Aremainder')
		self.assertEqual(b.next_message(), (b'r', b'A'))
		self.assertEqual(b.size(), len(b'remainder'))
		self.assertIsNone(b.next_message())

	def testRead(self):
		b = self.buffer
		b.write(b'a\x00\x00\x00\x04b\x00\x00\x00\x05Bc\x00\x00')
		self.assertEqual(len(b), 2)
		self.assertTrue(b.has_message())
		self.assertEqual(b.read(), [(b'a', b''), (b'b', b'B')])
		self.assertFalse(b.has_message())
		b.write(b'\x00\x04')
		self.assertEqual(list(b), [(b'c', b'')])
		b.write(b'd\x00')
		b.truncate()
		self.assertEqual(b.size(), 0)

	def testTypeIdentity(self):
		b = self.buffer
		b.write(e3.Ready(b'I').bytes())
		typ, body = b.next_message()
		self.assertIs(typ, e3.Ready.type)

	def testLarge(self):
		b = self.buffer
		factor = 1024
		r = 10000
		b.write(b'X' + struct.pack("!L", factor * r + 4))
		segment = b'\x00' * factor
		for x in range(r-1):
			b.write(segment)
		self.assertIsNone(b.next_message())
		b.write(segment)
		msg = b.next_message()
		self.assertIsNotNone(msg)
		self.assertEqual(msg[0], b'X')
		self.assertEqual(len(msg[1]), factor * r)

##
# element3 tests
##

backend_samples = [
	e3.Authentication(e3.AuthRequest_OK),
	e3.Authentication(e3.AuthRequest_MD5, b'salt'),
	e3.Authentication(e3.AuthRequest_SASL, b'SCRAM-SHA-256\x00\x00'),
	e3.KillInformation(19320, 589483),
	e3.Ready(b'I'),
	e3.Ready(b'T'),
	e3.ShowOption(b'foo', b'bar'),
	e3.Notice(
		severity = b'NOTICE',
		message = b'a descriptive message',
		code = b'01000',
		detail = b'bleh',
		hint = b'dont spit into the fan',
	),
	e3.Error(
		severity = b'ERROR',
		message = b'division by zero',
		code = b'22012',
		position = b'8',
	),
	e3.Notify(123, b'wood_table'),
	e3.Notify(123, b'wood_table', b'payload'),
	e3.TupleDescriptor(()),
	e3.TupleDescriptor((
		(b'name', 1234, 1, 25, -1, -1, 1),
		(b'count', 1234, 2, 23, 4, -1, 0),
	)),
	e3.Tuple(()),
	e3.Tuple((b'foo', None, b'')),
	e3.Complete(b'SELECT 1'),
	e3.Complete(b'INSERT 0 3'),
	e3.ParseCompleteMessage,
	e3.BindCompleteMessage,
	e3.CloseCompleteMessage,
	e3.NoDataMessage,
	e3.NullMessage,
	e3.SuspensionMessage,
	e3.AttributeTypes(()),
	e3.AttributeTypes((23, 25)),
]

frontend_samples = [
	e3.Query(b'SELECT 1'),
	e3.Parse(b'statement_id', b'SELECT $1::int4', (23,)),
	e3.Parse(b'', b'SELECT 1', ()),
	e3.Bind(b'', b'statement_id', [e3.BinaryFormat], [b'\x00\x00\x00\x01'], [e3.StringFormat]),
	e3.Bind(b'portal', b'statement_id', [e3.StringFormat, e3.StringFormat], [b'x', None], []),
	e3.Execute(b'', 0),
	e3.Execute(b'portal', 10),
	e3.DescribeStatement(b'statement_id'),
	e3.DescribePortal(b''),
	e3.CloseStatement(b'statement_id'),
	e3.ClosePortal(b'portal'),
	e3.SynchronizeMessage,
	e3.FlushMessage,
	e3.DisconnectMessage,
	e3.Password(b'ckr4t'),
]

startup_samples = [
	e3.Startup({b'user' : b'jwp', b'database' : b'template1', b'options' : b'-f'}),
	e3.CancelRequest(4123, 14252),
	e3.NegotiateSSLMessage,
]

class test_element3(unittest.TestCase):
	def testSerializeParseConsistency(self):
		for msg in backend_samples:
			data = msg.bytes()
			parsed, size = e3.decode(data)
			self.assertEqual(size, len(data))
			self.assertEqual(parsed, msg)
			self.assertIs(type(parsed), type(msg))
		for msg in frontend_samples:
			data = bytes(msg)
			parsed, size = e3.decode(data, e3.frontend_messages)
			self.assertEqual(size, len(data))
			self.assertEqual(parsed, msg)
			self.assertIs(type(parsed), type(msg))

	def testStartupConsistency(self):
		for msg in startup_samples:
			data = msg.bytes()
			parsed, size = e3.decode_startup(data)
			self.assertEqual(size, len(data))
			self.assertEqual(parsed, msg)
			self.assertIs(type(parsed), type(msg))

	def testNeedMoreData(self):
		data = e3.Complete(b'SELECT 1').bytes()
		for i in range(len(data)):
			self.assertIs(e3.decode(data[:i]), e3.NeedMoreData)
		data = e3.Startup({b'user' : b'u'}).bytes()
		for i in range(len(data)):
			self.assertIs(e3.decode_startup(data[:i]), e3.NeedMoreData)
		# trailing data is not consumed
		msg, size = e3.decode(e3.Ready(b'E').bytes() + b'Z')
		self.assertEqual(size, 6)
		self.assertEqual(msg.xact_state, b'E')

	def testStartupVersion(self):
		data = e3.Startup({b'user' : b'u'}).bytes()
		self.assertEqual(data[4:8], V3_0.bytes())
		self.assertEqual(e3.CancelRequest(1, 2).bytes()[4:8], CancelRequestCode.bytes())
		self.assertEqual(e3.CancelRequest(1, 2).bytes(), struct.pack('!LLLL', 16, 80877102, 1, 2))
		self.assertEqual(bytes(e3.NegotiateSSLMessage), struct.pack('!LL', 8, 80877103))

	def testEmptyMessages(self):
		for x in backend_samples + frontend_samples:
			if isinstance(x, e3.EmptyMessage):
				self.assertIs(x, type(x)())
				self.assertEqual(x.serialize(), b'')

	def testUnknownNoticeFields(self):
		N = e3.Notice.parse(b'\x00\x00Z\x00Xklsvdnvldsvkndvlsn\x00Pfoo\x00')
		self.assertEqual(N, {'position' : b'foo'})
		E = e3.Error.parse(b'Z\x00Xklsvdnvldsvkndvlsn\x00Pfoo\x00Mmessage\x00')
		self.assertEqual(E, {'position' : b'foo', 'message' : b'message'})

	def testMalformed(self):
		self.assertRaises(pg_exc.ProtocolError, e3.decode, b'Z\x00\x00\x00\x05X')
		self.assertRaises(pg_exc.ProtocolError, e3.decode, b'Z\x00\x00\x00\x03')
		self.assertRaises(pg_exc.ProtocolError, e3.decode, b'!\x00\x00\x00\x04')
		self.assertRaises(pg_exc.ProtocolError, e3.decode, b'D\x00\x00\x00\x0a\x00\x01\x00\x00\x00\x09')
		self.assertRaises(pg_exc.ProtocolError, e3.decode_startup, b'\x00\x00\x00\x08\x00\x02\x00\x00')
		self.assertRaises(pg_exc.ProtocolError, e3.decode_startup, b'\x00\x00\x00\x04\x00\x03\x00\x00')

	def testComplete(self):
		self.assertEqual(e3.Complete(b'INSERT 0 3').extract_count(), 3)
		self.assertEqual(e3.Complete(b'INSERT 0 3').extract_command(), b'INSERT')
		self.assertEqual(e3.Complete(b'SELECT 10').extract_count(), 10)
		self.assertIsNone(e3.Complete(b'CREATE TABLE').extract_count())
		self.assertEqual(e3.Complete(b'CREATE TABLE').extract_command(), b'CREATE')

	def testAuthenticationMechanisms(self):
		auth = e3.Authentication(e3.AuthRequest_SASL, b'SCRAM-SHA-256-PLUS\x00SCRAM-SHA-256\x00\x00')
		self.assertEqual(auth.mechanisms(), [b'SCRAM-SHA-256-PLUS', b'SCRAM-SHA-256'])

	def testSASLInitialResponse(self):
		r = e3.SASLInitialResponse(b'SCRAM-SHA-256', b'n,,n=,r=nonce')
		self.assertEqual(
			r.serialize(),
			b'SCRAM-SHA-256\x00' + struct.pack('!L', 13) + b'n,,n=,r=nonce'
		)
		self.assertEqual(e3.SASLInitialResponse.parse(r.serialize()), r)

class test_typstruct(unittest.TestCase):
	def testPairs(self):
		for pack, unpack, values in (
			(pg_typstruct.short_pack, pg_typstruct.short_unpack, (-0x8000, 0, 0x7FFF)),
			(pg_typstruct.ushort_pack, pg_typstruct.ushort_unpack, (0, 0xFFFF)),
			(pg_typstruct.long_pack, pg_typstruct.long_unpack, (-0x80000000, 0, 0x7FFFFFFF)),
			(pg_typstruct.ulong_pack, pg_typstruct.ulong_unpack, (0, 0xFFFFFFFF)),
			(pg_typstruct.longlong_pack, pg_typstruct.longlong_unpack, (-2**63, 0, 2**63-1)),
		):
			for v in values:
				self.assertEqual(unpack(pack(v)), v)
		self.assertEqual(pg_typstruct.ulong_pack(1), b'\x00\x00\x00\x01')
		self.assertRaises(struct.error, pg_typstruct.short_pack, 0x8000)

	def testNumeric(self):
		x = ((2, 0, 0, 2), (1, 2345))
		data = pg_typstruct.numeric_pack(x)
		self.assertEqual(pg_typstruct.numeric_unpack(data), x)
		self.assertRaises(ValueError, pg_typstruct.numeric_unpack, data[:-1])
		self.assertRaises(ValueError, pg_typstruct.numeric_unpack, b'\x00')
		# the sign is unsigned
		x = ((0, 0, 0xC000, 0), ())
		self.assertEqual(pg_typstruct.numeric_unpack(pg_typstruct.numeric_pack(x)), x)

if __name__ == '__main__':
	unittest.main()
