##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PQ version 3.0 elements.

Every message class provides `serialize()`, the message body, `bytes()`, the
complete frame, and the `parse(body)` classmethod. The module level `encode`
and `decode` functions work on complete frames::

	>>> encode(Query(b'SELECT 1'))
	b'Q\\x00\\x00\\x00\\rSELECT 1\\x00'
	>>> decode(b'Z\\x00\\x00\\x00\\x05I')
	(dxpq.protocol.element3.Ready(b'I'), 6)
	>>> decode(b'Z\\x00\\x00')
	NeedMoreData

Malformed frames raise `dxpq.exceptions.ProtocolError`.
"""
import pprint
from struct import unpack, Struct, error as struct_error
from .message_types import message_types
from .typstruct import ushort_pack, ushort_unpack, ulong_pack, ulong_unpack, long_pack
from .version import V3_0, CancelRequestCode, NegotiateSSLCode
from .. import exceptions as pg_exc

def pack_tuple_data(atts):
	return b''.join([
		b'\xff\xff\xff\xff'
		if x is None
		else (ulong_pack(len(x)) + x)
		for x in atts
	])

def unpack_tuple_data(natts, data, offset):
	"""
	Unpack `natts` length prefixed fields from `data` starting at `offset`.
	Returns the fields and the offset after the last field.
	"""
	atts = []
	end = len(data)
	while natts > 0:
		alo = offset
		offset += 4
		size = data[alo:offset]
		if size == b'\xff\xff\xff\xff':
			att = None
		else:
			if len(size) != 4:
				raise ValueError("truncated field length")
			al = ulong_unpack(size)
			ao = offset
			offset = ao + al
			if offset > end:
				raise ValueError(
					"field size(%d) exceeds the remaining data(%d)" %(al, end - ao)
				)
			att = data[ao:offset]
		atts.append(att)
		natts -= 1
	return atts, offset

StringFormat = b'\x00\x00'
BinaryFormat = b'\x00\x01'

class Message(object):
	bytes_struct = Struct("!cL")
	__slots__ = ()
	def __repr__(self):
		return '%s.%s(%s)' %(
			type(self).__module__,
			type(self).__name__,
			', '.join([repr(getattr(self, x)) for x in self.__slots__])
		)

	def __eq__(self, ob):
		return isinstance(ob, type(self)) and self.type == ob.type and \
		not False in (
			getattr(self, x) == getattr(ob, x)
			for x in self.__slots__
		)

	__hash__ = object.__hash__

	def bytes(self):
		data = self.serialize()
		return self.bytes_struct.pack(self.type, len(data) + 4) + data

	def __bytes__(self):
		return self.bytes()

	@classmethod
	def parse(typ, data):
		return typ(data)

class StringMessage(Message):
	"""
	A message based on a single string component.
	"""
	type = b''
	__slots__ = ('data',)

	def __repr__(self):
		return '%s.%s(%s)' %(
			type(self).__module__,
			type(self).__name__,
			repr(self.data),
		)

	def __getitem__(self, i):
		return self.data.__getitem__(i)

	def __init__(self, data):
		self.data = data

	def serialize(self):
		return bytes(self.data) + b'\x00'

	@classmethod
	def parse(typ, data):
		if not data.endswith(b'\x00'):
			raise ValueError("string message not NUL-terminated")
		return typ(data[:-1])

class TupleMessage(tuple, Message):
	"""
	A message who's data is based on a tuple structure.
	"""
	type = b''
	__slots__ = ()

	def __repr__(self):
		return '%s.%s(%s)' %(
			type(self).__module__,
			type(self).__name__,
			tuple.__repr__(self)
		)

	__eq__ = tuple.__eq__
	__hash__ = tuple.__hash__

def dict_message_repr(self):
	return '%s.%s(**%s)' %(
		type(self).__module__,
		type(self).__name__,
		pprint.pformat(dict(self))
	)

class EmptyMessage(Message):
	'An abstract message that is always empty'
	__slots__ = ()
	type = b''

	def __new__(typ):
		return typ.SingleInstance

	def serialize(self):
		return b''

	@classmethod
	def parse(typ, data):
		if data != b'':
			raise ValueError("empty message(%r) had data" %(typ.type,))
		return typ.SingleInstance

	def __repr__(self):
		return '%s.%s()' %(type(self).__module__, type(self).__name__)

##
# Backend messages.

class Notify(Message):
	'Asynchronous notification message'
	type = message_types[b'A'[0]]
	__slots__ = ('pid', 'channel', 'payload')

	def __init__(self, pid, channel, payload = b''):
		self.pid = pid
		self.channel = channel
		self.payload = payload

	def serialize(self):
		return ulong_pack(self.pid) + \
			self.channel + b'\x00' + \
			self.payload + b'\x00'

	@classmethod
	def parse(typ, data):
		pid = ulong_unpack(data[0:4])
		channel, payload, nothing = data[4:].split(b'\x00', 2)
		return typ(pid, channel, payload)

class ShowOption(Message):
	"""ShowOption(name, value)
	GUC variable information from backend"""
	type = message_types[b'S'[0]]
	__slots__ = ('name', 'value')

	def __init__(self, name, value):
		self.name = name
		self.value = value

	def serialize(self):
		return self.name + b'\x00' + self.value + b'\x00'

	@classmethod
	def parse(typ, data):
		name, value, nothing = data.split(b'\x00', 2)
		return typ(name, value)

class Complete(StringMessage):
	'Command completion message.'
	type = message_types[b'C'[0]]
	__slots__ = ()

	@classmethod
	def parse(typ, data):
		return typ(data.rstrip(b'\x00'))

	def extract_count(self):
		"""
		Extract the last set of digits as an integer.
		"""
		rms = self.data.strip().split()
		if rms and rms[-1].isdigit():
			return int(rms[-1])
		return None

	def extract_command(self):
		t = self.data.strip().split()
		if t:
			return t[0]
		return None

class Null(EmptyMessage):
	'Null command'
	type = message_types[b'I'[0]]
	__slots__ = ()
NullMessage = Message.__new__(Null)
Null.SingleInstance = NullMessage

class NoData(EmptyMessage):
	'No data will be produced by the statement or portal'
	type = message_types[b'n'[0]]
	__slots__ = ()
NoDataMessage = Message.__new__(NoData)
NoData.SingleInstance = NoDataMessage

class ParseComplete(EmptyMessage):
	'Parse reaction'
	type = message_types[b'1'[0]]
	__slots__ = ()
ParseCompleteMessage = Message.__new__(ParseComplete)
ParseComplete.SingleInstance = ParseCompleteMessage

class BindComplete(EmptyMessage):
	'Bind reaction'
	type = message_types[b'2'[0]]
	__slots__ = ()
BindCompleteMessage = Message.__new__(BindComplete)
BindComplete.SingleInstance = BindCompleteMessage

class CloseComplete(EmptyMessage):
	'Close statement or Portal'
	type = message_types[b'3'[0]]
	__slots__ = ()
CloseCompleteMessage = Message.__new__(CloseComplete)
CloseComplete.SingleInstance = CloseCompleteMessage

class Suspension(EmptyMessage):
	'Portal was suspended, more tuples for reading'
	type = message_types[b's'[0]]
	__slots__ = ()
SuspensionMessage = Message.__new__(Suspension)
Suspension.SingleInstance = SuspensionMessage

class Ready(Message):
	'Ready for new query'
	type = message_types[b'Z'[0]]
	possible_states = (
		message_types[b'I'[0]],
		message_types[b'E'[0]],
		message_types[b'T'[0]],
	)
	__slots__ = ('xact_state',)

	def __init__(self, data):
		if data not in self.possible_states:
			raise ValueError("invalid state for Ready message: " + repr(data))
		self.xact_state = data

	def serialize(self):
		return self.xact_state

	def __repr__(self):
		return '%s.%s(%r)' %(
			type(self).__module__, type(self).__name__, self.xact_state
		)

class Notice(Message, dict):
	"""Notification message"""
	type = message_types[b'N'[0]]
	_dtm = {
		b'S' : 'severity',
		b'V' : 'severity_nonlocalized',
		b'C' : 'code',
		b'M' : 'message',
		b'D' : 'detail',
		b'H' : 'hint',
		b'W' : 'context',
		b'P' : 'position',
		b'p' : 'internal_position',
		b'q' : 'internal_query',
		b's' : 'schema',
		b't' : 'table',
		b'c' : 'column',
		b'd' : 'datatype',
		b'n' : 'constraint',
		b'F' : 'file',
		b'L' : 'line',
		b'R' : 'function',
	}
	__slots__ = ()

	def __init__(self, **fields):
		for (k, v) in fields.items():
			if v is not None:
				self[k] = v
	__repr__ = dict_message_repr
	__eq__ = dict.__eq__
	__hash__ = None

	def serialize(self):
		return b''.join([
			k + self[v] + b'\x00'
			for k, v in self._dtm.items()
			if self.get(v) is not None
		]) + b'\x00'

	@classmethod
	def parse(typ, data):
		if not data.endswith(b'\x00'):
			raise ValueError("notice fields not NUL-terminated")
		kw = {}
		g = typ._dtm.get
		for frag in data.split(b'\x00'):
			if frag:
				key = g(frag[0:1])
				if key is not None:
					kw[key] = frag[1:]
		return typ(**kw)

class Error(Notice):
	"""Incoming error"""
	type = message_types[b'E'[0]]
	__slots__ = ()

class ClientError(Error):
	"""
	An error produced by the client; field values are `str` instead of `bytes`.
	"""
	__slots__ = ()

	def serialize(self):
		raise RuntimeError("cannot serialize ClientError")

	@classmethod
	def parse(self, data):
		raise RuntimeError("cannot parse ClientError")

class AttributeTypes(TupleMessage):
	"""Statement parameter types"""
	type = message_types[b't'[0]]
	__slots__ = ()

	def serialize(self):
		return ushort_pack(len(self)) + b''.join([ulong_pack(x) for x in self])

	@classmethod
	def parse(typ, data):
		ac = ushort_unpack(data[0:2])
		args = data[2:]
		if len(args) != ac * 4:
			raise ValueError("invalid argument type data size")
		return typ(unpack('!%dL'%(ac,), args))

class TupleDescriptor(TupleMessage):
	"""Tuple description"""
	type = message_types[b'T'[0]]
	struct = Struct("!LhLhlh")
	__slots__ = ()

	def keys(self):
		return [x[0] for x in self]

	def serialize(self):
		return ushort_pack(len(self)) + b''.join([
			x[0] + b'\x00' + self.struct.pack(*x[1:])
			for x in self
		])

	@classmethod
	def parse(typ, data):
		ac = ushort_unpack(data[0:2])
		atts = []
		data = data[2:]
		ca = 0
		while ca < ac:
			# End Of Attribute Name
			eoan = data.index(b'\x00')
			name = data[0:eoan]
			data = data[eoan+1:]
			# name, relationId, columnNumber, typeId, typlen, typmod, format
			atts.append((name,) + typ.struct.unpack(data[0:18]))
			data = data[18:]
			ca += 1
		if data:
			raise ValueError("trailing data after %d attributes" %(ac,))
		return typ(atts)

class Tuple(TupleMessage):
	"""Incoming tuple"""
	type = message_types[b'D'[0]]
	__slots__ = ()

	def serialize(self):
		return ushort_pack(len(self)) + pack_tuple_data(self)

	@classmethod
	def parse(typ, data):
		natts = ushort_unpack(data[0:2])
		atts, offset = unpack_tuple_data(natts, data, 2)
		if offset != len(data):
			raise ValueError(
				"tuple data size(%d) differs from the message size(%d)" %(
					offset, len(data)
				)
			)
		return typ(atts)

class KillInformation(Message):
	'Backend cancellation information'
	type = message_types[b'K'[0]]
	struct = Struct("!LL")
	__slots__ = ('pid', 'key')

	def __init__(self, pid, key):
		self.pid = pid
		self.key = key

	def serialize(self):
		return self.struct.pack(self.pid, self.key)

	@classmethod
	def parse(typ, data):
		return typ(*typ.struct.unpack(data))

AuthRequest_OK = 0
AuthRequest_Cleartext = 3
AuthRequest_Password = AuthRequest_Cleartext
AuthRequest_MD5 = 5
AuthRequest_SASL = 10
AuthRequest_SASLContinue = 11
AuthRequest_SASLFinal = 12

# Unsupported by dxpq.
AuthRequest_KRB5 = 2
AuthRequest_Crypt = 4
AuthRequest_SCMC = 6
AuthRequest_GSS = 7
AuthRequest_GSSContinue = 8
AuthRequest_SSPI = 9

AuthNameMap = {
	AuthRequest_OK : 'OK',
	AuthRequest_Password : 'Cleartext',
	AuthRequest_MD5 : 'MD5',
	AuthRequest_SASL : 'SASL',
	AuthRequest_SASLContinue : 'SASLContinue',
	AuthRequest_SASLFinal : 'SASLFinal',

	AuthRequest_KRB5 : 'Kerberos5',
	AuthRequest_Crypt : 'Crypt',
	AuthRequest_SCMC : 'SCM Credential',
	AuthRequest_GSS : 'GSS',
	AuthRequest_GSSContinue : 'GSSContinue',
	AuthRequest_SSPI : 'SSPI',
}

class Authentication(Message):
	"""Authentication(request, data)

	`data` is the salt of an MD5 request, the mechanism list of a SASL request,
	or the server's SASL message.
	"""
	type = message_types[b'R'[0]]
	__slots__ = ('request', 'data')

	def __init__(self, request, data = b''):
		self.request = request
		self.data = data

	@property
	def salt(self):
		return self.data

	def mechanisms(self):
		'The SASL mechanism names offered by an AuthRequest_SASL message.'
		return [x for x in self.data.split(b'\x00') if x]

	def serialize(self):
		return ulong_pack(self.request) + self.data

	@classmethod
	def parse(typ, data):
		return typ(ulong_unpack(data[0:4]), data[4:])

##
# Frontend messages.

class Password(StringMessage):
	'Password supplement'
	type = message_types[b'p'[0]]
	__slots__ = ('data',)

class SASLInitialResponse(Message):
	'The chosen SASL mechanism and the client-first-message'
	type = message_types[b'p'[0]]
	__slots__ = ('mechanism', 'data')

	def __init__(self, mechanism, data):
		self.mechanism = mechanism
		self.data = data

	def serialize(self):
		if self.data is None:
			return self.mechanism + b'\x00' + b'\xff\xff\xff\xff'
		return self.mechanism + b'\x00' + long_pack(len(self.data)) + self.data

	@classmethod
	def parse(typ, data):
		mechanism, rest = data.split(b'\x00', 1)
		if rest[0:4] == b'\xff\xff\xff\xff':
			return typ(mechanism, None)
		size = ulong_unpack(rest[0:4])
		if size != len(rest) - 4:
			raise ValueError("SASL initial response size mismatch")
		return typ(mechanism, rest[4:])

class SASLResponse(Message):
	'Subsequent SASL client message'
	type = message_types[b'p'[0]]
	__slots__ = ('data',)

	def __init__(self, data):
		self.data = data

	def serialize(self):
		return self.data

class Disconnect(EmptyMessage):
	'Close the connection'
	type = message_types[b'X'[0]]
	__slots__ = ()
DisconnectMessage = Message.__new__(Disconnect)
Disconnect.SingleInstance = DisconnectMessage

class Flush(EmptyMessage):
	'Flush'
	type = message_types[b'H'[0]]
	__slots__ = ()
FlushMessage = Message.__new__(Flush)
Flush.SingleInstance = FlushMessage

class Synchronize(EmptyMessage):
	'Synchronize'
	type = message_types[b'S'[0]]
	__slots__ = ()
SynchronizeMessage = Message.__new__(Synchronize)
Synchronize.SingleInstance = SynchronizeMessage

class Query(StringMessage):
	"""Execute the query with the given arguments"""
	type = message_types[b'Q'[0]]
	__slots__ = ('data',)

class Parse(Message):
	"""Parse a query with the specified argument types"""
	type = message_types[b'P'[0]]
	__slots__ = ('name', 'statement', 'argtypes')

	def __init__(self, name, statement, argtypes):
		self.name = name
		self.statement = statement
		self.argtypes = argtypes

	@classmethod
	def parse(typ, data):
		name, statement, args = data.split(b'\x00', 2)
		ac = ushort_unpack(args[0:2])
		args = args[2:]
		if len(args) != ac * 4:
			raise ValueError("invalid argument type data")
		at = unpack('!%dL'%(ac,), args)
		return typ(name, statement, at)

	def serialize(self):
		ac = ushort_pack(len(self.argtypes))
		return self.name + b'\x00' + self.statement + b'\x00' + ac + b''.join([
			ulong_pack(x) for x in self.argtypes
		])

class Bind(Message):
	"""
	Bind a parsed statement with the given arguments to a Portal

	Bind(
		name,      # Portal/Cursor identifier
		statement, # Prepared Statement name/identifier
		aformats,  # Argument formats; Sequence of BinaryFormat or StringFormat.
		arguments, # Argument data; Sequence of None or argument data(bytes).
		rformats,  # Result formats; Sequence of BinaryFormat or StringFormat.
	)
	"""
	type = message_types[b'B'[0]]
	__slots__ = ('name', 'statement', 'aformats', 'arguments', 'rformats')

	def __init__(self, name, statement, aformats, arguments, rformats):
		self.name = name
		self.statement = statement
		self.aformats = tuple(aformats)
		self.arguments = tuple(arguments)
		self.rformats = tuple(rformats)

	def serialize(self):
		args = self.arguments
		ac = ushort_pack(len(args))
		afc = ushort_pack(len(self.aformats))
		ad = pack_tuple_data(args)
		rfc = ushort_pack(len(self.rformats))
		return \
			self.name + b'\x00' + self.statement + b'\x00' + \
			afc + b''.join(self.aformats) + ac + ad + rfc + \
			b''.join(self.rformats)

	@classmethod
	def parse(typ, message_data):
		name, statement, data = message_data.split(b'\x00', 2)
		afc = ushort_unpack(data[:2])
		offset = 2 + (2 * afc)
		aformats = unpack(("2s" * afc), data[2:offset])

		natts = ushort_unpack(data[offset:offset+2])
		args, offset = unpack_tuple_data(natts, data, offset + 2)

		rfc = ushort_unpack(data[offset:offset+2])
		ao = offset + 2
		offset = ao + (2 * rfc)
		rformats = unpack(("2s" * rfc), data[ao:offset])

		return typ(name, statement, aformats, args, rformats)

class Execute(Message):
	"""Fetch results from the specified Portal"""
	type = message_types[b'E'[0]]
	__slots__ = ('name', 'max')

	def __init__(self, name, max = 0):
		self.name = name
		self.max = max

	def serialize(self):
		return self.name + b'\x00' + ulong_pack(self.max)

	@classmethod
	def parse(typ, data):
		name, max = data.split(b'\x00', 1)
		return typ(name, ulong_unpack(max))

class Describe(StringMessage):
	"""Describe a Portal or Prepared Statement"""
	type = message_types[b'D'[0]]
	__slots__ = ('data',)

	def serialize(self):
		return self.subtype + self.data + b'\x00'

	@classmethod
	def parse(typ, data):
		if data[0:1] != typ.subtype:
			raise ValueError(
				"invalid Describe message subtype, %r; expected %r" %(
					data[0:1], typ.subtype
				)
			)
		return super().parse(data[1:])

class DescribeStatement(Describe):
	subtype = message_types[b'S'[0]]
	__slots__ = ('data',)

class DescribePortal(Describe):
	subtype = message_types[b'P'[0]]
	__slots__ = ('data',)

class Close(StringMessage):
	"""Generic Close"""
	type = message_types[b'C'[0]]
	__slots__ = ()

	def serialize(self):
		return self.subtype + self.data + b'\x00'

	@classmethod
	def parse(typ, data):
		if data[0:1] != typ.subtype:
			raise ValueError(
				"invalid Close message subtype, %r; expected %r" %(
					data[0:1], typ.subtype
				)
			)
		return super().parse(data[1:])

class CloseStatement(Close):
	"""Close the specified Statement"""
	subtype = message_types[b'S'[0]]
	__slots__ = ()

class ClosePortal(Close):
	"""Close the specified Portal"""
	subtype = message_types[b'P'[0]]
	__slots__ = ()

##
# Untyped frames: [length][code][body]

class CancelRequest(KillInformation):
	'Abort the query in the specified backend'
	type = b''
	packed_version = CancelRequestCode.bytes()
	__slots__ = ('pid', 'key')

	def serialize(self):
		return self.packed_version + self.struct.pack(
			self.pid, self.key
		)

	def bytes(self):
		data = self.serialize()
		return ulong_pack(len(data) + 4) + data

	@classmethod
	def parse(typ, data):
		if data[0:4] != typ.packed_version:
			raise ValueError("invalid cancel query code")
		return typ(*typ.struct.unpack(data[4:]))

class NegotiateSSL(Message):
	"Discover backend's SSL support"
	type = b''
	packed_version = NegotiateSSLCode.bytes()
	__slots__ = ()

	def __new__(typ):
		return NegotiateSSLMessage

	def bytes(self):
		data = self.serialize()
		return ulong_pack(len(data) + 4) + data

	def serialize(self):
		return self.packed_version

	@classmethod
	def parse(typ, data):
		if data != typ.packed_version:
			raise ValueError("invalid SSL Negotiation code")
		return NegotiateSSLMessage
NegotiateSSLMessage = Message.__new__(NegotiateSSL)

class Startup(Message, dict):
	"""
	Initiate a connection using the given keywords.
	"""
	type = b''
	packed_version = V3_0.bytes()
	__slots__ = ()
	__repr__ = dict_message_repr
	__eq__ = dict.__eq__
	__hash__ = None

	def serialize(self):
		return self.packed_version + b''.join([
			k + b'\x00' + v + b'\x00'
			for k, v in self.items()
			if v is not None
		]) + b'\x00'

	def bytes(self):
		data = self.serialize()
		return ulong_pack(len(data) + 4) + data

	@classmethod
	def parse(typ, data):
		if data[0:4] != typ.packed_version:
			raise ValueError("invalid version code {0}".format(repr(data[0:4])))
		kw = dict()
		key = None
		for value in data[4:].split(b'\x00')[:-2]:
			if key is None:
				key = value
				continue
			kw[key] = value
			key = None
		return typ(kw)

##
# Codec entry points.

class NeedMoreDataType(object):
	'The type of the `NeedMoreData` sentinel returned by `decode`'
	__slots__ = ()

	def __new__(typ):
		return NeedMoreData

	def __repr__(self):
		return 'NeedMoreData'
NeedMoreData = object.__new__(NeedMoreDataType)

#: Messages sent by the server, keyed by type byte.
backend_messages = {
	x.type : x for x in (
		Authentication,
		KillInformation,
		Ready,
		ShowOption,
		Notice,
		Error,
		Notify,
		TupleDescriptor,
		Tuple,
		Complete,
		ParseComplete,
		BindComplete,
		CloseComplete,
		NoData,
		Null,
		Suspension,
		AttributeTypes,
	)
}

#: Messages sent by the client, keyed by type byte.
#: Password, SASLInitialResponse and SASLResponse share b'p'.
frontend_messages = {
	x.type : x for x in (
		Query,
		Parse,
		Bind,
		Execute,
		Synchronize,
		Flush,
		Disconnect,
		Password,
	)
}
frontend_messages[Describe.type] = lambda data: (
	DescribeStatement if data[0:1] == DescribeStatement.subtype else DescribePortal
).parse(data)
frontend_messages[Close.type] = lambda data: (
	CloseStatement if data[0:1] == CloseStatement.subtype else ClosePortal
).parse(data)

def encode(message) -> bytes:
	'Serialize the complete frame of the given message'
	return message.bytes()

def parse_body(typ, body, messages = backend_messages):
	"""
	Parse the body of a frame of the given type. Unknown types and malformed
	bodies raise `dxpq.exceptions.ProtocolError`.
	"""
	cls = messages.get(typ)
	if cls is None:
		raise pg_exc.ProtocolError(
			"unknown message type %r" %(typ,),
			details = {'severity': 'FATAL'}
		)
	try:
		return getattr(cls, 'parse', cls)(body)
	except (ValueError, IndexError, TypeError, struct_error) as err:
		raise pg_exc.ProtocolError(
			"malformed %r message: %s" %(typ, err),
			details = {'severity': 'FATAL'}
		) from err

def decode(data, messages = backend_messages):
	"""
	Decode a single typed frame from the start of `data`.

	Returns the message and the number of bytes consumed, or `NeedMoreData` when
	`data` does not hold a complete frame.
	"""
	if len(data) < 5:
		return NeedMoreData
	length = ulong_unpack(data[1:5])
	if length < 4:
		raise pg_exc.ProtocolError(
			"invalid message size '%d'" %(length,),
			details = {'severity': 'FATAL'}
		)
	end = length + 1
	if len(data) < end:
		return NeedMoreData
	typ = message_types[data[0]]
	return (parse_body(typ, bytes(data[5:end]), messages), end)

def decode_startup(data):
	"""
	Decode an untyped frame: Startup, CancelRequest or NegotiateSSL.
	"""
	if len(data) < 8:
		return NeedMoreData
	length = ulong_unpack(data[0:4])
	if length < 8:
		raise pg_exc.ProtocolError("invalid startup packet size '%d'" %(length,))
	if len(data) < length:
		return NeedMoreData
	body = bytes(data[4:length])
	code = body[0:4]
	try:
		if code == NegotiateSSL.packed_version:
			msg = NegotiateSSL.parse(body)
		elif code == CancelRequest.packed_version:
			msg = CancelRequest.parse(body)
		else:
			msg = Startup.parse(body)
	except (ValueError, struct_error) as err:
		raise pg_exc.ProtocolError("malformed startup packet: %s" %(err,)) from err
	return (msg, length)
