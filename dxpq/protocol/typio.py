##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PostgreSQL type I/O tools--packing and unpacking functions.

Oid -> I/O
==========

Map PostgreSQL type Oids to routines that pack and unpack raw data. Each
entry is a `TypeIO` holding the text routines, which convert between the
Python object and its `str` representation, and the binary routines, which
convert between the Python object and the binary wire format.

 default_io
  The map used by the default registry.

`TypeRegistry` wraps a map and applies the client encoding. Registries are
immutable; `TypeRegistry.register` returns a new registry::

	>>> reg = default_registry.register(
	...  pg_types.UUIDOID, TypeIO('uuid', str, uuid.UUID)
	... )

Type Oids that are not in the map are left as their text representation in text
format and as `bytes` in binary format.
"""
import re
import datetime
from collections import namedtuple
from decimal import Decimal, DecimalTuple
from functools import partial
from operator import methodcaller
from types import MappingProxyType

from .. import types as pg_types
from . import typstruct as ts

TextFormat = pg_types.TextFormat
BinaryFormat = pg_types.BinaryFormat

UTC = datetime.timezone.utc

#: The PostgreSQL epoch; binary dates and timestamps are offsets from it.
pg_epoch_datetime = datetime.datetime(2000, 1, 1)
pg_epoch_date = pg_epoch_datetime.date()

def compose(funcs):
	'Create a function applying each of `funcs` to the result of the last.'
	funcs = tuple(funcs)
	def composition(x):
		for f in funcs:
			x = f(x)
		return x
	return composition

class TypeIO(namedtuple('TypeIO', (
	'name', 'pack', 'unpack', 'pack_binary', 'unpack_binary', 'textual',
))):
	"""
	TypeIO(name, pack, unpack[, pack_binary, unpack_binary[, textual]])

	`pack` and `unpack` convert to and from the text representation(`str`).
	`pack_binary` and `unpack_binary` convert to and from the binary format
	(`bytes`); `None` when the type is only transferred in text format.

	A `textual` type's binary format is its encoded text representation.
	"""
	__slots__ = ()

	def __new__(typ, name, pack, unpack,
		pack_binary = None, unpack_binary = None, textual = False
	):
		return super().__new__(typ,
			name, pack, unpack, pack_binary, unpack_binary, textual
		)

	@property
	def binary(self):
		return self.textual or self.unpack_binary is not None

##
# bool
data_to_bool = {b'\x01' : True, b'\x00' : False}
bool_to_data = {True : b'\x01', False : b'\x00'}
text_to_bool = {'t' : True, 'f' : False, 'true' : True, 'false' : False}

def bool_pack(x):
	return 't' if x else 'f'

def bool_unpack(x):
	return text_to_bool[x.lower()]

def bool_pack_binary(x):
	return bool_to_data[bool(x)]

bool_unpack_binary = data_to_bool.__getitem__

##
# integers
def as_int(x):
	"""
	The integer value of `x`. Strings are parsed; other numbers must be
	integral, ``2.0`` is accepted and ``2.5`` is refused.
	"""
	if isinstance(x, (int, str)):
		return int(x)
	i = int(x)
	if i != x:
		raise ValueError("%r is not an integral value" %(x,))
	return i

def int_pack(x):
	return str(as_int(x))

int2_pack_binary = compose((as_int, ts.short_pack))
int4_pack_binary = compose((as_int, ts.long_pack))
int8_pack_binary = compose((as_int, ts.longlong_pack))
oid_pack_binary = compose((as_int, ts.oid_pack))

def exact_size(size, unpack):
	'Wrap `unpack` to refuse data that is not exactly `size` bytes.'
	def unpack_exact(data):
		if len(data) != size:
			raise ValueError(
				"expected %d bytes of data, got %d" %(size, len(data))
			)
		return unpack(data)
	return unpack_exact

##
# floats
def float_pack(x):
	x = float(x)
	if x != x:
		return 'NaN'
	if x == float('inf'):
		return 'Infinity'
	if x == float('-inf'):
		return '-Infinity'
	return repr(x)

float4_pack_binary = compose((float, ts.float_pack))
float8_pack_binary = compose((float, ts.double_pack))

##
# numeric is represented using:
#  ndigits, the number of *numeric* digits.
#  weight, the *numeric* digits "left" of the decimal point, less one.
#  sign, negativity or a special value. see `numeric_specials` below
#  dscale, *display* precision. the number of decimal digits after the point.
#
# NOTE: A numeric digit is actually four decimal digits.
numeric_positive = 0x0000
numeric_negative = 0x4000
numeric_nan = 0xC000
numeric_pinf = 0xD000
numeric_ninf = 0xF000
numeric_digit_length = 4

numeric_specials = {
	numeric_nan : Decimal('NaN'),
	numeric_pinf : Decimal('Infinity'),
	numeric_ninf : Decimal('-Infinity'),
}

def numeric_pack(x):
	if not isinstance(x, Decimal):
		x = Decimal(x) if not isinstance(x, float) else Decimal(repr(x))
	if x.is_nan():
		return 'NaN'
	if x.is_infinite():
		return '-Infinity' if x.is_signed() else 'Infinity'
	return format(x, 'f')

def numeric_unpack(x):
	return Decimal(x)

def numeric_pack_binary(x):
	if not isinstance(x, Decimal):
		x = Decimal(x) if not isinstance(x, float) else Decimal(repr(x))
	if x.is_nan():
		return ts.numeric_pack(((0, 0, numeric_nan, 0), ()))
	if x.is_infinite():
		return ts.numeric_pack((
			(0, 0, numeric_ninf if x.is_signed() else numeric_pinf, 0), ()
		))

	t = x.as_tuple()
	digits = ''.join(map(str, t.digits))
	exponent = t.exponent
	dscale = -exponent if exponent < 0 else 0
	if exponent > 0:
		digits += '0' * exponent
		exponent = 0

	# Fractional digits are padded on the right and integer digits
	# on the left until both are a multiple of the numeric digit length.
	fdigits = -exponent
	rpad = -fdigits % numeric_digit_length
	digits += '0' * rpad
	fdigits += rpad
	idigits = len(digits) - fdigits
	lpad = -idigits % numeric_digit_length
	digits = '0' * lpad + digits
	idigits += lpad

	groups = [
		int(digits[i:i+numeric_digit_length])
		for i in range(0, len(digits), numeric_digit_length)
	]
	weight = (idigits // numeric_digit_length) - 1
	while groups and groups[0] == 0:
		del groups[0]
		weight -= 1
	while groups and groups[-1] == 0:
		del groups[-1]
	if not groups:
		weight = 0

	return ts.numeric_pack((
		(
			len(groups),
			weight,
			numeric_negative if t.sign else numeric_positive,
			dscale,
		),
		groups,
	))

def numeric_unpack_binary(x):
	header, digits = ts.numeric_unpack(x)
	ndigits, weight, sign, dscale = header
	if sign in numeric_specials:
		return numeric_specials[sign]
	if sign not in (numeric_positive, numeric_negative):
		raise ValueError("invalid numeric sign 0x%X" %(sign,))
	sign = 1 if sign == numeric_negative else 0

	n = int(''.join(['%04d' %(d,) for d in digits]) or '0')
	if n == 0:
		return Decimal(DecimalTuple(sign, (0,), -dscale))

	# The value is n * 10 ** exponent; restate it with exponent -dscale.
	exponent = numeric_digit_length * (weight + 1 - ndigits)
	s = str(n)
	if exponent >= -dscale:
		s += '0' * (exponent + dscale)
	else:
		s = s[:exponent + dscale] or '0'
	return Decimal(DecimalTuple(sign, tuple(map(int, s)), -dscale))

##
# text
def text_pack(x):
	if isinstance(x, str):
		return x
	return str(x)

def text_unpack(x):
	return x

##
# bytea
def bytea_pack(x):
	return '\\x' + bytes(x).hex()

bytea_escape_re = re.compile(r'\\([0-7]{3}|\\)')

def bytea_unpack(x):
	"""
	Unpack the hex or the escape text format.
	"""
	if x.startswith('\\x'):
		return bytes.fromhex(x[2:])
	def unescape(m):
		v = m.group(1)
		if v == '\\':
			return '\\'
		return chr(int(v, 8))
	return bytea_escape_re.sub(unescape, x).encode('latin-1')

def bytea_pack_binary(x):
	return bytes(x)

bytea_unpack_binary = bytes

##
# date and time
pg_date_offset = pg_epoch_date.toordinal()
seconds_in_day = 24 * 60 * 60
microseconds_in_second = 1000000

date_infinity = 0x7FFFFFFF
date_ninfinity = -0x80000000
time64_infinity = 0x7FFFFFFFFFFFFFFF
time64_ninfinity = -0x8000000000000000

toordinal = methodcaller("toordinal")
convert_to_utc = methodcaller('astimezone', UTC)
remove_tzinfo = methodcaller('replace', tzinfo = None)
set_as_utc = methodcaller('replace', tzinfo = UTC)

def date_pack_binary(x):
	if x == datetime.date.max:
		return ts.date_pack(date_infinity)
	if x == datetime.date.min:
		return ts.date_pack(date_ninfinity)
	return ts.date_pack(x.toordinal() - pg_date_offset)

def date_unpack_binary(x):
	days = ts.date_unpack(x)
	if days == date_infinity:
		return datetime.date.max
	if days == date_ninfinity:
		return datetime.date.min
	return datetime.date.fromordinal(days + pg_date_offset)

def timestamp_pack_binary(x):
	"""
	Create the int64 microsecond offset from the PostgreSQL epoch.
	"""
	if x == datetime.datetime.max:
		return ts.time64_pack(time64_infinity)
	if x == datetime.datetime.min:
		return ts.time64_pack(time64_ninfinity)
	d = (x - pg_epoch_datetime)
	return ts.time64_pack(
		((d.days * seconds_in_day) + d.seconds) * microseconds_in_second \
		+ d.microseconds
	)

def timestamp_unpack_binary(x):
	"""
	Create a `datetime.datetime` instance from an int64 microsecond offset.
	"""
	us = ts.time64_unpack(x)
	if us == time64_infinity:
		return datetime.datetime.max
	if us == time64_ninfinity:
		return datetime.datetime.min
	return pg_epoch_datetime + datetime.timedelta(microseconds = us)

def as_utc(x):
	'Naive datetimes are taken to be UTC.'
	if x.tzinfo is None:
		return x
	return remove_tzinfo(convert_to_utc(x))

timestamptz_pack_binary = compose((as_utc, timestamp_pack_binary))

def timestamptz_unpack_binary(x):
	r = timestamp_unpack_binary(x)
	return set_as_utc(r)

date_re = re.compile(r'^(\d{4,})-(\d{2})-(\d{2})( BC)?$')
timestamp_re = re.compile(
	r'^(\d{4,})-(\d{2})-(\d{2})[ T](\d{2}):(\d{2}):(\d{2})(?:\.(\d{1,6}))?'
	r'(?:([+-])(\d{2})(?::?(\d{2}))?(?::?(\d{2}))?)?( BC)?$'
)

def date_pack(x):
	if x == datetime.date.max:
		return 'infinity'
	if x == datetime.date.min:
		return '-infinity'
	return x.isoformat()

def date_unpack(x):
	if x == 'infinity':
		return datetime.date.max
	if x == '-infinity':
		return datetime.date.min
	m = date_re.match(x)
	if m is None or m.group(4):
		raise ValueError("unsupported date representation: %r" %(x,))
	return datetime.date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

def timestamp_pack(x):
	if x == datetime.datetime.max:
		return 'infinity'
	if x == datetime.datetime.min:
		return '-infinity'
	return x.isoformat(sep = ' ')

def parse_timestamp(x):
	m = timestamp_re.match(x)
	if m is None or m.group(12):
		raise ValueError("unsupported timestamp representation: %r" %(x,))
	(year, month, day, hour, minute, second, fraction,
		tzsign, tzh, tzm, tzs, bc) = m.groups()
	us = int(fraction.ljust(6, '0')) if fraction else 0
	tz = None
	if tzsign is not None:
		offset = int(tzh) * 3600 + int(tzm or 0) * 60 + int(tzs or 0)
		if tzsign == '-':
			offset = -offset
		tz = UTC if offset == 0 else datetime.timezone(datetime.timedelta(seconds = offset))
	return datetime.datetime(
		int(year), int(month), int(day),
		int(hour), int(minute), int(second), us, tz
	)

def timestamp_unpack(x):
	if x == 'infinity':
		return datetime.datetime.max
	if x == '-infinity':
		return datetime.datetime.min
	return remove_tzinfo(parse_timestamp(x))

def timestamptz_pack(x):
	if x.tzinfo is None:
		x = set_as_utc(x)
	return timestamp_pack(x)

def timestamptz_unpack(x):
	if x == 'infinity':
		return set_as_utc(datetime.datetime.max)
	if x == '-infinity':
		return set_as_utc(datetime.datetime.min)
	r = parse_timestamp(x)
	if r.tzinfo is None:
		return set_as_utc(r)
	return convert_to_utc(r)

textual_io = partial(TypeIO, pack = text_pack, unpack = text_unpack, textual = True)

# Map type oids to their `TypeIO`.
default_io = {
	pg_types.BOOLOID : TypeIO('bool',
		bool_pack, bool_unpack,
		bool_pack_binary, exact_size(1, bool_unpack_binary),
	),
	pg_types.INT2OID : TypeIO('int2',
		int_pack, int,
		int2_pack_binary, exact_size(2, ts.short_unpack),
	),
	pg_types.INT4OID : TypeIO('int4',
		int_pack, int,
		int4_pack_binary, exact_size(4, ts.long_unpack),
	),
	pg_types.INT8OID : TypeIO('int8',
		int_pack, int,
		int8_pack_binary, exact_size(8, ts.longlong_unpack),
	),
	pg_types.OIDOID : TypeIO('oid',
		int_pack, int,
		oid_pack_binary, exact_size(4, ts.oid_unpack),
	),
	pg_types.FLOAT4OID : TypeIO('float4',
		float_pack, float,
		float4_pack_binary, exact_size(4, ts.float_unpack),
	),
	pg_types.FLOAT8OID : TypeIO('float8',
		float_pack, float,
		float8_pack_binary, exact_size(8, ts.double_unpack),
	),
	pg_types.NUMERICOID : TypeIO('numeric',
		numeric_pack, numeric_unpack,
		numeric_pack_binary, numeric_unpack_binary,
	),
	pg_types.TEXTOID : textual_io('text'),
	pg_types.VARCHAROID : textual_io('varchar'),
	pg_types.BPCHAROID : textual_io('bpchar'),
	pg_types.NAMEOID : textual_io('name'),
	pg_types.CHAROID : textual_io('char'),
	pg_types.UNKNOWNOID : textual_io('unknown'),
	pg_types.BYTEAOID : TypeIO('bytea',
		bytea_pack, bytea_unpack,
		bytea_pack_binary, bytea_unpack_binary,
	),
	pg_types.DATEOID : TypeIO('date',
		date_pack, date_unpack,
		date_pack_binary, exact_size(4, date_unpack_binary),
	),
	pg_types.TIMESTAMPOID : TypeIO('timestamp',
		timestamp_pack, timestamp_unpack,
		timestamp_pack_binary, exact_size(8, timestamp_unpack_binary),
	),
	pg_types.TIMESTAMPTZOID : TypeIO('timestamptz',
		timestamptz_pack, timestamptz_unpack,
		timestamptz_pack_binary, exact_size(8, timestamptz_unpack_binary),
	),
}

def process_tuple(procs, tup, exception_handler):
	"""
	Call each item in `procs` with the corresponding
	item in `tup` returning the result as a list.

	If an item in `tup` is `None`, don't process it.

	If a given transformation fails, call the given exception_handler which
	*should* raise a `dxpq.exceptions.ColumnDecodeError` [with context].
	"""
	i = len(procs)
	if len(tup) != i:
		raise TypeError(
			"inconsistent items, %d processors and %d items in row" %(
				i, len(tup)
			)
		)
	r = [None] * i
	try:
		for i in range(i):
			ob = tup[i]
			if ob is None:
				continue
			r[i] = procs[i](ob)
	except Exception:
		# relying on python to imply [from current]
		exception_handler(procs, tup, i)
		raise RuntimeError("process_tuple exception handler failed to raise")
	return r

class TypeRegistry(object):
	"""
	Immutable map of type Oids to `TypeIO` entries with encoding aware
	`decode` and `encode` operations.

	Registries hold no per-connection state and are safely shared.
	"""
	__slots__ = ('_io',)

	def __init__(self, io = None):
		object.__setattr__(self, '_io',
			MappingProxyType(dict(default_io if io is None else io))
		)

	def __setattr__(self, name, value):
		raise AttributeError("TypeRegistry instances are immutable")

	def __repr__(self):
		return '<%s.%s %d types>' %(
			type(self).__module__, type(self).__name__, len(self._io)
		)

	def __contains__(self, type_id):
		return type_id in self._io

	def lookup(self, type_id):
		'The `TypeIO` of the given type or `None`.'
		return self._io.get(type_id)

	def register(self, type_id, typio):
		"""
		Return a new registry with `typio` associated with `type_id`.
		"""
		if not isinstance(typio, TypeIO):
			typio = TypeIO(*typio)
		io = dict(self._io)
		io[type_id] = typio
		return type(self)(io)

	def supports_binary(self, type_id):
		entry = self._io.get(type_id)
		return entry is not None and entry.binary

	def result_format(self, type_id):
		'The format to request for result columns of the type.'
		return BinaryFormat if self.supports_binary(type_id) else TextFormat

	def unpacker(self, type_id, format, encoding = 'utf-8'):
		"""
		Create the callable that converts non-NULL column data of the type and
		format into the Python object.
		"""
		entry = self._io.get(type_id)
		if format == BinaryFormat:
			if entry is None:
				return bytes
			if entry.textual:
				return compose((methodcaller('decode', encoding), entry.unpack))
			if entry.unpack_binary is None:
				raise ValueError(
					"type %r does not support binary format" %(entry.name,)
				)
			return entry.unpack_binary
		elif format == TextFormat:
			decoder = methodcaller('decode', encoding)
			if entry is None:
				return decoder
			return compose((decoder, entry.unpack))
		raise ValueError("unknown format code %r" %(format,))

	def packer(self, type_id, format, encoding = 'utf-8'):
		"""
		Create the callable that converts a non-None Python object into data of
		the type and format.
		"""
		entry = self._io.get(type_id)
		if format == BinaryFormat:
			if entry is None:
				raise ValueError(
					"cannot pack unknown type %r in binary format" %(type_id,)
				)
			if entry.textual:
				return compose((entry.pack, methodcaller('encode', encoding)))
			if entry.pack_binary is None:
				raise ValueError(
					"type %r does not support binary format" %(entry.name,)
				)
			return entry.pack_binary
		elif format == TextFormat:
			encoder = methodcaller('encode', encoding)
			if entry is None:
				return compose((text_pack, encoder))
			return compose((entry.pack, encoder))
		raise ValueError("unknown format code %r" %(format,))

	def decode(self, type_id, format, raw, encoding = 'utf-8'):
		"""
		Convert the column data, `raw`, into a Python object. NULL(`None`) is
		passed through.
		"""
		if raw is None:
			return None
		return self.unpacker(type_id, format, encoding)(raw)

	def encode(self, value, type_id, format, encoding = 'utf-8'):
		"""
		Convert `value` into data of the given type and format. `None` is
		passed through as NULL.
		"""
		if value is None:
			return None
		return self.packer(type_id, format, encoding)(value)

	def encode_parameter(self, value, type_id, encoding = 'utf-8'):
		"""
		Choose the format of a statement parameter and pack it.

		`str` values are always sent in text format and parsed by the server;
		`bytes` are sent as is for types without binary support. Everything
		else uses the binary format when the type supports it.

		Returns a pair, `(format, data)`.
		"""
		if value is None:
			return (TextFormat, None)
		if isinstance(value, str):
			return (TextFormat, value.encode(encoding))
		entry = self._io.get(type_id)
		if entry is None or entry.textual or entry.pack_binary is None:
			if isinstance(value, (bytes, bytearray, memoryview)):
				return (TextFormat, bytes(value))
			return (TextFormat, self.encode(value, type_id, TextFormat, encoding))
		return (BinaryFormat, entry.pack_binary(value))

default_registry = TypeRegistry()
