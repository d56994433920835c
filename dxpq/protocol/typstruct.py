##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Network order (pack, unpack) pairs for the fixed size fields used by the
protocol messages and the binary type formats.
"""
import struct

null_sequence = b'\xff\xff\xff\xff'

# Always to and from network order.
# Create a pair, (pack, unpack) for the given `struct` format.
def mk_pack(x):
	s = struct.Struct('!' + x)
	if len(x) > 1:
		return (lambda y: s.pack(*y), s.unpack_from)
	else:
		return (s.pack, lambda y: s.unpack_from(y)[0])

byte_pack, byte_unpack = lambda x: bytes((x,)), lambda x: x[0]
double_pack, double_unpack = mk_pack("d")
float_pack, float_unpack = mk_pack("f")

short_pack, short_unpack = mk_pack("h")
ushort_pack, ushort_unpack = mk_pack("H")
long_pack, long_unpack = mk_pack("l")
ulong_pack, ulong_unpack = mk_pack("L")
longlong_pack, longlong_unpack = mk_pack("q")
ulonglong_pack, ulonglong_unpack = mk_pack("Q")

LH_pack, LH_unpack = mk_pack("LH")
# ndigits, weight, sign, dscale
numeric_head_pack, numeric_head_unpack = mk_pack("hhHh")

def numeric_pack(x, numeric_head_pack = numeric_head_pack, short_pack = short_pack):
	'pack a numeric header and its base 10000 digits'
	header, digits = x
	return numeric_head_pack(header) + b''.join(map(short_pack, digits))

def numeric_unpack(x, numeric_head_unpack = numeric_head_unpack):
	'unpack the numeric header and its base 10000 digits'
	if len(x) < 8:
		raise ValueError("numeric data is too short: %d bytes" %(len(x),))
	header = numeric_head_unpack(x)
	if len(x) != 8 + (header[0] * 2):
		raise ValueError(
			"numeric header declares %d digits, but the data has %d bytes" %(
				header[0], len(x) - 8
			)
		)
	digits = struct.unpack_from('!%dh' %(header[0],), x, 8)
	return (header, digits)

# int8 microsecond offsets.
time64_pack = longlong_pack
time64_unpack = longlong_unpack

date_pack = long_pack
date_unpack = long_unpack

oid_pack = ulong_pack
oid_unpack = ulong_unpack
