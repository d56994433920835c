##
# copyright 2009, James William Pye.
# http://python.projects.postgresql.org
##
"""
PostgreSQL types and identifiers.
"""
from operator import itemgetter
from collections import namedtuple
get0 = itemgetter(0)
get1 = itemgetter(1)

InvalidOid = 0

BOOLOID = 16
BYTEAOID = 17
CHAROID = 18
NAMEOID = 19
INT8OID = 20
INT2OID = 21
INT4OID = 23
TEXTOID = 25
OIDOID = 26
JSONOID = 114
XMLOID = 142
FLOAT4OID = 700
FLOAT8OID = 701
UNKNOWNOID = 705
BPCHAROID = 1042
VARCHAROID = 1043
DATEOID = 1082
TIMEOID = 1083
TIMESTAMPOID = 1114
TIMESTAMPTZOID = 1184
INTERVALOID = 1186
NUMERICOID = 1700
UUIDOID = 2950
RECORDOID = 2249
JSONBOID = 3802

oid_to_name = {
	BOOLOID : 'bool',
	BYTEAOID : 'bytea',
	CHAROID : 'char',
	NAMEOID : 'name',
	INT8OID : 'int8',
	INT2OID : 'int2',
	INT4OID : 'int4',
	TEXTOID : 'text',
	OIDOID : 'oid',
	JSONOID : 'json',
	XMLOID : 'xml',
	FLOAT4OID : 'float4',
	FLOAT8OID : 'float8',
	UNKNOWNOID : 'unknown',
	BPCHAROID : 'bpchar',
	VARCHAROID : 'varchar',
	DATEOID : 'date',
	TIMEOID : 'time',
	TIMESTAMPOID : 'timestamp',
	TIMESTAMPTZOID : 'timestamptz',
	INTERVALOID : 'interval',
	NUMERICOID : 'numeric',
	UUIDOID : 'uuid',
	RECORDOID : 'record',
	JSONBOID : 'jsonb',
}

#: Wire format codes.
TextFormat = 0
BinaryFormat = 1

class Column(namedtuple('Column', (
	'name', 'type_id', 'type_size', 'type_modifier', 'format',
	'table_id', 'column_number',
))):
	"""
	A column descriptor from a RowDescription.

	`name` is decoded using the connection's client encoding; `format` is
	`TextFormat` or `BinaryFormat`.
	"""
	__slots__ = ()

	@property
	def type_name(self):
		return oid_to_name.get(self.type_id)

class Row(tuple):
	"Name addressable items tuple; mapping and sequence"
	@classmethod
	def from_sequence(typ, keymap, seq):
		r = typ(seq)
		r.keymap = keymap
		return r

	def __getitem__(self, i, gi = tuple.__getitem__):
		if isinstance(i, (int, slice)):
			return gi(self, i)
		idx = self.keymap[i]
		return gi(self, idx)

	def get(self, i, gi = tuple.__getitem__, len = len):
		if type(i) is int:
			l = len(self)
			if -l <= i < l:
				return gi(self, i)
		else:
			idx = self.keymap.get(i)
			if idx is not None:
				return gi(self, idx)
		return None

	def keys(self):
		return self.keymap.keys()

	def values(self):
		return iter(self)

	def items(self):
		return zip(iter(self.column_names), iter(self))

	@property
	def column_names(self, get0 = get0, get1 = get1):
		l=list(self.keymap.items())
		l.sort(key=get1)
		return tuple(map(get0, l))
