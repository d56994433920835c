##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PostgreSQL SQLState codes and associated exceptions.

The primary entry point of this module is the `ErrorLookup` function.

For more information see:
 http://www.postgresql.org/docs/current/static/errcodes-appendix.html

This module is executable via -m: python -m dxpq.exceptions.
It provides a convenient way to look up the exception object mapped to by the
given error code::

	$ python -m dxpq.exceptions 22012
	dxpq.exceptions.DivisionByZeroError [22012]

If the exact error code is not found, it will try to find the error class's
exception(The first two characters of the error code make up the class
identity)::

	$ python -m dxpq.exceptions 22999
	dxpq.exceptions.DataError [22000]

Unknown classes map to `QueryError`, the base of all errors reported by the
server in response to a statement.
"""
import sys
from os import linesep

class Exception(Exception):
	'Base dxpq exception class'
	pass

class Class(str):
	"""
	SQL state code class. This is a state code whose last three characters are
	'000'. State codes in the class are set as attributes::

		>>> DATA = Class('22', DIVISION_BY_ZERO = '012')
		>>> DATA.DIVISION_BY_ZERO
		'22012'
	"""
	def __new__(typ, chars, **kw):
		rob = str.__new__(typ, chars[0:2] + '000')
		for k, v in kw.items():
			setattr(rob, k, rob[0:2] + v)
		return rob

	def __contains__(self, code):
		return str(code)[0:2] == self[0:2]

def class_of(code):
	'The two character class of the given five character code as a full code'
	return code[0:2] + '000'

SUCCESS = Class('00')

WARNING = Class('01',
	DYNAMIC_RESULT_SETS_RETURNED = '00C',
	IMPLICIT_ZERO_BIT_PADDING = '008',
	NULL_VALUE_ELIMINATED_IN_SET_FUNCTION = '003',
	PRIVILEGE_NOT_GRANTED = '007',
	PRIVILEGE_NOT_REVOKED = '006',
	STRING_DATA_RIGHT_TRUNCATION = '004',
	DEPRECATED_FEATURE = 'P01',
)

NO_DATA_WARNING = Class('02',
	NO_ADDITIONAL_DYNAMIC_RESULT_SETS_RETURNED = '001',
)

DYNAMIC_SQL = Class('07',
	USING_CLAUSE_DOES_NOT_MATCH_PARAMETERS = '001',
)

CONNECTION = Class('08',
	DOES_NOT_EXIST = '003',
	FAILURE = '006',
	SQLCLIENT_UNABLE_TO_ESTABLISH_SQLCONNECTION = '001',
	SQLSERVER_REJECTED_ESTABLISHMENT_OF_SQLCONNECTION = '004',
	TRANSACTION_RESOLUTION_UNKNOWN = '007',
	PROTOCOL_VIOLATION = 'P01',
)

FEATURE_NOT_SUPPORTED = Class('0A')

CARDINALITY_VIOLATION = Class('21')

DATA = Class('22',
	STRING_RIGHT_TRUNCATION = '001',
	NUMERIC_VALUE_OUT_OF_RANGE = '003',
	NULL_VALUE_NOT_ALLOWED = '004',
	INVALID_DATETIME_FORMAT = '007',
	DATETIME_FIELD_OVERFLOW = '008',
	DIVISION_BY_ZERO = '012',
	INVALID_CHARACTER_VALUE_FOR_CAST = '018',
	INVALID_PARAMETER_VALUE = '023',
	INVALID_TEXT_REPRESENTATION = 'P02',
	INVALID_BINARY_REPRESENTATION = 'P03',
	UNTRANSLATABLE_CHARACTER = 'P05',
)

# Integrity Constraint Violation
ICV = Class('23',
	RESTRICT = '001',
	NOT_NULL = '502',
	FOREIGN_KEY = '503',
	UNIQUE = '505',
	CHECK = '514',
)

INVALID_CURSOR_STATE = Class('24')

# Invalid Transaction State
ITS = Class('25',
	ACTIVE = '001',
	READ_ONLY = '006',
	NO_ACTIVE = 'P01',
	IN_FAILED = 'P02',
)

INVALID_STATEMENT_NAME = Class('26')

AUTHORIZATION_SPECIFICATION = Class('28',
	INVALID_PASSWORD = 'P01',
)

INVALID_CATALOG_NAME = Class('3D')

# Transaction Rollback
TR = Class('40',
	SERIALIZATION_FAILURE = '001',
	INTEGRITY_CONSTRAINT_VIOLATION = '002',
	STATEMENT_COMPLETION_UNKNOWN = '003',
	DEADLOCK_DETECTED = 'P01',
)

# Syntax Error or Access Rule Violation
SEARV = Class('42',
	SYNTAX = '601',
	INSUFFICIENT_PRIVILEGE = '501',
	UNDEFINED_COLUMN = '703',
	UNDEFINED_FUNCTION = '883',
	UNDEFINED_TABLE = 'P01',
	UNDEFINED_PARAMETER = 'P02',
	UNDEFINED_OBJECT = '704',
	DUPLICATE_TABLE = 'P07',
	DUPLICATE_PSTATEMENT = 'P05',
	DATATYPE_MISMATCH = '804',
	INDETERMINATE_DATATYPE = 'P18',
	AMBIGUOUS_COLUMN = '702',
)

# Insufficient Resources
IR = Class('53',
	DISK_FULL = '100',
	OUT_OF_MEMORY = '200',
	CONNECTION_OVERFLOW = '300',
)

# Object Not In Prerequisite State
ONIPS = Class('55',
	OBJECT_IN_USE = '006',
	LOCK_NOT_AVAILABLE = 'P03',
)

# Operator Intervention
OI = Class('57',
	QUERY_CANCELED = '014',
	ADMIN_SHUTDOWN = 'P01',
	CRASH_SHUTDOWN = 'P02',
	CANNOT_CONNECT_NOW = 'P03',
)

PLPGSQL = Class('P0',
	RAISE = '001',
	NO_DATA_FOUND = '002',
	TOO_MANY_ROWS = '003',
)

# Internal Error
IE = Class('XX',
	DATA_CORRUPTED = '001',
	INDEX_CORRUPTED = '002',
)

##
# Client-side codes; not produced by the server.
CLIENT = Class('-1',
	COLUMN_DECODE = '001',
	CURSOR_STILL_OPEN = '002',
	CURSOR_CLOSED = '003',
	AUTHENTICATION_METHOD = '004',
)

def msgstr(ob):
	'Create a string for display in a warning or traceback'
	message = ob.message
	details = ob.details or {}
	loc = [
		details.get('file'),
		details.get('line'),
		details.get('function')
	]
	# If there are any location details, make the locstr.
	if loc.count(None) < 3:
		locstr = '%sLOCATION: File %r, line %s, in %s' %(
			linesep,
			loc[0] or '?',
			loc[1] or '?',
			loc[2] or '?',
		)
	else:
		locstr = ''
	shown = [
		'%s: %s' %(k.upper(), v) for k, v in details.items()
		if k not in ('message', 'severity', 'file', 'function', 'line')
	]
	return str(message or details.get('message')) + (
		shown and (linesep + linesep.join(shown)) or ''
	) + '  [' + str(ob.code) + ']' + locstr

class Warning(UserWarning):
	"""
	A warning or notice received from the server.

	Instances are emitted with `warnings.warn` unless consumed by one of the
	connection's notice receivers.
	"""
	code = WARNING
	message = None
	__str__ = msgstr

	def __init__(self, msg, code = None, details = None):
		super().__init__(msg)
		self.message = msg
		if code is not None and self.code != code:
			self.code = code
		self.details = details if details is not None else {}

	@property
	def severity(self):
		return self.details.get('severity')

class DeprecationWarning(Warning):
	code = WARNING.DEPRECATED_FEATURE
class DynamicResultSetsReturnedWarning(Warning):
	code = WARNING.DYNAMIC_RESULT_SETS_RETURNED
class ImplicitZeroBitPaddingWarning(Warning):
	code = WARNING.IMPLICIT_ZERO_BIT_PADDING
class NullValueEliminatedInSetFunctionWarning(Warning):
	code = WARNING.NULL_VALUE_ELIMINATED_IN_SET_FUNCTION
class PrivilegeNotGrantedWarning(Warning):
	code = WARNING.PRIVILEGE_NOT_GRANTED
class PrivilegeNotRevokedWarning(Warning):
	code = WARNING.PRIVILEGE_NOT_REVOKED
class StringDataRightTruncationWarning(Warning):
	code = WARNING.STRING_DATA_RIGHT_TRUNCATION
class NoDataWarning(Warning):
	code = NO_DATA_WARNING
class NoMoreSetsReturned(NoDataWarning):
	code = NO_DATA_WARNING.NO_ADDITIONAL_DYNAMIC_RESULT_SETS_RETURNED

class Error(Exception):
	"""Error(msg[, code[, details]])

	An error with a PostgreSQL SQLSTATE code. Errors received from the server
	carry the decoded fields of the ErrorResponse in `details`; the common ones
	are available as properties.
	"""
	code = IE
	details = None
	# FATAL and PANIC errors terminate the connection.
	fatal = False
	message = None

	def __init__(self, msg, code = None, details = None):
		super().__init__(msg)
		if code is not None and self.code != code:
			self.code = code
		self.details = details if details is not None else {}
		self.message = msg
	__str__ = msgstr

	def __repr__(self):
		return '%s.%s(%r%s%r)' %(
			type(self).__module__,
			type(self).__name__,
			self.message,
			', code = ',
			str(self.code),
		)

	@property
	def severity(self):
		return self.details.get('severity')

	@property
	def detail(self):
		return self.details.get('detail')

	@property
	def hint(self):
		return self.details.get('hint')

	@property
	def position(self):
		return self.details.get('position')

class ConnectionError(Error):
	"""
	The connection to the server could not be made or was lost.
	"""
	code = CONNECTION
	fatal = True
class ConnectionDoesNotExistError(ConnectionError):
	code = CONNECTION.DOES_NOT_EXIST
class ConnectError(ConnectionError):
	"""
	The connection could not be established.

	`failures` is the sequence of `dxpq.protocol.client3.ConnectionAttempt`
	instances describing each address that was tried.
	"""
	code = CONNECTION.SQLCLIENT_UNABLE_TO_ESTABLISH_SQLCONNECTION
	failures = ()
class ServerRejectedConnectError(ConnectError):
	code = CONNECTION.SQLSERVER_REJECTED_ESTABLISHMENT_OF_SQLCONNECTION
class ProtocolError(ConnectionError):
	"""
	The byte stream did not follow the PQ 3.0 protocol. Always fatal to the
	connection.
	"""
	code = CONNECTION.PROTOCOL_VIOLATION
class ConnectionFailureError(ProtocolError):
	"""
	An I/O failure interrupted the protocol; the connection is unusable.
	"""
	code = CONNECTION.FAILURE
class TransactionResolutionUnknownError(ConnectionError):
	code = CONNECTION.TRANSACTION_RESOLUTION_UNKNOWN

class AuthenticationError(Error):
	"The server rejected the credentials or the authentication exchange failed."
	code = AUTHORIZATION_SPECIFICATION
	fatal = True
class InvalidPasswordError(AuthenticationError):
	code = AUTHORIZATION_SPECIFICATION.INVALID_PASSWORD
class AuthenticationMethodError(AuthenticationError):
	"The server requested an authentication method that is not supported."
	code = CLIENT.AUTHENTICATION_METHOD

class BindError(Error):
	"""
	The parameters given do not match the statement. Raised before any data is
	sent to the server.
	"""
	code = DYNAMIC_SQL.USING_CLAUSE_DOES_NOT_MATCH_PARAMETERS

class InvalidCursorStateError(Error):
	code = INVALID_CURSOR_STATE
class CursorStillOpenError(InvalidCursorStateError):
	"""
	A streaming cursor still owns the connection's input.
	"""
	code = CLIENT.CURSOR_STILL_OPEN
class CursorClosedError(InvalidCursorStateError):
	"""
	The cursor was closed or invalidated by a subsequent query.
	"""
	code = CLIENT.CURSOR_CLOSED

class ColumnDecodeError(Error):
	"""
	A column value could not be decoded. `column` is the column index and
	`type_id` the type of the column.
	"""
	code = CLIENT.COLUMN_DECODE
	column = None
	type_id = None

##
# Errors reported by the server in response to a statement.
class QueryError(Error):
	"""
	An error reported by the server while processing a statement. The
	connection remains usable.
	"""
	code = IE

class FeatureError(QueryError):
	code = FEATURE_NOT_SUPPORTED
class CardinalityError(QueryError):
	code = CARDINALITY_VIOLATION

class DataError(QueryError):
	code = DATA
class StringRightTruncationError(DataError):
	code = DATA.STRING_RIGHT_TRUNCATION
class NumericRangeError(DataError):
	code = DATA.NUMERIC_VALUE_OUT_OF_RANGE
class NullValueNotAllowedError(DataError):
	code = DATA.NULL_VALUE_NOT_ALLOWED
class DateTimeFormatError(DataError):
	code = DATA.INVALID_DATETIME_FORMAT
class DateTimeFieldOverflowError(DataError):
	code = DATA.DATETIME_FIELD_OVERFLOW
class DivisionByZeroError(DataError):
	code = DATA.DIVISION_BY_ZERO
class CastCharacterValueError(DataError):
	code = DATA.INVALID_CHARACTER_VALUE_FOR_CAST
class InvalidParameterValue(DataError):
	code = DATA.INVALID_PARAMETER_VALUE
class TextRepresentationError(DataError):
	code = DATA.INVALID_TEXT_REPRESENTATION
class BinaryRepresentationError(DataError):
	code = DATA.INVALID_BINARY_REPRESENTATION
class UntranslatableCharacterError(DataError):
	code = DATA.UNTRANSLATABLE_CHARACTER

class IntegrityError(QueryError):
	code = ICV
class RestrictError(IntegrityError):
	code = ICV.RESTRICT
class NotNullError(IntegrityError):
	code = ICV.NOT_NULL
class ForeignKeyError(IntegrityError):
	code = ICV.FOREIGN_KEY
class UniqueError(IntegrityError):
	code = ICV.UNIQUE
class CheckError(IntegrityError):
	code = ICV.CHECK

class TransactionError(QueryError):
	pass
class ITSError(TransactionError):
	"Invalid Transaction State"
	code = ITS
class ActiveTransactionError(ITSError):
	code = ITS.ACTIVE
class ReadOnlyTransactionError(ITSError):
	"Occurs when an alteration occurs in a read-only transaction."
	code = ITS.READ_ONLY
class NoActiveTransactionError(ITSError):
	code = ITS.NO_ACTIVE
class InFailedTransactionError(ITSError):
	"Occurs when an action occurs in a failed transaction."
	code = ITS.IN_FAILED
class TRError(TransactionError):
	"Transaction Rollback"
	code = TR
class SerializationError(TRError):
	code = TR.SERIALIZATION_FAILURE
class StatementCompletionUnknownError(TRError):
	code = TR.STATEMENT_COMPLETION_UNKNOWN
class DeadlockError(TRError):
	code = TR.DEADLOCK_DETECTED

class StatementNameError(QueryError):
	code = INVALID_STATEMENT_NAME
class CatalogNameError(QueryError):
	code = INVALID_CATALOG_NAME

class SEARVError(QueryError):
	"Syntax Error or Access Rule Violation"
	code = SEARV
class SyntaxError(SEARVError):
	code = SEARV.SYNTAX
class InsufficientPrivilegeError(SEARVError):
	code = SEARV.INSUFFICIENT_PRIVILEGE
class UndefinedColumnError(SEARVError):
	code = SEARV.UNDEFINED_COLUMN
class UndefinedFunctionError(SEARVError):
	code = SEARV.UNDEFINED_FUNCTION
class UndefinedTableError(SEARVError):
	code = SEARV.UNDEFINED_TABLE
class UndefinedParameterError(SEARVError):
	code = SEARV.UNDEFINED_PARAMETER
class UndefinedObjectError(SEARVError):
	code = SEARV.UNDEFINED_OBJECT
class DuplicateTableError(SEARVError):
	code = SEARV.DUPLICATE_TABLE
class DuplicatePreparedStatementError(SEARVError):
	code = SEARV.DUPLICATE_PSTATEMENT
class TypeMismatchError(SEARVError):
	code = SEARV.DATATYPE_MISMATCH
class IndeterminateTypeError(SEARVError):
	code = SEARV.INDETERMINATE_DATATYPE
class AmbiguousColumnError(SEARVError):
	code = SEARV.AMBIGUOUS_COLUMN

class IRError(QueryError):
	"Insufficient Resource Errors"
	code = IR
class DiskFullError(IRError):
	code = IR.DISK_FULL
class MemoryError(IRError):
	code = IR.OUT_OF_MEMORY
class ConnectionOverflowError(IRError):
	code = IR.CONNECTION_OVERFLOW

class ONIPSError(QueryError):
	"Object Not In Prerequisite State"
	code = ONIPS
class ObjectInUseError(ONIPSError):
	code = ONIPS.OBJECT_IN_USE
class UnavailableLockError(ONIPSError):
	code = ONIPS.LOCK_NOT_AVAILABLE

class OIError(QueryError):
	"Operator Intervention"
	code = OI
class CancelledError(OIError):
	"The statement was cancelled by a cancel request or statement_timeout."
	code = OI.QUERY_CANCELED
QueryCanceledError = CancelledError
class AdminShutdownError(OIError):
	code = OI.ADMIN_SHUTDOWN
class CrashShutdownError(OIError):
	code = OI.CRASH_SHUTDOWN
class CannotConnectNowError(OIError):
	code = OI.CANNOT_CONNECT_NOW

class PLPGSQLError(QueryError):
	"Error raised by a PL/PgSQL procedural function"
	code = PLPGSQL
class PLPGSQLRaiseError(PLPGSQLError):
	"Error raised by a PL/PgSQL RAISE statement."
	code = PLPGSQL.RAISE
class PLPGSQLNoDataFoundError(PLPGSQLError):
	code = PLPGSQL.NO_DATA_FOUND
class PLPGSQLTooManyRowsError(PLPGSQLError):
	code = PLPGSQL.TOO_MANY_ROWS

class InternalError(QueryError):
	code = IE
class DataCorruptedError(InternalError):
	code = IE.DATA_CORRUPTED
class IndexCorruptedError(InternalError):
	code = IE.INDEX_CORRUPTED

class Mapping(dict):
	'Dictionary subclass for mapping states and classes to Python classes'
	__slots__ = ()

	def get(self, key):
		'Gets the value that at the key or the Class of that key or None'
		key = str(key)
		supr = super(Mapping, self)
		return supr.get(key) or supr.get(class_of(key))

	def set(self, code, cls):
		'Register `cls` for `code`, keeping the most general class per code'
		code = str(code)
		cur = dict.get(self, code)
		if cur is None or issubclass(cur, cls):
			self[code] = cls

CodeClass = Mapping()
WarningCodeClass = Mapping()

def ErrorLookup(c):
	"""
	Given an error code, return the exception that is most closely associated
	with it.
	"""
	return CodeClass.get(c) or QueryError

def QueryErrorLookup(c):
	"""
	Like `ErrorLookup`, but always a `QueryError`. The connection, authorization,
	cursor state and dynamic SQL classes describe client conditions; the server
	reporting one of them for a statement gives a plain `QueryError`.
	"""
	cls = ErrorLookup(c)
	if issubclass(cls, QueryError):
		return cls
	return QueryError

def WarningLookup(c):
	"""
	Given a warning code, return the warning that is most closely associated
	with it.
	"""
	return WarningCodeClass.get(c) or Warning

# Setup mapping to provide code based exception lookup.
d = sys.modules[__name__].__dict__
e = None
for e in list(d.values()):
	if type(e) is not type or not hasattr(e, 'code'):
		continue
	if issubclass(e, Error) and e not in (Error, QueryError, TransactionError):
		CodeClass.set(e.code, e)
	elif issubclass(e, Warning):
		WarningCodeClass.set(e.code, e)
del e, d

if __name__ == '__main__':
	for x in sys.argv[1:]:
		e = ErrorLookup(x)
		sys.stdout.write('dxpq.exceptions.%s [%s]%s%s' %(
				e.__name__, e.code, linesep, (
					e.__doc__ is not None and linesep.join([
						'  ' + x for x in (e.__doc__).split('\n')
					]) + linesep or ''
				)
			)
		)
