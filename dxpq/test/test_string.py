##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
import unittest
from .. import string as pg_str

split_samples = [
	('', ['']),
	('SELECT 1', ['SELECT 1']),
	("SELECT 'it''s'", [
		'SELECT ',
		("'", "it''s"),
		'',
	]),
	('SELECT "Mixed Case" FROM t', [
		'SELECT ',
		('"', 'Mixed Case'),
		' FROM t',
	]),
	('"a""b"', [
		'',
		('"', 'a""b'),
		'',
	]),
	# backslashes only escape in E'' literals
	("SELECT E'tab\\there'", [
		'SELECT ',
		("E'", 'tab\\there'),
		'',
	]),
	("SELECT e'a\\'b'", [
		'SELECT ',
		("e'", "a\\'b"),
		'',
	]),
	("SELECT 'C:\\'", [
		'SELECT ',
		("'", 'C:\\'),
		'',
	]),
	("SELECT name'x'", [
		'SELECT name',
		("'", 'x'),
		'',
	]),
	('SELECT $fn$ body; $$ inner $fn$', [
		'SELECT ',
		('$fn$', ' body; $$ inner '),
		'',
	]),
	('SELECT $1::text', ['SELECT $1::text']),
	('SELECT a$b$c', ['SELECT a$b$c']),
	("SELECT '--', '/*'", [
		'SELECT ',
		("'", '--'),
		', ',
		("'", '/*'),
		'',
	]),
	('SELECT 1 -- done', [
		'SELECT 1 ',
		('--', ' done'),
		'',
	]),
	('SELECT 1 -- c\nFROM t', [
		'SELECT 1 ',
		('--', ' c'),
		'\nFROM t',
	]),
	('SELECT /* x /* y */ */ 2', [
		'SELECT ',
		('/*', ' x /* y */ '),
		' 2',
	]),
	("/* it's */ SELECT 1", [
		'',
		('/*', " it's "),
		' SELECT 1',
	]),
	# unterminated
	("SELECT 'abc", [
		'SELECT ',
		("'", 'abc'),
	]),
	('SELECT $x$ abc', [
		'SELECT ',
		('$x$', ' abc'),
	]),
	('SELECT /* a /* b */', [
		'SELECT ',
		('/*', ' a /* b */'),
	]),
]

# statement, highest parameter
parameter_samples = [
	('SELECT 1', 0),
	('INSERT INTO t VALUES ($1, $2, $3)', 3),
	('SELECT $3', 3),
	('SELECT $12 + $2', 12),
	("SELECT '$5', $1", 1),
	('SELECT "$7" FROM t', 0),
	('SELECT $f$ $4 $f$', 0),
	("SELECT e'\\'$2' , $1", 1),
	('SELECT 1 -- $9\n + $2', 2),
	('SELECT /* $8 */ $1', 1),
	('SELECT x$1', 0),
	('SELECT $1$', 1),
]

class test_strings(unittest.TestCase):
	def test_split(self):
		for unsplit, split in split_samples:
			xsplit = list(pg_str.split(unsplit))
			self.assertEqual(xsplit, split, unsplit)
			self.assertEqual(pg_str.unsplit(xsplit), unsplit)

	def test_count_parameters(self):
		for sql, count in parameter_samples:
			self.assertEqual(pg_str.count_parameters(sql), count, sql)

	def test_literals(self):
		self.assertEqual(pg_str.quote_literal("O'Reilly"), "'O''Reilly'")
		self.assertEqual(pg_str.quote_literal(""), "''")
		self.assertEqual(pg_str.quote_literal("back\\slash"), "'back\\slash'")
		self.assertEqual(pg_str.escape_literal("a''b"), "a''''b")
		plain = ''.join(chr(x) for x in range(0x3000) if chr(x) != "'")
		self.assertEqual(pg_str.escape_literal(plain), plain)

	def test_identifiers(self):
		qi = pg_str.quote_ident
		self.assertEqual(qi("users"), "users")
		self.assertEqual(qi("_tmp1"), "_tmp1")
		self.assertEqual(qi("ünïcode"), "ünïcode")
		self.assertEqual(qi("Users"), '"Users"')
		self.assertEqual(qi("user name"), '"user name"')
		self.assertEqual(qi("9lives"), '"9lives"')
		self.assertEqual(qi(""), '""')
		self.assertEqual(qi('say "hi"'), '"say ""hi"""')
		self.assertEqual(pg_str.escape_ident('a"b'), 'a""b')
		plain = ''.join(chr(x) for x in range(0x3000) if chr(x) != '"')
		self.assertEqual(pg_str.escape_ident(plain), plain)

if __name__ == '__main__':
	unittest.main()
