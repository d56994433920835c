##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
String split and join operations for dealing with literals and identifiers.

Notably, the functions in this module are intended to be used for simple
use-cases. It attempts to stay away from "real" parsing and simply provides
functions for common needs, like the ability to identify unquoted portions of a
query string so that logic or transformations can be applied to only unquoted
portions. Scanning for statement parameters(`count_parameters`) is the
motivating case.

Strings are assumed to be written with standard_conforming_strings on: a
backslash only escapes inside ``E''`` literals.
"""
import re

quote_re = re.compile(
	r"(?<![\w$])[eE]'"
	r"|'"
	r'|"'
	r"|(?<![\w$])\$(?:[^\W\d]\w*)?\$"
	r"|--"
	r"|/\*"
)

parameter_re = re.compile(r"(?<![\w$])\$(\d+)")
comment_open_re = re.compile(r"/\*|\*/")

def _close_quote(text, pos, q):
	# Returns the position of the closing quote or None.
	while True:
		end = text.find(q, pos)
		if end == -1:
			return None
		if text[end+1:end+2] == q:
			# doubled; part of the content
			pos = end + 2
			continue
		return end

def _close_escaped(text, pos):
	l = len(text)
	while pos < l:
		c = text[pos]
		if c == '\\':
			pos += 2
		elif c == "'":
			if text[pos+1:pos+2] == "'":
				pos += 2
			else:
				return pos
		else:
			pos += 1
	return None

def _close_comment(text, pos):
	depth = 1
	while True:
		m = comment_open_re.search(text, pos)
		if m is None:
			return None
		if m.group(0) == '/*':
			depth += 1
		else:
			depth -= 1
			if depth == 0:
				return m.start()
		pos = m.end()

def closing(q):
	'The string that terminates a portion opened with `q`.'
	if q in ("'", '"'):
		return q
	if q[-1:] == "'":
		return "'"
	if q == '--':
		return ''
	if q == '/*':
		return '*/'
	return q

def split(text):
	"""
	split the string up by into non-quoted and quoted portions. Zero and even
	numbered indexes are unquoted portions, while odd indexes are quoted
	portions.

	Unquoted portions are regular strings, whereas quoted portions are
	pair-tuples specifying the quotation mechanism and the content thereof.
	Comments are quoted portions as well, opened with ``--`` or ``/*``.

	>>> list(split("select $$foobar$$"))
	['select ', ('$$', 'foobar'), '']

	If the split ends on a quoted section, it means the string's quote was not
	terminated. Subsequently, there will be an even number of objects in the
	list.
	"""
	pos = 0
	while True:
		m = quote_re.search(text, pos)
		if m is None:
			yield text[pos:]
			return
		yield text[pos:m.start()]
		q = m.group(0)
		start = m.end()

		if q == '--':
			end = text.find('\n', start)
			if end == -1:
				end = len(text)
			resume = end
		else:
			if q in ("'", '"'):
				end = _close_quote(text, start, q)
			elif q[-1:] == "'":
				end = _close_escaped(text, start)
			elif q == '/*':
				end = _close_comment(text, start)
			else:
				end = text.find(q, start)
				if end == -1:
					end = None
			if end is None:
				# unterminated
				yield (q, text[start:])
				return
			resume = end + len(closing(q))

		yield (q, text[start:end])
		pos = resume

def unsplit(splitted_iter):
	"""
	catenate a split string. This is needed to handle the special
	cases created by `split`. (Run-away quotations, primarily)
	"""
	s = []
	pending = None
	for x in splitted_iter:
		if pending is not None:
			s.append(closing(pending))
			pending = None
		if x.__class__ is tuple:
			s.append(x[0])
			s.append(x[1])
			pending = x[0]
		else:
			s.append(x)
	return ''.join(s)

def count_parameters(text):
	"""
	The highest statement parameter(``$n``) referenced in the unquoted portions
	of the given SQL; zero when there are none.

	>>> count_parameters("SELECT $1, '$2', $3")
	3
	"""
	n = 0
	for x in split(text):
		if x.__class__ is not tuple:
			for m in parameter_re.finditer(x):
				n = max(n, int(m.group(1)))
	return n

def escape_literal(text):
	"Replace every instance of ' with ''"
	return text.replace("'", "''")

def quote_literal(text):
	"Escape the literal and wrap it in [single] quotations"
	return "'" + text.replace("'", "''") + "'"

def escape_ident(text):
	'Replace every instance of " with ""'
	return text.replace('"', '""')

def needs_quoting(text):
	return not (
		text and not text[0].isdecimal()
		and text.replace('_', 'a').isalnum()
		and text == text.lower()
	)

def quote_ident(text):
	"""
	If needed, replace every instance of '"' with '""' *and* place '"' on each end.
	Otherwise, just return the text.
	"""
	if needs_quoting(text):
		return '"' + text.replace('"', '""') + '"'
	return text
