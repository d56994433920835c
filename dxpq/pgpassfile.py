##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Password file support.

Each line of a pgpass file is ``hostname:port:database:username:password``.
``*`` matches any value, and a backslash escapes ``:`` and itself.
"""
import os
import csv

pgpass_format = {
	'delimiter' : ':',
	'escapechar' : '\\',
	'quotechar' : '\x00',
	'doublequote' : False,
	'skipinitialspace' : False,
	'quoting' : csv.QUOTE_NONE,
}

def parse(data):
	"""
	Parse the lines of a pgpass file object into a list of
	``(password, (host, port, database, user))`` pairs.

	Comments and lines with less than five fields are skipped.
	"""
	entries = []
	for fields in csv.reader(data, **pgpass_format):
		if len(fields) < 5 or fields[0].startswith('#'):
			continue
		# Unescaped colons stay in the password.
		entries.append((':'.join(fields[4:]), tuple(fields[0:4])))
	return entries

def _matches(pattern, value):
	return pattern == '*' or pattern == value

def lookup_password(words, uhpd):
	"""
	lookup_password(words, (user, host, port, database)) -> password

	Where 'words' is the output from `parse`. The first matching entry wins;
	`None` when nothing matches.
	"""
	user, host, port, database = uhpd
	wanted = (host, port, database, user)
	for password, criteria in words:
		if all(map(_matches, criteria, wanted)):
			return password
	return None

def lookup_password_file(path, t):
	'like lookup_password, but takes a file path'
	with open(path) as f:
		return lookup_password(parse(f), t)

def lookup_pgpass(d, passfile):
	"""
	Lookup the password for the connection parameters, `d`, in `passfile`.

	Unix socket connections match the host ``localhost`` and the database
	defaults to the user. `None` when the file does not exist.
	"""
	if not os.path.exists(passfile):
		return None
	host = d.get('host')
	if host is None or d.get('unix') is not None:
		host = 'localhost'
	user = str(d['user'])
	return lookup_password_file(passfile, (
		user, str(host), str(d.get('port', 5432)),
		str(d.get('database') or user),
	))
