##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Parse and serialize PQ IRIs.

PQ IRIs take the form::

	pq://user:pass@host:port/database?setting=value&setting2=value2#public,othernamespace

IPv6 is supported via the standard representation::

	pq://[::1]:5432/database

Driver Parameters:

	pq://user@host/?[driver_param]=value&[other_param]=value

The fragment, when present, is the search_path setting. The scheme may be
omitted: ``localhost/postgres`` is ``pq://localhost/postgres``.
"""
from urllib.parse import quote, unquote, parse_qsl

scheme = 'pq'

def split(s):
	"""
	Split an IRI into its `(scheme, netloc, path, query, fragment)` strings.
	Absent components are `None`.
	"""
	if '://' in s:
		scheme, s = s.split('://', 1)
	else:
		scheme = None
	s, sep, fragment = s.partition('#')
	fragment = fragment if sep else None
	s, sep, query = s.partition('?')
	query = query if sep else None
	netloc, sep, path = s.partition('/')
	path = path if sep else None
	return (scheme, netloc, path, query, fragment)

def split_netloc(netloc):
	"""
	Split the netloc into `(user, password, host, port)`; absent components are
	`None`. IPv6 addresses keep their brackets.
	"""
	user = password = None
	userinfo, sep, hostport = netloc.rpartition('@')
	if sep:
		user, sep, password = userinfo.partition(':')
		if not sep:
			password = None
	if hostport.startswith('['):
		end = hostport.find(']')
		if end == -1:
			raise ValueError("unterminated IPv6 address: " + repr(hostport))
		host = hostport[:end+1]
		port = hostport[end+1:]
		if port and not port.startswith(':'):
			raise ValueError("invalid data after IPv6 address: " + repr(port))
		port = port[1:]
	else:
		host, sep, port = hostport.partition(':')
	return (user, password, host or None, port or None)

def structure(parts, fieldproc = unquote):
	'Create a clientparams dictionary from the split IRI'
	scheme_s, netloc, path, query, frag = parts
	if scheme_s is not None and scheme_s != scheme:
		raise ValueError("not a PQ-IRI: " + repr(scheme_s))

	cpd = {}
	user, password, host, port = split_netloc(netloc or '')
	if user is not None:
		cpd['user'] = fieldproc(user)
	if password is not None:
		cpd['password'] = fieldproc(password)
	if host:
		if host.startswith('[') and host.endswith(']'):
			cpd['ipv'] = 6
			cpd['host'] = host[1:-1]
		else:
			cpd['host'] = fieldproc(host)
	if port:
		if not port.isdigit():
			raise ValueError("invalid port: " + repr(port))
		cpd['port'] = int(port)

	if path:
		if '/' in path:
			raise ValueError("PQ-IRIs may only have one path component")
		cpd['database'] = fieldproc(path)

	settings = {}
	if query:
		for k, v in parse_qsl(query, keep_blank_values = True):
			if k.startswith('[') and k.endswith(']'):
				k = k[1:-1]
				if k != 'settings' and k not in cpd:
					cpd[k] = v
			elif k:
				settings[k] = v
			# else: ignore empty query keys
	if frag:
		settings['search_path'] = fieldproc(frag)
	if settings:
		cpd['settings'] = settings

	return cpd

def parse(s, fieldproc = unquote):
	'Parse a Postgres IRI into a dictionary object'
	return structure(split(s), fieldproc = fieldproc)

def construct(x, obscure_password = False):
	'Construct the split IRI from a clientparams dictionary'
	netloc = ''
	user = x.get('user')
	if user is not None:
		netloc += quote(str(user), safe = '')
		password = x.get('password')
		if password is not None:
			netloc += ':' + ('***' if obscure_password else quote(password, safe = ''))
		netloc += '@'
	host = x.get('host')
	if host is not None:
		if ':' in host:
			netloc += '[' + host + ']'
		else:
			netloc += quote(host, safe = '')
	port = x.get('port')
	if port is not None:
		netloc += ':' + str(port)

	database = x.get('database')
	path = None if database is None else quote(database, safe = '')

	query = []
	if x.get('unix') is not None:
		query.append('[unix]=' + quote(x['unix'], safe = '/'))
	settings = dict(x.get('settings') or ())
	search_path = settings.pop('search_path', None)
	if search_path is not None and not isinstance(search_path, str):
		search_path = ','.join(search_path)
	for k, v in settings.items():
		query.append(quote(k, safe = '') + '=' + quote(str(v), safe = ''))

	return (
		scheme,
		netloc,
		path,
		'&'.join(query) or None,
		None if search_path is None else quote(search_path, safe = ','),
	)

def unsplit(parts):
	scheme_s, netloc, path, query, frag = parts
	s = scheme_s + '://' + netloc
	if path is not None or query is not None:
		s += '/' + (path or '')
	if query is not None:
		s += '?' + query
	if frag is not None:
		s += '#' + frag
	return s

def serialize(x, obscure_password = False):
	'Return a Postgres IRI from a dictionary object.'
	return unsplit(construct(x, obscure_password = obscure_password))

if __name__ == '__main__':
	import sys
	for x in sys.argv[1:]:
		print("{src} -> {parsed!r} -> {serial}".format(
			src = x,
			parsed = parse(x),
			serial = serialize(parse(x))
		))
