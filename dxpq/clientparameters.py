##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Collect client connection parameters from various sources.

Parameters are gathered as a sequence of `(key_path, value)` pairs, lowest
priority first::

	(('host',), 'localhost')
	(('settings', 'timezone'), 'utc')

`normalize` folds them into the dictionary given to a connector; later pairs
override earlier ones. A pair whose key is a string names a source to expand,
``('pq_iri', 'pq://host/db')`` for instance, see `extrapolate`.
"""
import sys
import os
from getpass import getuser
from itertools import chain

from . import iri as pg_iri
from . import pgpassfile as pg_pass

default_host = 'localhost'
default_port = 5432

# Files kept in the user's home directory on posix systems.
home_passfile = '.pgpass'
home_directory = '.postgresql'

# Files kept in APPDATA on windows.
appdata_directory = 'postgresql'
appdata_passfile = 'pgpass.conf'

#: Environment variables(less the prefix) and the parameter they set.
environment_parameters = {
	'USER' : ('user',),
	'DATABASE' : ('database',),
	'HOST' : ('host',),
	'PORT' : ('port',),
	'PASSWORD' : ('password',),
	'PASSFILE' : ('pgpassfile',),
	'SSLMODE' : ('sslmode',),
	'SSLKEY' : ('sslkeyfile',),
	'SSLCERT' : ('sslcrtfile',),
	'SSLROOTCERT' : ('sslrootcrtfile',),
	'CONNECT_TIMEOUT' : ('connect_timeout',),
	'APPNAME' : ('application_name',),

	# Startup settings.
	'TZ' : ('settings', 'timezone'),
	'DATESTYLE' : ('settings', 'datestyle'),
	'CLIENTENCODING' : ('settings', 'client_encoding'),
	'GEQO' : ('settings', 'geqo'),
	'OPTIONS' : ('settings', 'options'),
}

#: sslmode values and the tls_mode they select.
sslmode_to_tls_mode = {
	'disable' : 'disable',
	'allow' : 'prefer',
	'prefer' : 'prefer',
	'require' : 'require',
	'verify-ca' : 'require',
	'verify-full' : 'require',
}

#: Parameter names that are spelled differently by libpq.
parameter_aliases = {
	'dbname' : 'database',
}

def config_directory(environ, user):
	"""
	The directory holding the client certificates and the password file of
	`user`: ``(directory, passfile)``.
	"""
	home = os.path.expanduser('~' + user) or '/dev/null'
	if sys.platform == 'win32':
		appdata = environ.get('APPDATA')
		if appdata:
			return (
				os.path.join(appdata, appdata_directory),
				os.path.join(appdata, appdata_passfile),
			)
	return (
		os.path.join(home, home_directory),
		os.path.join(home, home_passfile),
	)

def defaults(environ = os.environ):
	"""
	Produce the defaults: the current user, the local host on the standard
	port, and the client files that exist.
	"""
	user = getuser() or 'postgres'
	yield ('user',), user
	yield ('host',), default_host
	yield ('port',), default_port

	pgdata, pgpassfile = config_directory(environ, user)
	for k, v in (
		('sslcrtfile', os.path.join(pgdata, 'postgresql.crt')),
		('sslkeyfile', os.path.join(pgdata, 'postgresql.key')),
		('sslrootcrtfile', os.path.join(pgdata, 'root.crt')),
		('pgpassfile', pgpassfile),
	):
		if os.path.exists(v):
			yield (k,), v

def envvars(environ = os.environ, modifier : "environment variable key modifier" = 'PG'.__add__):
	"""
	Produce the parameters given by the environment::

		PGUSER -> user
		PGDATABASE -> database
		PGHOST -> host
		PGHOSTADDR -> host (overrides PGHOST)
		PGPORT -> port
		PGPASSWORD -> password
		PGPASSFILE -> pgpassfile
		PGSSLMODE -> sslmode
		PGREQUIRESSL=1 -> sslmode = 'require'
		PGSSLKEY, PGSSLCERT, PGSSLROOTCERT -> sslkeyfile, sslcrtfile, sslrootcrtfile
		PGCONNECT_TIMEOUT -> connect_timeout
		PGAPPNAME -> application_name
		PGTZ, PGDATESTYLE, PGCLIENTENCODING, PGGEQO, PGOPTIONS -> settings
	"""
	if environ.get(modifier('REQUIRESSL'), '').strip() == '1':
		yield ('sslmode',), 'require'

	for name, key in environment_parameters.items():
		name = modifier(name)
		if name in environ:
			yield key, environ[name]

	hostaddr = modifier('HOSTADDR')
	if hostaddr in environ:
		yield ('host',), environ[hostaddr]

def resolve_password(
	d : "a fully normalized set of client parameters(dict)",
):
	"""
	Given a parameters dictionary, resolve the 'password' key.

	A missing password is looked up in the file named by the 'pgpassfile' key.
	The 'pgpassfile' key is removed either way.
	"""
	passfile = d.pop('pgpassfile', None)
	if d.get('password') is None and passfile is not None and d.get('user') is not None:
		d['password'] = pg_pass.lookup_pgpass(d, passfile)

def denormalize_parameters(p):
	"""
	Given a fully normalized parameters dictionary:
	{'host': 'localhost', 'settings' : {'timezone':'utc'}}

	Denormalize it:
	[(('host',), 'localhost'), (('settings','timezone'), 'utc')]
	"""
	for k, v in p.items():
		if k == 'settings':
			for sk, sv in dict(v).items():
				yield (('settings', sk), sv)
		else:
			yield ((k,), v)

def x_pq_iri(iri, config):
	return denormalize_parameters(pg_iri.parse(iri))

def x_settings(sdict, config):
	return ((('settings', k), v) for k, v in dict(sdict).items())

default_x_callbacks = {
	'settings' : x_settings,
	'pq_iri' : x_pq_iri,
}

def extrapolate(iter, config = None, callbacks = default_x_callbacks):
	"""
	Given an iterable of standardized parameters, expand the indirect
	entries. String keys name a callback whose output is expanded in place;
	``config-`` prefixed keys configure the callbacks.
	"""
	config = config if config is not None else {}
	for item in iter:
		k = item[0]
		if not isinstance(k, str):
			yield item
		elif k.startswith('config-'):
			config[k[len('config-'):]] = item[1]
		else:
			cb = callbacks.get(k)
			if cb is None:
				raise ValueError("unknown parameter source: " + repr(k))
			yield from extrapolate(cb(item[1], config), config = config, callbacks = callbacks)

def normalize_parameter(kv):
	"""
	Translate a parameter into standard form.

	``dbname`` becomes ``database``; ``sslmode`` and ``requiressl`` become
	``tls_mode``.
	"""
	(k, v) = kv
	name = k[0]
	if name == 'sslmode':
		mode = str(v).lower()
		if mode not in sslmode_to_tls_mode:
			raise ValueError("invalid sslmode: " + repr(v))
		return (('tls_mode',) + tuple(k[1:]), sslmode_to_tls_mode[mode])
	if name == 'requiressl':
		return (('tls_mode',) + tuple(k[1:]), 'require' if v in ('1', 1, True) else 'prefer')
	return ((parameter_aliases.get(name, name),) + tuple(k[1:]), v)

def normalize(iter):
	"""
	Normally takes the output of `extrapolate` and makes a dictionary suitable
	for applying to a connector.
	"""
	rd = {}
	for kv in iter:
		(k, v) = normalize_parameter(kv)
		sd = rd
		for sk in k[:-1]:
			sd = sd.setdefault(sk, {})
		sd[k[-1]] = v
	return rd

def collect(
	*sources,
	no_defaults = False,
	no_environ = False,
	environ_prefix = 'PG',
	environ = os.environ,
):
	"""
	Build the parameters dictionary from the defaults, the environment, and the
	given sources(iterables of parameter pairs), in that order of priority.
	The password is resolved using the pgpass file when it is not given.
	"""
	parameters = []
	if not no_defaults:
		parameters.append(defaults(environ = environ))
	if not no_environ:
		parameters.append(envvars(
			environ = environ,
			modifier = environ_prefix.__add__
		))
	parameters.extend(sources)
	cpd = normalize(extrapolate(chain(*parameters)))
	if cpd.get('unix') is not None or cpd.get('stream_factory') is not None:
		# The unix socket or the stream replaces the default host.
		cpd.pop('host', None)
	resolve_password(cpd)
	return cpd

if __name__ == '__main__':
	import pprint
	pprint.pprint(collect(*[[('pq_iri', x)] for x in sys.argv[1:]]))
