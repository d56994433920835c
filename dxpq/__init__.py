##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
dxpq is a pure Python PostgreSQL client driver. This includes the PQ version
3.0 protocol codec, a type registry, and blocking and asyncio drivers.
"""
__all__ = [
	'__author__',
	'__project__',
	'__docformat__',
	'__version__',
	'version',
	'version_info',
	'open',
]

from . import project as _project

__author__ = _project.author
__project__ = _project.name

#: The dxpq version tuple.
version_info = _project.version_info

#: The dxpq version string.
version = __version__ = _project.version

# Avoid importing these until requested.
_pg_driver = _pg_param = None
def open(iri = None, **kw):
	"""
	Create a `dxpq.driver.pq3.Connection` to the server referenced by the given
	`iri`::

		>>> import dxpq
		# General Format:
		>>> db = dxpq.open('pq://user:password@host:port/database')

		# Connect to 'postgres' at localhost.
		>>> db = dxpq.open('localhost/postgres')

	Connection keywords can also be used with `open` and take precedence over
	the IRI. The environment(``PGHOST``, ``PGUSER``, ...) and the pgpass file
	provide the missing parameters.

	An IRI starting with ``&`` returns the connector instead of a connection.

	(Note: "pq" is the name of the protocol used to communicate with PostgreSQL)
	"""
	global _pg_driver, _pg_param
	if _pg_driver is None:
		from . import driver as _pg_driver
		from . import clientparameters as _pg_param

	return_connector = False
	sources = []
	if iri is not None:
		if iri.startswith('&'):
			return_connector = True
			iri = iri[1:]
		sources.append([('pq_iri', iri)])
	sources.append(_pg_param.denormalize_parameters(kw))

	params = _pg_param.collect(*sources)
	C = _pg_driver.default.fit(**params)
	if return_connector is True:
		return C
	return C.connect()

__docformat__ = 'reStructuredText'
