##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
import os
import unittest
import tempfile

from .. import clientparameters as pg_param

class test_clientparameters(unittest.TestCase):
	def testEnvironment(self):
		env = {
			'PGUSER' : 'envuser',
			'PGHOST' : 'envhost',
			'PGHOSTADDR' : '127.0.0.1',
			'PGPORT' : '5433',
			'PGDATABASE' : 'envdb',
			'PGTZ' : 'UTC',
			'PGAPPNAME' : 'app',
			'PGREQUIRESSL' : '1',
			'UNRELATED' : 'x',
		}
		params = pg_param.collect(no_defaults = True, environ = env)
		self.assertEqual(params, {
			'user' : 'envuser',
			'host' : '127.0.0.1',
			'port' : '5433',
			'database' : 'envdb',
			'application_name' : 'app',
			'tls_mode' : 'require',
			'settings' : {'timezone' : 'UTC'},
		})

	def testEnvironmentPrefix(self):
		params = pg_param.collect(
			no_defaults = True,
			environ = {'XPGUSER' : 'x', 'PGUSER' : 'y'},
			environ_prefix = 'XPG',
		)
		self.assertEqual(params, {'user' : 'x'})

	def testSourcePriority(self):
		params = pg_param.collect(
			[('pq_iri', 'pq://iriuser@irihost:1/iridb?timezone=utc')],
			[(('user',), 'given')],
			no_defaults = True,
			environ = {'PGUSER' : 'envuser', 'PGHOST' : 'envhost', 'PGTZ' : 'EST'},
		)
		self.assertEqual(params, {
			'user' : 'given',
			'host' : 'irihost',
			'port' : 1,
			'database' : 'iridb',
			'settings' : {'timezone' : 'utc'},
		})

	def testDefaults(self):
		params = pg_param.collect(no_environ = True)
		self.assertEqual(params['host'], pg_param.default_host)
		self.assertEqual(params['port'], pg_param.default_port)
		self.assertIsNotNone(params['user'])
		self.assertNotIn('pgpassfile', params)

	def testUnixReplacesHost(self):
		params = pg_param.collect([(('unix',), '/tmp/.s.PGSQL.5432')], no_environ = True)
		self.assertNotIn('host', params)
		self.assertEqual(params['unix'], '/tmp/.s.PGSQL.5432')

	def testNormalize(self):
		n = pg_param.normalize
		self.assertEqual(n([(('dbname',), 'db')]), {'database' : 'db'})
		self.assertEqual(n([(('sslmode',), 'verify-full')]), {'tls_mode' : 'require'})
		self.assertEqual(n([(('sslmode',), 'allow')]), {'tls_mode' : 'prefer'})
		self.assertEqual(n([(('sslmode',), 'DISABLE')]), {'tls_mode' : 'disable'})
		self.assertEqual(n([(('requiressl',), '0')]), {'tls_mode' : 'prefer'})
		self.assertEqual(
			n([(('settings', 'a'), '1'), (('settings', 'b'), '2'), (('settings', 'a'), '3')]),
			{'settings' : {'a' : '3', 'b' : '2'}}
		)
		self.assertRaises(ValueError, n, [(('sslmode',), 'sometimes')])

	def testDenormalize(self):
		d = {'host' : 'h', 'port' : 1, 'settings' : {'timezone' : 'utc', 'a' : 'b'}}
		self.assertEqual(pg_param.normalize(pg_param.denormalize_parameters(d)), d)

	def testExtrapolate(self):
		x = list(pg_param.extrapolate([
			('settings', {'timezone' : 'utc'}),
			(('host',), 'h'),
		]))
		self.assertEqual(x, [(('settings', 'timezone'), 'utc'), (('host',), 'h')])
		self.assertRaises(ValueError, list, pg_param.extrapolate([('bogus', None)]))

	def testResolvePassword(self):
		with tempfile.TemporaryDirectory() as d:
			path = os.path.join(d, 'pgpass')
			with open(path, 'w') as f:
				f.write("h:5432:db:user:secret\n")
			params = {
				'user' : 'user', 'host' : 'h', 'port' : 5432,
				'database' : 'db', 'pgpassfile' : path,
			}
			pg_param.resolve_password(params)
			self.assertEqual(params['password'], 'secret')
			self.assertNotIn('pgpassfile', params)

			# A given password is kept.
			params = {
				'user' : 'user', 'host' : 'h', 'port' : 5432,
				'database' : 'db', 'pgpassfile' : path, 'password' : 'given',
			}
			pg_param.resolve_password(params)
			self.assertEqual(params['password'], 'given')

			params = pg_param.collect(
				[(('database',), 'db')],
				no_defaults = True,
				environ = {
					'PGUSER' : 'user', 'PGHOST' : 'h', 'PGPORT' : '5432',
					'PGPASSFILE' : path,
				},
			)
			self.assertEqual(params['password'], 'secret')

if __name__ == '__main__':
	unittest.main()
