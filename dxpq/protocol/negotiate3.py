##
# copyright 2008, pg/python project.
# http://python.projects.postgresql.org
##
"""
PQ v3.0 authentication responses.

The negotiation transaction does not know how to authenticate; it asks a
*credential provider* for each response. A credential provider is a callable::

	provider(mechanism : str, challenge) -> response

Where `mechanism` is one of:

 'cleartext'
  `challenge` is `None`; return the password(`bytes`).
 'md5'
  `challenge` is the four byte salt; return the complete password response,
  ``b'md5' + hexdigest``.
 'sasl'
  `challenge` is the list of mechanism names offered by the server(`bytes`);
  return a pair, ``(mechanism_name, client_first_message)``.
 'sasl-continue'
  `challenge` is the server's SASL message; return the next client message.
 'sasl-final'
  `challenge` is the server's final SASL message; verify it and return `None`.

Providers raise `dxpq.exceptions.AuthenticationError`, or a subclass, to stop
the exchange.
"""
from hashlib import md5
from scramp import ScramClient, ScramException

from .. import exceptions as pg_exc

def md5_response(user : bytes, password : bytes, salt : bytes) -> bytes:
	"""
	The response to an MD5 authentication request::

		'md5' + md5(md5(password + user).hexdigest() + salt).hexdigest()
	"""
	pw = md5(password + user).hexdigest().encode('ascii')
	return b'md5' + md5(pw + salt).hexdigest().encode('ascii')

class PasswordProvider(object):
	"""
	Credential provider authenticating with a password. Supports cleartext,
	MD5, and SCRAM-SHA-256(SASL).
	"""
	sasl_mechanisms = ('SCRAM-SHA-256',)

	def __init__(self, user, password):
		if isinstance(user, bytes):
			user = user.decode('utf-8')
		if isinstance(password, bytes):
			password = password.decode('utf-8')
		self.user = user
		self.password = password
		self._scram = None

	def __repr__(self):
		return '%s.%s(%r, %s)' %(
			type(self).__module__,
			type(self).__name__,
			self.user,
			'None' if self.password is None else "'****'",
		)

	def _password(self):
		if self.password is None:
			raise pg_exc.AuthenticationError(
				"server requested a password, but none was given",
				code = pg_exc.AUTHORIZATION_SPECIFICATION.INVALID_PASSWORD,
				details = {
					'severity' : 'FATAL',
					'hint' : 'Give the password keyword or use a pgpass file.',
				}
			)
		return self.password

	def __call__(self, mechanism, challenge):
		method = getattr(self, 'auth_' + mechanism.replace('-', '_'), None)
		if method is None:
			raise pg_exc.AuthenticationMethodError(
				"unsupported authentication mechanism %r" %(mechanism,),
				details = {'severity' : 'FATAL'}
			)
		return method(challenge)

	def auth_cleartext(self, challenge):
		return self._password().encode('utf-8')

	def auth_md5(self, salt):
		return md5_response(
			self.user.encode('utf-8'),
			self._password().encode('utf-8'),
			salt
		)

	def auth_sasl(self, mechanisms):
		offered = [
			x.decode('ascii') if isinstance(x, bytes) else x
			for x in mechanisms
		]
		usable = [x for x in offered if x in self.sasl_mechanisms]
		if not usable:
			raise pg_exc.AuthenticationMethodError(
				"none of the offered SASL mechanisms are supported",
				details = {
					'severity' : 'FATAL',
					'detail' : 'offered: ' + ', '.join(offered),
					'hint' : 'dxpq supports: ' + ', '.join(self.sasl_mechanisms),
				}
			)
		self._scram = ScramClient(usable, self.user, self._password())
		return (
			self._scram.mechanism_name.encode('ascii'),
			self._scram.get_client_first().encode('utf-8'),
		)

	def auth_sasl_continue(self, data):
		if self._scram is None:
			raise pg_exc.ProtocolError("SASL continuation before SASL start")
		try:
			self._scram.set_server_first(data.decode('utf-8'))
			return self._scram.get_client_final().encode('utf-8')
		except ScramException as err:
			raise pg_exc.AuthenticationError(
				"SCRAM exchange failed: " + str(err),
				details = {'severity' : 'FATAL'}
			) from err

	def auth_sasl_final(self, data):
		if self._scram is None:
			raise pg_exc.ProtocolError("SASL final before SASL start")
		try:
			self._scram.set_server_final(data.decode('utf-8'))
		except ScramException as err:
			raise pg_exc.AuthenticationError(
				"server signature verification failed: " + str(err),
				details = {'severity' : 'FATAL'}
			) from err
		finally:
			self._scram = None
		return None
