##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PQ version 3.0 client transactions.

A transaction is a sans-I/O state machine for one request/response exchange.
Its `state` attribute is a pair, `(direction, method)`:

 (Sending, sent)
  The `messages` attribute holds the messages to write; call `sent()` once
  they were written.
 (Receiving, put)
  Call `put(messages)` with the `(type, body)` pairs read from the server.
  Returns the number of messages consumed; the remainder belong to the next
  transaction.
 Complete
  The exchange is over. `fatal` is `None` when no error occurred, `False`
  for a recoverable ERROR, and `True` when the connection is unusable.
  `error_message` holds the `element.Error` describing the failure.
"""
import os
from abc import ABCMeta, abstractmethod
from collections import deque
from pprint import pformat

from .. import exceptions as pg_exc
from . import element3 as element

Receiving = True
Sending = False
Complete = (None, None)

AsynchronousMap = {
	element.Notice.type : element.Notice,
	element.Notify.type : element.Notify,
	element.ShowOption.type : element.ShowOption,
}

fatal_severities = (b'FATAL', b'PANIC')

def parse(cls, data):
	'Parse a message body, reporting malformed data as a protocol violation.'
	return element.parse_body(cls.type, data, {cls.type : cls})

def is_fatal(em):
	return (em.get('severity') or b'').upper() in fatal_severities

class Transaction(object, metaclass = ABCMeta):
	state = None
	fatal = None
	error_message = None
	#: The transaction status of the last ReadyForQuery received.
	last_ready = None
	#: The exception that terminated the transaction, if any.
	exception = None

	@abstractmethod
	def messages_received(self):
		"""
		Return an iterable to the messages received.
		"""

	def asyncs(self):
		"""
		Return and forget the asynchronous messages(notices, notifications,
		parameter status) received so far.
		"""
		r = self._asyncs
		self._asyncs = []
		return r

	def fail(self, exception, error_message):
		"""
		Terminate the transaction with the given client exception.
		Used when the exchange cannot continue; the connection is unusable.
		"""
		self.exception = exception
		self.error_message = error_message
		self.fatal = True
		self.state = Complete

class Negotiation(Transaction):
	"""
	Negotiation is a protocol transaction used to manage the initial stage of a
	connection to PostgreSQL.

	This transaction revolves around the `state_machine` method which is a
	generator that takes individual messages and progresses the state of the
	connection negotiation. Authentication responses are produced by the
	given `credentials` provider(see `dxpq.protocol.negotiate3`).
	"""
	asynchook = AsynchronousMap

	def __init__(self,
		startup_message : "startup message to send",
		credentials : "credential provider; None for trust authentication",
	):
		self.startup_message = startup_message
		self.credentials = credentials
		self._asyncs = []
		self.received = []
		self.authtype = None
		self.killinfo = None
		self.authok = None
		self.last_ready = None
		self.machine = self.state_machine()
		self.messages = next(self.machine)
		self.state = (Sending, self.sent)

	def __repr__(self):
		s = type(self).__module__ + "." + type(self).__name__
		s += pformat((self.startup_message, self.credentials)).lstrip()
		return s

	def messages_received(self):
		return self.received

	def sent(self):
		"""
		Empty messages and switch state to receiving.

		This is called by the user after the `messages` have been sent to the
		remote end. That is, this merely finalizes the "Sending" state.
		"""
		self.messages = ()
		self.state = (Receiving, self.put_messages)

	def put_messages(self, messages):
		# if an Error message was found, complete and leave.
		count = 0
		try:
			for x in messages:
				count += 1
				self.received.append(x)
				if x[0] is element.Error.type:
					self.error_message = parse(element.Error, x[1])
					self.fatal = True
					self.state = Complete
					return count
				elif x[0] in self.asynchook:
					self._asyncs.append(parse(self.asynchook[x[0]], x[1]))
				else:
					out_messages = self.machine.send(x)
					if out_messages:
						self.messages = out_messages
						self.state = (Sending, self.sent)
						break
		except StopIteration:
			# generator is complete, negotiation is complete..
			self.state = Complete
		return count

	def _expect(self, x, cls):
		if x[0] is not cls.type:
			raise pg_exc.ProtocolError(
				"received message of type {0!r}, but expected {1!r}".format(
					x[0], cls.type
				),
				details = {'severity' : 'FATAL'}
			)
		return parse(cls, x[1])

	def _credentials(self, mechanism, challenge):
		if self.credentials is None:
			raise pg_exc.AuthenticationError(
				"server requested %s authentication, but no credentials were given" %(
					mechanism,
				),
				details = {'severity' : 'FATAL'}
			)
		return self.credentials(mechanism, challenge)

	def state_machine(self):
		"""
		Generator keeping the state of the connection negotiation process.
		"""
		x = (yield (self.startup_message,))

		while True:
			auth = self._expect(x, element.Authentication)
			req = auth.request
			if req == element.AuthRequest_OK:
				break
			self.authtype = auth

			if req == element.AuthRequest_Cleartext:
				response = element.Password(self._credentials('cleartext', None))
			elif req == element.AuthRequest_MD5:
				response = element.Password(self._credentials('md5', auth.data))
			elif req == element.AuthRequest_SASL:
				mechanism, data = self._credentials('sasl', auth.mechanisms())
				response = element.SASLInitialResponse(mechanism, data)
			elif req == element.AuthRequest_SASLContinue:
				response = element.SASLResponse(
					self._credentials('sasl-continue', auth.data)
				)
			elif req == element.AuthRequest_SASLFinal:
				self._credentials('sasl-final', auth.data)
				# AuthenticationOk follows without a response.
				x = (yield None)
				continue
			else:
				##
				# The remaining authentication types need libraries that take
				# control of the wire(GSS, SSPI) or are obsolete(crypt).
				raise pg_exc.AuthenticationMethodError(
					"unsupported authentication request %r(%d)" %(
						element.AuthNameMap.get(req, '<unknown>'), req,
					),
					details = {
						'severity' : 'FATAL',
						'hint' : "dxpq supports: SCRAM-SHA-256, MD5, cleartext, and trust.",
					}
				)
			x = (yield (response,))
		self.authok = auth

		# Done authenticating, pick up the killinfo and the ready message.
		while True:
			x = (yield None)
			if x[0] is element.KillInformation.type:
				self.killinfo = parse(element.KillInformation, x[1])
			elif x[0] is element.Ready.type:
				self.last_ready = parse(element.Ready, x[1]).xact_state
				return
			else:
				raise pg_exc.ProtocolError(
					"received message of type {0!r}, but expected {1!r} or {2!r}".format(
						x[0], element.KillInformation.type, element.Ready.type,
					),
					details = {'severity' : 'FATAL'}
				)

class Instruction(Transaction):
	"""
	Manage the state of a sequence of request messages to be sent to the server.
	It provides the messages to be sent and takes the response messages for order
	and integrity validation:

		Instruction([dxpq.protocol.element3.Message(), ..])

	A message must be one of:

		* `dxpq.protocol.element3.Query`
		* `dxpq.protocol.element3.Parse`
		* `dxpq.protocol.element3.Bind`
		* `dxpq.protocol.element3.Describe`
		* `dxpq.protocol.element3.Close`
		* `dxpq.protocol.element3.Execute`
		* `dxpq.protocol.element3.Synchronize`
		* `dxpq.protocol.element3.Flush`

	Processed messages are appended to the `completed` deque in the order they
	were received; consumers may pop them off the left as they arrive.
	"""
	# The hook is the dictionary that provides the path for the
	# current working message. The received messages ultimately come
	# through here and get parsed using the associated class.
	# Messages that complete a command are paired with None.
	hook = {
		element.Query.type : (
			# 0: Start.
			{
				element.TupleDescriptor.type : (element.TupleDescriptor, 1),
				element.Null.type : (element.Null, 0),
				element.Complete.type : (element.Complete, 0),
				element.Ready.type : (element.Ready, None),
			},
			# 1: Row Data.
			{
				element.Tuple.type : (element.Tuple, 1),
				element.Complete.type : (element.Complete, 0),
			},
		),

		# Extended Protocol
		element.Parse.type : (
			{element.ParseComplete.type : (element.ParseComplete, None)},
		),

		element.Bind.type : (
			{element.BindComplete.type : (element.BindComplete, None)},
		),

		element.Describe.type : (
			# Statements are described by their parameters first.
			{
				element.AttributeTypes.type : (element.AttributeTypes, 1),
				element.TupleDescriptor.type : (element.TupleDescriptor, None),
				element.NoData.type : (element.NoData, None),
			},
			# NoData or TupleDescriptor
			{
				element.NoData.type : (element.NoData, None),
				element.TupleDescriptor.type : (element.TupleDescriptor, None),
			},
		),

		element.Close.type : (
			{element.CloseComplete.type : (element.CloseComplete, None)},
		),

		element.Execute.type : (
			# 0: Start.
			{
				element.Tuple.type : (element.Tuple, 1),
				element.Null.type : (element.Null, None),
				element.Complete.type : (element.Complete, None),
			},
			# 1: Row Data.
			{
				element.Tuple.type : (element.Tuple, 1),
				element.Suspension.type : (element.Suspension, None),
				element.Complete.type : (element.Complete, None),
			},
		),

		element.Synchronize.type : (
			{element.Ready.type : (element.Ready, None)},
		),

		element.Flush.type : None,
	}

	# This map provides parsers for asynchronous messages
	asynchook = AsynchronousMap

	def __init__(self, commands):
		"""
		Initialize an `Instruction` instance using the given commands.
		"""
		# Commands are accessed by index.
		self.commands = tuple(commands)

		for cmd in self.commands:
			if cmd.type not in self.hook:
				raise TypeError(
					"unknown message type for PQ 3.0 protocol", cmd.type
				)
		self.reset()

	def __repr__(self):
		return '%s.%s(%s%s)' %(
			type(self).__module__,
			type(self).__name__,
			os.linesep,
			pformat(self.commands)
		)

	def reset(self):
		"""
		Reset the `Transaction` instance to its initial state.
		"""
		self.completed = deque()
		self._asyncs = []
		self.position = (0, 0)
		self.messages = self.commands
		self.state = (Sending, self.sent)
		self.fatal = None
		self.error_message = None
		self.exception = None
		self.last_ready = None

	def messages_received(self):
		'Received and validated messages that were not consumed'
		return self.completed

	def sent(self):
		"""
		Empty messages and switch state to receiving.

		This is called by the user after the `messages` have been sent to the
		remote end. That is, this merely finalizes the "Sending" state.
		"""
		self.messages = ()
		self.state = (Receiving, self.put)

	def _next_command(self, offset):
		# Skip past any commands whose hook is None (FlushMessage)
		offset += 1
		while offset < len(self.commands) and self.hook[self.commands[offset].type] is None:
			offset += 1
		return offset

	def put(self, messages):
		"""
		Attempt to forward the state of the transaction using the given
		messages. "put" messages into the transaction for processing.
		"""
		offset, current_step = self.position
		cmd = self.commands[offset]
		paths = self.hook[cmd.type]
		count = 0

		for x in messages:
			count += 1
			# For the current message, get the path for the message
			# and whether it signals the end of the current command
			cls, next_step = paths[current_step].get(x[0], (None, None))

			if cls is None:
				# No path for message type, could be a protocol error.
				if x[0] is element.Error.type:
					em = parse(element.Error, x[1])
					fatal = is_fatal(em)
					if fatal or self.error_message is None:
						self.error_message = em
						self.fatal = fatal
					self.completed.append(em)
					if fatal:
						# The server closes the connection after a FATAL.
						self.state = Complete
						return count
					# Error occurred, so sync up with backend if
					# the current command is not 'Q' as it implies a sync.
					if cmd.type is not element.Query.type:
						for offset in range(offset, len(self.commands)):
							if self.commands[offset] is element.SynchronizeMessage:
								break
						else:
							##
							# It's done.
							self.position = (len(self.commands), 0)
							self.state = Complete
							return count
					##
					# Not quite done, the state(Ready) message still
					# needs to be received.
					cmd = self.commands[offset]
					paths = self.hook[cmd.type]
					current_step = 0
				elif x[0] in self.asynchook:
					self._asyncs.append(parse(self.asynchook[x[0]], x[1]))
				else:
					##
					# Protocol violation
					raise pg_exc.ProtocolError(
						"expected message of types %r, " \
						"but received %r instead" % (
							tuple(paths[current_step].keys()), x[0]
						),
						details = {'severity': 'FATAL'}
					)
			else:
				# Valid message
				r = parse(cls, x[1])
				self.completed.append(r)

				if next_step is not None:
					current_step = next_step
				else:
					current_step = 0
					if r.type is element.Ready.type:
						self.last_ready = r.xact_state
					# Done with the current command. Increment the offset, and
					# try to process the new command with the remaining data.
					offset = self._next_command(offset)
					if offset == len(self.commands):
						# Done with transaction.
						self.position = (offset, 0)
						self.state = Complete
						return count
					cmd = self.commands[offset]
					paths = self.hook[cmd.type]

		# Store the state for the next transition.
		self.position = (offset, current_step)
		return count

class Closing(Transaction):
	"""
	Send the Terminate message. Complete once it was written.
	"""
	def __init__(self):
		self._asyncs = []
		self.messages = (element.DisconnectMessage,)
		self.state = (Sending, self.sent)

	def __repr__(self):
		return type(self).__module__ + '.' + type(self).__name__ + '()'

	def messages_received(self):
		return ()

	def sent(self):
		self.messages = ()
		self.state = Complete
