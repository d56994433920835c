##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PQ version class used by startup messages.
"""
from .typstruct import ulong_pack

class Version(tuple):
	"""
	Version((major, minor)) -> Version

	Version serializing class.
	"""
	def __new__(subtype, major_minor):
		(major, minor) = major_minor
		major = int(major)
		minor = int(minor)
		return tuple.__new__(subtype, (major, minor))

	def __int__(self):
		return (self[0] << 16) | self[1]

	def bytes(self):
		return ulong_pack(int(self))

	def __repr__(self):
		return '%d.%d' %(self[0], self[1])

	@classmethod
	def parse(self, data):
		return self(divmod(int.from_bytes(data, 'big'), 0x10000))

CancelRequestCode = Version((1234, 5678))
NegotiateSSLCode = Version((1234, 5679))
V3_0 = Version((3, 0))
