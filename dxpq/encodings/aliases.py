##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Aliases for Python encodings that Postgres uses.
"""
import codecs

# dictionary of Postgres encoding names to Python encoding names
postgres_to_python = {
	'unicode' : 'utf_8',
	'utf8' : 'utf_8',
	'sql_ascii' : 'ascii',
	'euc_jp' : 'eucjp',
	'euc_cn' : 'euccn',
	'euc_kr' : 'euckr',
#	'euc_tw' : None, # N/A
#	'mule_internal' : None, # N/A
	'alt' : 'cp866',
	'win866' : 'cp866',
	'win874' : 'cp874',
	'koi8r' : 'koi8_r',
	'koi8u' : 'koi8_u',
	'tcvn' : 'windows_1258',
	'win1250' : 'windows_1250',
	'win1251' : 'windows_1251',
	'win1252' : 'windows_1252',
	'win1253' : 'windows_1253',
	'win1254' : 'windows_1254',
	'win1255' : 'windows_1255',
	'win1256' : 'windows_1256',
	'win1257' : 'windows_1257',
	'win1258' : 'windows_1258',
	'latin1' : 'iso8859_1',
	'latin2' : 'iso8859_2',
	'latin3' : 'iso8859_3',
	'latin4' : 'iso8859_4',
	'latin5' : 'iso8859_9',
	'latin6' : 'iso8859_10',
	'latin7' : 'iso8859_13',
	'latin8' : 'iso8859_14',
	'latin9' : 'iso8859_15',
	'latin10' : 'iso8859_16',
	'sjis' : 'shift_jis',
	'big5' : 'big5',
	'gbk' : 'gbk',
	'gb18030' : 'gb18030',
	'uhc' : 'cp949',
	'johab' : 'johab',
}

def get_python_name(encname):
	"""
	The name of the Python codec for the Postgres encoding, `None` if there
	is no such codec.
	"""
	name = postgres_to_python.get(encname.lower(), encname.lower())
	try:
		return codecs.lookup(name).name
	except LookupError:
		return None
