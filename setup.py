#!/usr/bin/env python
##
# setup.py - dxpq distribution
##
import sys
import os

if sys.version_info[:2] < (3,8):
	sys.stderr.write(
		"ERROR: dxpq is for Python 3.8 and greater." + os.linesep
	)
	sys.stderr.write(
		"HINT: setup.py was ran using Python " + \
		'.'.join([str(x) for x in sys.version_info[:3]]) +
		': ' + sys.executable + os.linesep
	)
	sys.exit(1)

from setuptools import setup

# Project information is kept in `dxpq.project`; read it without importing
# the package and its dependencies.
project = {}
with open(os.path.join(os.path.dirname(os.path.abspath(__file__)), 'dxpq', 'project.py')) as f:
	exec(f.read(), project)

LONG_DESCRIPTION = """
dxpq is a pure Python driver for PostgreSQL speaking the version 3.0 frontend
and backend protocol. It provides blocking and asyncio connections, eager and
streaming cursors, prepared statements, and a pluggable type registry.

Authentication supports trust, cleartext, MD5, and SCRAM-SHA-256.
"""

CLASSIFIERS = [
	'Development Status :: 4 - Beta',
	'Intended Audience :: Developers',
	'License :: OSI Approved :: BSD License',
	'License :: OSI Approved :: MIT License',
	'License :: OSI Approved :: Attribution Assurance License',
	'License :: OSI Approved :: Python Software Foundation License',
	'Natural Language :: English',
	'Operating System :: OS Independent',
	'Programming Language :: Python',
	'Programming Language :: Python :: 3',
	'Topic :: Database',
	'Framework :: AsyncIO',
]

defaults = {
	'name' : project['name'],
	'version' : project['version'],
	'description' : project['description'],
	'long_description' : LONG_DESCRIPTION,
	'author' : 'James William Pye',
	'author_email' : 'x@jwp.name',
	'classifiers' : CLASSIFIERS,
	'python_requires' : '>=3.8',
	'packages' : [
		'dxpq',
		'dxpq.encodings',
		'dxpq.protocol',
		'dxpq.python',
		'dxpq.driver',
		'dxpq.test',
	],
	'install_requires' : [
		'scramp',
	],
	'extras_require' : {
		'test' : [
			'pytest',
		],
	},
	'test_suite' : 'dxpq.test.testall',
}

if __name__ == '__main__':
	setup(**defaults)
