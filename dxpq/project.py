'project information'

#: project name
name = 'dxpq'

author = 'James William Pye <x@jwp.name>'
description = 'Pure Python PostgreSQL client driver (PQ v3, blocking and asyncio)'

# Set this to the target date when approaching a release.
date = None
tags = set(('features',))
version_info = (0, 4, 0)
version = '.'.join(map(str, version_info)) + (date is None and 'dev' or '')
