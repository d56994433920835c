"""
Python extensions used by dxpq.
"""
