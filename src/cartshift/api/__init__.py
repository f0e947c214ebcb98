"""
HTTP API for cartshift.
"""
