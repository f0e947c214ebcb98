"""
Process-level configuration and the command line interface.
"""
