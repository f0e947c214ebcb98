"""
HTTP clients for the supported e-commerce platforms.
"""
