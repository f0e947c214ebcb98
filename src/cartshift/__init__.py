"""
cartshift: store data migration between e-commerce platforms.
"""

__version__ = "1.0.0"
