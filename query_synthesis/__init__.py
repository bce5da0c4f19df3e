"""Business-intent to SQL synthesis service"""

__version__ = "1.0.0"
