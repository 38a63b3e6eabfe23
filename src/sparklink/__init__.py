"""SparkLink — link-in-bio profile hosting backend.

Accounts, sessions, public profiles made of pages, and the
verification badge workflow reviewed by admins.
"""

__version__ = "1.0.0"
