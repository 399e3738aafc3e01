"""Mirror API Python Quick Start.

A small web application that authorizes users with OAuth2 and inserts
cards into their Glass timeline through the Google Mirror API.
"""

from mirror_quickstart.__version__ import __version__

__all__ = ["__version__"]
