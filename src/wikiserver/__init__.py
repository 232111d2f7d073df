"""wikiserver — a small wiki with a browser UI and a JSON API.

Pages live behind one asynchronous page store. Two entry surfaces reach it:
session-authenticated HTML pages and bearer-token JSON endpoints. Both share
one permission model (create / update / delete claims derived from roles).
"""

__version__ = "0.1.0"
