"""Crawler for public Discord guild invite links.

Each cycle searches the web for pages advertising invites, resolves them to raw
invite links, verifies every link against Discord's invite API, merges the result
into the local catalog and republishes the whole catalog to a MeiliSearch index.
"""

__version__ = "0.3.0"
