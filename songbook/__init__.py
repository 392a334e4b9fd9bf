"""
Songbook - a song catalog service.

Songbook keeps a catalog of songs (group, name, release date, lyrics, link)
behind an HTTP API for listing, verse lookup, deletion, creation enriched from
an external metadata source, and partial updates.
"""

__version__ = "0.1.0"
__author__ = "Songbook Contributors"
__license__ = "GPL-2.0"

from songbook.server import SongbookServer

__all__ = ["SongbookServer", "__version__"]
