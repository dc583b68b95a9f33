"""Song library."""

from ghostwriter.songs.service import SongNotFoundError, SongService, song_service

__all__ = ["SongNotFoundError", "SongService", "song_service"]
