"""Saved songs. Saving a song is the qualifying action for referrals."""

from typing import Any

from ghostwriter.accounts.service import ensure_user_and_profile
from ghostwriter.logging_config import get_logger
from ghostwriter.referral.service import qualify_and_reward
from ghostwriter.storage.db import Database, db
from ghostwriter.storage.models import SavedSong


class SongNotFoundError(LookupError):
    """Raised when a song does not exist or belongs to another user."""

    def __init__(self, song_id: int):
        self.song_id = song_id
        super().__init__(f"Song {song_id} not found")


def song_to_dict(song: SavedSong, email: str) -> dict[str, Any]:
    """Serialize a saved song for API responses."""
    return {
        "id": song.id,
        "user_email": email,
        "title": song.title,
        "suno_prompt": song.suno_prompt,
        "lyrics": song.lyrics,
        "album_art": song.album_art,
        "social_pack": song.social_pack,
        "created_at": song.created_at.isoformat(),
    }


class SongService:
    """Service for the user's song library."""

    def __init__(self, database: Database | None = None):
        """Initialize song service.

        Args:
            database: Database to use (defaults to the global instance)
        """
        self.db = database or db
        self.logger = get_logger(__name__)

    def save_song(
        self,
        email: str,
        title: str,
        suno_prompt: str,
        lyrics: str,
        album_art: str | None = None,
        social_pack: dict[str, Any] | None = None,
        existing_id: int | None = None,
    ) -> dict[str, Any]:
        """Create or update a song and qualify any pending referral.

        Args:
            email: Owner email
            title: Song title
            suno_prompt: Style prompt for the music model
            lyrics: Song lyrics
            album_art: Optional album art (URL or data URI)
            social_pack: Optional social media copy
            existing_id: Song to update instead of creating a new one

        Returns:
            Dict with id, user_email and referral_rewarded

        Raises:
            SongNotFoundError: If existing_id is not one of the user's songs
        """
        with self.db.session() as session:
            user, _ = ensure_user_and_profile(session, email)

            if existing_id is not None:
                song = session.query(SavedSong).filter(
                    SavedSong.id == existing_id,
                    SavedSong.user_id == user.id,
                ).first()
                if not song:
                    raise SongNotFoundError(existing_id)
                song.title = title
                song.suno_prompt = suno_prompt
                song.lyrics = lyrics
                song.album_art = album_art
                song.social_pack = social_pack
            else:
                song = SavedSong(
                    user_id=user.id,
                    title=title,
                    suno_prompt=suno_prompt,
                    lyrics=lyrics,
                    album_art=album_art,
                    social_pack=social_pack,
                )
                session.add(song)

            session.flush()
            rewarded = qualify_and_reward(session, user.id)

            self.logger.info(
                "song_saved",
                user_id=user.id,
                song_id=song.id,
                updated=existing_id is not None,
                referral_rewarded=rewarded,
            )
            return {"id": song.id, "user_email": user.email, "referral_rewarded": rewarded}

    def list_songs(self, email: str) -> list[dict[str, Any]]:
        """Get user's songs, newest first."""
        with self.db.session() as session:
            user, _ = ensure_user_and_profile(session, email)
            songs = (
                session.query(SavedSong)
                .filter(SavedSong.user_id == user.id)
                .order_by(SavedSong.created_at.desc(), SavedSong.id.desc())
                .all()
            )
            return [song_to_dict(song, user.email) for song in songs]

    def count_songs(self, email: str) -> int:
        with self.db.session() as session:
            user, _ = ensure_user_and_profile(session, email)
            return session.query(SavedSong).filter(SavedSong.user_id == user.id).count()

    def delete_song(self, email: str, song_id: int) -> None:
        """Delete one of the user's songs.

        Raises:
            SongNotFoundError: If the song is not the user's
        """
        with self.db.session() as session:
            user, _ = ensure_user_and_profile(session, email)
            deleted = session.query(SavedSong).filter(
                SavedSong.id == song_id,
                SavedSong.user_id == user.id,
            ).delete()
            if not deleted:
                raise SongNotFoundError(song_id)

        self.logger.info("song_deleted", user_id=user.id, song_id=song_id)

    def delete_all_songs(self, email: str) -> int:
        """Delete every song of the user.

        Returns:
            Number of deleted songs
        """
        with self.db.session() as session:
            user, _ = ensure_user_and_profile(session, email)
            deleted = session.query(SavedSong).filter(SavedSong.user_id == user.id).delete()

        self.logger.info("songs_deleted", user_id=user.id, count=deleted)
        return deleted


# Singleton instance
song_service = SongService()
