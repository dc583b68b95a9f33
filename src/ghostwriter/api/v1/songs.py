"""Song library API v1 endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ghostwriter.api.deps import get_song_service, require_service_key
from ghostwriter.songs.service import SongService

router = APIRouter(
    prefix="/songs",
    tags=["songs"],
    dependencies=[Depends(require_service_key)],
)


class SaveSongRequest(BaseModel):
    """Song to create, or to update when ``id`` is set."""
    email: str
    id: int | None = None
    title: str = Field(..., min_length=1, max_length=255)
    suno_prompt: str = ""
    lyrics: str = ""
    album_art: str | None = None
    social_pack: dict[str, Any] | None = None


class SaveSongResponse(BaseModel):
    id: int
    user_email: str
    referral_rewarded: bool


class SongResponse(BaseModel):
    id: int
    user_email: str
    title: str
    suno_prompt: str
    lyrics: str
    album_art: str | None = None
    social_pack: dict[str, Any] | None = None
    created_at: str


@router.post("", response_model=SaveSongResponse)
def save_song(
    body: SaveSongRequest,
    songs: SongService = Depends(get_song_service),
):
    """Save a song. The first save qualifies a pending referral."""
    return songs.save_song(
        body.email,
        title=body.title,
        suno_prompt=body.suno_prompt,
        lyrics=body.lyrics,
        album_art=body.album_art,
        social_pack=body.social_pack,
        existing_id=body.id,
    )


@router.get("", response_model=list[SongResponse])
def list_songs(
    email: str = Query(...),
    songs: SongService = Depends(get_song_service),
):
    return songs.list_songs(email)


@router.get("/count")
def count_songs(
    email: str = Query(...),
    songs: SongService = Depends(get_song_service),
):
    return {"count": songs.count_songs(email)}


@router.delete("")
def delete_all_songs(
    email: str = Query(...),
    songs: SongService = Depends(get_song_service),
):
    """Delete every song of the user."""
    return {"deleted": songs.delete_all_songs(email)}


@router.delete("/{song_id}")
def delete_song(
    song_id: int,
    email: str = Query(...),
    songs: SongService = Depends(get_song_service),
):
    """Delete one song owned by the user."""
    songs.delete_song(email, song_id)
    return {"deleted": True}
