import pytest

from ghostwriter.songs.service import SongNotFoundError


def test_save_and_list(songs):
    songs.save_song("a@x.com", "One", "lofi", "la", social_pack={"tiktok": "caption"})
    songs.save_song("a@x.com", "Two", "trap", "da", album_art="https://img.test/2.png")

    listed = songs.list_songs("a@x.com")

    assert [s["title"] for s in listed] == ["Two", "One"]
    assert listed[0]["album_art"] == "https://img.test/2.png"
    assert listed[1]["social_pack"] == {"tiktok": "caption"}
    assert songs.count_songs("a@x.com") == 2


def test_update_existing_song(songs):
    saved = songs.save_song("a@x.com", "Draft", "lofi", "la")

    updated = songs.save_song("a@x.com", "Final", "lofi", "la la", existing_id=saved["id"])

    assert updated["id"] == saved["id"]
    assert [s["title"] for s in songs.list_songs("a@x.com")] == ["Final"]


def test_cannot_update_someone_elses_song(songs):
    saved = songs.save_song("a@x.com", "Mine", "", "")

    with pytest.raises(SongNotFoundError):
        songs.save_song("b@x.com", "Stolen", "", "", existing_id=saved["id"])

    assert songs.list_songs("a@x.com")[0]["title"] == "Mine"


def test_delete_song_checks_owner(songs):
    saved = songs.save_song("a@x.com", "Mine", "", "")

    with pytest.raises(SongNotFoundError):
        songs.delete_song("b@x.com", saved["id"])

    songs.delete_song("a@x.com", saved["id"])
    assert songs.count_songs("a@x.com") == 0


def test_delete_missing_song(songs):
    with pytest.raises(SongNotFoundError):
        songs.delete_song("a@x.com", 404)


def test_delete_all_songs(songs):
    songs.save_song("a@x.com", "One", "", "")
    songs.save_song("a@x.com", "Two", "", "")
    songs.save_song("b@x.com", "Other", "", "")

    assert songs.delete_all_songs("a@x.com") == 2
    assert songs.count_songs("b@x.com") == 1
