import re

from poker import utils
from poker.utils import (
    AVATAR_THEMES,
    generate_participant_id,
    generate_room_code,
    normalize_room_code,
    pick_avatar,
)


def test_room_code_is_six_uppercase_alphanumerics():
    for _ in range(50):
        assert re.fullmatch(r"[A-Z0-9]{6}", generate_room_code())


def test_participant_ids_are_unique():
    ids = {generate_participant_id() for _ in range(200)}
    assert len(ids) == 200


def test_normalize_room_code():
    assert normalize_room_code("  abc12x ") == "ABC12X"
    assert normalize_room_code(None) == ""


def test_palette_has_enough_distinct_avatars():
    emojis = [theme["emoji"] for theme in AVATAR_THEMES]
    assert len(emojis) >= 20
    assert len(set(emojis)) == len(emojis)


def test_pick_avatar_avoids_used_emojis():
    used = [theme["emoji"] for theme in AVATAR_THEMES[:-1]]
    for _ in range(20):
        assert pick_avatar(used)["emoji"] == AVATAR_THEMES[-1]["emoji"]


def test_pick_avatar_falls_back_to_full_palette(monkeypatch):
    used = [theme["emoji"] for theme in AVATAR_THEMES]
    seen = []
    monkeypatch.setattr(utils.random, "choice", lambda seq: seen.append(len(seq)) or seq[0])
    avatar = pick_avatar(used)
    assert seen == [len(AVATAR_THEMES)]
    assert avatar == AVATAR_THEMES[0]


def test_pick_avatar_returns_a_copy():
    avatar = pick_avatar()
    avatar["emoji"] = "x"
    assert all(theme["emoji"] != "x" for theme in AVATAR_THEMES)
