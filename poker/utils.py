"""
Utility functions for room codes, participant ids and avatars
"""
import random
import string
import uuid
from typing import Dict, Iterable, List

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits

AVATAR_THEMES: List[Dict[str, str]] = [
    # Animals
    {"emoji": "🐶", "color": "bg-amber-200", "name": "Puppy"},
    {"emoji": "🐱", "color": "bg-orange-200", "name": "Kitty"},
    {"emoji": "🐸", "color": "bg-green-200", "name": "Frog"},
    {"emoji": "🐼", "color": "bg-gray-300", "name": "Panda"},
    {"emoji": "🦊", "color": "bg-orange-300", "name": "Fox"},
    {"emoji": "🐺", "color": "bg-gray-400", "name": "Wolf"},
    {"emoji": "🐨", "color": "bg-gray-300", "name": "Koala"},
    {"emoji": "🦁", "color": "bg-yellow-300", "name": "Lion"},
    # Fantasy
    {"emoji": "🦄", "color": "bg-purple-200", "name": "Unicorn"},
    {"emoji": "🐉", "color": "bg-red-200", "name": "Dragon"},
    {"emoji": "🧙‍♂️", "color": "bg-indigo-300", "name": "Wizard"},
    {"emoji": "🧚‍♀️", "color": "bg-pink-200", "name": "Fairy"},
    # Characters
    {"emoji": "🤖", "color": "bg-blue-200", "name": "Robot"},
    {"emoji": "👾", "color": "bg-purple-300", "name": "Alien"},
    {"emoji": "🎭", "color": "bg-red-200", "name": "Actor"},
    {"emoji": "🎪", "color": "bg-yellow-200", "name": "Circus"},
    # Food
    {"emoji": "🍕", "color": "bg-orange-200", "name": "Pizza"},
    {"emoji": "🍔", "color": "bg-yellow-300", "name": "Burger"},
    {"emoji": "🍩", "color": "bg-pink-200", "name": "Donut"},
    {"emoji": "🌮", "color": "bg-orange-300", "name": "Taco"},
    # Ocean
    {"emoji": "🐙", "color": "bg-purple-200", "name": "Octopus"},
    {"emoji": "🐠", "color": "bg-blue-200", "name": "Fish"},
    {"emoji": "🦈", "color": "bg-gray-300", "name": "Shark"},
    {"emoji": "🐳", "color": "bg-blue-300", "name": "Whale"},
]


def generate_room_code(length: int = 6) -> str:
    """Generate a random uppercase alphanumeric room code"""
    return "".join(random.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def generate_participant_id() -> str:
    """Generate an opaque participant id"""
    return uuid.uuid4().hex


def normalize_room_code(code) -> str:
    return str(code or "").strip().upper()


def pick_avatar(used_emojis: Iterable[str] = ()) -> Dict[str, str]:
    """
    Pick a random avatar theme, avoiding emojis already used in the room.

    Falls back to the whole palette when every emoji is taken, so
    duplicates are possible only in that case.
    """
    used = set(used_emojis)
    available = [theme for theme in AVATAR_THEMES if theme["emoji"] not in used]
    return dict(random.choice(available or AVATAR_THEMES))
