from __future__ import annotations

import random


WORDS_EN = [
    "apple", "beach", "winter", "music", "coffee", "school", "dragon", "rain",
    "pizza", "moon", "forest", "doctor", "birthday", "train", "chocolate",
    "football", "castle", "ocean", "camera", "summer", "garden", "rocket",
    "library", "money", "island", "computer", "wedding", "cat", "fire",
    "mountain", "breakfast", "holiday", "ghost", "robot", "jungle", "circus",
    "snow", "kitchen", "hospital", "treasure",
]

WORDS_ID = [
    "apel", "pantai", "hujan", "musik", "kopi", "sekolah", "naga", "bulan",
    "hutan", "dokter", "ulang tahun", "kereta", "cokelat", "sepak bola",
    "istana", "laut", "kamera", "kebun", "roket", "perpustakaan", "uang",
    "pulau", "komputer", "pernikahan", "kucing", "api", "gunung", "sarapan",
    "liburan", "hantu", "robot", "rimba", "sirkus", "dapur", "rumah sakit",
    "harta karun", "nasi goreng", "batik", "sawah", "mudik",
]

WORDS: dict[str, list[str]] = {
    "en": WORDS_EN,
    "id": WORDS_ID,
}


def pick_words(language: str, count: int) -> list[str]:
    """Draws up to ``count`` distinct words in random order."""
    pool = WORDS.get(language) or WORDS_EN
    return random.sample(pool, min(max(0, count), len(pool)))
