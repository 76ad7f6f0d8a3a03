from __future__ import annotations

import logging
import random

from community_sync.application.ports.storage import KeyValueStorage

logger = logging.getLogger(__name__)

DEFAULT_IDENTITY_KEY = "community-chat-username"

ADJECTIVES = (
    "Caffeinated", "Debugging", "Sleepless", "Googling", "Procrastinating",
    "StackOverflow", "Refactoring", "Compiling", "Panicking", "Typing",
    "Overthinking", "Yolo", "Rubber", "Async", "Deprecated",
    "Legacy", "Spaghetti", "Screaming", "Confused", "Enlightened",
)

NOUNS = (
    "Potato", "Llama", "Unicorn", "Wizard", "Ninja", "Duck",
    "Hamster", "Raccoon", "Burrito", "Muffin", "Waffle", "Narwhal",
    "Penguin", "Sloth", "Donut", "Pickle", "Banana", "Taco",
)


def generate_handle(rng: random.Random | None = None) -> str:
    """Adjective + noun + number, e.g. ``AsyncNarwhal417``."""
    rng = rng or random.Random()
    return f"{rng.choice(ADJECTIVES)}{rng.choice(NOUNS)}{rng.randrange(999)}"


def load_or_create_identity(
    storage: KeyValueStorage,
    *,
    key: str = DEFAULT_IDENTITY_KEY,
    rng: random.Random | None = None,
) -> str:
    """Return the persisted display handle, generating and saving one on first use."""
    handle = storage.get(key)
    if handle:
        return handle

    handle = generate_handle(rng)
    storage.set(key, handle)
    logger.info("Generated chat identity %s", handle)
    return handle
