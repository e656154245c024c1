"""Shared fixtures: a scripted random source and a scripted console."""

import pytest

from dice_game import Die


class ScriptedRandomSource:
    """Replays a fixed list of draws. Keys are deterministic but distinct."""

    def __init__(self, draws):
        self.draws = list(draws)
        self.calls = []
        self._counter = 0

    def token_bytes(self, size: int) -> bytes:
        self._counter += 1
        return self._counter.to_bytes(size, "big")

    def randbelow(self, upper: int) -> int:
        value = self.draws.pop(0)
        assert 0 <= value < upper, f"scripted draw {value} outside 0..{upper - 1}"
        self.calls.append(upper)
        return value


class ScriptedUI:
    """Stands in for GameUI, recording everything the session shows."""

    def __init__(self, choices, confirms=()):
        self.choices = list(choices)
        self.confirms = list(confirms)
        self.events = []
        self.prompts = []

    @property
    def messages(self):
        return [e[1] for e in self.events if e[0] == "message"]

    def display_message(self, text: str):
        self.events.append(("message", text))

    def display_hmac(self, hmac_hex: str):
        self.events.append(("hmac", hmac_hex))

    def display_key_and_move(self, key: bytes, move: int, name: str = "My choice"):
        self.events.append(("disclose", key, move, name))

    def confirm(self, prompt: str) -> bool:
        return self.confirms.pop(0)

    def get_user_choice(self, prompt: str, options, allow_help: bool = True) -> str:
        self.prompts.append((prompt, list(options), allow_help))
        self.events.append(("prompt", prompt))
        return self.choices.pop(0)


@pytest.fixture
def canonical_dice():
    return (
        Die((2, 2, 4, 4, 9, 9)),
        Die((1, 1, 6, 6, 8, 8)),
        Die((3, 3, 5, 5, 7, 7)),
    )


@pytest.fixture
def scripted_source():
    return ScriptedRandomSource


@pytest.fixture
def scripted_ui():
    return ScriptedUI
