# essay_defense/api/deps.py
from typing import Generator

from essay_defense.services.grading_client import GradingClient
from essay_defense.services.voice_client import VoiceClient


def get_grading_client() -> Generator[GradingClient, None, None]:
    client = GradingClient()
    try:
        yield client
    finally:
        client.close()


def get_voice_client() -> Generator[VoiceClient, None, None]:
    client = VoiceClient()
    try:
        yield client
    finally:
        client.close()
