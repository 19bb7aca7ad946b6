"""Base message classes and enum types used by aioscore."""

from dataclasses import dataclass
from enum import Enum

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin
from mashumaro.types import Discriminator


# Base message classes
@dataclass
class ClientMessage(DataClassORJSONMixin):
    """Base class for client messages."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        discriminator = Discriminator(field="type", include_subtypes=True)


@dataclass
class ServerMessage(DataClassORJSONMixin):
    """Base class for server messages."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        discriminator = Discriminator(field="type", include_subtypes=True)


# Enums


class Roles(Enum):
    """Roles a connection can take on after joining."""

    PLAYER = "player"
    """Renders a personalized cyclic score from pitch, interval and phase anchor."""
    CONDUCTOR = "conductor"
    """Issues control commands and observes the aggregate state."""
    MP3_PLAYER = "mp3-player"
    """Bound to one playback slot, plays the slot's file in sync."""
    MP3_CONDUCTOR = "mp3-conductor"
    """Observes all slots and starts/stops synchronized playback."""


class Room(Enum):
    """Broadcast rooms, one per role."""

    PLAYERS = "players"
    CONDUCTORS = "conductors"
    MP3_PLAYERS = "mp3-players"
    MP3_CONDUCTORS = "mp3-conductors"
