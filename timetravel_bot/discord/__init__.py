from .client import TimeTravelDiscordBot

__all__ = ["TimeTravelDiscordBot"]
