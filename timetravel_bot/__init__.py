"""Discord bot that turns Epic RPG time travel counts into server roles."""

__version__ = "1.0.0"
