"""VillageMind: persistent memories for cozy village NPCs."""

__version__ = "0.1.0"
