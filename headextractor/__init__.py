"""
HeadExtractor - find player head texture profiles in Minecraft worlds.

Scans region files, player data and data packs for base64-encoded player
profiles and returns the set of profiles that decode to a skin texture.
"""

__version__ = "1.0.0"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
