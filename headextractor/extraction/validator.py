"""
Player profile validation.

A profile is base64-encoded JSON of the form
``{"textures": {"SKIN": {"url": "..."}}}`` plus optional extra fields.
"""

import base64
import binascii
import json
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class ProfileValidator:
    """Checks that a candidate token decodes to a player profile with a skin."""

    def skin_url(self, token: str) -> Optional[str]:
        """
        Return the skin URL of a profile token, or None if it isn't a profile.

        Never raises for malformed tokens.
        """
        try:
            # Java's decoder accepts missing padding, so restore it
            padded = token + "=" * (-len(token) % 4)
            profile = json.loads(base64.b64decode(padded, validate=True))
        except (binascii.Error, ValueError, RecursionError) as e:
            logger.debug(f"Rejected candidate {token[:32]!r}: {e}")
            return None

        if not isinstance(profile, dict):
            return None

        textures = profile.get("textures")
        if not isinstance(textures, dict):
            return None

        skin = textures.get("SKIN")
        if not isinstance(skin, dict):
            return None

        url = skin.get("url")
        if not isinstance(url, str):
            return None
        return url

    def validate(self, token: str) -> bool:
        return self.skin_url(token) is not None
