"""
Search tag trees and text for player profile candidates.

Player heads store their profile in one of two places depending on the game
version that wrote them:

- before the 1.20.5 item component rework, ``SkullOwner.Properties.textures``
  is a list of compounds whose ``Value`` string holds the profile
- with item components, ``minecraft:profile.properties`` is a list of
  compounds with ``name`` = "textures" and the profile in ``value``

Only the first element of either list is inspected; heads only ever carry a
single texture entry there. Any string encountered elsewhere in the tree is
searched for quoted base64 text, which finds profiles inside stored commands
(command blocks, written books, signs).
"""

import logging
import re
from typing import Callable, List, Optional

from .nbt import Tag, TagKind

logger = logging.getLogger(__name__)

Emit = Callable[[str], None]

# Quoted base64, optionally with escaped quotes as found in command JSON.
# Adapted from https://stackoverflow.com/a/475217 with the padded block made optional
BASE64_PATTERN = re.compile(
    r"""\\?["'](?=[A-Za-z0-9+/])((?:[A-Za-z0-9+/]{4})*(?:[A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=)?)\\?["']"""
)

_PROFILE_LIST_KINDS = frozenset({TagKind.STRING, TagKind.LIST, TagKind.COMPOUND})

DEFAULT_MAX_NODES = 10_000_000


class TextScanner:
    """Finds quoted base64 tokens in arbitrary text."""

    pattern = BASE64_PATTERN

    def scan(self, text: str, emit: Emit) -> None:
        for match in self.pattern.finditer(text):
            emit(match.group(1))

    def find_all(self, text: str) -> List[str]:
        tokens: List[str] = []
        self.scan(text, tokens.append)
        return tokens


class TagTreeScanner:
    """
    Walks a tag tree and emits profile candidates.

    The walk is iterative so arbitrarily deep trees can't exhaust the Python
    stack. Trees are acyclic, so no visited set is kept; ``max_nodes`` bounds
    the work done on a single pathological tree.
    """

    def __init__(
        self,
        text_scanner: Optional[TextScanner] = None,
        max_nodes: int = DEFAULT_MAX_NODES,
    ):
        self.text_scanner = text_scanner if text_scanner is not None else TextScanner()
        self.max_nodes = max_nodes

    def scan(self, root: Tag, emit: Emit) -> None:
        stack = [root]
        visited = 0
        while stack:
            visited += 1
            if visited > self.max_nodes:
                logger.warning(
                    f"Stopped scanning tag tree '{root.name}' after {self.max_nodes} tags"
                )
                return

            tag = stack.pop()
            kind = tag.kind
            if kind is TagKind.COMPOUND:
                stack.extend(tag.value.values())
            elif kind is TagKind.LIST:
                self._scan_list(tag, stack, emit)
            elif kind is TagKind.STRING:
                self.text_scanner.scan(tag.value, emit)

    def _scan_list(self, tag: Tag, stack: List[Tag], emit: Emit) -> None:
        if tag.element_kind not in _PROFILE_LIST_KINDS:
            return

        if tag.name == "textures":
            value = self._first_compound_string(tag, "Value")
            if value is not None:
                emit(value)
        elif tag.name == "properties":
            name = self._first_compound_string(tag, "name")
            value = self._first_compound_string(tag, "value")
            if name == "textures" and value is not None:
                emit(value)
        else:
            stack.extend(tag.value)

    @staticmethod
    def _first_compound_string(tag: Tag, key: str) -> Optional[str]:
        if not tag.value:
            return None
        child = tag.value[0].get(key)
        if child is None or child.kind is not TagKind.STRING:
            return None
        return child.value

    def find_all(self, root: Tag) -> List[str]:
        candidates: List[str] = []
        self.scan(root, candidates.append)
        return candidates
