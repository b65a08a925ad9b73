"""
Key definitions and key-combination resolution for ``Input.dispatchKeyEvent``.

A key name is either a single named key (``Enter``, ``ArrowDown``, ``a``) or a
``+``-joined combination whose last part is the main key and whose other parts
are modifiers (``ControlOrMeta+a``, ``Shift+Tab``). ``ControlOrMeta`` resolves
to ``Meta`` on macOS and to ``Control`` everywhere else.
"""

import string
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from tabpilot.agents.exceptions import UnsupportedKeyError

# CDP modifier bitmask
MODIFIER_BITS = {
    "Alt": 1,
    "Control": 2,
    "Meta": 4,
    "Shift": 8,
}

CONTROL_OR_META = "ControlOrMeta"


@dataclass(frozen=True)
class KeyDefinition:
    """Everything CDP needs to synthesize one physical key."""

    key: str
    code: str
    key_code: int
    text: Optional[str] = None

    @property
    def is_modifier(self) -> bool:
        return self.key in MODIFIER_BITS


def _build_key_definitions() -> Dict[str, KeyDefinition]:
    definitions = [
        KeyDefinition("Enter", "Enter", 13, "\r"),
        KeyDefinition("Tab", "Tab", 9),
        KeyDefinition("Escape", "Escape", 27),
        KeyDefinition("Backspace", "Backspace", 8),
        KeyDefinition("Delete", "Delete", 46),
        KeyDefinition("Insert", "Insert", 45),
        KeyDefinition(" ", "Space", 32, " "),
        KeyDefinition("ArrowUp", "ArrowUp", 38),
        KeyDefinition("ArrowDown", "ArrowDown", 40),
        KeyDefinition("ArrowLeft", "ArrowLeft", 37),
        KeyDefinition("ArrowRight", "ArrowRight", 39),
        KeyDefinition("Home", "Home", 36),
        KeyDefinition("End", "End", 35),
        KeyDefinition("PageUp", "PageUp", 33),
        KeyDefinition("PageDown", "PageDown", 34),
        KeyDefinition("Shift", "ShiftLeft", 16),
        KeyDefinition("Control", "ControlLeft", 17),
        KeyDefinition("Alt", "AltLeft", 18),
        KeyDefinition("Meta", "MetaLeft", 91),
    ]
    definitions += [KeyDefinition(f"F{n}", f"F{n}", 111 + n) for n in range(1, 13)]
    definitions += [
        KeyDefinition(letter, f"Key{letter.upper()}", ord(letter.upper()), letter)
        for letter in string.ascii_lowercase
    ]
    definitions += [
        KeyDefinition(digit, f"Digit{digit}", ord(digit), digit) for digit in string.digits
    ]

    table = {definition.key: definition for definition in definitions}
    table["Space"] = table[" "]
    return table


KEY_DEFINITIONS: Dict[str, KeyDefinition] = _build_key_definitions()

# Alternate spellings accepted from the model
KEY_ALIASES = {
    "esc": "Escape",
    "return": "Enter",
    "ctrl": "Control",
    "cmd": "Meta",
    "command": "Meta",
    "option": "Alt",
    "up": "ArrowUp",
    "down": "ArrowDown",
    "left": "ArrowLeft",
    "right": "ArrowRight",
    "controlormeta": CONTROL_OR_META,
}

_LOWERCASE_INDEX = {name.lower(): name for name in KEY_DEFINITIONS}

# macOS editing shortcuts only take effect when sent with an explicit command
MAC_EDITING_COMMANDS = {
    ("Meta", "a"): "selectAll",
    ("Meta", "c"): "copy",
    ("Meta", "x"): "cut",
    ("Meta", "v"): "paste",
    ("Meta", "z"): "undo",
}


@dataclass(frozen=True)
class KeyCombo:
    """A resolved key combination: modifiers in press order plus the main key."""

    modifiers: List[KeyDefinition]
    key: KeyDefinition

    @property
    def modifier_mask(self) -> int:
        mask = 0
        for modifier in self.modifiers:
            mask |= MODIFIER_BITS[modifier.key]
        return mask

    def describe(self) -> str:
        return "+".join([m.key for m in self.modifiers] + [self.key.key])


def is_mac(platform: Optional[str] = None) -> bool:
    return (platform or sys.platform) == "darwin"


def _lookup(name: str, platform: Optional[str]) -> KeyDefinition:
    if name in KEY_DEFINITIONS:
        return KEY_DEFINITIONS[name]

    canonical = KEY_ALIASES.get(name.lower()) or _LOWERCASE_INDEX.get(name.lower())
    if canonical == CONTROL_OR_META:
        canonical = "Meta" if is_mac(platform) else "Control"
    if canonical is None or canonical not in KEY_DEFINITIONS:
        raise UnsupportedKeyError(name)
    return KEY_DEFINITIONS[canonical]


def resolve_key_combo(combo: str, platform: Optional[str] = None) -> KeyCombo:
    """
    Resolve a key name or ``+``-combination to concrete key definitions.

    Args:
        combo: e.g. ``"Enter"``, ``"ControlOrMeta+a"``, ``"Shift+Tab"``
        platform: ``sys.platform`` value to resolve ``ControlOrMeta`` for;
            defaults to the running interpreter's platform

    Raises:
        UnsupportedKeyError: If any part has no key definition
    """
    if combo is None or not str(combo).strip():
        raise UnsupportedKeyError(str(combo))

    combo = str(combo).strip()
    # "+" on its own, or as the main key of a combination, is not supported
    parts = combo.split("+")
    if any(part == "" for part in parts):
        raise UnsupportedKeyError(combo)

    resolved = [_lookup(part.strip(), platform) for part in parts]
    *modifiers, main = resolved
    for modifier in modifiers:
        if not modifier.is_modifier:
            raise UnsupportedKeyError(combo)
    return KeyCombo(modifiers=modifiers, key=main)


def _key_event(event_type: str, definition: KeyDefinition, modifiers: int) -> Dict[str, Any]:
    return {
        "type": event_type,
        "key": definition.key,
        "code": definition.code,
        "windowsVirtualKeyCode": definition.key_code,
        "nativeVirtualKeyCode": definition.key_code,
        "modifiers": modifiers,
    }


def build_key_events(combo: str, platform: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Build the ordered ``Input.dispatchKeyEvent`` parameter list for a key combo.

    Modifiers go down in order, the main key is pressed and released, then the
    modifiers come up in reverse order. The modifier bitmask reflects the keys
    held at each step.
    """
    resolved = resolve_key_combo(combo, platform)
    events: List[Dict[str, Any]] = []
    mask = 0

    for modifier in resolved.modifiers:
        mask |= MODIFIER_BITS[modifier.key]
        events.append(_key_event("rawKeyDown", modifier, mask))

    main = resolved.key
    # Text is only inserted when no modifier other than Shift is held.
    produces_text = main.text is not None and not (mask & ~MODIFIER_BITS["Shift"])
    down = _key_event("keyDown" if produces_text else "rawKeyDown", main, mask)
    if produces_text:
        text = main.text.upper() if mask & MODIFIER_BITS["Shift"] and main.text.isalpha() else main.text
        down["text"] = text
        down["unmodifiedText"] = main.text
    if is_mac(platform):
        command = MAC_EDITING_COMMANDS.get(
            (resolved.modifiers[-1].key if resolved.modifiers else "", main.key)
        )
        if command and len(resolved.modifiers) == 1:
            down["commands"] = [command]
    events.append(down)
    events.append(_key_event("keyUp", main, mask))

    for modifier in reversed(resolved.modifiers):
        mask &= ~MODIFIER_BITS[modifier.key]
        events.append(_key_event("keyUp", modifier, mask))

    return events


def supported_key_names() -> List[str]:
    """Names accepted by :func:`resolve_key_combo`, for help output."""
    names = [name for name in KEY_DEFINITIONS if name != " "]
    names.append(CONTROL_OR_META)
    return names
