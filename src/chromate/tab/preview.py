"""Decoding of CDP RemoteObject values sent from the page.

Pages talk to chromate through ``console.debug(arg)``. The argument arrives as a
CDP ``RemoteObject``: strings carry their full value, but live objects and arrays
only arrive as a *preview* whose property values are strings truncated by the
browser (currently to 100 characters, ending in an ellipsis). Decoding is lossy
on truncation and never raises; pages that need exact large payloads should
send ``JSON.stringify(...)`` output instead of a live object.
"""

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

PRIMITIVE_TYPES = ('number', 'boolean', 'bigint', 'undefined', 'symbol')

# Special numbers the protocol reports via unserializableValue
_UNSERIALIZABLE = {
    'NaN': float('nan'),
    'Infinity': float('inf'),
    '-Infinity': float('-inf'),
    '-0': -0.0,
}


def parse_json_or_raw(value: Any) -> Any:
    """JSON-parse ``value`` if it is a string, otherwise return it unchanged.

    Malformed JSON returns the original string.
    """
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except (ValueError, TypeError):
        return value


def _to_number(text: str) -> int | float | str:
    if text in _UNSERIALIZABLE:
        return _UNSERIALIZABLE[text]
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


def decode_preview_value(prop: dict[str, Any]) -> Any:
    """Convert one ``PropertyPreview`` to a native value by its declared type."""
    prop_type = prop.get('type')
    value = prop.get('value')
    if prop_type == 'number':
        return _to_number(value) if isinstance(value, str) else value
    if prop_type == 'boolean':
        return value == 'true' if isinstance(value, str) else bool(value)
    if prop_type == 'undefined':
        return None
    if prop_type == 'object' and prop.get('subtype') == 'null':
        return None
    if prop_type == 'bigint' and isinstance(value, str):
        return _to_number(value.rstrip('n'))
    return value


def unmirror_array(preview: dict[str, Any] | None) -> list[Any]:
    """Rebuild a native list from an array's object preview.

    Only index properties are used (``length`` and other named properties are
    skipped). Nested objects keep their preview text (e.g. ``'Object'`` or
    ``'Array(2)'``). An overflowing preview yields a truncated list.
    """
    if not preview:
        return []
    items: list[tuple[int, Any]] = []
    for prop in preview.get('properties') or []:
        name = prop.get('name', '')
        if not name.isdigit():
            continue
        items.append((int(name), decode_preview_value(prop)))
    items.sort(key=lambda item: item[0])
    return [value for _, value in items]


def parse_preview(preview: dict[str, Any] | None) -> dict[str, Any]:
    """Turn an object preview into a dict.

    The ``data`` property gets the JSON-parse-or-raw rule; every other property
    keeps the literal preview value.
    """
    out: dict[str, Any] = {}
    if not preview:
        return out
    for prop in preview.get('properties') or []:
        name = prop.get('name')
        if name is None:
            continue
        if name == 'data':
            out[name] = parse_json_or_raw(prop.get('value'))
        else:
            out[name] = prop.get('value')
    return out


def decode_remote_object(remote: dict[str, Any] | None) -> Any:
    """Decode a ``RemoteObject`` into a native value. Never raises.

    Args:
        remote: The RemoteObject, typically ``event['args'][0]`` of a
            ``Runtime.consoleAPICalled`` event.

    Returns:
        A native scalar, list or dict. Falls back to the raw value or
        description when the shape is not recognized.
    """
    if not remote:
        return None
    try:
        remote_type = remote.get('type')
        subtype = remote.get('subtype')

        if remote_type == 'string':
            return parse_json_or_raw(remote.get('value'))

        if remote_type in PRIMITIVE_TYPES:
            if 'unserializableValue' in remote:
                return _to_number(remote['unserializableValue'].rstrip('n'))
            return remote.get('value')

        if remote_type == 'object':
            if subtype == 'null':
                return None
            if 'value' in remote:
                # returnByValue objects come back as real JSON values
                return remote['value']
            if subtype == 'array':
                return unmirror_array(remote.get('preview'))
            if remote.get('preview') is not None:
                return parse_preview(remote['preview'])

        return remote.get('value', remote.get('description'))
    except Exception as e:
        logger.debug(f'[preview] Could not decode remote object {remote!r}: {e}')
        return remote.get('value', remote.get('description')) if isinstance(remote, dict) else remote


def message_to_string(args: list[dict[str, Any]]) -> str:
    """Render console call arguments as one line for mirroring."""
    parts = []
    for arg in args or []:
        if 'value' in arg and arg['value'] is not None:
            parts.append(str(arg['value']))
        elif arg.get('description'):
            parts.append(str(arg['description']))
        elif arg.get('preview'):
            parts.append(str(arg['preview'].get('description', '')))
        elif arg.get('type') == 'undefined':
            parts.append('undefined')
        else:
            parts.append('')
    return ' '.join(parts)
