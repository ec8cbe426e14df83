"""Remote evaluation helpers: build ``Runtime.evaluate`` calls and unwrap results.

Remote-side exceptions are not raised. They come back as the engine's
description string (e.g. ``'ReferenceError: x is not defined'``), exactly like a
function that returned that string would.
"""

import json
import logging
import re
from typing import Any

from chromate.tab.preview import parse_json_or_raw

logger = logging.getLogger(__name__)

# Runtime.evaluate parameters accepted as trailing options, keyed by every
# accepted spelling
EVALUATE_OPTIONS: dict[str, str] = {
    'awaitPromise': 'awaitPromise',
    'await_promise': 'awaitPromise',
    'userGesture': 'userGesture',
    'user_gesture': 'userGesture',
    'returnByValue': 'returnByValue',
    'return_by_value': 'returnByValue',
    'generatePreview': 'generatePreview',
    'generate_preview': 'generatePreview',
    'contextId': 'contextId',
    'context_id': 'contextId',
    'includeCommandLineAPI': 'includeCommandLineAPI',
    'include_command_line_api': 'includeCommandLineAPI',
    'expression': 'expression',
}

_FUNCTION_NAME = re.compile(r'^[A-Za-z_$][\w$]*(\.[A-Za-z_$][\w$]*)*$')


def normalize_options(options: dict[str, Any]) -> dict[str, Any]:
    """Map option spellings to protocol parameter names, dropping unknown keys."""
    params: dict[str, Any] = {}
    for key, value in options.items():
        name = EVALUATE_OPTIONS.get(key)
        if name is None:
            logger.debug(f'[evaluate] Ignoring unknown evaluate option {key!r}')
            continue
        params[name] = value
    return params


def looks_like_options(value: Any) -> bool:
    """True if ``value`` is a dict sharing a key with the evaluate options.

    A plain data dict whose keys collide with an option name is taken as
    options too.
    """
    return isinstance(value, dict) and any(key in EVALUATE_OPTIONS for key in value)


def split_options(args: tuple[Any, ...]) -> tuple[tuple[Any, ...], dict[str, Any]]:
    """Separate a trailing options dict from call arguments."""
    if args and looks_like_options(args[-1]):
        return args[:-1], normalize_options(args[-1])
    return args, {}


def serialize_argument(arg: Any) -> str:
    """Render one argument as JavaScript source.

    Integers pass through unchanged, everything else is JSON-encoded, which
    spells non-finite floats as ``Infinity``, ``-Infinity`` and ``NaN``. Values
    json cannot encode raise ``TypeError`` here, before anything is sent.
    """
    if isinstance(arg, int) and not isinstance(arg, bool):
        return str(arg)
    return json.dumps(arg)


def is_function_name(reference: str) -> bool:
    return bool(_FUNCTION_NAME.match(reference.strip()))


def build_call_expression(reference: str, *args: Any) -> str:
    """Build the expression that calls ``reference`` with ``args``.

    Args:
        reference: A page-side function name (``'three'``, ``'app.run'``) or a
            function's source (``'function (a, b) { return a + b }'``,
            ``'(a) => a * 2'``).
        *args: Call arguments, see ``serialize_argument``.

    Example:
        >>> build_call_expression('fn', 1, 'x')
        'fn(1,"x")'
        >>> build_call_expression('(a) => a', [1])
        '((a) => a)([1])'
    """
    if not isinstance(reference, str) or not reference.strip():
        raise TypeError('execute() needs a function name or function source string')
    arg_list = ','.join(serialize_argument(arg) for arg in args)
    reference = reference.strip()
    if is_function_name(reference):
        return f'{reference}({arg_list})'
    return f'({reference})({arg_list})'


def unwrap_result(response: dict[str, Any]) -> Any:
    """Extract a native value from a ``Runtime.evaluate`` response.

    Prefers ``result.value`` and falls back to ``result.description``; strings
    are JSON-parsed when possible and returned raw otherwise.
    """
    result = response.get('result') or {}
    if 'value' in result:
        raw = result['value']
    elif 'unserializableValue' in result:
        raw = result['unserializableValue']
    else:
        raw = result.get('description')
    if response.get('exceptionDetails'):
        logger.debug(f'[evaluate] Remote exception: {raw}')
    return parse_json_or_raw(raw)
