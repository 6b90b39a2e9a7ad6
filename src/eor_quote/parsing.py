"""
Tolerant parsing of generative model output.

Model text is treated as an untyped blob. Parsing produces zero or more
candidate JSON objects, each candidate is unwrapped and validated against
the target pydantic model, and the first candidate that validates wins:

1. Scrub reasoning tags (``<think>...</think>``, including unclosed ones)
2. Enumerate candidates: fenced code blocks, a top-level one-object array,
   the whole text, then every balanced ``{...}`` span
3. Unwrap container objects (``{"profile": {...}}``) up to 5 levels
4. Decode string-encoded sub-objects
5. Validate; collect every failure for the error report
"""

import json
import re
from typing import Any, Callable, Iterable, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .errors import SchemaValidationFailedError

T = TypeVar('T', bound=BaseModel)

DEFAULT_WRAPPER_KEYS = ('legal_profile', 'profile', 'result', 'data', 'output', 'response')
MAX_UNWRAP_DEPTH = 5

_THINK_BLOCK_RE = re.compile(r'<think>.*?</think>', re.DOTALL | re.IGNORECASE)
_THINK_OPEN_RE = re.compile(r'<think>.*', re.DOTALL | re.IGNORECASE)
_FENCE_RE = re.compile(r'```(?:json|JSON)?\s*(.*?)```', re.DOTALL)


def scrub(text: str) -> str:
    """Remove reasoning blocks; an unclosed <think> swallows the rest of the text."""
    cleaned = _THINK_BLOCK_RE.sub('', text or '')
    cleaned = _THINK_OPEN_RE.sub('', cleaned)
    return cleaned.strip()


def _balanced_spans(text: str) -> Iterable[str]:
    """Yield every syntactically balanced {...} span, string and escape aware."""
    for start, char in enumerate(text):
        if char != '{':
            continue
        depth = 0
        in_string = False
        escaped = False
        for end in range(start, len(text)):
            c = text[end]
            if in_string:
                if escaped:
                    escaped = False
                elif c == '\\':
                    escaped = True
                elif c == '"':
                    in_string = False
                continue
            if c == '"':
                in_string = True
            elif c == '{':
                depth += 1
            elif c == '}':
                depth -= 1
                if depth == 0:
                    yield text[start:end + 1]
                    break


def _loads(fragment: str) -> Any:
    try:
        return json.loads(fragment)
    except (json.JSONDecodeError, ValueError):
        return None


def extract_json_candidates(text: str) -> list[dict[str, Any]]:
    """
    Enumerate every JSON object found in model output, in priority order.

    Returns:
        Distinct parsed objects; duplicates (same serialized form) are dropped
    """
    cleaned = scrub(text)
    found: list[dict[str, Any]] = []
    seen: set[str] = set()

    def _add(value: Any) -> None:
        if isinstance(value, list) and len(value) == 1:
            value = value[0]
        if not isinstance(value, dict):
            return
        marker = json.dumps(value, sort_keys=True, default=str)
        if marker not in seen:
            seen.add(marker)
            found.append(value)

    for block in _FENCE_RE.findall(cleaned):
        _add(_loads(block.strip()))

    stripped = cleaned.strip()
    if stripped.startswith('[') or stripped.startswith('{'):
        _add(_loads(stripped))

    for span in _balanced_spans(cleaned):
        _add(_loads(span))

    return found


def decode_embedded_json(value: Any) -> Any:
    """Recursively parse string fields that themselves contain JSON objects or arrays."""
    if isinstance(value, dict):
        return {k: decode_embedded_json(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_embedded_json(v) for v in value]
    if isinstance(value, str):
        stripped = value.strip()
        if (stripped.startswith('{') and stripped.endswith('}')) or (
            stripped.startswith('[') and stripped.endswith(']')
        ):
            parsed = _loads(stripped)
            if parsed is not None:
                return decode_embedded_json(parsed)
    return value


def unwrap(
    obj: dict[str, Any],
    required_keys: Iterable[str] = (),
    wrapper_keys: Iterable[str] = DEFAULT_WRAPPER_KEYS,
    max_depth: int = MAX_UNWRAP_DEPTH,
) -> dict[str, Any]:
    """
    Descend through container keys until an object carrying the required keys appears.

    An object that wraps a single dict under any key is unwrapped as well.
    Returns the original object when nothing better is found.
    """
    required = tuple(required_keys)
    wrappers = tuple(wrapper_keys)
    current = obj
    for _ in range(max_depth):
        if required and all(k in current for k in required):
            return current
        nested = next(
            (current[k] for k in wrappers if isinstance(current.get(k), dict)),
            None,
        )
        if nested is None and len(current) == 1:
            only = next(iter(current.values()))
            nested = only if isinstance(only, dict) else None
        if nested is None:
            break
        current = nested
    if required and all(k in current for k in required):
        return current
    return obj


def parse_first_valid(
    text: str,
    model: type[T],
    required_keys: Iterable[str] = (),
    prepare: Callable[[dict[str, Any]], dict[str, Any]] | None = None,
    wrapper_keys: Iterable[str] = DEFAULT_WRAPPER_KEYS,
    context: dict[str, Any] | None = None,
) -> T:
    """
    Validate each candidate object against ``model`` and return the first success.

    Args:
        text: Raw model output
        model: Target pydantic model
        required_keys: Keys identifying the target object when unwrapping
        prepare: Optional coercion applied to each candidate before validation
        wrapper_keys: Container keys to descend through
        context: Error context (provider, stage)

    Raises:
        SchemaValidationFailedError: No candidate validated
    """
    candidates = extract_json_candidates(text)
    errors: list[str] = []
    required = tuple(required_keys)

    for candidate in candidates:
        body = unwrap(decode_embedded_json(candidate), required, wrapper_keys)
        if required and not all(k in body for k in required):
            errors.append(f'missing keys {[k for k in required if k not in body]}')
            continue
        try:
            if prepare is not None:
                body = prepare(body)
            return model.model_validate(body)
        except PydanticValidationError as e:
            errors.append(f'{e.error_count()} validation errors: {e.errors()[0]["msg"]}')
        except (TypeError, ValueError, KeyError) as e:
            errors.append(f'{type(e).__name__}: {e}')

    raise SchemaValidationFailedError(
        f'No schema-valid {model.__name__} among {len(candidates)} candidate(s)',
        context={**(context or {}), 'candidates': len(candidates)},
        candidate_errors=errors,
    )
