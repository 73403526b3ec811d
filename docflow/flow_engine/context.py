"""
Execution Context - shared, path-addressable state of one workflow run

Holds the extraction output plus everything steps derive from it (API
responses, renamed filenames, condition results). Paths use dot notation
with bracket or bare numeric array access:

    orders[0].consignee.clientId
    orders.0.consignee.clientId
    extractedData.orders[0].consignee.clientId   (prefix is stripped)
"""

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)

EXTRACTED_DATA_KEY = 'extractedData'
EXTRACTED_DATA_PREFIX = EXTRACTED_DATA_KEY + '.'

Segment = Union[str, int]

_INDEX_PATTERN = re.compile(r'\[([^\]]*)\]')


def _to_index(raw: str) -> Segment:
    try:
        return int(raw.strip())
    except ValueError:
        return raw.strip().strip('\'"')


def parse_path(path: str) -> List[Segment]:
    """
    Split a path into dict keys (str) and list indexes (int).

    Examples:
        "a.b[0].c" -> ['a', 'b', 0, 'c']
        "items.1"  -> ['items', 1]
    """
    if path.startswith(EXTRACTED_DATA_PREFIX):
        path = path[len(EXTRACTED_DATA_PREFIX):]

    segments: List[Segment] = []
    for part in path.split('.'):
        bracket = part.find('[')
        if bracket != -1 and part.endswith(']'):
            name = part[:bracket]
            if name:
                segments.append(name)
            for raw_index in _INDEX_PATTERN.findall(part[bracket:]):
                segments.append(_to_index(raw_index))
        elif part.isdigit():
            segments.append(int(part))
        else:
            segments.append(part)
    return segments


def _step_into(current: Any, segment: Segment) -> Any:
    if isinstance(segment, int):
        if isinstance(current, list):
            if 0 <= segment < len(current):
                return current[segment]
            return None
        if isinstance(current, dict):
            return current.get(str(segment))
        return None

    if isinstance(current, dict):
        return current.get(segment)
    return None


def resolve_path(obj: Any, path: Optional[str]) -> Any:
    """
    Resolve a path against a nested dict/list value.

    Returns None at the first missing segment; never raises.
    """
    if not path or not isinstance(path, str):
        return None

    current = obj
    for segment in parse_path(path.strip()):
        current = _step_into(current, segment)
        if current is None:
            return None
    return current


def _new_container(next_segment: Segment) -> Union[Dict[str, Any], List[Any]]:
    return [] if isinstance(next_segment, int) else {}


def set_path(obj: Dict[str, Any], path: str, value: Any) -> None:
    """
    Write value at path, creating intermediate objects (and list slots for
    index segments) as needed.
    """
    if not path or not path.strip():
        raise ValueError(f"Empty path: {path!r}")
    segments = parse_path(path.strip())

    current: Any = obj
    for segment, next_segment in zip(segments, segments[1:]):
        if isinstance(segment, int) and isinstance(current, list):
            while len(current) <= segment:
                current.append({})
            if not isinstance(current[segment], (dict, list)):
                current[segment] = _new_container(next_segment)
            current = current[segment]
            continue

        if not isinstance(current, dict):
            raise ValueError(f"Cannot write path {path!r}: {segment!r} is not addressable")
        key = str(segment)
        existing = current.get(key)
        if not isinstance(existing, (dict, list)):
            existing = _new_container(next_segment)
            current[key] = existing
        current = existing

    last = segments[-1]
    if isinstance(last, int) and isinstance(current, list):
        while len(current) <= last:
            current.append({})
        current[last] = value
    elif isinstance(current, dict):
        current[str(last)] = value
    else:
        raise ValueError(f"Cannot write path {path!r}: {last!r} is not addressable")


class ExecutionContext:
    """
    Mutable key/value store passed by reference through every step of a run.

    Extracted fields live both at the root (flattened) and under
    ``extractedData``. Writes to a root key that came from the extracted data
    are mirrored into ``extractedData`` so whole-object bodies stay current.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self.data: Dict[str, Any] = data if data is not None else {}

    def get(self, path: str, default: Any = None) -> Any:
        value = resolve_path(self.data, path)
        return default if value is None else value

    def set(self, path: str, value: Any) -> None:
        set_path(self.data, path, value)
        self._mirror_extracted(parse_path(path)[0])

    def _mirror_extracted(self, root_key: Segment) -> None:
        extracted = self.data.get(EXTRACTED_DATA_KEY)
        if not isinstance(extracted, dict) or root_key == EXTRACTED_DATA_KEY:
            return
        if root_key in extracted and extracted[root_key] is not self.data.get(root_key):
            extracted[root_key] = self.data.get(root_key)
            logger.debug(f"Mirrored {root_key} into {EXTRACTED_DATA_KEY}")

    @property
    def extracted_data(self) -> Any:
        return self.data.get(EXTRACTED_DATA_KEY)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.data[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self.data

    def keys(self) -> Iterable[str]:
        return self.data.keys()

    def snapshot(self, exclude: Iterable[str] = ('pdfBase64',)) -> Dict[str, Any]:
        """JSON-safe copy for persistence; large binary fields are left out."""
        skipped = set(exclude)
        visible = {k: v for k, v in self.data.items() if k not in skipped}
        return json.loads(json.dumps(visible, default=str))
