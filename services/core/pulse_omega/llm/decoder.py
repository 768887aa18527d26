"""
ROBUST JSON DECODER

Oracle output is "JSON-ish": sometimes clean, sometimes wrapped in a markdown
fence, sometimes surrounded by prose. ``decode_json`` tries, in order:

1. direct parse
2. markdown fence strip
3. first ``{...}`` substring
4. first ``[...]`` substring

and returns a ``DecodeResult`` instead of raising. Nodes call ``unwrap()``
inside their own boundary.
"""
import json
import re
from dataclasses import dataclass
from typing import Any, Optional

from pulse_omega.exceptions import OracleParseError

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_ARRAY_RE = re.compile(r"\[.*\]", re.DOTALL)


@dataclass(frozen=True)
class DecodeResult:
    value: Any = None
    error: Optional[OracleParseError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value

    def unwrap_object(self) -> dict:
        """Decoded value, which must be a JSON object."""
        value = self.unwrap()
        if not isinstance(value, dict):
            raise OracleParseError(json.dumps(value)[:200])
        return value


def _try_load(text: str):
    try:
        return True, json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return False, None


def decode_json(text: Optional[str]) -> DecodeResult:
    if not text or not text.strip():
        return DecodeResult(error=OracleParseError(text or ""))

    stripped = text.strip()

    ok, value = _try_load(stripped)
    if ok:
        return DecodeResult(value=value)

    fence = _FENCE_RE.search(stripped)
    if fence:
        ok, value = _try_load(fence.group(1).strip())
        if ok:
            return DecodeResult(value=value)

    for pattern in (_OBJECT_RE, _ARRAY_RE):
        match = pattern.search(stripped)
        if match:
            ok, value = _try_load(match.group(0))
            if ok:
                return DecodeResult(value=value)

    return DecodeResult(error=OracleParseError(stripped))
