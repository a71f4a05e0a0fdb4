"""Flask API utilities package.

- responses: Standardized HTTP response helpers
- params: JSON payload parsing helpers
"""

from apps.flask_api.utils.params import (
    PEERS_FIELD,
    RESPONSES_FIELD,
    SUBJECT_FIELD,
    _actor,
    _parse_bool,
    _payload_dict,
    _require_fields,
)
from apps.flask_api.utils.responses import _err, _internal_error, _ok

__all__ = [
    # responses
    "_ok",
    "_err",
    "_internal_error",
    # params
    "PEERS_FIELD",
    "RESPONSES_FIELD",
    "SUBJECT_FIELD",
    "_actor",
    "_parse_bool",
    "_payload_dict",
    "_require_fields",
]
