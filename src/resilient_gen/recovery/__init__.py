"""Recovery of structured values from imperfect model output."""

from .pipeline import (
    RecoveryFailed,
    RecoveryPipeline,
    RecoveryResult,
    clean_text,
    coerce_record,
    loads_json,
    normalize_payload,
    strip_code_fences,
)

__all__ = [  # noqa: RUF022
    "RecoveryPipeline",
    "RecoveryResult",
    "RecoveryFailed",
    "clean_text",
    "strip_code_fences",
    "loads_json",
    "normalize_payload",
    "coerce_record",
]
