"""
Parsers for semi-structured run artifacts.
"""

from .dod import (
    DefinitionOfDone,
    DodParseError,
    extract_deliverables,
    extract_verification_commands,
    parse_dod_metadata,
)
from .intake import load_mvp_features

__all__ = [
    "DefinitionOfDone",
    "DodParseError",
    "extract_deliverables",
    "extract_verification_commands",
    "load_mvp_features",
    "parse_dod_metadata",
]
