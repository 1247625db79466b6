"""Helpers for the intake phase artifact (`10_intake/intake.json`)."""

from __future__ import annotations

from typing import Any, Dict, List, Optional


def load_mvp_features(intake: Optional[Dict[str, Any]]) -> List[Any]:
    """Return `scope.mvp_features`, or [] when intake or the field is absent."""
    if not isinstance(intake, dict):
        return []
    scope = intake.get("scope")
    if not isinstance(scope, dict):
        return []
    features = scope.get("mvp_features")
    return list(features) if isinstance(features, list) else []
