"""
Agent Toolkit

Verify, fix and loop over projects generated by an agent pipeline.
"""

import importlib.metadata

try:
    __version__ = importlib.metadata.version("agent-toolkit")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.0.0"

from .errors import PipelineRuntimeError
from .fixing.autofix import AutoFixStateMachine
from .fixing.fixer import Fixer
from .fixing.service import FixOptions, FixService
from .loop import LoopController, LoopOptions
from .parsing.dod import DefinitionOfDone
from .store import ArtifactStore, FileArtifactStore, create_artifact_store
from .verification.verifier import Verifier, VerifyOptions

__all__ = [
    "ArtifactStore",
    "AutoFixStateMachine",
    "DefinitionOfDone",
    "FileArtifactStore",
    "FixOptions",
    "FixService",
    "Fixer",
    "LoopController",
    "LoopOptions",
    "PipelineRuntimeError",
    "Verifier",
    "VerifyOptions",
    "create_artifact_store",
]
