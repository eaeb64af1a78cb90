"""
Script compiler integration for Palaver.
"""

from .client import (
    CompilationResult,
    CompiledScript,
    CompilerConfig,
    ScriptCompilerClient,
    ScriptFile,
)

__all__ = [
    "CompilationResult",
    "CompiledScript",
    "CompilerConfig",
    "ScriptCompilerClient",
    "ScriptFile",
]
