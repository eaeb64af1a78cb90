"""
Script compiler client.

Script answers are compiled by a remote compiler service before their
story is saved. A script the compiler refuses comes back as a result
with its errors and no compiled output. Any other failure makes
`compile()` return None; the caller decides.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import BaseModel, Field

from palaver.integrations.base import RetryPolicy, ServiceClient, ServiceConfig, ServiceError, ValidationError

logger = logging.getLogger(__name__)


class ScriptFile(BaseModel):
    script: str
    file_name: str


class CompiledScript(BaseModel):
    """Compiled classes (file name -> base64 bytecode) and the entry point."""

    files: dict[str, str] = Field(default_factory=dict)
    main_class: str

    def class_names(self) -> dict[str, str]:
        """Compiled classes keyed by class name (".class" suffix removed)."""
        return {name.removesuffix(".class"): code for name, code in self.files.items()}


class CompilationResult(BaseModel):
    compilation_result: CompiledScript | None = None
    errors: list[str] = Field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CompilerConfig(ServiceConfig):
    base_url: str = "http://localhost:8889"
    retry: RetryPolicy | None = RetryPolicy(retries=1)


class ScriptCompilerClient(ServiceClient):
    def __init__(self, config: CompilerConfig | None = None):
        super().__init__(config or CompilerConfig())

    @property
    def name(self) -> str:
        return "script_compiler"

    async def compile(self, file: ScriptFile) -> CompilationResult | None:
        try:
            response = await self._request("POST", "/compile", json=file.model_dump())
        except ValidationError as e:
            logger.warning(f"[{self.name}] {file.file_name} refused: {e.messages}")
            return CompilationResult(errors=e.messages)
        except ServiceError as e:
            logger.error(f"[{self.name}] Compilation of {file.file_name} failed: {e}")
            return None
        result = CompilationResult.model_validate(response.json())
        if result.errors:
            logger.warning(f"[{self.name}] {file.file_name}: {len(result.errors)} compilation error(s)")
        return result
