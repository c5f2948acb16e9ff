"""Sandboxed TypeScript type-check and emit for one component."""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import subprocess
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from lessonsmith.ai.pipeline.contracts import CompilationResult
from lessonsmith.config import Settings

logger = logging.getLogger(__name__)

COMPONENT_FILE = "Component.tsx"
SHIM_FILE = "runtime-shim.d.ts"
OUT_DIR = "dist"

# Undefined names, missing modules, type mismatches, misspelled properties.
SEMANTIC_CODES = frozenset({2304, 2307, 2322, 2551})
# Diagnostics the UI runtime typings can cause even for correct business logic.
JSX_TYPING_CODES = frozenset({2503, 2686, 2874, 2875, 7026})
INTRINSIC_NAMES = frozenset({"div", "span", "p", "h1", "h2", "h3", "button", "section", "svg"})
# tsc rejects --noCheck before 5.5 with these.
UNKNOWN_OPTION_CODES = frozenset({5023, 5025})

RUNTIME_SHIM = """declare module 'react' {
  export type ReactNode = any;
  export type ReactElement = any;
  export type CSSProperties = { [key: string]: any };
  export type ChangeEvent<T = any> = any;
  export type MouseEvent<T = any> = any;
  export type FormEvent<T = any> = any;
  export type KeyboardEvent<T = any> = any;
  export interface FC<P = {}> { (props: P): any }
  export function useState<S = any>(initial?: S | (() => S)): [S, (value: any) => void];
  export function useEffect(effect: () => any, deps?: any[]): void;
  export function useLayoutEffect(effect: () => any, deps?: any[]): void;
  export function useMemo<T>(factory: () => T, deps?: any[]): T;
  export function useCallback<T extends (...args: any[]) => any>(callback: T, deps?: any[]): T;
  export function useRef<T = any>(initial?: T): { current: T };
  export function useReducer(reducer: any, initial: any, init?: any): [any, (action: any) => void];
  export function useId(): string;
  export const Fragment: any;
  const React: any;
  export default React;
}
declare module 'react/jsx-runtime' {
  export const jsx: any;
  export const jsxs: any;
  export const Fragment: any;
}
declare namespace JSX {
  type Element = any;
  interface IntrinsicElements { [elem: string]: any }
  interface ElementChildrenAttribute { children: {} }
}
"""

TSCONFIG = {
  "compilerOptions": {
    "target": "ES2020",
    "module": "ESNext",
    "moduleResolution": "node",
    "jsx": "react-jsx",
    "lib": ["ES2020", "DOM"],
    "strict": False,
    "noEmitOnError": False,
    "skipLibCheck": True,
    "esModuleInterop": True,
    "allowSyntheticDefaultImports": True,
    "types": [],
    "outDir": OUT_DIR,
  },
  "files": [COMPONENT_FILE, SHIM_FILE],
}

_DIAGNOSTIC_RE = re.compile(r"^(?:(?P<file>[^\s(][^(]*)\((?P<line>\d+),(?P<col>\d+)\):\s*)?error TS(?P<code>\d+):\s*(?P<message>.*)$")
_CANNOT_FIND_NAME_RE = re.compile(r"Cannot find name '([^']+)'")

ProcessRunner = Callable[[list[str], Path, int], subprocess.CompletedProcess[str]]


class CompilerInvocationError(RuntimeError):
  """The compiler process could not be run to completion."""


@dataclass(frozen=True)
class Diagnostic:
  """One parsed `error TSnnnn` line."""

  code: int
  message: str
  text: str

  @property
  def is_blocking(self) -> bool:
    return self.code in SEMANTIC_CODES or 1000 <= self.code < 2000

  @property
  def is_runtime_typing(self) -> bool:
    lowered = self.message.lower()
    if self.code == 2307:
      return "react" in lowered
    if self.code in JSX_TYPING_CODES:
      return "jsx" in lowered or "react" in lowered
    if self.code == 2304:
      match = _CANNOT_FIND_NAME_RE.search(self.message)
      return "jsx" in lowered or (match is not None and match.group(1) in INTRINSIC_NAMES)
    return False


def parse_diagnostics(output: str) -> list[Diagnostic]:
  """Extract diagnostics in the order tsc printed them."""
  diagnostics: list[Diagnostic] = []
  for raw_line in output.splitlines():
    line = raw_line.strip()
    match = _DIAGNOSTIC_RE.match(line)
    if match is None:
      continue
    diagnostics.append(Diagnostic(code=int(match.group("code")), message=match.group("message").strip(), text=line))
  return diagnostics


def _run_process(command: list[str], cwd: Path, timeout: int) -> subprocess.CompletedProcess[str]:
  return subprocess.run(command, cwd=str(cwd), capture_output=True, text=True, timeout=timeout, check=False, encoding="utf-8", errors="replace")


def _failure(message: str) -> CompilationResult:
  return CompilationResult(success=False, errors=[message])


class CheckingCompiler:
  """Run tsc against one component inside a throwaway workspace."""

  def __init__(self, *, tsc_command: str = "tsc", timeout_seconds: int = 60, sandbox_root: str | None = None, runner: ProcessRunner | None = None) -> None:
    self._tsc_command = tsc_command
    self._timeout_seconds = timeout_seconds
    self._sandbox_root = sandbox_root
    self._runner = runner or _run_process

  @classmethod
  def from_settings(cls, settings: Settings) -> CheckingCompiler:
    return cls(tsc_command=settings.tsc_command, timeout_seconds=settings.compiler_timeout_seconds, sandbox_root=settings.sandbox_root)

  def _resolve_executable(self) -> str | None:
    if os.path.sep in self._tsc_command:
      return self._tsc_command if os.access(self._tsc_command, os.X_OK) else None
    return shutil.which(self._tsc_command)

  @contextmanager
  def _workspace(self) -> Iterator[Path]:
    """Uniquely named directory, removed on every exit path."""
    if self._sandbox_root:
      Path(self._sandbox_root).mkdir(parents=True, exist_ok=True)
    with tempfile.TemporaryDirectory(prefix="component-", dir=self._sandbox_root or None) as raw:
      yield Path(raw)

  def _write_inputs(self, workspace: Path, source: str) -> None:
    (workspace / COMPONENT_FILE).write_text(source, encoding="utf-8")
    (workspace / SHIM_FILE).write_text(RUNTIME_SHIM, encoding="utf-8")
    (workspace / "tsconfig.json").write_text(json.dumps(TSCONFIG, indent=2), encoding="utf-8")

  def _invoke(self, executable: str, workspace: Path, extra: list[str]) -> tuple[subprocess.CompletedProcess[str], list[Diagnostic]]:
    command = [executable, "-p", "tsconfig.json", "--pretty", "false", *extra]
    try:
      completed = self._runner(command, workspace, self._timeout_seconds)
    except subprocess.TimeoutExpired as exc:
      raise CompilerInvocationError(f"TypeScript compiler timed out after {self._timeout_seconds} seconds") from exc
    except (FileNotFoundError, OSError) as exc:
      raise CompilerInvocationError(f"TypeScript compiler execution error: {exc}") from exc
    return completed, parse_diagnostics(f"{completed.stdout}\n{completed.stderr}")

  @staticmethod
  def _emitted(workspace: Path) -> list[str]:
    out_dir = workspace / OUT_DIR
    if not out_dir.is_dir():
      return []
    return sorted(path.relative_to(workspace).as_posix() for path in out_dir.rglob("*") if path.is_file())

  @staticmethod
  def _read_js(workspace: Path, emitted: list[str]) -> str | None:
    for relative in emitted:
      if relative.endswith(".js"):
        return (workspace / relative).read_text(encoding="utf-8")
    return None

  def _success(self, workspace: Path, emitted: list[str], *, warnings: list[str], mode: str) -> CompilationResult:
    return CompilationResult(success=True, errors=[], warnings=warnings, out_dir=OUT_DIR, emitted_files=emitted, compiled_js=self._read_js(workspace, emitted), mode=mode)

  def compile(self, source: str) -> CompilationResult:
    """Type-check and emit; never raises for compiler problems, which surface as a failed result."""
    executable = self._resolve_executable()
    if executable is None:
      logger.error("TypeScript compiler %r not found", self._tsc_command)
      return _failure(f"TypeScript compiler '{self._tsc_command}' not found")

    with self._workspace() as workspace:
      self._write_inputs(workspace, source)
      try:
        completed, diagnostics = self._invoke(executable, workspace, [])
      except CompilerInvocationError as exc:
        logger.warning("Compile failed to run: %s", exc)
        return _failure(str(exc))

      emitted = self._emitted(workspace)
      texts = [diagnostic.text for diagnostic in diagnostics]
      if not diagnostics:
        if completed.returncode == 0 or emitted:
          return self._success(workspace, emitted, warnings=[], mode="typecheck")
        output = (completed.stderr or completed.stdout).strip() or f"tsc exited with status {completed.returncode}"
        return _failure(output)

      if emitted and not any(diagnostic.is_blocking for diagnostic in diagnostics):
        logger.info("Compiled with %d non-blocking diagnostics", len(diagnostics))
        return self._success(workspace, emitted, warnings=texts, mode="typecheck")

      if all(diagnostic.is_runtime_typing for diagnostic in diagnostics):
        return self._transpile_only(executable, workspace, texts)

      return CompilationResult(success=False, errors=texts, warnings=[], emitted_files=[], mode="typecheck")

  def _transpile_only(self, executable: str, workspace: Path, warnings: list[str]) -> CompilationResult:
    """Skip type-checking but keep syntax lowering."""
    out_dir = workspace / OUT_DIR
    if out_dir.exists():
      shutil.rmtree(out_dir)
    try:
      _, diagnostics = self._invoke(executable, workspace, ["--noCheck"])
    except CompilerInvocationError as exc:
      return CompilationResult(success=False, errors=[*warnings, str(exc)], mode="transpile")

    if diagnostics and all(diagnostic.code in UNKNOWN_OPTION_CODES for diagnostic in diagnostics):
      # Older compilers lack --noCheck; emission with noEmitOnError=false already lowered the syntax.
      _, diagnostics = self._invoke(executable, workspace, [])
      diagnostics = [diagnostic for diagnostic in diagnostics if not diagnostic.is_runtime_typing]

    emitted = self._emitted(workspace)
    if emitted and not diagnostics:
      logger.info("Transpile-only pass succeeded after runtime typing diagnostics")
      return self._success(workspace, emitted, warnings=warnings, mode="transpile")
    errors = [*warnings, *(diagnostic.text for diagnostic in diagnostics)] or ["Transpile-only pass emitted no output"]
    return CompilationResult(success=False, errors=errors, mode="transpile")
