"""
Spec loading.

A spec reference is one of:

  ""                 the empty spec (comparisons against nothing)
  path/to/api.yaml   a file on disk, relative to the working directory
  main:api.yaml      a file at a git revision (`git show main:api.yaml`)
  https://...        a remote document, fetched with httpx

The loaded document is dereferenced: every `$ref` (local, relative file, git
sibling, or URL) is replaced by a copy of its target and recorded in the
source map. Circular references are left in place as `$ref` objects.

Loading is blocking; `load_spec` runs it in a worker thread. Outbound
fetches (git and http) share one process-wide limiter.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import posixpath
import subprocess
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

import httpx
import yaml

from contracts.spec_types import EMPTY_SPEC_MARKER
from engine import json_pointer
from services.config import http_timeout_seconds, max_concurrent_fetches
from services.sourcemap import JsonSchemaSourcemap

log = logging.getLogger("specgate.spec_loader")

DEFAULT_EMPTY_SPEC: Dict[str, Any] = {
    "openapi": "3.0.1",
    "info": {"title": "empty", "version": "0.0.0"},
    "paths": {},
    EMPTY_SPEC_MARKER: True,
}

ERR_FILE_UNREADABLE = "SG-LOAD-001"
ERR_GIT_SHOW = "SG-LOAD-002"
ERR_HTTP = "SG-LOAD-003"
ERR_PARSE = "SG-LOAD-004"
ERR_DANGLING_REF = "SG-LOAD-005"
ERR_NOT_AN_OBJECT = "SG-LOAD-006"


class SpecLoadError(RuntimeError):
    def __init__(self, code: str, message: str, source: str = "") -> None:
        self.code = code
        self.message = message
        self.source = source
        super().__init__(f"{code}: {message}" + (f" ({source})" if source else ""))


class SpecInputType(str, Enum):
    FILE = "file"
    GIT = "git"
    URL = "url"
    EMPTY = "empty"


@dataclass(frozen=True)
class SpecInput:
    type: SpecInputType
    path: Optional[str] = None
    rev: Optional[str] = None
    url: Optional[str] = None
    document: Optional[Dict[str, Any]] = None

    @property
    def label(self) -> str:
        if self.type is SpecInputType.GIT:
            return f"{self.rev}:{self.path}"
        if self.type is SpecInputType.URL:
            return str(self.url)
        if self.type is SpecInputType.EMPTY:
            return "Empty Spec"
        return str(self.path)


@dataclass
class ParseResult:
    json_like: Dict[str, Any]
    sourcemap: JsonSchemaSourcemap


def is_url(raw: str) -> bool:
    parsed = urlparse(raw)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def parse_spec_version(raw: Optional[str], default: Optional[Dict[str, Any]] = None, cwd: Optional[Path] = None) -> SpecInput:
    raw = (raw or "").strip()
    if not raw:
        return SpecInput(SpecInputType.EMPTY, document=copy.deepcopy(default or DEFAULT_EMPTY_SPEC))
    if is_url(raw):
        return SpecInput(SpecInputType.URL, url=raw)
    base = Path(cwd) if cwd is not None else Path.cwd()
    if (base / raw).exists():
        return SpecInput(SpecInputType.FILE, path=raw)
    if ":" in raw:
        rev, _, path = raw.partition(":")
        if rev and path:
            return SpecInput(SpecInputType.GIT, rev=rev, path=path)
    # missing file: surfaces as SG-LOAD-001 when loaded
    return SpecInput(SpecInputType.FILE, path=raw)


# -- parsing -----------------------------------------------------------------


class SpecYamlLoader(yaml.SafeLoader):
    """SafeLoader that keeps timestamps as strings and mapping keys as strings."""

    def construct_mapping(self, node, deep=False):
        mapping = super().construct_mapping(node, deep=deep)
        return {_key_str(k): v for k, v in mapping.items()}


SpecYamlLoader.yaml_implicit_resolvers = {
    first: [(tag, rx) for tag, rx in resolvers if tag != "tag:yaml.org,2002:timestamp"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _key_str(key: Any) -> str:
    if isinstance(key, bool):
        return "true" if key else "false"
    if key is None:
        return "null"
    return str(key)


def parse_contents(contents: str, source: str) -> Any:
    try:
        if source.lower().endswith(".json"):
            return json.loads(contents)
        return yaml.load(contents, Loader=SpecYamlLoader)
    except (ValueError, yaml.YAMLError) as exc:
        raise SpecLoadError(ERR_PARSE, f"could not parse document: {exc}", source) from exc


# -- reading -----------------------------------------------------------------

_FETCH_LIMITER: Optional[threading.BoundedSemaphore] = None
_FETCH_LIMITER_LOCK = threading.Lock()


def fetch_limiter() -> threading.BoundedSemaphore:
    global _FETCH_LIMITER
    with _FETCH_LIMITER_LOCK:
        if _FETCH_LIMITER is None:
            _FETCH_LIMITER = threading.BoundedSemaphore(max_concurrent_fetches())
        return _FETCH_LIMITER


class FileReader:
    """Reads sibling documents from disk, relative to the referring file."""

    def __init__(self, cwd: Path) -> None:
        self.cwd = Path(cwd)

    def locate(self, ref_file: str, base: str) -> str:
        if is_url(ref_file):
            return ref_file
        if is_url(base):
            return urljoin(base, ref_file)
        return str((Path(base).parent / ref_file).resolve())

    def root(self, path: str) -> str:
        return str((self.cwd / path).resolve())

    def read(self, location: str) -> str:
        if is_url(location):
            return read_url(location)
        try:
            return Path(location).read_text(encoding="utf-8")
        except OSError as exc:
            raise SpecLoadError(ERR_FILE_UNREADABLE, f"could not read file: {exc}", location) from exc


class GitReader(FileReader):
    """Reads documents as they were at a git revision."""

    def __init__(self, cwd: Path, rev: str) -> None:
        super().__init__(cwd)
        self.rev = rev

    def locate(self, ref_file: str, base: str) -> str:
        if is_url(ref_file) or is_url(base):
            return super().locate(ref_file, base)
        return posixpath.normpath(posixpath.join(posixpath.dirname(base), ref_file))

    def root(self, path: str) -> str:
        return posixpath.normpath(path)

    def read(self, location: str) -> str:
        if is_url(location):
            return read_url(location)
        with fetch_limiter():
            try:
                result = subprocess.run(
                    ["git", "show", f"{self.rev}:./{location}"],
                    cwd=str(self.cwd),
                    capture_output=True,
                    text=True,
                    timeout=60,
                )
            except (OSError, subprocess.TimeoutExpired) as exc:
                raise SpecLoadError(ERR_GIT_SHOW, f"git show failed: {exc}", f"{self.rev}:{location}") from exc
        if result.returncode != 0:
            raise SpecLoadError(
                ERR_GIT_SHOW,
                f"git show failed: {result.stderr.strip()}",
                f"{self.rev}:{location}",
            )
        return result.stdout


def read_url(url: str) -> str:
    with fetch_limiter():
        try:
            response = httpx.get(url, timeout=http_timeout_seconds(), follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SpecLoadError(ERR_HTTP, f"could not fetch: {exc}", url) from exc
    return response.text


# -- dereferencing -------------------------------------------------------------


class Dereferencer:
    def __init__(self, reader: FileReader, root_location: str) -> None:
        self.reader = reader
        self.root_location = root_location
        self.sourcemap = JsonSchemaSourcemap(root_location)
        self._documents: Dict[str, Any] = {}

    def document(self, location: str) -> Any:
        if location not in self._documents:
            contents = self.reader.read(location)
            self.sourcemap.add_file_if_missing_from_contents(location, contents)
            self._documents[location] = parse_contents(contents, location)
        return self._documents[location]

    def run(self) -> Dict[str, Any]:
        root = self.document(self.root_location)
        if not isinstance(root, dict):
            raise SpecLoadError(ERR_NOT_AN_OBJECT, "document root must be an object", self.root_location)
        return self._walk(root, self.root_location, [], [], [])

    def _target(self, ref: str, location: str) -> Tuple[str, List[str]]:
        ref_file, _, fragment = ref.partition("#")
        target_location = self.reader.locate(ref_file, location) if ref_file else location
        try:
            parts = json_pointer.decode(fragment)
        except ValueError as exc:
            raise SpecLoadError(ERR_DANGLING_REF, f"invalid $ref {ref!r}", location) from exc
        return target_location, parts

    def _walk(
        self,
        node: Any,
        location: str,
        in_file: List[str],
        in_root: List[str],
        expanding: List[Tuple[str, Tuple[str, ...]]],
    ) -> Any:
        if isinstance(node, list):
            return [
                self._walk(item, location, [*in_file, str(i)], [*in_root, str(i)], expanding)
                for i, item in enumerate(node)
            ]
        if not isinstance(node, dict):
            return node

        ref = node.get("$ref")
        if isinstance(ref, str):
            target_location, parts = self._target(ref, location)
            key = (target_location, tuple(parts))
            own_ancestor = target_location == location and tuple(in_file[: len(parts)]) == tuple(parts)
            if key in expanding or own_ancestor:
                log.warning("circular $ref %s left unresolved at /%s", ref, "/".join(in_root))
                return dict(node)

            matched, target = json_pointer.try_get(self.document(target_location), parts)
            if not matched:
                raise SpecLoadError(ERR_DANGLING_REF, f"$ref {ref!r} does not resolve", location)

            file_index = self.sourcemap.file_by_path(target_location).index
            self.sourcemap.log_ref(json_pointer.compile(in_root), file_index, json_pointer.compile(parts))
            return self._walk(
                copy.deepcopy(target),
                target_location,
                list(parts),
                in_root,
                [*expanding, key],
            )

        return {
            k: self._walk(v, location, [*in_file, k], [*in_root, k], expanding)
            for k, v in node.items()
        }


def _load_sync(spec_input: SpecInput, cwd: Path) -> ParseResult:
    if spec_input.type is SpecInputType.EMPTY:
        document = copy.deepcopy(spec_input.document or DEFAULT_EMPTY_SPEC)
        return ParseResult(json_like=document, sourcemap=JsonSchemaSourcemap("empty.json"))

    if spec_input.type is SpecInputType.URL:
        reader: FileReader = FileReader(cwd)
        root = str(spec_input.url)
    elif spec_input.type is SpecInputType.GIT:
        reader = GitReader(cwd, str(spec_input.rev))
        root = reader.root(str(spec_input.path))
    else:
        reader = FileReader(cwd)
        root = reader.root(str(spec_input.path))

    dereferencer = Dereferencer(reader, root)
    document = dereferencer.run()
    log.debug("loaded %s files=%d refs=%d", spec_input.label, len(dereferencer.sourcemap.files), len(dereferencer.sourcemap.ref_mappings))
    return ParseResult(json_like=document, sourcemap=dereferencer.sourcemap)


async def load_spec(spec_input: SpecInput, cwd: Optional[Path] = None) -> ParseResult:
    return await asyncio.to_thread(_load_sync, spec_input, Path(cwd) if cwd is not None else Path.cwd())
