"""Prompt catalog for the Cope response engine.

The catalog is built once from two JSON documents living side by side:

* ``input.json``  - a flat list of example confessions (optional)
* ``output.json`` - a list of ``{"prompt": ..., "responses": [...]}`` records

Both files may carry ``//`` and ``/* */`` comments.  Each document is first
requested through :mod:`urllib.request` (a ``file://`` URL by default) and,
if that path is unusable, read straight from disk.  Loading never raises: a
catalog whose data could not be read simply ends up empty.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.parse
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / "data"
INPUT_FILE = "input.json"
OUTPUT_FILE = "output.json"
FETCH_TIMEOUT = 5


@dataclass(frozen=True)
class PromptEntry:
    """A canonical prompt and its bank of candidate replies."""

    prompt: str
    responses: Tuple[str, ...]


def strip_comments(text: str) -> str:
    """Remove ``//`` line and ``/* */`` block comments outside string literals."""
    out: List[str] = []
    i = 0
    n = len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue

        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            # keep a separator so tokens on both sides never fuse
            out.append(" ")
            i = n if end == -1 else end + 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def parse_document(text: str):
    """Parse a commented JSON document."""
    return json.loads(strip_comments(text))


class PromptCatalog:
    """In-memory index of prompts, replies and example inputs."""

    def __init__(
        self,
        data_dir: Optional[Path | str] = None,
        base_url: Optional[str] = None,
    ) -> None:
        self.data_dir = Path(data_dir) if data_dir is not None else DATA_DIR
        if base_url is None:
            base_url = self.data_dir.resolve().as_uri() + "/"
        self.base_url = base_url
        self.loaded = False
        self.examples: List[str] = []
        self.entries: Dict[str, PromptEntry] = {}
        self.all_responses: List[str] = []

    # ------------------------------------------------------------------
    # loading

    def _fetch_url(self, name: str) -> str:
        url = urllib.parse.urljoin(self.base_url, name)
        with urllib.request.urlopen(url, timeout=FETCH_TIMEOUT) as resp:
            return resp.read().decode("utf-8")

    def _read_file(self, name: str) -> str:
        return (self.data_dir / name).read_text(encoding="utf-8")

    def _retrieve(self, name: str):
        """Return the parsed document *name*, or ``None`` if unavailable."""
        try:
            return parse_document(self._fetch_url(name))
        except Exception as e:
            logger.debug(f"fetch of {name} via {self.base_url} failed: {e}")

        try:
            return parse_document(self._read_file(name))
        except Exception as e:
            logger.warning(f"could not load {name}: {e}")
            return None

    async def load(self) -> bool:
        """Load both datasets.  Safe to call more than once."""
        if self.loaded:
            return bool(self.entries)

        prompts, outputs = await asyncio.gather(
            asyncio.to_thread(self._retrieve, INPUT_FILE),
            asyncio.to_thread(self._retrieve, OUTPUT_FILE),
        )
        self._index(prompts, outputs)
        return bool(self.entries)

    def load_sync(self) -> bool:
        """Blocking variant of :meth:`load` for callers without an event loop."""
        return asyncio.run(self.load())

    def _index(self, prompts, outputs) -> None:
        self.examples = [p for p in prompts if isinstance(p, str)] if isinstance(prompts, list) else []

        entries: Dict[str, PromptEntry] = {}
        for record in outputs if isinstance(outputs, list) else []:
            entry = _entry_from_record(record)
            if entry is None:
                logger.debug(f"skipping malformed record: {record!r}")
                continue
            entries[entry.prompt] = entry

        self.entries = entries
        self.all_responses = [r for e in entries.values() for r in e.responses]
        self.loaded = True
        logger.info(
            f"catalog loaded: {len(self.entries)} prompts, "
            f"{len(self.all_responses)} replies, {len(self.examples)} examples"
        )

    # ------------------------------------------------------------------
    # lookups

    def prompts(self) -> List[str]:
        """Prompts in catalog order."""
        return list(self.entries)

    def responses(self, prompt: str) -> Tuple[str, ...]:
        entry = self.entries.get(prompt)
        return entry.responses if entry else ()

    @classmethod
    def from_records(cls, records, examples=None) -> "PromptCatalog":
        """Build a loaded catalog from in-memory records."""
        catalog = cls()
        catalog._index(examples or [], records)
        return catalog


def _entry_from_record(record) -> Optional[PromptEntry]:
    if not isinstance(record, dict):
        return None
    prompt = record.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        return None
    responses = record.get("responses") or []
    if not isinstance(responses, list):
        return None
    return PromptEntry(
        prompt=prompt,
        responses=tuple(r for r in responses if isinstance(r, str) and r.strip()),
    )
