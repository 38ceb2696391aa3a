"""
File classification, filtering and the interactive selection prompt.
"""

import fnmatch
import re
from collections import OrderedDict
from typing import Iterable

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt
from rich.table import Table

from hfmd.models.entry import FileDescriptor
from hfmd.utils.formatting import format_size

WEIGHTS = "Weights"
GGML = "GGUF / GGML"
TOKENIZER = "Tokenizer"
CONFIGURATION = "Configuration"
DATA = "Data"
DOCUMENTATION = "Documentation"
OTHER = "Other"

GROUP_ORDER = (GGML, WEIGHTS, DATA, TOKENIZER, CONFIGURATION, DOCUMENTATION, OTHER)

_GGML_EXTS = {".gguf", ".ggml", ".ggjt"}
_WEIGHT_EXTS = {
    ".safetensors",
    ".bin",
    ".pt",
    ".pth",
    ".ckpt",
    ".onnx",
    ".h5",
    ".msgpack",
    ".tflite",
    ".mlmodel",
    ".npz",
}
_DATA_EXTS = {
    ".parquet",
    ".arrow",
    ".csv",
    ".tsv",
    ".jsonl",
    ".txt.gz",
    ".json.gz",
    ".jsonl.gz",
    ".tar",
    ".tar.gz",
    ".zip",
    ".zst",
}
_CONFIG_EXTS = {".json", ".yaml", ".yml", ".toml", ".cfg", ".ini", ".py"}
_DOC_EXTS = {".md", ".rst", ".txt", ".pdf"}
_TOKENIZER_NAME = re.compile(
    r"(tokenizer|vocab|merges|spiece|sentencepiece|special_tokens_map|added_tokens)",
    re.IGNORECASE,
)


def _suffix(name: str) -> str:
    """Returns the extension, keeping compound ones such as `.tar.gz`."""
    lower = name.lower()
    for compound in (".tar.gz", ".json.gz", ".jsonl.gz", ".txt.gz"):
        if lower.endswith(compound):
            return compound
    dot = lower.rfind(".")
    return lower[dot:] if dot > 0 else ""


def classify(descriptor: FileDescriptor) -> str:
    """Assigns a file to a display group based on its name and extension."""
    name = descriptor.name
    ext = _suffix(name)
    if ext in _GGML_EXTS:
        return GGML
    if _TOKENIZER_NAME.search(name) or ext == ".model" or ext == ".tiktoken":
        return TOKENIZER
    if ext in _WEIGHT_EXTS:
        return WEIGHTS
    if ext in _DATA_EXTS:
        return DATA
    if name.upper().startswith(("README", "LICENSE", "NOTICE", "USE_POLICY")):
        return DOCUMENTATION
    if ext in _CONFIG_EXTS:
        return CONFIGURATION
    if ext in _DOC_EXTS:
        return DOCUMENTATION
    return OTHER


def group_files(
    files: Iterable[FileDescriptor],
) -> "OrderedDict[str, list[FileDescriptor]]":
    """Groups files by `classify`, in display order, dropping empty groups."""
    groups: dict[str, list[FileDescriptor]] = {name: [] for name in GROUP_ORDER}
    for descriptor in files:
        groups[classify(descriptor)].append(descriptor)
    return OrderedDict((name, items) for name, items in groups.items() if items)


def filter_files(
    files: Iterable[FileDescriptor],
    include: list[str] | None = None,
    exclude: list[str] | None = None,
) -> list[FileDescriptor]:
    """
    Keeps files matching any `include` glob and no `exclude` glob.

    Patterns match against the full repository path and against the bare
    file name, so `*.gguf` also selects files in subdirectories.
    """

    def matches(descriptor: FileDescriptor, patterns: list[str]) -> bool:
        return any(
            fnmatch.fnmatch(descriptor.path, p) or fnmatch.fnmatch(descriptor.name, p)
            for p in patterns
        )

    selected = []
    for descriptor in files:
        if include and not matches(descriptor, include):
            continue
        if exclude and matches(descriptor, exclude):
            continue
        selected.append(descriptor)
    return selected


def parse_selection(
    expression: str, count: int, groups: dict[str, list[int]] | None = None
) -> list[int]:
    """
    Parses a selection such as `1,3-5`, `all` or a group name into sorted
    zero-based indices.

    Raises:
        ValueError: For malformed tokens or numbers outside 1..count.
    """
    aliases: dict[str, list[int]] = {}
    for name, idx in (groups or {}).items():
        # "GGUF / GGML" is also reachable as "gguf" or "ggml"
        for alias in (name, *name.split(" / ")):
            aliases[alias.strip().lower()] = idx
    groups = aliases
    selected: set[int] = set()
    for raw in expression.split(","):
        token = raw.strip()
        if not token:
            continue
        lowered = token.lower()
        if lowered in ("all", "*"):
            selected.update(range(count))
            continue
        if lowered in groups:
            selected.update(groups[lowered])
            continue
        if match := re.fullmatch(r"(\d+)\s*-\s*(\d+)", token):
            start, end = int(match.group(1)), int(match.group(2))
            if start > end:
                start, end = end, start
        elif token.isdigit():
            start = end = int(token)
        else:
            raise ValueError(f"Unrecognized selection '{token}'.")
        if start < 1 or end > count:
            raise ValueError(f"Selection '{token}' is outside 1-{count}.")
        selected.update(range(start - 1, end))
    return sorted(selected)


def build_file_table(
    grouped: "OrderedDict[str, list[FileDescriptor]]", numbered: bool = True
) -> Table:
    """Renders grouped files as a table, numbering rows in display order."""
    table = Table(box=box.SIMPLE_HEAVY, show_edge=False, pad_edge=False)
    if numbered:
        table.add_column("#", style="dim", justify="right")
    table.add_column("File", style="cyan", overflow="fold")
    table.add_column("Size", justify="right", style="green")

    index = 0
    for group, items in grouped.items():
        group_size = sum(d.size_bytes or 0 for d in items)
        table.add_section()
        heading = f"[bold magenta]{group}[/] [dim]({len(items)}, {format_size(group_size)})[/dim]"
        table.add_row(*(("", heading, "") if numbered else (heading, "")))
        for descriptor in items:
            index += 1
            size = format_size(descriptor.size_bytes or 0)
            row = (escape(descriptor.path), size)
            table.add_row(*((str(index), *row) if numbered else row))
    return table


def select_interactively(
    console: Console, files: list[FileDescriptor]
) -> list[FileDescriptor]:
    """
    Shows the grouped file list and asks which files to download.

    Returns an empty list when the user enters nothing.
    """
    grouped = group_files(files)
    ordered = [d for items in grouped.values() for d in items]
    group_indices: dict[str, list[int]] = {}
    position = 0
    for group, items in grouped.items():
        group_indices[group] = list(range(position, position + len(items)))
        position += len(items)

    console.print(build_file_table(grouped))
    console.print(
        "[dim]Enter numbers and ranges (e.g. [cyan]1,3-5[/cyan]), a group name "
        "(e.g. [cyan]tokenizer[/cyan]) or [cyan]all[/cyan]. Leave empty to cancel.[/dim]"
    )
    while True:
        answer = Prompt.ask("Select files", default="", console=console)
        if not answer.strip():
            return []
        try:
            indices = parse_selection(answer, len(ordered), group_indices)
        except ValueError as e:
            console.print(f"[red]✗ {escape(str(e))}[/red]")
            continue
        chosen = [ordered[i] for i in indices]
        total = sum(d.size_bytes or 0 for d in chosen)
        console.print(
            f"[green]✓ Selected {len(chosen)} files ({format_size(total)}).[/green]"
        )
        return chosen
