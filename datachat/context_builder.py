from __future__ import annotations

import json
from typing import TYPE_CHECKING, Iterable, Sequence

from datachat.models import ALL_DATASETS, Dataset, infer_column_kinds

if TYPE_CHECKING:
    from datachat.store import DataStore

NO_DATA_CONTEXT = "No CSV data available for analysis."
CONTEXT_HEADER = "Available data sources:"
DEFAULT_SAMPLE_ROWS = 3
MIN_SAMPLE_ROWS = 3
MAX_SAMPLE_ROWS = 5


def resolve_dataset_filter(dataset_ids: Iterable[str] | None) -> list[str] | None:
    """Return the identifiers to restrict to, or None when every dataset applies."""
    if not dataset_ids:
        return None
    ids = [str(value) for value in dataset_ids]
    if not ids or ALL_DATASETS in ids:
        return None
    return ids


def _render_dataset(index: int, dataset: Dataset, sample_size: int) -> str:
    sample = dataset.sample(sample_size)
    columns = dataset.columns
    kinds = infer_column_kinds(dataset.records[:sample_size])
    sample_json = [{column: cell.to_json() for column, cell in row.items()} for row in sample]

    lines = [
        f"Dataset {index}: {dataset.name}",
        f"Total rows: {len(dataset.records)}",
        f"Columns: {', '.join(columns)}",
    ]
    if columns:
        typed = ", ".join(f"{column} ({kinds[column].value})" for column in columns if column in kinds)
        lines.append(f"Column types: {typed}")
    lines.append("Sample data:")
    lines.append(json.dumps(sample_json, indent=2, ensure_ascii=False))
    return "\n".join(lines)


def render_dataset_context(datasets: Sequence[Dataset], sample_size: int = DEFAULT_SAMPLE_ROWS) -> str:
    if not datasets:
        return NO_DATA_CONTEXT

    size = max(MIN_SAMPLE_ROWS, min(MAX_SAMPLE_ROWS, sample_size))
    blocks = [CONTEXT_HEADER]
    for index, dataset in enumerate(datasets, start=1):
        blocks.append(_render_dataset(index, dataset, size))
    return "\n\n".join(blocks) + "\n"


def describe_scope(dataset_ids: Iterable[str] | None, datasets: Sequence[Dataset]) -> str:
    if resolve_dataset_filter(dataset_ids) is None:
        return "Analysis scope: all available datasets."
    names = ", ".join(dataset.name for dataset in datasets) or "none found"
    return f"Analysis scope: {len(datasets)} selected dataset(s): {names}."


def build_dataset_context(
    store: "DataStore",
    owner_id: str,
    dataset_ids: Iterable[str] | None = None,
    sample_size: int = DEFAULT_SAMPLE_ROWS,
) -> tuple[str, list[Dataset]]:
    datasets = store.list_datasets(owner_id, dataset_ids=resolve_dataset_filter(dataset_ids))
    return render_dataset_context(datasets, sample_size=sample_size), datasets
