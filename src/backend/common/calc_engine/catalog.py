from __future__ import annotations

import argparse
import inspect
import json
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel

from .registry import registry

# Ensure built-in functions are imported/registered when generating a catalog.
from . import functions as _builtin_functions  # noqa: F401


class FunctionCatalogEntry(BaseModel):
    function_id: str
    measure: str
    target_type: str
    description: str = ""

    module: str
    class_name: str


def build_catalog(target_type: Optional[str] = None) -> List[FunctionCatalogEntry]:
    """Describe registered functions, optionally only those for one target type name."""
    entries: List[FunctionCatalogEntry] = []
    for function_id in registry.ids():
        function_cls = registry.get(function_id)
        if target_type and function_cls.target_type.__name__ != target_type:
            continue
        doc = inspect.getdoc(function_cls) or ""
        entries.append(
            FunctionCatalogEntry(
                function_id=function_id,
                measure=str(function_cls.measure),
                target_type=function_cls.target_type.__name__,
                description=doc.splitlines()[0] if doc else "",
                module=function_cls.__module__,
                class_name=function_cls.__name__,
            )
        )

    entries.sort(key=lambda e: (e.target_type, e.measure, e.function_id))
    return entries


def _dump_json(catalog: list[dict[str, Any]]) -> str:
    return json.dumps(catalog, indent=2, sort_keys=True)


def _dump_yaml(catalog: list[dict[str, Any]]) -> str:
    return yaml.safe_dump(catalog, sort_keys=True)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="List the registered calculation functions.")
    parser.add_argument(
        "--format",
        choices=("yaml", "json"),
        default="yaml",
        help="Output format (default: yaml).",
    )
    parser.add_argument("--target-type", default=None, help="Only list functions for this target class name.")
    parser.add_argument("--measure", default=None, help="Only list functions producing this measure.")
    args = parser.parse_args(argv)

    entries = build_catalog(args.target_type)
    if args.measure:
        entries = [e for e in entries if e.measure == args.measure]
    catalog = [e.model_dump() for e in entries]
    if args.format == "json":
        print(_dump_json(catalog))
    else:
        print(_dump_yaml(catalog))


if __name__ == "__main__":
    main()
