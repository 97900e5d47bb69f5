"""Command line interface for the ML pipeline plugin."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import pydantic

from common.responses import json_safe

from .backend.schemas import (
    EncodingConfig,
    HyperparameterConfig,
    MissingValueConfig,
    PreprocessRequest,
    ScalingConfig,
    SplitRequest,
    TrainRequest,
)
from .backend.services import dataset_load_from_bytes, run_compare, run_preprocess, run_split, run_train
from .backend.utils import SessionStore
from .core.errors import PipelineError


def _print(payload: dict[str, Any]) -> None:
    print(json.dumps(json_safe(payload), indent=2, sort_keys=True, default=str))


def _columns(value: str | None) -> list[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


def _read(path: str) -> bytes:
    return Path(path).read_bytes()


def command_profile(args: argparse.Namespace) -> None:
    meta = dataset_load_from_bytes(SessionStore(), _read(args.csv), {"preview_rows": args.preview}, args.csv)
    _print({"rows": meta["rows"], "columns": meta["columns"], "preview": meta["preview"]})


def _preprocess_request(session_id: str, args: argparse.Namespace) -> PreprocessRequest | None:
    missing = [MissingValueConfig(strategy=args.impute, fill_value=args.fill_value)] if args.impute else []
    encoding = [EncodingConfig(columns=_columns(args.encode))] if args.encode else []
    scaling = [
        ScalingConfig(method=method, columns=_columns(columns))
        for method, columns in (("standardize", args.standardize), ("normalize", args.normalize))
        if columns
    ]
    removed = _columns(args.drop_columns)
    if not (missing or encoding or scaling or removed):
        return None
    return PreprocessRequest(
        session_id=session_id,
        missing_values=missing,
        encoding=encoding,
        scaling=scaling,
        remove_columns=removed,
    )


def command_run(args: argparse.Namespace) -> None:
    store = SessionStore()
    session_id = dataset_load_from_bytes(store, _read(args.csv), filename=args.csv)["session_id"]
    output: dict[str, Any] = {}

    preprocess = _preprocess_request(session_id, args)
    if preprocess is not None:
        summary = run_preprocess(store, preprocess)
        output["preprocessing"] = {key: summary[key] for key in ("transformations", "rowsRemoved", "columnsRemoved", "newColumns")}

    split = run_split(store, SplitRequest(session_id=session_id, test_fraction=args.test_fraction, seed=args.seed))
    output["split"] = {key: split[key] for key in ("trainCount", "testCount", "testSize", "randomSeed")}

    hyperparameters = HyperparameterConfig(
        learning_rate=args.learning_rate,
        iterations=args.iterations,
        max_depth=args.max_depth,
        min_samples=args.min_samples,
        n_trees=args.n_trees,
        bootstrap=False if args.no_bootstrap else None,
        seed=args.seed,
        n_jobs=args.n_jobs,
    )
    request = TrainRequest(
        session_id=session_id,
        model_type=args.model,
        task_type=args.task,
        target_column=args.target,
        feature_columns=_columns(args.features),
        hyperparameters=hyperparameters,
    )
    output["training"] = run_train(store, request)
    _print(output)


def command_compare(args: argparse.Namespace) -> None:
    named = [(Path(path).stem, _read(path)) for path in args.predictions]
    _print(run_compare(_read(args.ground_truth), named))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ML pipeline CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    profile_parser = subparsers.add_parser("profile", help="Profile the columns of a CSV file")
    profile_parser.add_argument("--csv", required=True, help="Path to the CSV or Excel file")
    profile_parser.add_argument("--preview", type=int, default=5, help="Number of preview rows")
    profile_parser.set_defaults(func=command_profile)

    run_parser = subparsers.add_parser("run", help="Preprocess, split, train and evaluate on a CSV file")
    run_parser.add_argument("--csv", required=True, help="Path to the CSV or Excel file")
    run_parser.add_argument("--target", required=True, help="Target column")
    run_parser.add_argument("--features", required=True, help="Comma separated feature columns")
    run_parser.add_argument(
        "--model",
        default="random_forest",
        choices=["linear_regression", "logistic_regression", "decision_tree", "random_forest"],
        help="Model type",
    )
    run_parser.add_argument("--task", default="classification", choices=["classification", "regression"])
    run_parser.add_argument("--test-fraction", dest="test_fraction", type=float, default=None)
    run_parser.add_argument("--seed", type=int, default=None)
    run_parser.add_argument("--learning-rate", dest="learning_rate", type=float, default=None)
    run_parser.add_argument("--iterations", type=int, default=None)
    run_parser.add_argument("--max-depth", dest="max_depth", type=int, default=None)
    run_parser.add_argument("--min-samples", dest="min_samples", type=int, default=None)
    run_parser.add_argument("--n-trees", dest="n_trees", type=int, default=None)
    run_parser.add_argument("--n-jobs", dest="n_jobs", type=int, default=None)
    run_parser.add_argument("--no-bootstrap", dest="no_bootstrap", action="store_true")
    run_parser.add_argument(
        "--impute", choices=["drop", "mean", "median", "mode", "constant"], default=None, help="Missing value strategy"
    )
    run_parser.add_argument("--fill-value", dest="fill_value", default=None, help="Constant for --impute constant")
    run_parser.add_argument("--encode", default=None, help="Comma separated columns to label-encode")
    run_parser.add_argument("--standardize", default=None, help="Comma separated columns to standardize")
    run_parser.add_argument("--normalize", default=None, help="Comma separated columns to min-max normalize")
    run_parser.add_argument("--drop-columns", dest="drop_columns", default=None, help="Comma separated columns to drop")
    run_parser.set_defaults(func=command_run)

    compare_parser = subparsers.add_parser("compare", help="Rank prediction files against ground truth")
    compare_parser.add_argument("--ground-truth", dest="ground_truth", required=True, help="CSV with id,actual")
    compare_parser.add_argument("--predictions", nargs="+", required=True, help="CSV files with id,predicted")
    compare_parser.set_defaults(func=command_compare)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        args.func(args)
    except PipelineError as exc:
        print(json.dumps({"error": exc.to_dict()}, indent=2, sort_keys=True, default=str), file=sys.stderr)
        raise SystemExit(2) from exc
    except pydantic.ValidationError as exc:
        errors = [{"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]} for error in exc.errors()]
        print(json.dumps({"error": {"code": "INVALID_ARGUMENTS", "details": errors}}, indent=2), file=sys.stderr)
        raise SystemExit(2) from exc


if __name__ == "__main__":
    main()
