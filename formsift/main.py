"""
Command-line entry point for formsift.

    python -m formsift.main train model.json --data-folder data
    python -m formsift.main run page.html --model model.json --proba
    python -m formsift.main evaluate --data-folder data --cv 10
"""

import argparse
import json
import sys
from pathlib import Path

from formsift.api import Classifier
from formsift.errors import FormsiftError, ModelNotAvailableError
from formsift.evaluation import evaluate
from formsift.utils.config import get_settings
from formsift.utils.logging import LOG_FORMATS, LogContext, configure_logging, get_logger


def _read_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def cmd_train(args: argparse.Namespace) -> int:
    logger = get_logger(__name__)
    clf = Classifier.train(args.data_folder)
    path = clf.save(args.model)
    logger.info("Training complete", model=str(path), page_model=clf.has_page_model)
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    logger = get_logger(__name__)
    clf = Classifier.load(args.model)
    html = _read_input(args.input)

    try:
        if args.proba:
            result = clf.extract_page_type_proba(html, args.threshold, url=args.url).to_dict()
        else:
            result = clf.extract_page_type(html, url=args.url).to_dict()
    except ModelNotAvailableError as e:
        logger.info("Falling back to form-only classification", reason=e.message)
        if args.proba:
            result = [f.to_dict() for f in clf.extract_forms_proba(html, args.threshold)]
        else:
            result = [f.to_dict() for f in clf.extract_forms(html)]

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


def cmd_evaluate(args: argparse.Namespace) -> int:
    result = evaluate(args.data_folder, folds=args.cv, workers=args.workers)
    print(result.format_report())
    return 0


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="formsift",
        description="Classify HTML forms, form fields and pages",
    )
    parser.add_argument("--log-level", default=settings.general.log_level, help="Logging level")
    parser.add_argument("--log-format", choices=LOG_FORMATS, default="json", help="Log output format")
    sub = parser.add_subparsers(dest="command", required=True)

    p_train = sub.add_parser("train", help="Train a model from annotated data")
    p_train.add_argument("model", help="Output model path")
    p_train.add_argument("--data-folder", default="data", help="Annotation data folder")
    p_train.set_defaults(func=cmd_train)

    p_run = sub.add_parser("run", help="Classify an HTML file ('-' for stdin)")
    p_run.add_argument("input", help="HTML file path or '-'")
    p_run.add_argument("--model", default=settings.inference.model_path, help="Model path")
    p_run.add_argument("--proba", action="store_true", help="Output probabilities")
    p_run.add_argument(
        "--threshold",
        type=float,
        default=settings.inference.threshold,
        help="Drop probabilities below this value (<= 0 keeps all)",
    )
    p_run.add_argument("--url", default="", help="Page URL, used by the page url features")
    p_run.set_defaults(func=cmd_run)

    p_eval = sub.add_parser("evaluate", help="Grouped k-fold cross-validation")
    p_eval.add_argument("--data-folder", default="data", help="Annotation data folder")
    p_eval.add_argument("--cv", type=int, default=settings.evaluation.folds, help="Number of folds")
    p_eval.add_argument("--workers", type=int, default=settings.evaluation.workers, help="Parallel folds")
    p_eval.set_defaults(func=cmd_evaluate)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(log_level=args.log_level, json_format=args.log_format == "json")

    try:
        with LogContext(command=args.command):
            return args.func(args)
    except FormsiftError as e:
        get_logger(__name__).error("Command failed", **e.to_dict())
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
