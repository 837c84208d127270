"""Command line entry point: score a single attempt offline."""
import argparse
import json
import sys
from typing import List, Optional

from kotoba.logging_config import get_logger, setup_logging
from kotoba.services.dictation_scorer import DictationScorer
from kotoba.services.fill_in_scorer import FillInScorer
from kotoba.services.repositories import to_jsonable
from kotoba.services.shadowing_scorer import RandomShadowingScorer

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kotoba", description="Score a practice attempt")
    parser.add_argument("--log-level", default=None, help="Logging level (defaults to LOG_LEVEL)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    dictation = subparsers.add_parser("dictation", help="Compare a transcription with its reference")
    dictation.add_argument("--reference", required=True, help="Reference text")
    dictation.add_argument("--answer", required=True, help="What the learner typed")

    fill_in = subparsers.add_parser("fill-in", help="Check a vocabulary answer")
    fill_in.add_argument("--expected", required=True, help="Expected answer")
    fill_in.add_argument("--answer", required=True, help="Learner's answer")

    shadowing = subparsers.add_parser("shadowing", help="Simulate a shadowing evaluation")
    shadowing.add_argument("--reference", required=True, help="Reference text")
    shadowing.add_argument("--audio", default="cli", help="Audio reference")
    shadowing.add_argument("--seed", type=int, default=None, help="Seed for reproducible scores")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run one scoring command and print its evaluation as JSON."""
    args = build_parser().parse_args(argv)
    setup_logging("Starting kotoba scorer ...", args.log_level)

    if args.command == "dictation":
        evaluation = DictationScorer().evaluate(args.answer, args.reference)
    elif args.command == "fill-in":
        evaluation = FillInScorer().evaluate_answer(args.answer, args.expected)
    else:
        evaluation = RandomShadowingScorer(seed=args.seed).evaluate(args.audio, args.reference)

    logger.info(f"Scored {args.command} attempt: {evaluation.overall_score:.1f}")
    print(json.dumps(to_jsonable(evaluation), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
