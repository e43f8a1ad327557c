from __future__ import annotations

import argparse
import asyncio
import json

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.services import build_services
from app.modules.study.models import GenerationMode, KnowledgeSource, Runtime


async def _generate(args: argparse.Namespace) -> dict:
    services = build_services(settings)
    metrics = services.study_service.metrics
    if metrics is not None:
        metrics.open()
    try:
        result = await services.study_service.generate_flashcards(
            args.topic,
            args.count,
            mode=GenerationMode(args.mode),
            knowledge_source=KnowledgeSource(args.source),
            runtime=Runtime(args.runtime),
            parent_topic=args.parent_topic,
        )
    finally:
        if metrics is not None:
            metrics.close()
    return result.model_dump(mode="json")


async def _quiz(args: argparse.Namespace) -> dict:
    services = build_services(settings)
    questions = await services.study_service.generate_quiz(
        args.topic, args.count, preferred_runtime=Runtime(args.runtime)
    )
    return {"topic": args.topic, "questions": [q.model_dump(mode="json") for q in questions]}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="studygen", description="Flashcard and quiz generator CLI"
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    g = sub.add_parser("generate", help="Generate flashcards for a topic")
    g.add_argument("--topic", "-t", required=True, help="Study topic")
    g.add_argument("--count", "-n", type=int, default=10, help="Number of cards")
    g.add_argument(
        "--mode", choices=[m.value for m in GenerationMode], default=GenerationMode.STANDARD.value
    )
    g.add_argument(
        "--source",
        choices=[k.value for k in KnowledgeSource],
        default=KnowledgeSource.AI_WEB.value,
        help="Where the facts come from",
    )
    g.add_argument(
        "--runtime", choices=[r.value for r in Runtime], default=settings.default_runtime
    )
    g.add_argument("--parent-topic", help="Broader topic used to disambiguate the search")

    q = sub.add_parser("quiz", help="Generate a multiple-choice quiz for a topic")
    q.add_argument("--topic", "-t", required=True, help="Quiz topic")
    q.add_argument("--count", "-n", type=int, default=5, help="Number of questions")
    q.add_argument(
        "--runtime", choices=[r.value for r in Runtime], default=settings.default_runtime
    )

    args = parser.parse_args(argv)
    setup_logging()
    if args.cmd == "generate":
        print(json.dumps(asyncio.run(_generate(args)), indent=2))
        return 0
    if args.cmd == "quiz":
        print(json.dumps(asyncio.run(_quiz(args)), indent=2))
        return 0

    parser.print_help()
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
