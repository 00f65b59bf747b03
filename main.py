"""
Command line entry point.

  python main.py serve [--host 0.0.0.0] [--port 8000]
  python main.py research "AI in healthcare" --context "Target Audience: clinicians"

`research` talks to a running server over HTTP and waits for the job with
the same poller browser clients use.
"""

import argparse
import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("research_pipeline.server:app", host=host, port=port)


def run_research(args: argparse.Namespace) -> int:
    from research_pipeline.errors import ResearchPipelineError
    from research_pipeline.poller import HttpJobClient, research

    def _print_progress(event) -> None:
        print(f"[{event.percent:3d}%] {event.message}", file=sys.stderr)

    with HttpJobClient(args.base_url) as client:
        try:
            document = research(
                args.topic,
                args.context,
                client=client,
                on_progress=_print_progress,
                max_attempts=args.max_polls,
                sources=args.sources or None,
                company_name=args.company,
                language=args.language,
            )
        except ResearchPipelineError as exc:
            logger.error("Research failed: %s", exc)
            return 1

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(document)
        logger.info("Research written to %s", args.output)
    else:
        print(document)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Research generation pipeline")
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="Run the research API server")
    p_serve.add_argument("--host", default=os.environ.get("HOST", "0.0.0.0"))
    p_serve.add_argument("--port", type=int, default=int(os.environ.get("PORT", "8000")))

    p_research = sub.add_parser("research", help="Submit a topic and wait for the report")
    p_research.add_argument("topic")
    p_research.add_argument("--context", default="", help="Free-form context for the research")
    p_research.add_argument("--sources", nargs="*", help="Source hints: recent, scholar, news")
    p_research.add_argument("--company", help="Company, brand or creator to focus on")
    p_research.add_argument("--language", default="en")
    p_research.add_argument("--base-url", default=os.environ.get("RESEARCH_API_URL", "http://localhost:8000"))
    p_research.add_argument("--max-polls", type=int, default=60)
    p_research.add_argument("--output", metavar="PATH", help="Write the report to a file")

    args = parser.parse_args()
    if args.command == "serve":
        serve(args.host, args.port)
        return 0
    return run_research(args)


if __name__ == "__main__":
    sys.exit(main())
