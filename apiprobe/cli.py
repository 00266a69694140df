import argparse
import asyncio
import logging
import sys

from apiprobe.errors import ScanError, SpecFormatError
from apiprobe.pipeline.orchestrator import PipelineOrchestrator

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="apiprobe",
        description="Discover an API's routes, probe them and report the results as JSON.",
    )
    source = ap.add_mutually_exclusive_group(required=True)
    source.add_argument("--project", "-p", default=None,
                        help="Path of the project whose source declares the routes")
    source.add_argument("--openapi", default=None,
                        help="URL of an OpenAPI/Swagger JSON document")
    ap.add_argument("--base-url", "-u", default="http://localhost:3000",
                    help="Live target URL (default: http://localhost:3000)")
    ap.add_argument("--output", "-o", default=None,
                    help="Write the JSON report here instead of stdout")
    ap.add_argument("--verbose", "-v", action="store_true")
    return ap


async def run(args: argparse.Namespace) -> int:
    orchestrator = PipelineOrchestrator()
    try:
        if args.project:
            report = await orchestrator.run_project(args.project, args.base_url)
        else:
            report = await orchestrator.run_document(args.openapi, args.base_url)
    except (ScanError, SpecFormatError) as e:
        log.error("%s", e)
        return 2

    text = report.model_dump_json(indent=2)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(text)
        log.info("report written to %s", args.output)
    else:
        print(text)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
