import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

import httpx


DEFAULT_API_BASE = "http://127.0.0.1:8000"
ANALYZE_TIMEOUT_S = 1800


def _join_url(base: str, path: str) -> str:
    return base.rstrip("/") + path


def _read_urls(path: str) -> List[str]:
    lines = Path(path).read_text().splitlines()
    return [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]


def _print_error(prefix: str, resp: httpx.Response) -> None:
    try:
        detail = resp.json().get("detail")
    except ValueError:
        detail = resp.text
    if isinstance(detail, dict):
        print(f"{prefix}: HTTP {resp.status_code}: {detail.get('message')}")
        for entry in (detail.get("log") or [])[-5:]:
            print(f"  [{entry.get('status')}] {entry.get('message')}")
    else:
        print(f"{prefix}: HTTP {resp.status_code}: {detail}")


def _print_plan(plan: List[dict]) -> None:
    if not plan:
        print("No action plan was generated.")
        return
    for day in plan:
        print(f"Day {day.get('day')}: {day.get('focus')}")
        for action in day.get("actions") or []:
            steps = action.get("stepByStepImplementation") or []
            print(f"  - {action.get('title')} ({len(steps)} steps)")


def run_validate_key(args: argparse.Namespace) -> int:
    base = args.base_url or DEFAULT_API_BASE
    payload = {}
    if args.provider:
        payload["provider"] = args.provider
    if args.api_key:
        payload["api_key"] = args.api_key
    if args.model:
        payload["model"] = args.model
    with httpx.Client() as client:
        resp = client.post(_join_url(base, "/api/validate-key"), json=payload, timeout=30)
        if resp.status_code >= 400:
            _print_error("Validation request failed", resp)
            return 1
        data = resp.json()
    if data.get("success"):
        print("API key is valid.")
        return 0
    print(f"API key is invalid: {data.get('message')}")
    return 1


def run_analyze(args: argparse.Namespace) -> int:
    base = args.base_url or DEFAULT_API_BASE
    urls = _read_urls(args.urls_file)
    if not urls:
        print(f"No URLs found in {args.urls_file}.")
        return 1
    payload = {
        "urls": urls,
        "competitor_urls": args.competitor or [],
        "analysis_type": args.type,
        "location": args.location,
    }
    with httpx.Client() as client:
        resp = client.post(_join_url(base, "/api/analyze"), json=payload, timeout=args.timeout)
        if resp.status_code >= 400:
            _print_error("Analysis failed", resp)
            return 1
        report = resp.json()
    for entry in report.get("log") or []:
        print(f"[{entry.get('status')}] {entry.get('message')}")
    _print_plan(report.get("action_plan") or [])
    if args.output:
        Path(args.output).write_text(json.dumps(report, indent=2))
        print(f"Report written to {args.output}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SEO Orchestrator CLI")
    parser.add_argument("--base-url", default=DEFAULT_API_BASE, help="API base URL")
    subparsers = parser.add_subparsers(dest="command")

    validate = subparsers.add_parser("validate-key", help="Check the configured AI API key")
    validate.add_argument("--provider", choices=["gemini", "openai", "anthropic", "openrouter"])
    validate.add_argument("--api-key", help="Key to test instead of the configured one")
    validate.add_argument("--model", help="Model to test with")

    analyze = subparsers.add_parser("analyze", help="Run a full analysis over a list of URLs")
    analyze.add_argument("--urls-file", required=True, help="File with one URL per line")
    analyze.add_argument("--competitor", action="append", help="Competitor sitemap URL (repeatable)")
    analyze.add_argument("--type", choices=["global", "local"], default="global")
    analyze.add_argument("--location", help="Target location for local analysis")
    analyze.add_argument("--output", help="Write the full JSON report here")
    analyze.add_argument("--timeout", type=int, default=ANALYZE_TIMEOUT_S, help="Max wait seconds")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "validate-key":
        return run_validate_key(args)
    if args.command == "analyze":
        return run_analyze(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
