import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .action_plan import ActionPlanPipeline
from .analysis import SeoAnalyzer
from .concurrency import execute_concurrent
from .config import AppSettings
from .gateway import AiGateway
from .retry import RetryPolicy
from .schemas import AiConfig, AnalysisReport, GroundingSource, RunLogEntry


logger = logging.getLogger("uvicorn.error")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class RunLog:
    def __init__(self) -> None:
        self.entries: List[RunLogEntry] = []

    def add(self, message: str, status: str = "info") -> None:
        self.entries.append(RunLogEntry(message=message, status=status, ts=_now_iso()))
        logger.info("[run] %s", message)

    def messages(self) -> List[str]:
        return [entry.message for entry in self.entries]


class AnalysisRunError(RuntimeError):
    def __init__(self, message: str, log: Optional[RunLog] = None) -> None:
        super().__init__(message)
        self.log = log or RunLog()


def chunk_urls(urls: List[str], size: int) -> List[List[str]]:
    return [urls[i : i + size] for i in range(0, len(urls), size)]


async def analyze_page_batches(
    analyzer: SeoAnalyzer,
    ai_config: AiConfig,
    urls: List[str],
    analysis_type: str,
    location: Optional[str],
    strategic_goals: List[str],
    run_log: Optional[RunLog] = None,
) -> Tuple[Dict[str, Any], List[GroundingSource]]:
    """Analyse URLs in fixed-size batches and merge what succeeded.

    A failed batch is logged and skipped; the merged result only carries the
    batches that came back valid.
    """
    run_log = run_log or RunLog()
    limits = analyzer.settings.concurrency
    batches = chunk_urls(urls, limits.analysis_chunk_size)

    def _progress(completed: int, total: int) -> None:
        run_log.add(f"Analyzing page batch {completed} of {total}...", "running")

    results = await execute_concurrent(
        batches,
        lambda batch, _index: analyzer.seo_analysis(ai_config, batch, analysis_type, location, strategic_goals),
        limits.analysis_concurrency,
        _progress,
    )

    combined: Dict[str, Any] = {"pageActions": [], "keywords": []}
    sources: Dict[str, GroundingSource] = {}
    for index, result in enumerate(results):
        if not result.ok or result.value is None:
            logger.error("Page analysis batch %s failed: %s", index, result.reason)
            run_log.add("A page analysis batch failed. Continuing with partial data...", "error")
            continue
        analysis, batch_sources = result.value
        combined["pageActions"].extend(analysis.get("pageActions") or [])
        combined["keywords"].extend(analysis.get("keywords") or [])
        for source in batch_sources:
            if source.uri and source.uri not in sources:
                sources[source.uri] = source
    return combined, list(sources.values())


def _strategic_goals(sitewide_analysis: Dict[str, Any]) -> List[str]:
    roadmap = sitewide_analysis.get("strategicRoadmap") or {}
    items = roadmap.get("actionPlan") or []
    return [item["title"] for item in items if isinstance(item, dict) and item.get("title")]


async def run_full_analysis(
    gateway: AiGateway,
    settings: AppSettings,
    ai_config: AiConfig,
    urls: List[str],
    competitor_urls: Optional[List[str]] = None,
    analysis_type: str = "global",
    location: Optional[str] = None,
    *,
    run_log: Optional[RunLog] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> AnalysisReport:
    run_log = run_log or RunLog()
    competitor_urls = list(competitor_urls or [])
    analyzer = SeoAnalyzer(gateway, settings, retry_policy=retry_policy)
    pipeline = ActionPlanPipeline(gateway, settings, retry_policy=retry_policy)

    try:
        if not urls:
            raise ValueError("No URLs were provided for analysis.")
        selected = list(urls)[: settings.concurrency.max_urls]
        run_log.add(f"Prioritized {len(selected)} pages for analysis.", "complete")

        run_log.add("Initiating Sitewide Strategic Audit...", "running")
        sitewide = await analyzer.sitewide_audit(
            ai_config, selected, competitor_urls, analysis_type, location, run_log.add
        )
        run_log.add("Sitewide Strategic Audit complete.", "complete")

        run_log.add("Generating Page-Level Action Plan by batching URLs...", "running")
        analysis, sources = await analyze_page_batches(
            analyzer,
            ai_config,
            selected,
            analysis_type,
            location,
            _strategic_goals(sitewide),
            run_log,
        )
        run_log.add("Page-Level Action Plan complete.", "complete")

        run_log.add("Concurrently generating Final Action Plan & Executive Summary...", "running")
        plan_result, summary_result = await asyncio.gather(
            pipeline.run(ai_config, sitewide, analysis, run_log.add),
            analyzer.executive_summary(ai_config, sitewide, analysis),
            return_exceptions=True,
        )
        for outcome in (plan_result, summary_result):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
        if isinstance(plan_result, Exception):
            raise RuntimeError(f"Failed to generate the action plan: {plan_result}") from plan_result
        run_log.add("Day-by-Day Action Plan generated successfully.", "complete")

        executive_summary: Optional[Dict[str, Any]] = None
        if isinstance(summary_result, Exception):
            logger.warning("Executive summary failed: %s", summary_result)
            run_log.add(
                f"Failed to generate the executive summary: {summary_result}. Continuing without it.",
                "error",
            )
        else:
            executive_summary = summary_result
            run_log.add("Executive Summary generated successfully.", "complete")
    except Exception as exc:
        run_log.add(f"Analysis failed: {exc}", "error")
        raise AnalysisRunError(str(exc), run_log) from exc

    return AnalysisReport(
        urls=selected,
        competitor_urls=competitor_urls,
        analysis_type=analysis_type,
        location=location,
        sitewide_analysis=sitewide,
        analysis=analysis,
        sources=sources,
        action_plan=plan_result,
        executive_summary=executive_summary,
        log=run_log.entries,
    )
