import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import prompts
from .config import AppSettings
from .gateway import AiGateway, UnsupportedProviderError
from .json_tools import robust_parse
from .retry import RetryPolicy
from .schemas import AiConfig, CallOptions, GroundingSource
from .validators import (
    Validator,
    is_competitor_sitemaps,
    is_executive_summary,
    is_page_performance,
    is_post_implementation_report,
    is_seo_analysis_result,
    is_serp_insights,
    is_sitewide_analysis,
    is_snippet_opportunity,
)


logger = logging.getLogger("uvicorn.error")

LogCallback = Callable[[str], Any]

GROUNDED_JSON = CallOptions(use_search_grounding=True, json_mode=True)
PLAIN_JSON = CallOptions(json_mode=True)


class EmptyResponseError(ValueError):
    pass


def _noop_log(message: str) -> None:
    return None


def _require_gemini(ai_config: AiConfig, feature: str) -> None:
    if ai_config.provider != "gemini":
        raise UnsupportedProviderError(f"{feature} requires the Gemini provider for live Google Search.")


class SeoAnalyzer:
    """The analysis calls behind a full run, each retried and validated."""

    def __init__(
        self,
        gateway: AiGateway,
        settings: AppSettings,
        *,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.gateway = gateway
        self.settings = settings
        self.retry_policy = retry_policy or RetryPolicy.from_config(settings.retry)

    async def _generate_json(
        self,
        ai_config: AiConfig,
        system_instruction: str,
        user_prompt: str,
        validate: Validator,
        context: str,
        options: CallOptions,
    ) -> Any:
        async def _attempt() -> Any:
            response = await self.gateway.call(ai_config, system_instruction, user_prompt, options)
            return robust_parse(response.text, validate, context)

        return await self.retry_policy.run(_attempt)

    async def sitewide_audit(
        self,
        ai_config: AiConfig,
        urls: List[str],
        competitor_urls: List[str],
        analysis_type: str,
        location: Optional[str] = None,
        on_log: Optional[LogCallback] = None,
    ) -> Dict[str, Any]:
        log = on_log or _noop_log
        system_instruction = prompts.sitewide_audit_system(ai_config.provider, analysis_type, location)
        user_prompt = prompts.SITEWIDE_AUDIT_USER_TEMPLATE.format(
            user_urls="\n".join(urls),
            competitor_urls="\n".join(competitor_urls),
        )

        async def _attempt() -> Dict[str, Any]:
            log("Analyzing competitor strengths...")
            log(f"Sending request to {ai_config.provider} for Sitewide Audit...")
            response = await self.gateway.call(ai_config, system_instruction, user_prompt, GROUNDED_JSON)
            log(f"Received response from {ai_config.provider}. Validating structure...")
            result = robust_parse(response.text, is_sitewide_analysis, "SitewideAnalysis")
            log("Validated sitewide audit.")
            return result

        return await self.retry_policy.run(_attempt)

    async def seo_analysis(
        self,
        ai_config: AiConfig,
        urls: List[str],
        analysis_type: str,
        location: Optional[str],
        strategic_goals: List[str],
        on_log: Optional[LogCallback] = None,
    ) -> Tuple[Dict[str, Any], List[GroundingSource]]:
        log = on_log or _noop_log
        system_instruction = prompts.page_analysis_system(
            ai_config.provider, analysis_type, location, strategic_goals
        )
        user_prompt = prompts.PAGE_ANALYSIS_USER_TEMPLATE.format(url_list="\n".join(urls))

        async def _attempt() -> Tuple[Dict[str, Any], List[GroundingSource]]:
            log(f"Sending request to {ai_config.provider} with search grounding...")
            response = await self.gateway.call(ai_config, system_instruction, user_prompt, GROUNDED_JSON)
            log(f"Received response from {ai_config.provider}. Validating structure...")
            analysis = robust_parse(response.text, is_seo_analysis_result, "SeoAnalysisResult")
            log("Validated page-level analysis.")
            return analysis, list(response.sources)

        return await self.retry_policy.run(_attempt)

    async def executive_summary(
        self,
        ai_config: AiConfig,
        sitewide_analysis: Dict[str, Any],
        seo_analysis: Dict[str, Any],
    ) -> Dict[str, Any]:
        analysis_json = json.dumps(
            {"sitewideAnalysis": sitewide_analysis, "seoAnalysis": seo_analysis},
            indent=2,
        )
        return await self._generate_json(
            ai_config,
            prompts.EXECUTIVE_SUMMARY_SYSTEM,
            prompts.EXECUTIVE_SUMMARY_USER_TEMPLATE.format(analysis_json=analysis_json),
            is_executive_summary,
            "ExecutiveSummary",
            PLAIN_JSON,
        )

    async def discover_competitors(self, ai_config: AiConfig, user_url: str) -> List[str]:
        if ai_config.provider != "gemini":
            logger.warning("Competitor discovery is only available for the Gemini provider.")
            return []
        result = await self._generate_json(
            ai_config,
            prompts.COMPETITOR_DISCOVERY_SYSTEM,
            f"The user's website is: {user_url}",
            is_competitor_sitemaps,
            "CompetitorSitemaps",
            GROUNDED_JSON,
        )
        return list(result["sitemaps"])

    async def page_performance(
        self,
        ai_config: AiConfig,
        url: str,
        gsc_data: Dict[str, Any],
    ) -> Dict[str, Any]:
        user_prompt = f"Diagnose the performance for the URL: {url}\n\nGSC Data:\n{json.dumps(gsc_data, indent=2)}"
        return await self._generate_json(
            ai_config,
            prompts.PERFORMANCE_DIAGNOSIS_SYSTEM,
            user_prompt,
            is_page_performance,
            f"PagePerformance for {url}",
            PLAIN_JSON,
        )

    async def snippet_opportunity(self, ai_config: AiConfig, url: str) -> Dict[str, Any]:
        _require_gemini(ai_config, "Snippet Opportunity analysis")
        return await self._generate_json(
            ai_config,
            prompts.SNIPPET_OPPORTUNITY_SYSTEM,
            f"Analyze the content of this URL for snippet opportunities: {url}",
            is_snippet_opportunity,
            f"SnippetOpportunity for {url}",
            GROUNDED_JSON,
        )

    async def serp_insights(self, ai_config: AiConfig, keyword: str) -> Dict[str, Any]:
        _require_gemini(ai_config, "SERP Insights analysis")
        return await self._generate_json(
            ai_config,
            prompts.SERP_INSIGHTS_SYSTEM,
            f'Generate SERP insights for the keyword: "{keyword}"',
            is_serp_insights,
            f'SerpInsights for "{keyword}"',
            GROUNDED_JSON,
        )

    async def serp_comparison(
        self,
        ai_config: AiConfig,
        baseline: Dict[str, Any],
        latest: Dict[str, Any],
    ) -> str:
        user_prompt = (
            "Analyze the difference between the two SERP snapshots provided.\n\n"
            f"Baseline Snapshot:\n{json.dumps(baseline, indent=2)}\n\n"
            f"Latest Snapshot:\n{json.dumps(latest, indent=2)}"
        )

        async def _attempt() -> str:
            response = await self.gateway.call(ai_config, prompts.SERP_COMPARISON_SYSTEM, user_prompt, CallOptions())
            text = (response.text or "").strip()
            if not text:
                raise EmptyResponseError("SERP comparison AI returned an empty response.")
            return text

        return await self.retry_policy.run(_attempt)

    async def post_implementation_verdict(
        self,
        ai_config: AiConfig,
        before: Dict[str, Any],
        after: Dict[str, Any],
    ) -> Dict[str, Any]:
        return await self._generate_json(
            ai_config,
            prompts.POST_IMPLEMENTATION_VERDICT_SYSTEM,
            f"Before data: {json.dumps(before)}\n\nAfter data: {json.dumps(after)}",
            is_post_implementation_report,
            "PostImplementationReport",
            PLAIN_JSON,
        )

    async def article_draft(self, ai_config: AiConfig, keyword_idea: Dict[str, Any]) -> str:
        user_prompt = f"Generate an article based on this brief:\n\n{json.dumps(keyword_idea, indent=2)}"

        async def _attempt() -> str:
            response = await self.gateway.call(ai_config, prompts.ARTICLE_DRAFT_SYSTEM, user_prompt, CallOptions())
            return response.text

        return await self.retry_policy.run(_attempt)
