import copy
import json
import logging
import re
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import prompts
from .concurrency import TaskResult, execute_concurrent
from .config import AppSettings
from .gateway import AiGateway
from .json_tools import robust_parse
from .retry import RetryPolicy
from .schemas import AiConfig, CallOptions
from .validators import is_action_item_details, is_action_plan_skeleton


logger = logging.getLogger("uvicorn.error")

LogCallback = Callable[[str], Any]

PLACEHOLDER_STEP = "Error: Could not generate implementation steps."
DETAIL_FIELDS = (
    "toolsRequired",
    "stepByStepImplementation",
    "prompts",
    "verificationChecklist",
    "successVerification",
    "nextSteps",
)


class PlanStage(str, Enum):
    SKELETON_PENDING = "skeleton_pending"
    SKELETON_READY = "skeleton_ready"
    DETAILS_PENDING = "details_pending"
    MERGED = "merged"


def slugify(text: str) -> str:
    slug = str(text).lower()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^\w\-]+", "", slug)
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-")


def _noop_log(message: str) -> None:
    return None


Leaf = Tuple[int, int, Dict[str, Any]]


class ActionPlanPipeline:
    """Skeleton first, then one detail call per action, then merge.

    A failed detail call degrades its action to a placeholder; only a failed
    skeleton call fails the whole plan.
    """

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
        self.stage = PlanStage.SKELETON_PENDING

    def _set_stage(self, stage: PlanStage) -> None:
        logger.info("Action plan stage %s -> %s", self.stage.value, stage.value)
        self.stage = stage

    async def run(
        self,
        ai_config: AiConfig,
        sitewide_analysis: Dict[str, Any],
        seo_analysis: Dict[str, Any],
        on_log: Optional[LogCallback] = None,
    ) -> List[Dict[str, Any]]:
        log = on_log or _noop_log
        self.stage = PlanStage.SKELETON_PENDING
        log("Constructing master prompt for action plan skeleton...")
        analysis_json = json.dumps(
            {"sitewideAnalysis": sitewide_analysis, "seoAnalysis": seo_analysis},
            indent=2,
        )

        skeleton = await self._generate_skeleton(ai_config, analysis_json, log)
        plan = skeleton.get("actionPlan") or []
        self._set_stage(PlanStage.SKELETON_READY)
        if not plan:
            self._set_stage(PlanStage.MERGED)
            return []

        log("Generating implementation details for all action items...")
        leaves: List[Leaf] = [
            (day_index, action_index, action)
            for day_index, day in enumerate(plan)
            for action_index, action in enumerate(day.get("actions") or [])
        ]
        self._set_stage(PlanStage.DETAILS_PENDING)

        def _progress(completed: int, total: int) -> None:
            log(f"Generating details for task {completed} of {total}...")

        results = await execute_concurrent(
            leaves,
            lambda leaf, _index: self._generate_details(ai_config, analysis_json, leaf[2].get("title", "")),
            self.settings.concurrency.detail_concurrency,
            _progress,
        )

        final_plan = self._merge(plan, leaves, results)
        self._set_stage(PlanStage.MERGED)
        log("Successfully assembled the full day-by-day action plan.")
        return final_plan

    async def _generate_skeleton(
        self,
        ai_config: AiConfig,
        analysis_json: str,
        log: LogCallback,
    ) -> Dict[str, Any]:
        user_prompt = prompts.ACTION_PLAN_USER_TEMPLATE.format(analysis_json=analysis_json)

        async def _attempt() -> Dict[str, Any]:
            log(f"Sending request to {ai_config.provider} for the plan skeleton...")
            response = await self.gateway.call(
                ai_config,
                prompts.ACTION_PLAN_SKELETON_SYSTEM,
                user_prompt,
                CallOptions(json_mode=True),
            )
            log("Received plan skeleton. Validating structure...")
            result = robust_parse(response.text, is_action_plan_skeleton, "FullActionPlanSkeleton")
            log("Validated plan skeleton.")
            return result

        return await self.retry_policy.run(_attempt)

    async def _generate_details(
        self,
        ai_config: AiConfig,
        analysis_json: str,
        title: str,
    ) -> Dict[str, Any]:
        user_prompt = prompts.ACTION_ITEM_DETAIL_USER_TEMPLATE.format(
            action_title=title,
            analysis_json=analysis_json,
        )
        options = CallOptions(json_mode=True, max_tokens=self.settings.detail_max_tokens)

        async def _attempt() -> Dict[str, Any]:
            response = await self.gateway.call(
                ai_config,
                prompts.ACTION_ITEM_DETAIL_SYSTEM,
                user_prompt,
                options,
            )
            return robust_parse(response.text, is_action_item_details, f'ActionItemDetails for "{title}"')

        return await self.retry_policy.run(_attempt)

    @staticmethod
    def _merge(
        plan: List[Dict[str, Any]],
        leaves: List[Leaf],
        results: List[TaskResult[Dict[str, Any]]],
    ) -> List[Dict[str, Any]]:
        final_plan = copy.deepcopy(plan)
        for (day_index, action_index, action), result in zip(leaves, results):
            action_id = action.get("id") or slugify(action.get("title", ""))
            if result.ok and result.value is not None:
                merged = {**action, **result.value, "id": action_id, "completed": False}
            else:
                logger.error('Failed to generate details for task "%s": %s', action.get("title"), result.reason)
                merged = {**action, "id": action_id, "completed": False}
                for field in DETAIL_FIELDS:
                    merged[field] = []
                merged["stepByStepImplementation"] = [PLACEHOLDER_STEP]
            final_plan[day_index]["actions"][action_index] = merged
        return final_plan


async def generate_action_plan(
    gateway: AiGateway,
    settings: AppSettings,
    ai_config: AiConfig,
    sitewide_analysis: Dict[str, Any],
    seo_analysis: Dict[str, Any],
    on_log: Optional[LogCallback] = None,
    *,
    retry_policy: Optional[RetryPolicy] = None,
) -> List[Dict[str, Any]]:
    pipeline = ActionPlanPipeline(gateway, settings, retry_policy=retry_policy)
    return await pipeline.run(ai_config, sitewide_analysis, seo_analysis, on_log)
