"""Structural predicates for AI payloads.

Each validator is a plain function returning a bool, built from the small
combinators below. They only check shape (field presence and JSON types),
never content.
"""

from typing import Any, Callable, Iterable


Validator = Callable[[Any], bool]


def is_object(data: Any) -> bool:
    return isinstance(data, dict)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def all_of(*checks: Validator) -> Validator:
    def _check(data: Any) -> bool:
        return all(check(data) for check in checks)

    return _check


def field_is(name: str, check: Validator) -> Validator:
    def _check(data: Any) -> bool:
        return isinstance(data, dict) and name in data and check(data[name])

    return _check


def has_list_fields(*names: str) -> Validator:
    return all_of(*(field_is(name, lambda v: isinstance(v, list)) for name in names))


def has_str_fields(*names: str) -> Validator:
    return all_of(*(field_is(name, lambda v: isinstance(v, str)) for name in names))


def has_object_fields(*names: str) -> Validator:
    return all_of(*(field_is(name, is_object) for name in names))


def has_keys(*names: str) -> Validator:
    def _check(data: Any) -> bool:
        return isinstance(data, dict) and all(name in data for name in names)

    return _check


def list_of(check: Validator) -> Validator:
    def _check(data: Any) -> bool:
        return isinstance(data, list) and all(check(item) for item in data)

    return _check


def _all_strings(values: Iterable[Any]) -> bool:
    return all(isinstance(v, str) for v in values)


# --- action plan -----------------------------------------------------------

is_skeleton_action = has_str_fields("id", "title")

is_daily_plan_skeleton = all_of(
    field_is("day", is_number),
    has_str_fields("focus"),
    field_is("actions", list_of(is_skeleton_action)),
)

is_action_plan_skeleton = field_is("actionPlan", list_of(is_daily_plan_skeleton))

is_action_item_details = all_of(
    is_object,
    has_list_fields(
        "toolsRequired",
        "stepByStepImplementation",
        "prompts",
        "verificationChecklist",
        "successVerification",
        "nextSteps",
    ),
)


# --- analysis payloads -------------------------------------------------------

is_seo_analysis_result = has_list_fields("pageActions", "keywords")


def _has_roadmap_score(data: Any) -> bool:
    roadmap = data.get("strategicRoadmap") if isinstance(data, dict) else None
    return isinstance(roadmap, dict) and is_number(roadmap.get("projectedImpactScore"))


is_sitewide_analysis = all_of(
    has_keys(
        "strategicRoadmap",
        "technicalHealth",
        "contentGaps",
        "topicClusters",
        "siteArchitectureGraph",
        "localBusinessAudit",
        "zeroToOneInitiatives",
        "internalLinkingAnalysis",
        "cannibalizationAnalysis",
    ),
    has_list_fields("contentGaps", "topicClusters", "zeroToOneInitiatives"),
    _has_roadmap_score,
)

is_executive_summary = all_of(
    has_str_fields("summaryTitle", "summaryIntroduction"),
    has_list_fields("rewrites", "optimizations", "newContent", "redirects", "contentDecay"),
)

is_competitor_sitemaps = field_is("sitemaps", lambda v: isinstance(v, list) and _all_strings(v))

is_page_performance = all_of(
    has_str_fields("summary"),
    has_list_fields("recommendations"),
    field_is("metrics", field_is("clicks", is_number)),
)

is_snippet_opportunity = all_of(
    field_is("opportunityFound", lambda v: isinstance(v, bool)),
    has_str_fields("opportunityType", "reasoning"),
    has_object_fields("jsonLdSchema"),
)

is_serp_insights = all_of(
    has_str_fields("targetKeyword", "aiOverview"),
    has_list_fields("peopleAlsoAsk", "relatedSearches"),
    field_is("lsiKeywords", lambda v: isinstance(v, (dict, list))),
)

is_post_implementation_report = all_of(
    has_str_fields("verdict", "nextStepsSummary"),
    has_object_fields("before", "after"),
)
