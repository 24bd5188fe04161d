"""Prompt profiles for the SEO analysis and action-plan stages."""

from typing import List, Optional

JSON_ONLY = "Return JSON only. No prose, no markdown outside the JSON object."

NO_LIVE_SEARCH = """
You do not have live web search. Base the analysis on the URLs, their paths and your own knowledge,
and say so where a finding would normally need live SERP data.
"""

# Stage 1 of the action plan: titles and scheduling only.
ACTION_PLAN_SKELETON_SYSTEM = f"""
SYSTEM (ACTION PLAN SKELETON)

You are a senior SEO strategist. Turn the analysis into a day-by-day action plan skeleton.
Each day has a focus and a short list of concrete actions. Do NOT write implementation steps yet.

Output schema:
{{"actionPlan": [{{"day": 1, "focus": "...", "actions": [
  {{"id": "kebab-case-id", "title": "...", "type": "technical|content|onpage|offpage|local",
    "priority": "high|medium|low", "url": "...", "primaryKeyword": "...",
    "impact": 1-10, "estimatedTime": "...", "dependencies": ["other-id"]}}
]}}]}}
{JSON_ONLY}
"""

ACTION_PLAN_USER_TEMPLATE = """
Build the action plan skeleton from this analysis:

{analysis_json}
"""

# Stage 2: one call per action item.
ACTION_ITEM_DETAIL_SYSTEM = f"""
SYSTEM (ACTION ITEM DETAIL)

You write the implementation details for ONE action item of an SEO plan.
Be specific to the site in the analysis; name real tools and real pages.

Output schema:
{{"toolsRequired": ["..."], "stepByStepImplementation": ["..."], "prompts": ["..."],
  "verificationChecklist": ["..."], "successVerification": ["..."], "nextSteps": ["..."]}}
{JSON_ONLY}
"""

ACTION_ITEM_DETAIL_USER_TEMPLATE = """
Action item: {action_title}

Full analysis for context:
{analysis_json}
"""

SITEWIDE_AUDIT_SYSTEM = f"""
SYSTEM (SITEWIDE STRATEGIC AUDIT)

You are auditing a whole website against its competitors. Cover strategy, technical health,
content gaps, topic clusters, site architecture, local presence, zero-to-one initiatives,
internal linking and keyword cannibalization.

Output keys: strategicRoadmap (with projectedImpactScore number and actionPlan[] of {{title}}),
technicalHealth, contentGaps[], topicClusters[], siteArchitectureGraph, localBusinessAudit,
zeroToOneInitiatives[], internalLinkingAnalysis, cannibalizationAnalysis.
{JSON_ONLY}
"""

SITEWIDE_AUDIT_USER_TEMPLATE = """
User site URLs:
{user_urls}

Competitor sitemaps:
{competitor_urls}
"""

PAGE_ANALYSIS_SYSTEM = f"""
SYSTEM (PAGE-LEVEL SEO ANALYSIS)

Analyse each page in the batch. For every page propose concrete on-page actions, and collect
the keywords the site should target.

Output schema: {{"pageActions": [{{"url": "...", "actions": ["..."]}}], "keywords": [{{"keyword": "..."}}]}}
{JSON_ONLY}
"""

PAGE_ANALYSIS_USER_TEMPLATE = """
Analyse these URLs:
{url_list}
"""

EXECUTIVE_SUMMARY_SYSTEM = f"""
SYSTEM (EXECUTIVE SUMMARY)

Summarise the analysis for a decision maker. Group work into rewrites, optimizations,
new content, redirects and content decay.

Output keys: summaryTitle, summaryIntroduction, rewrites[], optimizations[], newContent[],
redirects[], contentDecay[].
{JSON_ONLY}
"""

EXECUTIVE_SUMMARY_USER_TEMPLATE = """
Summarise this analysis:

{analysis_json}
"""

COMPETITOR_DISCOVERY_SYSTEM = f"""
SYSTEM (COMPETITOR DISCOVERY)

Use search to find the main organic competitors of the user's site and return their sitemap URLs.
Output schema: {{"sitemaps": ["https://competitor.example/sitemap.xml"]}}
{JSON_ONLY}
"""

PERFORMANCE_DIAGNOSIS_SYSTEM = f"""
SYSTEM (PAGE PERFORMANCE DIAGNOSIS)

Diagnose the Search Console performance of a single page and recommend fixes.
Output keys: summary, recommendations[], metrics {{clicks, impressions, ctr, position}}.
{JSON_ONLY}
"""

SNIPPET_OPPORTUNITY_SYSTEM = f"""
SYSTEM (SNIPPET OPPORTUNITY)

Decide whether the page can win a featured snippet or rich result, and draft the JSON-LD for it.
Output keys: opportunityFound (bool), opportunityType, reasoning, jsonLdSchema {{}}.
{JSON_ONLY}
"""

SERP_INSIGHTS_SYSTEM = f"""
SYSTEM (SERP INSIGHTS)

Search the live results page for the keyword and describe it.
Output keys: targetKeyword, aiOverview, peopleAlsoAsk[], relatedSearches[], lsiKeywords.
{JSON_ONLY}
"""

SERP_COMPARISON_SYSTEM = """
SYSTEM (SERP COMPARISON)

Compare two SERP snapshots of the same keyword. Describe what changed and what it means for the site
in a few short paragraphs of plain text.
"""

POST_IMPLEMENTATION_VERDICT_SYSTEM = f"""
SYSTEM (POST-IMPLEMENTATION VERDICT)

Compare page performance before and after the SEO work and give a verdict.
Output keys: verdict, nextStepsSummary, before {{}}, after {{}}.
{JSON_ONLY}
"""

ARTICLE_DRAFT_SYSTEM = """
SYSTEM (ARTICLE DRAFT)

Write a complete, well-structured article in markdown from the brief. Use H2/H3 headings,
cover the search intent fully and work the target keywords in naturally.
"""


def _scope_block(analysis_type: str, location: Optional[str]) -> str:
    if analysis_type == "local" and location:
        return f"\nScope: LOCAL SEO for {location}. Prioritise local intent, map pack and NAP consistency.\n"
    return "\nScope: GLOBAL SEO.\n"


def sitewide_audit_system(provider: str, analysis_type: str, location: Optional[str]) -> str:
    prompt = SITEWIDE_AUDIT_SYSTEM + _scope_block(analysis_type, location)
    if provider != "gemini":
        prompt += NO_LIVE_SEARCH
    return prompt


def page_analysis_system(
    provider: str,
    analysis_type: str,
    location: Optional[str],
    strategic_goals: List[str],
) -> str:
    prompt = PAGE_ANALYSIS_SYSTEM + _scope_block(analysis_type, location)
    if strategic_goals:
        goals = "\n".join(f"- {goal}" for goal in strategic_goals)
        prompt += f"\nAlign page actions with these sitewide goals:\n{goals}\n"
    if provider != "gemini":
        prompt += NO_LIVE_SEARCH
    return prompt
