from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


AiProvider = Literal["gemini", "openai", "anthropic", "openrouter"]
AnalysisType = Literal["global", "local"]


class AiConfig(BaseModel):
    provider: str
    api_key: str = ""
    model: Optional[str] = None
    models: List[str] = Field(default_factory=list)

    def candidate_models(self, default: str) -> List[str]:
        if self.models:
            return list(self.models)
        return [self.model or default]

    model_config = {"frozen": True, "protected_namespaces": ()}


class CallOptions(BaseModel):
    use_search_grounding: bool = False
    json_mode: bool = False
    max_tokens: Optional[int] = None
    timeout_s: Optional[float] = None

    model_config = {"frozen": True}


class GroundingSource(BaseModel):
    uri: str
    title: str = ""


class AiResponse(BaseModel):
    text: str
    sources: List[GroundingSource] = Field(default_factory=list)
    model_used: Optional[str] = None

    model_config = {"protected_namespaces": ()}


class AnalyzeRequest(BaseModel):
    urls: List[str]
    competitor_urls: List[str] = Field(default_factory=list)
    analysis_type: AnalysisType = "global"
    location: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_inputs(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(data, dict):
            return data
        for key in ("urls", "competitor_urls"):
            raw = data.get(key)
            if isinstance(raw, str):
                raw = raw.splitlines()
            if isinstance(raw, list):
                data[key] = [str(u).strip() for u in raw if str(u).strip()]
        analysis_type = data.get("analysis_type")
        if isinstance(analysis_type, str):
            data["analysis_type"] = analysis_type.strip().lower()
        return data


class ActionPlanRequest(BaseModel):
    sitewide_analysis: Dict[str, Any]
    seo_analysis: Dict[str, Any]


class ValidateKeyRequest(BaseModel):
    provider: Optional[AiProvider] = None
    api_key: Optional[str] = None
    model: Optional[str] = None
    models: Optional[List[str]] = None

    model_config = {"protected_namespaces": ()}


class KeyValidationResult(BaseModel):
    success: bool
    message: Optional[str] = None


class RunLogEntry(BaseModel):
    message: str
    status: str = "info"
    ts: str


class AnalysisReport(BaseModel):
    urls: List[str]
    competitor_urls: List[str] = Field(default_factory=list)
    analysis_type: AnalysisType = "global"
    location: Optional[str] = None
    sitewide_analysis: Dict[str, Any]
    analysis: Dict[str, Any]
    sources: List[GroundingSource] = Field(default_factory=list)
    action_plan: List[Dict[str, Any]] = Field(default_factory=list)
    executive_summary: Optional[Dict[str, Any]] = None
    log: List[RunLogEntry] = Field(default_factory=list)
