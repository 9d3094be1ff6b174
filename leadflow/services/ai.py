"""AI lead analysis with LangChain."""

import json
import time
from typing import Any, Callable, Dict, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from leadflow.core.config import Settings
from leadflow.core.database import Database
from leadflow.core.logging import get_logger, log_api_call, log_execution_time

logger = get_logger(__name__)

SYSTEM_PROMPT = "You are a senior lead generation analyst."

ANALYSIS_PROMPT = """Analyze this new sales lead:
Name: {name}
Email: {email}
Phone: {phone}
Ad Source: {source}
Form Data: {form_data}

Tasks:
1. Score from 1-100 based on lead quality.
2. Identify the sentiment (Positive/Neutral/Interested/Urgent).
3. Provide a 1-sentence summary of why they are interested.
4. Recommend the next best action.

Return ONLY a JSON object:
{{
    "score": number,
    "sentiment": string,
    "summary": string,
    "recommendedAction": string,
    "intent": "high_intent" | "medium_intent" | "low_intent"
}}"""


def _default_model_factory(api_key: str, model: str, timeout: int):
    return ChatOpenAI(
        openai_api_key=api_key,
        model=model,
        temperature=0,
        timeout=timeout,
    ).bind(response_format={"type": "json_object"})


class LeadIntelligenceService:
    """Scores and classifies leads with an OpenAI chat model.

    The API key comes from settings, else from the tenant's active `openai`
    integration. Without a key analysis is skipped.
    """

    def __init__(self, settings: Settings, database: Database,
                 model_factory: Optional[Callable[[str, str, int], Any]] = None):
        self.settings = settings
        self.database = database
        self.model_factory = model_factory or _default_model_factory

    async def _resolve_api_key(self, organization_id: str) -> Optional[str]:
        if self.settings.openai_api_key:
            return self.settings.openai_api_key
        integration = await self.database.find_active_integration(organization_id, ("openai",))
        if integration:
            credentials = integration.credentials or {}
            return credentials.get("api_key") or credentials.get("access_token")
        return None

    async def analyze_lead(self, organization_id: str,
                           lead: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Analyze a lead. Returns the parsed analysis, or None on any failure."""
        start_time = time.time()
        model = self.settings.openai_model
        try:
            api_key = await self._resolve_api_key(organization_id)
            if not api_key:
                logger.warning("AI analysis skipped, no OpenAI API key",
                               organization_id=organization_id)
                return None

            prompt = ANALYSIS_PROMPT.format(
                name=lead.get("name"),
                email=lead.get("email"),
                phone=lead.get("phone"),
                source=lead.get("campaign") or "Facebook/Instagram",
                form_data=json.dumps(lead.get("raw_data") or {}, default=str),
            )
            chat_model = self.model_factory(api_key, model, self.settings.ai_timeout)
            response = await chat_model.ainvoke([
                SystemMessage(content=SYSTEM_PROMPT),
                HumanMessage(content=prompt),
            ])

            analysis = json.loads(response.content)
            if not isinstance(analysis, dict):
                raise ValueError("AI response is not a JSON object")
            if "score" in analysis:
                analysis["score"] = int(analysis["score"])

            log_execution_time(logger, "lead_analysis", start_time, time.time(),
                               lead_id=lead.get("id"))
            log_api_call(logger, "openai", "lead_analysis", True, model=model)
            return analysis

        except Exception as e:
            logger.error("AI analysis failed", lead_id=lead.get("id"), error=str(e))
            log_api_call(logger, "openai", "lead_analysis", False, model=model, error=str(e))
            return None
