"""
Failure classifiers.

``classify_with_rules`` is the deterministic keyword classifier used whenever
the external model is unavailable. ``LLMClassifierClient`` calls an
OpenAI-compatible chat completions endpoint and is the preferred source.
"""
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiohttp
from pydantic import ValidationError

from integration_monitor.core.exceptions import ClassifierUnavailableError
from integration_monitor.schemas.events import (
    ErrorCategory,
    ErrorClassification,
    ErrorSeverity,
    IntegrationEvent,
)

logger = logging.getLogger(__name__)


def _contains_any(text: str, keywords: Tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def _spending_control(event: IntegrationEvent) -> ErrorClassification:
    return ErrorClassification(
        category=ErrorCategory.SPENDING_CONTROL,
        severity=ErrorSeverity.HIGH,
        cause="Card transaction was declined due to spending controls or insufficient funds.",
        suggested_fix=("Review the cardholder limits in Stripe. If legitimate, temporarily increase "
                       "the limit or use an alternative payment method."),
        affected_data=["card_transaction"],
        business_impact="Field worker may be unable to purchase materials, potentially delaying job progress.",
    )


def _auth(event: IntegrationEvent) -> ErrorClassification:
    return ErrorClassification(
        category=ErrorCategory.AUTH,
        severity=ErrorSeverity.HIGH,
        cause=(f"Authentication failed for {event.integration.value}. "
               "The access token may have expired or been revoked."),
        suggested_fix=('Re-authenticate the integration by going to Settings > Integrations and clicking '
                       '"Reconnect" for this service.'),
        affected_data=["all sync operations"],
        business_impact=("No data will sync until the connection is restored, potentially affecting "
                         "payroll and job costing."),
    )


def _compliance(event: IntegrationEvent) -> ErrorClassification:
    return ErrorClassification(
        category=ErrorCategory.COMPLIANCE,
        severity=ErrorSeverity.CRITICAL,
        cause="Certified payroll compliance check failed. Required wage or worker data is missing or incorrect.",
        suggested_fix=("Review the affected worker classifications and wage rates. Ensure all required fields "
                       "(apprentice info, prevailing wage rates, fringe benefits) are configured before the "
                       "submission deadline."),
        affected_data=["certified_payroll_report", "worker_classifications"],
        business_impact=("Compliance reports cannot be submitted until resolved, risking regulatory "
                         "penalties and payment delays."),
    )


def _rate_limit(event: IntegrationEvent) -> ErrorClassification:
    return ErrorClassification(
        category=ErrorCategory.RATE_LIMIT,
        severity=ErrorSeverity.LOW,
        cause=f"{event.integration.value} rate limit exceeded. Too many requests were made in a short period.",
        suggested_fix=("This will auto-resolve. If frequent, consider spacing out bulk operations or "
                       "requesting a higher rate limit from the provider."),
        affected_data=["pending sync items"],
        business_impact="Temporary delay in data sync. Will automatically retry.",
    )


def _data_validation(event: IntegrationEvent) -> ErrorClassification:
    return ErrorClassification(
        category=ErrorCategory.DATA_VALIDATION,
        severity=ErrorSeverity.MEDIUM,
        cause=f"Data validation failed. The {event.integration.value} payload contains missing or invalid fields.",
        suggested_fix=("Review the failed record for missing required fields. Check if recent changes in the "
                       "source system affected the data format."),
        affected_data=[event.event_type],
        business_impact="Affected records will not sync until the data issues are resolved.",
    )


def _data_state_mismatch(event: IntegrationEvent) -> ErrorClassification:
    return ErrorClassification(
        category=ErrorCategory.DATA_STATE_MISMATCH,
        severity=ErrorSeverity.MEDIUM,
        cause=(f"The referenced entity in {event.integration.value} has been archived, deleted, or cannot be "
               "found. This often happens when data is modified in the external system without updating "
               "the integration."),
        suggested_fix=("Review the affected record in both systems. Either restore the entity in the source "
                       "system or update the mapping in your application."),
        affected_data=[event.event_type],
        business_impact="Related data will not sync until the entity reference is corrected.",
    )


def _network(event: IntegrationEvent) -> ErrorClassification:
    return ErrorClassification(
        category=ErrorCategory.NETWORK,
        severity=ErrorSeverity.MEDIUM,
        cause=(f"The request to {event.integration.value} did not complete. The remote service timed out, "
               "refused the connection or is temporarily unavailable."),
        suggested_fix=("Retry the operation. If it keeps failing, check the provider's status page and "
                       "network connectivity from the integration workers."),
        affected_data=[event.event_type],
        business_impact="Data sync is delayed until connectivity to the provider recovers.",
    )


def _unknown(event: IntegrationEvent) -> ErrorClassification:
    message = event.error.message if event.error else None
    return ErrorClassification(
        category=ErrorCategory.UNKNOWN,
        severity=ErrorSeverity.MEDIUM,
        cause=f"An unexpected error occurred with {event.integration.value}: {message}",
        suggested_fix=("Review the error details and contact support if the issue persists. Check the "
                       "integration logs for more context."),
        affected_data=[event.event_type],
        business_impact="Some data may not sync correctly until the issue is resolved.",
    )


# Evaluated in order: categories share vocabulary, so "declined" must win over
# generic auth terms and "wage rate" must be seen before "rate limit".
_RULES: List[Tuple[Tuple[str, ...], Tuple[str, ...], Callable[[IntegrationEvent], ErrorClassification]]] = [
    (("spending", "spending_limit", "declined"), ("card_declined",), _spending_control),
    (("oauth", "token expired", "unauthorized", "re-auth"), ("401",), _auth),
    (("prevailing wage", "wage rate", "apprentice", "fringe", "wh-347", "lcptracker", "certified payroll"),
     (), _compliance),
    (("rate limit", "too many requests", "429"), ("429",), _rate_limit),
    (("validation", "required", "invalid", "null"), (), _data_validation),
    (("archived", "not found", "entity not found", "mapping failed"), ("404",), _data_state_mismatch),
    (("timeout", "timed out", "connection", "econnreset", "socket hang up", "service unavailable"),
     ("502", "503", "504", "etimedout", "econnrefused"), _network),
]


def classify_with_rules(event: IntegrationEvent) -> ErrorClassification:
    """
    Deterministic keyword classifier. Always returns a classification, falling
    through to ``unknown``/``medium`` when nothing matches.
    """
    message = (event.error.message or "").lower() if event.error else ""
    code = (event.error.code or "").lower() if event.error else ""

    for message_keywords, codes, build in _RULES:
        if _contains_any(message, message_keywords) or code in codes:
            return build(event)
    return _unknown(event)


SYSTEM_PROMPT = """You are an integration support engineer for a construction contractor software platform.

Your job is to analyze integration failures and provide actionable insights. The platform integrates with:
- Procore (project management - jobs, cost codes, daily logs)
- Gusto (payroll - employee data, timecards, payroll runs)
- QuickBooks (accounting - job costs, invoices, GL entries)
- Stripe Issuing (payments - virtual cards for field purchases)
- Certified Payroll systems (compliance - LCPtracker, WH-347, prevailing wage)

When analyzing errors, consider:
1. Common failure patterns for each integration
2. Impact on construction workflows (job costing, payroll, field operations)
3. Urgency based on payroll deadlines, job schedules, or compliance requirements
4. Specific, actionable fixes that a support engineer or contractor admin can take

Always respond in JSON format with these fields:
- category: one of "auth", "rate_limit", "data_validation", "data_state_mismatch", "network", "spending_control", "compliance", "unknown"
- severity: one of "low", "medium", "high", "critical"
- cause: plain English explanation of what went wrong (2-3 sentences max)
- suggested_fix: specific, actionable steps to resolve (2-4 steps)
- affected_data: array of data types that may be affected
- business_impact: how this affects the contractor's operations (1 sentence)"""


def build_user_prompt(integration: str, event_type: str, error_message: Optional[str],
                      error_code: Optional[str], context: Optional[Dict[str, Any]],
                      payload: Optional[Dict[str, Any]]) -> str:
    return f"""Analyze this integration failure:

Integration: {integration}
Event Type: {event_type}
Error Message: {error_message or 'Unknown error'}
Error Code: {error_code or 'N/A'}
Context: {json.dumps(context or {}, indent=2, default=str)}
Payload: {json.dumps(payload or {}, indent=2, default=str)}

Provide your analysis in JSON format."""


def parse_classification(content: Optional[str]) -> ErrorClassification:
    """Parse the model's JSON answer into a classification"""
    if not content:
        raise ClassifierUnavailableError("Empty response from classifier",
                                         context={"reason": "malformed_response"})
    try:
        return ErrorClassification.model_validate(json.loads(content))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ClassifierUnavailableError(f"Classifier returned an unusable answer: {e}",
                                         context={"reason": "malformed_response"}) from e


class LLMClassifierClient:
    """
    Classification capability backed by an OpenAI-compatible chat completions API.
    Timeouts are enforced by the caller.
    """

    def __init__(self, api_key: Optional[str], base_url: str = "https://api.openai.com/v1",
                 model: str = "gpt-4o-mini", temperature: float = 0.3, max_tokens: int = 500):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_settings(cls, settings) -> "LLMClassifierClient":
        return cls(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.CLASSIFIER_BASE_URL,
            model=settings.CLASSIFIER_MODEL,
            temperature=settings.CLASSIFIER_TEMPERATURE,
            max_tokens=settings.CLASSIFIER_MAX_TOKENS,
        )

    async def classify(self, integration: str, event_type: str, error_message: Optional[str],
                       error_code: Optional[str] = None, context: Optional[Dict[str, Any]] = None,
                       payload: Optional[Dict[str, Any]] = None) -> ErrorClassification:
        if not self.is_configured:
            raise ClassifierUnavailableError("Classifier API key is not configured",
                                             context={"reason": "not_configured"})

        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(
                    integration, event_type, error_message, error_code, context, payload)},
            ],
            "response_format": {"type": "json_object"},
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        data = await self._post_completion(body, headers)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ClassifierUnavailableError(f"Unexpected completion payload: {e}",
                                             context={"reason": "malformed_response"}) from e
        return parse_classification(content)

    async def _post_completion(self, body: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        url = f"{self.base_url}/chat/completions"
        async with aiohttp.ClientSession() as session:
            async with session.post(url, json=body, headers=headers, raise_for_status=True) as response:
                return await response.json()
