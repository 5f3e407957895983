"""Analysis dispatch — fans prompt x model calls out to the n8n webhook.

Runs as a FastAPI background task after the request has been answered. Calls
are sequential, each with its own timeout; a failed call is recorded and the
loop moves on. There are no retries.
"""

import httpx
import structlog

from promptverse.core.config import get_settings

logger = structlog.get_logger(__name__)


def _prompt_text(prompt) -> str:
    if isinstance(prompt, dict):
        return prompt.get("text") or ""
    return str(prompt)


async def dispatch_analysis(
    webhook_url: str,
    brand_name: str,
    brand_url: str,
    prompts: list,
    ai_models: list[str],
    timeout: float | None = None,
    client: httpx.AsyncClient | None = None,
) -> list[dict]:
    """Send one GET per prompt and model and collect the outcomes.

    Args:
        webhook_url: n8n webhook endpoint
        brand_name: Brand passed as ``brand``
        brand_url: Brand site passed as ``brandUrl``
        prompts: Strings or ``{"text": ...}`` dicts
        ai_models: Model names passed as ``aiModel``
        timeout: Per-call timeout in seconds (defaults to settings)
        client: Optional AsyncClient for testing

    Returns:
        One ``{"prompt", "aiModel", "success", "response" | "error"}`` per call
    """
    if timeout is None:
        timeout = get_settings().analysis_call_timeout_seconds

    total_calls = len(prompts) * len(ai_models)
    logger.info(
        "analysis_started",
        brand=brand_name,
        prompts=len(prompts),
        ai_models=len(ai_models),
        total_calls=total_calls,
    )

    results: list[dict] = []
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=timeout)

    try:
        for prompt in prompts:
            text = _prompt_text(prompt)
            for ai_model in ai_models:
                params = {"prompt": text, "brand": brand_name, "brandUrl": brand_url, "aiModel": ai_model}
                try:
                    response = await client.get(webhook_url, params=params, timeout=timeout)
                    response.raise_for_status()
                    try:
                        body = response.json()
                    except ValueError:
                        body = None
                    results.append({
                        "prompt": text,
                        "aiModel": ai_model,
                        "success": isinstance(body, dict),
                        "response": body,
                    })
                except httpx.HTTPError as exc:
                    logger.warning("analysis_call_failed", ai_model=ai_model, error=str(exc) or type(exc).__name__)
                    results.append({
                        "prompt": text,
                        "aiModel": ai_model,
                        "success": False,
                        "error": str(exc) or type(exc).__name__,
                    })
    finally:
        if owns_client:
            await client.aclose()

    succeeded = sum(1 for r in results if r["success"])
    logger.info(
        "analysis_completed",
        brand=brand_name,
        total_calls=total_calls,
        succeeded=succeeded,
        failed=len(results) - succeeded,
    )
    return results
