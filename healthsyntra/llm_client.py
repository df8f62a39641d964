import logging
from typing import Any, Dict, Optional

from langchain_core.messages import HumanMessage
from langchain_google_vertexai import ChatVertexAI, HarmBlockThreshold, HarmCategory

from healthsyntra.errors import UpstreamServiceError

logger = logging.getLogger("healthsyntra_backend")


# Relaxed for symptom descriptions only; every other category keeps the model defaults.
RELAXED_SAFETY_SETTINGS = {
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_NONE,
}


class LlmClient:
    """
    Minimal wrapper for "completion-style" use:

        text = llm.invoke("some prompt")

    Under the hood: ChatVertexAI.invoke([HumanMessage(prompt)]).
    One HTTP call per invoke; retrying is left to the caller.
    """

    def __init__(
        self,
        model_name: str,
        *,
        vertex_project: str,
        vertex_region: str,
        timeout: float | None = None,
        safety_settings: Optional[Dict[Any, Any]] = None,
        json_output: bool = False,
    ):
        self.model_name = model_name
        self.last_usage: Optional[Dict[str, int]] = None

        vertex_kwargs: Dict[str, Any] = {}
        if safety_settings:
            vertex_kwargs["safety_settings"] = safety_settings
        if json_output:
            vertex_kwargs["response_mime_type"] = "application/json"

        self._vertex = ChatVertexAI(
            project=vertex_project,
            location=vertex_region,
            model_name=model_name,
            timeout=timeout,
            **vertex_kwargs,
        )

    def _record_vertex_usage(self, usage_metadata: Any) -> None:
        if not usage_metadata:
            return

        def get(*keys: str) -> int:
            for k in keys:
                if isinstance(usage_metadata, dict):
                    v = usage_metadata.get(k)
                else:
                    v = getattr(usage_metadata, k, None)
                if v:
                    return int(v)
            return 0

        self.last_usage = {
            "prompt_token_count": get("prompt_token_count", "input_tokens"),
            "candidates_token_count": get("candidates_token_count", "output_tokens"),
            "total_token_count": get("total_token_count", "total_tokens"),
        }

    def invoke(self, prompt: str) -> str:
        self.last_usage = None
        try:
            resp = self._vertex.invoke([HumanMessage(content=prompt)])
        except Exception as e:
            logger.error(f"[LLM] {self.model_name} call failed: {e}")
            raise UpstreamServiceError() from e

        # Try to pull usage_metadata from the response if available
        usage_md = getattr(resp, "usage_metadata", None)
        if usage_md is None:
            rm = getattr(resp, "response_metadata", None)
            if isinstance(rm, dict):
                usage_md = rm.get("usage_metadata")
        self._record_vertex_usage(usage_md)
        logger.debug(f"[LLM] {self.model_name} usage={self.last_usage}")

        if isinstance(resp, str):
            return resp
        content = getattr(resp, "content", str(resp))
        if isinstance(content, list):
            # Gemini may answer with several parts
            parts = []
            for part in content:
                if isinstance(part, dict):
                    parts.append(str(part.get("text", "")))
                else:
                    parts.append(str(part))
            content = "".join(parts)
        return content
