# healthsyntra/symptom_normalizer.py

import logging

from pydantic import ValidationError as PydanticValidationError

from healthsyntra.backend_prompts import NORMALIZE_SYMPTOMS_PROMPT
from healthsyntra.base_utils import BaseUtils
from healthsyntra.errors import (
    HealthsyntraError,
    OperationResult,
    SchemaValidationError,
    ValidationError,
)
from healthsyntra.google_helpers import LLM_MODEL_NAME, LLM_TIMEOUT, PROJECT_ID, REGION
from healthsyntra.schemas import SymptomRequest, SymptomResponse

logger = logging.getLogger("healthsyntra_backend")


class SymptomNormalizer(BaseUtils):
    """
    Turns a free-text symptom description into standardized medical terminology
    with a single prompt to the hosted model.

    The reply must be {"normalizedSymptoms": "<non-empty string>"} and nothing else.
    """

    def __init__(self, llm=None):
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            from healthsyntra.llm_client import LlmClient, RELAXED_SAFETY_SETTINGS

            self._llm = LlmClient(
                LLM_MODEL_NAME,
                vertex_project=PROJECT_ID,
                vertex_region=REGION,
                timeout=LLM_TIMEOUT,
                safety_settings=RELAXED_SAFETY_SETTINGS,
                json_output=True,
            )
        return self._llm

    def normalize(self, symptoms: str) -> str:
        try:
            request = SymptomRequest(symptoms=symptoms)
        except PydanticValidationError as e:
            raise ValidationError("Please describe your symptoms.") from e

        prompt = self.unsafe_string_format(NORMALIZE_SYMPTOMS_PROMPT, symptoms=request.symptoms)
        raw = self.llm.invoke(prompt)

        data = self.load_strict_json(raw)
        try:
            response = SymptomResponse.model_validate(data)
        except PydanticValidationError as e:
            logger.warning(f"normalize(): reply failed schema validation: {e}")
            raise SchemaValidationError() from e

        return response.normalizedSymptoms

    def normalize_result(self, symptoms: str) -> OperationResult:
        try:
            return OperationResult.ok(
                {"normalizedSymptoms": self.normalize(symptoms)}
            )
        except HealthsyntraError as e:
            return OperationResult.fail(e)
