from loguru import logger
import os
import json
import re
from pathlib import Path
from typing import Any
from google import genai
from google.genai import types

from services.errors import OracleError, OracleErrorKind, classify_exception


class VertexLLMClient:
    def __init__(
        self,
        project: str = "",
        location: str = "us-central1",
        model_name: str = "gemini-2.5-flash",
        api_key: str = "",
        base_url: str = "",
        timeout_ms: int = 60000,
    ):
        logger.info("Initializing Vertex AI client")
        self.model_name = model_name
        http_options = types.HttpOptions(timeout=timeout_ms, base_url=base_url or None)

        if api_key:
            self.client = genai.Client(vertexai=True, api_key=api_key, http_options=http_options)
            return

        # Validate credentials before initializing
        self._validate_credentials()

        try:
            self.client = genai.Client(
                vertexai=True, project=project, location=location, http_options=http_options
            )
        except Exception as e:
            error_msg = str(e)
            if "EndOfStreamError" in error_msg or "pyasn1" in error_msg:
                raise ValueError(
                    "Invalid or corrupted Google Cloud credentials file. "
                    "Please check that GOOGLE_APPLICATION_CREDENTIALS points to a valid service account JSON file. "
                    "The credentials file may be corrupted, incomplete, or in an invalid format."
                ) from e
            raise

    def _validate_credentials(self):
        """Validate that credentials file exists and is readable."""
        creds_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")

        if not creds_path:
            raise ValueError(
                "GOOGLE_APPLICATION_CREDENTIALS environment variable is not set. "
                "Please set it to the path of your Google Cloud service account JSON file, "
                "or set GOOGLE_API_KEY."
            )

        creds_file = Path(creds_path)
        if not creds_file.exists():
            raise FileNotFoundError(
                f"Credentials file not found: {creds_path}. "
                "Please check that GOOGLE_APPLICATION_CREDENTIALS points to an existing file."
            )

        # Try to parse the JSON to validate format
        try:
            with open(creds_file, 'r') as f:
                creds_data = json.load(f)
                # Check for required fields
                if "private_key" not in creds_data or "client_email" not in creds_data:
                    raise ValueError(
                        f"Invalid credentials file format: {creds_path}. "
                        "The file must be a valid service account JSON with 'private_key' and 'client_email' fields."
                    )
        except json.JSONDecodeError as e:
            raise ValueError(
                f"Credentials file is not valid JSON: {creds_path}. "
                f"Error: {e}"
            ) from e

    def generate_json(self, system_instruction: str, prompt: str) -> Any:
        """Send one request in JSON response mode and return the parsed reply.

        Raises:
            OracleError: classified SDK/transport failure, or MALFORMED_RESPONSE
                when the reply is empty or not JSON.
        """
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            response_mime_type="application/json",
            temperature=0.0,
        )
        try:
            response = self.client.models.generate_content(
                model=self.model_name, contents=prompt, config=config
            )
        except Exception as e:
            raise classify_exception(e) from e

        response_text = response.text.strip() if getattr(response, "text", None) else ""
        return parse_json_response(response_text)


def parse_json_response(response_text: str) -> Any:
    """Parse a JSON object out of model output.
    Raises OracleError(MALFORMED_RESPONSE) when no JSON object can be recovered.
    """
    # Strategy 1: parse full text as JSON
    parsed = None
    try:
        parsed = json.loads(response_text)
    except json.JSONDecodeError:
        parsed = None

    # Strategy 2: extract JSON from fenced code blocks
    if parsed is None:
        json_match = re.search(r'```(?:json)?\s*(\{.*?\})\s*```', response_text, re.DOTALL)
        if json_match:
            try:
                parsed = json.loads(json_match.group(1))
            except json.JSONDecodeError:
                parsed = None

    # Strategy 3: find the first JSON object substring
    if parsed is None:
        start_idx = response_text.find('{')
        if start_idx != -1:
            brace_count = 0
            for i in range(start_idx, len(response_text)):
                if response_text[i] == '{':
                    brace_count += 1
                elif response_text[i] == '}':
                    brace_count -= 1
                    if brace_count == 0:
                        try:
                            parsed = json.loads(response_text[start_idx:i+1])
                        except json.JSONDecodeError:
                            parsed = None
                        break

    if parsed is None:
        logger.warning("Failed to parse LLM output as JSON")
        logger.debug(f"LLM response text: {response_text[:500]}")  # first 500 chars for debugging
        raise OracleError("Invalid response format from AI validation", kind=OracleErrorKind.MALFORMED_RESPONSE)

    return parsed


def build_llm_client(settings) -> VertexLLMClient | None:
    """Create the client when credentials are configured, otherwise None."""
    if not settings.llm_enabled:
        logger.warning("Vertex AI is not configured; validation requests will fail")
        return None
    return VertexLLMClient(
        project=settings.gcp_project,
        location=settings.gcp_location,
        model_name=settings.model_name,
        api_key=settings.api_key,
        base_url=settings.api_base_url,
        timeout_ms=settings.request_timeout_ms,
    )
