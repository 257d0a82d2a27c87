from typing import List, Optional
import httpx
from loguru import logger

from app.state import ValidationResult, ValidationStatus
from services.aggregator import summarize

STATUS_EMOJI = {
    ValidationStatus.VALID: ":white_check_mark:",
    ValidationStatus.WARNING: ":warning:",
    ValidationStatus.INVALID: ":x:",
}

DETAIL_LIMIT = 10


class NotificationError(RuntimeError):
    """Raised when the messaging webhook rejects or cannot receive a message."""


def format_summary(results: List[ValidationResult]) -> str:
    """Render results as a Slack mrkdwn message."""
    summary = summarize(results)

    message = "*Validation Results Summary*\n"
    message += f"Total Entries: {summary.total}\n"
    message += f"Valid: {summary.valid}\n"
    message += f"Warnings: {summary.warning}\n"
    message += f"Invalid: {summary.invalid}\n"
    if summary.duplicates > 0:
        message += f"Duplicates: {summary.duplicates}\n"

    message += "\n*Detailed Results*\n"

    details = []
    for result in results[:DETAIL_LIMIT]:
        entry = f"{STATUS_EMOJI[result.status]} *{result.code}* ({result.coding_system or 'N/A'})\n"
        entry += f"Status: {result.status.value}\n"
        if result.issues:
            entry += f"Issues: {', '.join(result.issues)}\n"
        if result.duplicate_of:
            entry += f"Duplicate of: {result.duplicate_of}\n"
        entry += "---"
        details.append(entry)
    message += "\n".join(details)

    if len(results) > DETAIL_LIMIT:
        message += f"\n_Showing first {DETAIL_LIMIT} results..._"

    return message


class SlackNotifier:
    def __init__(self, webhook_url: str, token: str = "", timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.webhook_url = webhook_url
        self.token = token
        self.timeout = timeout
        self.transport = transport

    def send(self, results: List[ValidationResult], channel: str) -> None:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        payload = {"channel": channel, "message": format_summary(results)}

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.webhook_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise NotificationError(f"Error sending Slack message: {e}") from e

        if response.is_error:
            raise NotificationError(f"Error sending Slack message: {response.status_code} {response.text}")
        logger.info(f"Posted validation summary for {len(results)} results to {channel}")
