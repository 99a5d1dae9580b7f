"""
Discord Error Notification Service for the Affiliate Payments API
Sends processor fault alerts to a Discord webhook for real-time monitoring
"""
import asyncio
import httpx
import traceback
from datetime import datetime, timezone
from typing import Optional, Dict, Any
import logging
from app.config import settings

logger = logging.getLogger(__name__)

# Alerts are sent in the background; references kept until they finish
_alert_tasks: set = set()


class DiscordErrorNotifier:
    """Send error notifications to Discord webhook"""

    def __init__(self, webhook_url: str):
        self.webhook_url = webhook_url

    async def send_error(
        self,
        error: Exception,
        context: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None
    ):
        """Send error notification to Discord"""
        try:
            error_type = type(error).__name__
            error_message = str(error)
            error_traceback = ''.join(traceback.format_exception(type(error), error, error.__traceback__))

            if len(error_traceback) > 1900:
                error_traceback = error_traceback[:1900] + "\n... (truncated)"

            embed = {
                "title": f"Error: {error_type}",
                "description": error_message[:2000] if error_message else "No message",
                "color": 15158332,  # Red
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "fields": []
            }

            if correlation_id:
                embed["fields"].append({
                    "name": "Correlation ID",
                    "value": f"`{correlation_id}`",
                    "inline": True
                })

            if context:
                context_details = [f"**{k}:** {v}" for k, v in context.items()]
                if context_details:
                    embed["fields"].append({
                        "name": "Context",
                        "value": "\n".join(context_details)[:1024],
                        "inline": False
                    })

            embed["fields"].append({
                "name": "Traceback",
                "value": f"```python\n{error_traceback[:900]}\n```",
                "inline": False
            })

            embed["fields"].append({
                "name": "Environment",
                "value": f"**Env:** {settings.environment}",
                "inline": True
            })

            payload = {
                "embeds": [embed],
                "username": "Affiliate Payments Error Monitor"
            }

            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(self.webhook_url, json=payload)
                if response.status_code == 204:
                    logger.info(f"Error notification sent: {error_type} ({correlation_id})")

        except Exception as e:
            logger.error(f"Failed to send error to Discord: {e}")


# Global error notifier instance
error_notifier = None
if settings.discord_error_webhook_url:
    error_notifier = DiscordErrorNotifier(settings.discord_error_webhook_url)


def alert_fault(error: Exception, correlation_id: str, context: Optional[Dict[str, Any]] = None):
    """Fire-and-forget alert; does nothing when no webhook is configured"""
    if error_notifier is None:
        return
    task = asyncio.create_task(error_notifier.send_error(error, context, correlation_id))
    _alert_tasks.add(task)
    task.add_done_callback(_alert_tasks.discard)
