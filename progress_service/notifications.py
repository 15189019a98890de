"""
SNS notifications for gamification events (level up, achievement unlocked)

Published after the transaction commits. Best-effort: failures are logged,
never raised to the caller.
"""
import boto3
import logging
from typing import Optional

from progress_service.config import Settings, get_settings

logger = logging.getLogger(__name__)


class Notifier:
    """SNS publisher wrapper"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._sns_client = None

    @property
    def enabled(self) -> bool:
        return bool(self.settings.SNS_TOPIC_ARN)

    @property
    def sns(self):
        """Lazy initialization of SNS client"""
        if self._sns_client is None:
            kwargs = {
                'region_name': self.settings.AWS_REGION,
            }
            # Only use endpoint_url and explicit credentials for LocalStack
            if self.settings.SNS_ENDPOINT:
                kwargs['endpoint_url'] = self.settings.SNS_ENDPOINT
            if self.settings.AWS_ACCESS_KEY_ID:
                kwargs['aws_access_key_id'] = self.settings.AWS_ACCESS_KEY_ID
            if self.settings.AWS_SECRET_ACCESS_KEY:
                kwargs['aws_secret_access_key'] = self.settings.AWS_SECRET_ACCESS_KEY

            self._sns_client = boto3.client('sns', **kwargs)
        return self._sns_client

    async def publish_notification(
        self,
        message: str,
        subject: Optional[str] = None,
        attributes: Optional[dict] = None
    ) -> Optional[str]:
        """
        Publish notification to SNS topic

        Returns:
            Message ID if published successfully
        """
        if not self.enabled:
            logger.debug("SNS_TOPIC_ARN not configured, skipping notification")
            return None

        try:
            kwargs = {
                'TopicArn': self.settings.SNS_TOPIC_ARN,
                'Message': message,
            }

            if subject:
                kwargs['Subject'] = subject

            if attributes:
                kwargs['MessageAttributes'] = {
                    k: {'DataType': 'String', 'StringValue': str(v)}
                    for k, v in attributes.items()
                }

            response = self.sns.publish(**kwargs)
            message_id = response['MessageId']

            logger.info(f"Published SNS notification: {message_id}")
            return message_id

        except Exception as e:
            logger.error(f"Error publishing notification: {str(e)}")
            return None

    async def notify_level_up(self, user_id: str, new_level: str) -> Optional[str]:
        """Send level up notification"""
        return await self.publish_notification(
            message=f"Complimenti! Hai raggiunto il livello {new_level}",
            subject="Nuovo livello!",
            attributes={
                'user_id': user_id,
                'event_type': 'level_up',
                'new_level': new_level,
            }
        )

    async def notify_achievement(self, user_id: str, achievement_id: str, title: str) -> Optional[str]:
        """Send achievement unlocked notification"""
        return await self.publish_notification(
            message=f"Hai sbloccato un nuovo traguardo: {title}!",
            subject="Nuovo traguardo!",
            attributes={
                'user_id': user_id,
                'event_type': 'achievement',
                'achievement_id': achievement_id,
            }
        )
