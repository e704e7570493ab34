import logging
from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)

EMAIL_SUBJECTS = {
    'new_rfq': 'New RFQ Available: {product_name}',
    'quotation_submitted': 'New Quotation Received for {product_name}',
    'quotation_accepted': 'Your Quotation Was Accepted!',
    'quotation_rejected': 'Update on Your Quotation for {product_name}',
    'rfq_closed': 'RFQ Closed: {product_name}',
    'low_credits': 'Low Credit Balance - Recharge Now',
}


def build_email(notification):
    """Notification → (subject, body)。没有专用模板的类型直接用 title。"""
    metadata = notification.metadata or {}
    template = EMAIL_SUBJECTS.get(notification.type)
    if template is None:
        subject = notification.title
    else:
        subject = template.format(product_name=metadata.get('product_name', '')).strip()

    if notification.rfq_id:
        link = f"{settings.SITE_URL}/dashboard/rfqs/{notification.rfq_id}"
    elif notification.quotation_id:
        link = f"{settings.SITE_URL}/dashboard/quotations"
    elif notification.type == 'low_credits':
        link = f"{settings.SITE_URL}/dashboard/credits"
    else:
        link = settings.SITE_URL

    body = f"{notification.title}\n\n{notification.message}\n\nView details: {link}\n"
    return subject, body


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=10,   # 初始重试延迟（秒），指数退避会乘以 2^retry_count
    acks_late=True,           # 任务执行完才 ack，防止 worker 崩溃时任务丢失
    reject_on_worker_lost=True,
)
def send_notification_email(self, notification_id: str):
    """
    把一条已提交的 Notification 发成邮件。

    只在 fan-out 所在事务 commit 之后才被 dispatch。
    重试策略：最多 3 次，10s → 20s → 40s；邮件失败不影响站内通知本身。
    """
    from marketplace.models import Notification

    try:
        notification = Notification.objects.select_related('recipient').get(id=notification_id)
    except Notification.DoesNotExist:
        logger.error("[Celery] Notification %s 不存在，跳过", notification_id)
        return

    recipient = notification.recipient
    if not recipient.email:
        logger.info("[Celery] user=%s 没有邮箱，跳过 notification=%s", recipient.id, notification_id)
        return

    subject, body = build_email(notification)

    try:
        send_mail(
            subject=subject,
            message=body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient.email],
        )
        logger.info("[Celery] notification=%s 已发送到 %s", notification_id, recipient.email)

    except Exception as exc:
        logger.warning(
            "[Celery] notification=%s 发送失败 (attempt %d): %s",
            notification_id, self.request.retries + 1, str(exc)
        )

        if self.request.retries < self.max_retries:
            countdown = self.default_retry_delay * (2 ** self.request.retries)
            raise self.retry(exc=exc, countdown=countdown)

        logger.error("[Celery] notification=%s 已达最大重试次数，放弃发送", notification_id)
