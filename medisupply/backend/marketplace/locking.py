"""
业务行锁：select_for_update(nowait=True) + 有限重试。

拿不到锁不会无限等待：按 ROW_LOCK_RETRIES 重试，耗尽后抛
ConflictError(ROW_BUSY, retryable=True)，调用方整体重试即可。
每次尝试包在一个 savepoint 里，Postgres 上 nowait 失败不会毒化外层事务。
"""

import logging
import time

from django.conf import settings
from django.db import OperationalError, transaction

from .exceptions import ConflictError

logger = logging.getLogger(__name__)


def _fetch(queryset, lookup):
    return queryset.select_for_update(nowait=True).get(**lookup)


def lock_row(queryset, not_found=None, **lookup):
    """
    锁住 queryset 中满足 lookup 的那一行并返回。

    not_found 为 None 时，行不存在返回 None；否则抛出 not_found。
    """
    model = queryset.model
    attempts = max(1, settings.ROW_LOCK_RETRIES)

    for attempt in range(1, attempts + 1):
        try:
            with transaction.atomic():
                return _fetch(queryset, lookup)
        except model.DoesNotExist:
            if not_found is None:
                return None
            raise not_found
        except OperationalError as exc:
            logger.warning(
                "[lock] %s %s locked (attempt %d/%d): %s",
                model.__name__, lookup, attempt, attempts, exc,
            )
            if attempt < attempts:
                time.sleep(settings.ROW_LOCK_BACKOFF * attempt)

    raise ConflictError(
        message=f'{model.__name__} is being updated by another request, please retry.',
        code='ROW_BUSY',
        detail={'resource': model.__name__, 'retryable': True},
    )
