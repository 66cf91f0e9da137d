"""文章审核状态机.

所有修改 ``moderation_status`` 的代码都必须经过 :func:`apply_transition`，
状态边如下::

    scraped       -> aiProcessed    (AI 处理完成，含降级)
    scraped       -> rejected       (编辑拒绝)
    aiProcessed   -> rejected       (编辑拒绝)
    aiProcessed   -> sentToShopify  (发布成功)
    sentToShopify -> sentToShopify  (重新发布 / 编辑后同步)
    sentToShopify -> rejected       (编辑拒绝，仅本地；Shopify 上的元对象保留)

``rejected`` 为终态，AI 处理和发布都不会处理被拒绝的文章。
"""

from typing import TYPE_CHECKING

from beansnews.core.errors import InvalidStateError

if TYPE_CHECKING:
    from beansnews.models.article import Article


class ModerationStatus:
    """审核状态枚举."""

    SCRAPED = "scraped"
    REJECTED = "rejected"
    AI_PROCESSED = "aiProcessed"
    SENT_TO_SHOPIFY = "sentToShopify"

    ALL = (SCRAPED, REJECTED, AI_PROCESSED, SENT_TO_SHOPIFY)


TRANSITIONS: dict[str, frozenset[str]] = {
    ModerationStatus.SCRAPED: frozenset(
        {ModerationStatus.AI_PROCESSED, ModerationStatus.REJECTED}
    ),
    ModerationStatus.AI_PROCESSED: frozenset(
        {ModerationStatus.SENT_TO_SHOPIFY, ModerationStatus.REJECTED}
    ),
    ModerationStatus.SENT_TO_SHOPIFY: frozenset(
        {ModerationStatus.SENT_TO_SHOPIFY, ModerationStatus.REJECTED}
    ),
    ModerationStatus.REJECTED: frozenset(),
}

PUBLISHABLE = frozenset({ModerationStatus.AI_PROCESSED, ModerationStatus.SENT_TO_SHOPIFY})


def can_transition(current: str, target: str) -> bool:
    """current -> target 是否为合法状态边."""
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(article: "Article", target: str, stage: str) -> None:
    """校验状态边，不合法时抛出 InvalidStateError."""
    current = article.moderation_status
    if not can_transition(current, target):
        msg = f"不允许的状态转换: {current} -> {target}"
        raise InvalidStateError(
            msg,
            stage=stage,
            article=article.uuid,
            detail={"from": current, "to": target},
        )


def apply_transition(article: "Article", target: str, stage: str) -> bool:
    """执行状态转换，返回状态是否发生变化."""
    ensure_transition(article, target, stage)
    changed = article.moderation_status != target
    article.moderation_status = target
    return changed


def ensure_publishable(article: "Article") -> None:
    """只有 aiProcessed / sentToShopify 的文章可以被推送到 Shopify."""
    if article.moderation_status not in PUBLISHABLE:
        if article.moderation_status == ModerationStatus.REJECTED:
            msg = "已拒绝的文章不能推送到 Shopify"
        else:
            msg = "文章必须先经过 AI 处理才能推送到 Shopify"
        raise InvalidStateError(
            msg,
            stage="publish",
            article=article.uuid,
            detail={"status": article.moderation_status},
        )


def reject(article: "Article") -> bool:
    """编辑拒绝文章；已拒绝时为 no-op，返回状态是否发生变化."""
    if article.moderation_status == ModerationStatus.REJECTED:
        return False
    return apply_transition(article, ModerationStatus.REJECTED, stage="moderation")
