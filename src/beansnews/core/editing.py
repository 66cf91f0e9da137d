"""编辑修改规则 - 通用编辑不能绕过状态机."""

from typing import Any

from beansnews.core.errors import InvalidStateError
from beansnews.core.moderation import ModerationStatus, reject
from beansnews.models.article import Article

EDITABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "improved_description",
        "source",
        "domain",
        "published_at",
        "image_url",
        "image_width",
        "image_height",
        "category",
        "geotag",
        "tags",
        "seo_title",
        "seo_description",
    }
)

PROTECTED_FIELDS = frozenset(
    {
        "id",
        "uuid",
        "link",
        "shopify_metaobject_id",
        "shopify_handle",
        "process_error",
        "process_stage",
        "created_at",
        "updated_at",
    }
)


def apply_edits(article: Article, changes: dict[str, Any], stage: str = "edit") -> list[str]:
    """应用编辑修改，返回实际修改的字段名.

    ``moderation_status`` 只能改为 ``rejected``（走拒绝边），其他状态变化
    必须由 AI 处理或发布完成。受保护字段和未知字段直接拒绝，文章不做任何修改。
    """
    protected = sorted(set(changes) & PROTECTED_FIELDS)
    if protected:
        msg = f"字段不可修改: {', '.join(protected)}"
        raise InvalidStateError(msg, stage=stage, article=article.uuid, detail={"fields": protected})

    unknown = sorted(set(changes) - EDITABLE_FIELDS - {"moderation_status"})
    if unknown:
        msg = f"未知字段: {', '.join(unknown)}"
        raise InvalidStateError(msg, stage=stage, article=article.uuid, detail={"fields": unknown})

    target = changes.get("moderation_status")
    if target is not None and target != article.moderation_status:
        if target != ModerationStatus.REJECTED:
            msg = "编辑只能将文章状态改为 rejected"
            raise InvalidStateError(
                msg,
                stage=stage,
                article=article.uuid,
                detail={"from": article.moderation_status, "to": target},
            )

    changed = []
    for key, value in changes.items():
        if key == "moderation_status":
            continue
        if getattr(article, key) != value:
            setattr(article, key, value)
            changed.append(key)

    if target == ModerationStatus.REJECTED and reject(article):
        changed.append("moderation_status")
    return changed
