"""定时任务定义."""

import logging
from collections.abc import Iterable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from beansnews.config import Settings
from beansnews.core.pipeline import Pipeline
from beansnews.models.source import Source

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None


async def source_task(pipeline: Pipeline, source_name: str) -> None:
    """数据源任务：抓取后立即 AI 处理."""
    logger.info(f"开始定时任务: {source_name}")
    try:
        run = await pipeline.run_source(source_name, trigger="schedule")
    except Exception as e:
        logger.exception(f"数据源定时任务失败: {source_name} - {e}")
        return

    if run.ingest is not None and run.enrich is not None:
        logger.info(
            f"定时任务完成: {source_name}, 新增={run.ingest.new_count}, "
            f"AI 处理={run.enrich.processed_count}"
        )


async def publish_task(pipeline: Pipeline) -> None:
    """发布任务：把所有 aiProcessed 文章推送到 Shopify."""
    logger.info("开始定时发布任务...")
    try:
        result = await pipeline.publish(trigger="schedule")
    except Exception as e:
        logger.exception(f"定时发布任务失败: {e}")
        return

    logger.info(
        f"定时发布完成: 新建={result.created}, 更新={result.updated}, "
        f"冲突={result.conflicts}, 失败={result.failed_count}"
    )


def build_trigger(expression: str, name: str) -> CronTrigger:
    """解析 crontab 表达式，无效时立即报错."""
    try:
        return CronTrigger.from_crontab(expression)
    except ValueError as e:
        msg = f"'{name}' 的 crontab 表达式无效: {expression!r} ({e})"
        raise ValueError(msg) from e


def _add_source_job(
    scheduler: AsyncIOScheduler,
    pipeline: Pipeline,
    name: str,
    trigger: CronTrigger,
) -> None:
    scheduler.add_job(
        source_task,
        trigger,
        args=[pipeline, name],
        id=f"source_{name}",
        name=f"{name} 抓取+AI 处理",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )


def schedule_source(pipeline: Pipeline, source: Source) -> bool:
    """把新数据源加入正在运行的调度器，调度器未启动时返回 False."""
    trigger = build_trigger(source.cron_schedule, source.name)
    if _scheduler is None:
        return False
    _add_source_job(_scheduler, pipeline, source.name, trigger)
    logger.info(f"已添加数据源任务: {source.name} ({source.cron_schedule})")
    return True


def create_scheduler(
    pipeline: Pipeline,
    sources: Iterable[Source],
    settings: Settings,
) -> AsyncIOScheduler:
    """创建并启动定时任务调度器.

    每个数据源一个 cron 任务（抓取 + AI 处理），另有一个全局发布任务。
    同一任务不会并发执行，错过的触发合并为一次。
    """
    global _scheduler

    sources = list(sources)
    pipeline.validate_sources(sources)
    # 先解析所有表达式，任何一个无效都不启动调度器
    triggers = {source.name: build_trigger(source.cron_schedule, source.name) for source in sources}
    publish_trigger = build_trigger(settings.publish_cron, "publish")

    scheduler = AsyncIOScheduler()
    for name, trigger in triggers.items():
        _add_source_job(scheduler, pipeline, name, trigger)

    scheduler.add_job(
        publish_task,
        publish_trigger,
        args=[pipeline],
        id="publish_shopify",
        name="发布到 Shopify",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    scheduler.start()
    _scheduler = scheduler
    logger.info(
        f"定时任务调度器已启动: {len(triggers)} 个数据源任务，发布时间: {settings.publish_cron}"
    )
    return scheduler


async def shutdown_scheduler() -> None:
    """关闭定时任务调度器."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        logger.info("定时任务调度器已关闭")
        _scheduler = None
