from __future__ import annotations
import copy
from uuid import UUID
import structlog
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from goodgrid.db import SessionLocal, transaction
from goodgrid.errors import TransactionFailed
from goodgrid.models.catalog import Badge, UserBadge, Zone
from goodgrid.models.ledger import PaymentStatus, RewardDistribution
from goodgrid.models.stats import UserStats, empty_category_stats
from goodgrid.models.task import Task
from goodgrid.schemas.rewards import BadgeCriteria, TaskRewards, ZoneRequirements
from goodgrid.services.leveling import (
    level_for, quality_multiplier, rating_from_score, round_half_up, running_average,
)
from goodgrid.services.notifications import NotificationEvent, Notifier, notify_safely
from goodgrid.services.payments import PaymentProcessor

log = structlog.get_logger()

# ---------- pure rules ----------

def total_tasks(category_stats: dict) -> int:
    return sum(int(bucket.get("tasksCompleted", 0)) for bucket in category_stats.values())


def badge_qualifies(criteria: BadgeCriteria, trust_score: int, category_stats: dict, held_names: set[str]) -> bool:
    """AND of every criterion present; checked trust, total tasks, per-category, prerequisites."""
    if criteria.trust_score is not None and trust_score < criteria.trust_score:
        return False
    if criteria.tasks_completed is not None and total_tasks(category_stats) < criteria.tasks_completed:
        return False
    for category, required in criteria.category_tasks.items():
        bucket = category_stats.get(category.lower()) or {}
        if int(bucket.get("tasksCompleted", 0)) < required:
            return False
    if any(name not in held_names for name in criteria.required_badges):
        return False
    return True


def zone_qualifies(req: ZoneRequirements, level: int, trust_score: int) -> bool:
    if req.trust_score is not None and trust_score < req.trust_score:
        return False
    if req.level is not None and level < req.level:
        return False
    return True

# ---------- in-transaction steps ----------

async def load_or_create_stats(session: AsyncSession, user_id: UUID) -> UserStats:
    stats = await session.get(UserStats, user_id, with_for_update=True)
    if stats is None:
        stats = UserStats(
            user_id=user_id,
            trust_score=0,
            rwis_score=0,
            xp_points=0,
            current_level=1,
            unlocked_zones=[],
            category_stats=empty_category_stats(),
        )
        session.add(stats)
        await session.flush()
    return stats


async def _insert_user_badge_once(session: AsyncSession, user_id: UUID, badge_id: UUID, task_id: UUID | None) -> bool:
    """Insert-or-skip on (user_id, badge_id). Returns True if this call created the row."""
    values = {"user_id": user_id, "badge_id": badge_id, "task_id": task_id}
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(UserBadge).values(**values).on_conflict_do_nothing(index_elements=["user_id", "badge_id"])
    elif dialect == "sqlite":
        stmt = sqlite_insert(UserBadge).values(**values).on_conflict_do_nothing(index_elements=["user_id", "badge_id"])
    else:
        exists = await session.scalar(
            select(UserBadge.id).where(UserBadge.user_id == user_id, UserBadge.badge_id == badge_id)
        )
        if exists:
            return False
        session.add(UserBadge(**values))
        await session.flush()
        return True
    result = await session.execute(stmt)
    return result.rowcount == 1


async def evaluate_badges(session: AsyncSession, stats: UserStats, task_id: UUID | None = None) -> list[Badge]:
    """
    Award every catalog badge the user now qualifies for. Repeats until nothing new
    qualifies so prerequisite chains resolve in one pass. Never revokes.
    """
    catalog = (await session.execute(select(Badge).order_by(Badge.created_at.asc(), Badge.name.asc()))).scalars().all()
    held_ids = set((await session.execute(
        select(UserBadge.badge_id).where(UserBadge.user_id == stats.user_id)
    )).scalars().all())
    held_names = {b.name for b in catalog if b.id in held_ids}

    qualified: list[Badge] = []
    changed = True
    while changed:
        changed = False
        for badge in catalog:
            if badge.id in held_ids:
                continue
            criteria = BadgeCriteria.model_validate(badge.unlock_criteria or {})
            if badge_qualifies(criteria, stats.trust_score, stats.category_stats or {}, held_names):
                held_ids.add(badge.id)
                held_names.add(badge.name)
                qualified.append(badge)
                changed = True

    awarded = []
    for badge in qualified:
        if await _insert_user_badge_once(session, stats.user_id, badge.id, task_id):
            awarded.append(badge)
    return awarded


async def apply_rewards(
    session: AsyncSession,
    *,
    user_id: UUID,
    task: Task,
    quality_score: float,
    submission_id: UUID,
) -> RewardDistribution:
    """
    Stat mutation + badge evaluation + ledger row, inside the caller's transaction.
    The caller owns commit/rollback; nothing here is visible until it commits.
    """
    rewards = TaskRewards.model_validate(task.rewards_json or {})
    multiplier = quality_multiplier(quality_score)
    xp_awarded = round_half_up(rewards.xp * multiplier)
    trust_change = round_half_up(rewards.trust_score_bonus * multiplier)
    rwis_awarded = round_half_up(rewards.rwis_points * multiplier)

    stats = await load_or_create_stats(session, user_id)
    previous_level = stats.current_level

    stats.xp_points = stats.xp_points + xp_awarded
    stats.trust_score = max(0, stats.trust_score + trust_change)
    stats.rwis_score = max(0, stats.rwis_score + rwis_awarded)
    stats.current_level = level_for(stats.xp_points)

    # JSON columns are not mutation-tracked; always assign a fresh dict
    categories = copy.deepcopy(stats.category_stats or empty_category_stats())
    bucket = categories.setdefault(task.category.stats_key, {"tasksCompleted": 0, "totalXP": 0, "averageRating": 0.0})
    previous_count = int(bucket.get("tasksCompleted", 0))
    bucket["averageRating"] = running_average(float(bucket.get("averageRating", 0.0)), previous_count, rating_from_score(quality_score))
    bucket["tasksCompleted"] = previous_count + 1
    bucket["totalXP"] = int(bucket.get("totalXP", 0)) + xp_awarded
    stats.category_stats = categories
    await session.flush()

    badges = await evaluate_badges(session, stats, task.id)

    distribution = RewardDistribution(
        submission_id=submission_id,
        user_id=user_id,
        xp_awarded=xp_awarded,
        trust_score_change=trust_change,
        rwis_awarded=rwis_awarded,
        quality_score=round_half_up(quality_score),
        badges_awarded=[str(b.id) for b in badges],
        payment_amount=rewards.payment if rewards.payment else None,
        payment_status=PaymentStatus.PENDING if rewards.payment else None,
    )
    session.add(distribution)
    await session.flush()

    log.info(
        "rewards_applied",
        user_id=str(user_id),
        submission_id=str(submission_id),
        xp=xp_awarded,
        trust=trust_change,
        rwis=rwis_awarded,
        level=stats.current_level,
        leveled_up=stats.current_level > previous_level,
        badges=[b.name for b in badges],
    )
    return distribution


async def check_zone_unlocks(session: AsyncSession, user_id: UUID) -> list[Zone]:
    """Append newly qualifying zones to unlocked_zones. Idempotent: re-running converges."""
    stats = await session.get(UserStats, user_id, with_for_update=True)
    if stats is None:
        return []
    unlocked = list(stats.unlocked_zones or [])
    zones = (await session.execute(select(Zone).order_by(Zone.created_at.asc(), Zone.name.asc()))).scalars().all()
    newly = [
        z for z in zones
        if str(z.id) not in unlocked
        and zone_qualifies(ZoneRequirements.model_validate(z.unlock_requirements or {}), stats.current_level, stats.trust_score)
    ]
    if newly:
        stats.unlocked_zones = unlocked + [str(z.id) for z in newly]
    return newly

# ---------- standalone units of work ----------

async def unlock_zones_safely(
    user_id: UUID,
    *,
    session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
    notifier: Notifier | None = None,
) -> list[Zone]:
    """Post-commit side channel. Failures are logged; the next reward event retries."""
    try:
        async with transaction(session_factory) as session:
            newly = await check_zone_unlocks(session, user_id)
    except Exception as e:
        log.error("zone_unlock_failed", user_id=str(user_id), error=str(e))
        return []
    for zone in newly:
        log.info("zone_unlocked", user_id=str(user_id), zone_id=str(zone.id), zone=zone.name)
        if notifier is not None:
            await notify_safely(notifier, user_id, NotificationEvent.ZONE_UNLOCKED, {"zoneId": str(zone.id), "zoneName": zone.name})
    return newly


async def distribute_rewards(
    user_id: UUID,
    task: Task,
    quality_score: float,
    submission_id: UUID,
    *,
    session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
    notifier: Notifier | None = None,
) -> RewardDistribution:
    async with transaction(session_factory) as session:
        distribution = await apply_rewards(
            session, user_id=user_id, task=task, quality_score=quality_score, submission_id=submission_id
        )
    await unlock_zones_safely(user_id, session_factory=session_factory, notifier=notifier)
    return distribution


async def process_pending_payments(
    processor: PaymentProcessor,
    *,
    session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
) -> dict[str, int]:
    """Each payout is its own unit of work; one failure never blocks the rest."""
    async with session_factory() as session:
        pending = (await session.execute(
            select(RewardDistribution)
            .where(RewardDistribution.payment_status == PaymentStatus.PENDING, RewardDistribution.payment_amount > 0)
            .order_by(RewardDistribution.distributed_at.asc())
        )).scalars().all()

    counts = {"processed": 0, "failed": 0}
    for dist in pending:
        try:
            await processor.pay(dist)
            outcome = PaymentStatus.PROCESSED
        except Exception as e:
            log.error("payment_failed", distribution_id=str(dist.id), user_id=str(dist.user_id), error=str(e))
            outcome = PaymentStatus.FAILED
        try:
            async with transaction(session_factory) as session:
                await session.execute(
                    update(RewardDistribution)
                    .where(RewardDistribution.id == dist.id, RewardDistribution.payment_status == PaymentStatus.PENDING)
                    .values(payment_status=outcome)
                    .execution_options(synchronize_session=False)
                )
        except TransactionFailed as e:
            log.error("payment_status_write_failed", distribution_id=str(dist.id), error=str(e))
            continue
        counts[outcome.value.lower()] += 1
    log.info("payments_swept", **counts)
    return counts

# ---------- read models ----------

async def get_user_stats(session: AsyncSession, user_id: UUID) -> UserStats | None:
    return await session.get(UserStats, user_id)


async def reward_history(session: AsyncSession, user_id: UUID, limit: int = 20, offset: int = 0) -> list[RewardDistribution]:
    return (await session.execute(
        select(RewardDistribution)
        .where(RewardDistribution.user_id == user_id)
        .order_by(RewardDistribution.distributed_at.desc())
        .limit(limit)
        .offset(offset)
    )).scalars().all()
