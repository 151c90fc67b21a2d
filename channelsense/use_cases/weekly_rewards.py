"""Weekly reward distribution use case.

One run walks every active channel in turn:
1. Build the weekly report (analysis, candidates, narrative)
2. Issue one reward per candidate
3. Append every outcome to the reward ledger, then the report
4. Notify rewarded users and post the channel summary

A failing channel never stops the run; a failing candidate never stops its
channel. Only a missing collaborator, an unreadable channel list or an
unreadable ledger aborts.
"""

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

from channelsense.config.logging_config import get_logger
from channelsense.config.settings import Settings
from channelsense.domain.exceptions import FatalConfigurationError
from channelsense.domain.models import (
    ActiveChannel,
    ChannelRunResult,
    ChannelRunStatus,
    RewardCandidate,
    RewardOutcome,
    RunState,
    WeeklyReport,
    WeeklyRewardRunResult,
)
from channelsense.domain.protocols import (
    ActivityStoreProtocol,
    NarrativeGeneratorProtocol,
    NotifierProtocol,
    RewardIssuerProtocol,
)
from channelsense.observability.metrics import (
    NOTIFICATIONS_TOTAL,
    REWARD_ISSUANCE_TOTAL,
    WEEKLY_CHANNEL_RUNS_TOTAL,
    WEEKLY_RUN_DURATION_SECONDS,
)
from channelsense.observability.tracing import channel_scope, run_scope
from channelsense.services.bounded_calls import bounded
from channelsense.services.channel_analyzer import ChannelAnalyzer
from channelsense.services.engagement_scorer import EngagementScorer
from channelsense.services.report_formatter import (
    format_channel_summary,
    format_reward_notification,
)
from channelsense.use_cases.build_weekly_report import WeeklyReportBuilder

logger = get_logger(__name__)

T = TypeVar("T")


def build_reward_metadata(
    candidate: RewardCandidate,
    channel: ActiveChannel,
    *,
    run_id: str,
    reward_type: str,
    week: str,
) -> dict[str, Any]:
    """Token metadata sent to the issuer and kept in the ledger."""
    return {
        "name": f"Weekly Champion #{candidate.reward_rank} ({week})",
        "reward_type": reward_type,
        "rank": candidate.reward_rank,
        "score": candidate.score,
        "messages": candidate.message_count,
        "channel": channel.display_name,
        "channel_id": channel.channel_id,
        "week": week,
        "run_id": run_id,
    }


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


@dataclass(frozen=True, slots=True)
class _Collaborators:
    """Collaborators checked present at the start of a run."""

    store: ActivityStoreProtocol
    analyzer: ChannelAnalyzer
    issuer: RewardIssuerProtocol
    notifier: NotifierProtocol
    narrative: NarrativeGeneratorProtocol


class WeeklyRewardOrchestrator:
    """Runs one weekly reward cycle across all active channels.

    Re-running with the same `now` resumes that run: users already in the
    ledger for the run are never issued again, and channels whose report is
    already recorded are skipped.
    """

    def __init__(
        self,
        store: ActivityStoreProtocol | None,
        analyzer: ChannelAnalyzer | None,
        issuer: RewardIssuerProtocol | None,
        notifier: NotifierProtocol | None,
        narrative: NarrativeGeneratorProtocol | None,
        settings: Settings,
    ) -> None:
        """Initialize orchestrator.

        Collaborators may be None here; run() refuses to start without them.
        """
        self._store = store
        self._analyzer = analyzer
        self._issuer = issuer
        self._notifier = notifier
        self._narrative = narrative
        self._settings = settings
        self._timeout = settings.external_call_timeout_seconds

    def _require_collaborators(self) -> _Collaborators:
        store, analyzer, issuer = self._store, self._analyzer, self._issuer
        notifier, narrative = self._notifier, self._narrative
        if (
            store is None
            or analyzer is None
            or issuer is None
            or notifier is None
            or narrative is None
        ):
            missing = [
                name
                for name, collaborator in (
                    ("activity store", store),
                    ("channel analyzer", analyzer),
                    ("reward issuer", issuer),
                    ("notifier", notifier),
                    ("narrative generator", narrative),
                )
                if collaborator is None
            ]
            raise FatalConfigurationError(
                f"Weekly run cannot start, missing: {', '.join(missing)}"
            )
        return _Collaborators(store, analyzer, issuer, notifier, narrative)

    async def run(
        self, *, now: datetime | None = None, dry_run: bool = False
    ) -> WeeklyRewardRunResult:
        """Run one weekly cycle.

        Args:
            now: Run timestamp (defaults to current UTC time); also the run_id
            dry_run: Build reports and select candidates without issuing,
                recording or notifying

        Returns:
            WeeklyRewardRunResult with per-channel outcomes

        Raises:
            FatalConfigurationError: If a collaborator is missing, or active
                channels or the run's ledger entries cannot be read
        """
        deps = self._require_collaborators()

        started_at = now or datetime.now(tz=UTC)
        run_id = started_at.isoformat()
        run = WeeklyRewardRunResult(run_id=run_id, started_at=started_at)

        with run_scope(run_id), WEEKLY_RUN_DURATION_SECONDS.time():
            logger.info("weekly_rewards_started", dry_run=dry_run)

            run.state = RunState.ENUMERATING_CHANNELS
            since = started_at - timedelta(
                days=self._settings.active_channel_lookback_days
            )
            try:
                channels = await self._call(
                    deps.store.get_active_channels(
                        since,
                        self._settings.active_channel_min_messages,
                        until=started_at,
                    )
                )
            except Exception as exc:
                logger.error("weekly_rewards_enumeration_failed", error=_describe(exc))
                raise FatalConfigurationError(
                    f"Cannot enumerate active channels: {_describe(exc)}"
                ) from exc

            ledger = await self._load_ledger(deps, run_id)

            run.channels_found = len(channels)
            logger.info("weekly_rewards_channels_found", count=len(channels))

            processed: set[str] = set()
            for channel in channels:
                if channel.channel_id in processed:
                    logger.warning(
                        "weekly_rewards_duplicate_channel_skipped",
                        channel_id=channel.channel_id,
                    )
                    continue
                processed.add(channel.channel_id)

                with channel_scope(channel.channel_id):
                    channel_result = await self._process_channel(
                        deps, run, channel, started_at, ledger, dry_run
                    )
                run.channels.append(channel_result)
                WEEKLY_CHANNEL_RUNS_TOTAL.labels(
                    status=channel_result.status.value
                ).inc()

            run.state = RunState.COMPLETED
            run.completed_at = datetime.now(tz=UTC)
            logger.info(
                "weekly_rewards_completed",
                channels_found=run.channels_found,
                channels_failed=len(run.channels_failed),
                rewards_issued=run.rewards_issued,
                rewards_failed=run.rewards_failed,
            )
        return run

    async def _load_ledger(
        self, deps: _Collaborators, run_id: str
    ) -> dict[str, list[RewardOutcome]]:
        """Outcomes already recorded for this run, keyed by channel."""
        try:
            recorded = await self._call(deps.store.get_reward_outcomes(run_id))
        except Exception as exc:
            logger.error("weekly_rewards_ledger_read_failed", error=_describe(exc))
            raise FatalConfigurationError(
                f"Cannot read reward ledger: {_describe(exc)}"
            ) from exc

        ledger: dict[str, list[RewardOutcome]] = {}
        for outcome in recorded:
            ledger.setdefault(outcome.channel_id, []).append(outcome)
        if recorded:
            logger.info(
                "weekly_rewards_resuming",
                outcomes_recorded=len(recorded),
                channels=sorted(ledger),
            )
        return ledger

    async def _process_channel(
        self,
        deps: _Collaborators,
        run: WeeklyRewardRunResult,
        channel: ActiveChannel,
        now: datetime,
        ledger: dict[str, list[RewardOutcome]],
        dry_run: bool,
    ) -> ChannelRunResult:
        channel_id = channel.channel_id
        try:
            if not dry_run and await self._report_exists(deps, channel_id, run.run_id):
                logger.info("weekly_rewards_channel_already_recorded")
                return ChannelRunResult(
                    channel_id=channel_id,
                    status=ChannelRunStatus.ALREADY_RECORDED,
                    report_recorded=True,
                )

            run.state = RunState.ANALYZING
            report = await self._report_builder(deps).build(channel, run.run_id, now)

            run.state = RunState.SELECTING
            prior = list(ledger.get(channel_id, ()))
            already_recorded = {outcome.user_id for outcome in prior}
            candidates = [
                candidate
                for candidate in report.reward_candidates
                if candidate.user_id not in already_recorded
            ]
            logger.info(
                "weekly_rewards_candidates_selected",
                candidates=len(candidates),
                already_recorded=len(report.reward_candidates) - len(candidates),
                user_ids=[candidate.user_id for candidate in candidates],
            )

            if dry_run:
                return ChannelRunResult(
                    channel_id=channel_id,
                    status=ChannelRunStatus.DRY_RUN,
                    candidates=len(candidates),
                )

            if not candidates:
                report = report.model_copy(update={"outcomes": prior})
                await self._call(deps.store.append_weekly_report(report))
                return ChannelRunResult(
                    channel_id=channel_id,
                    status=(
                        ChannelRunStatus.ALREADY_RECORDED
                        if prior
                        else ChannelRunStatus.NO_CANDIDATES
                    ),
                    report_recorded=True,
                )

            run.state = RunState.ISSUING
            outcomes = await self._issue_all(
                deps.issuer, candidates, channel, run.run_id, now
            )

            run.state = RunState.RECORDING
            recorded = await self._record_outcomes(deps.store, outcomes)
            ledger.setdefault(channel_id, []).extend(recorded)
            report = report.model_copy(update={"outcomes": prior + recorded})
            report_recorded = await self._record_report(deps.store, report)

            run.state = RunState.NOTIFYING
            notifications_failed = await self._notify(
                deps.notifier, channel, report, recorded
            )
        except Exception as exc:
            logger.error(
                "weekly_rewards_channel_failed",
                error=_describe(exc),
                error_type=type(exc).__name__,
            )
            return ChannelRunResult(
                channel_id=channel_id,
                status=ChannelRunStatus.FAILED,
                error=_describe(exc),
            )

        return ChannelRunResult(
            channel_id=channel_id,
            status=ChannelRunStatus.REWARDED,
            candidates=len(candidates),
            rewards_issued=sum(1 for outcome in recorded if outcome.succeeded),
            rewards_failed=sum(1 for outcome in outcomes if not outcome.succeeded),
            outcomes_unrecorded=len(outcomes) - len(recorded),
            notifications_failed=notifications_failed,
            report_recorded=report_recorded,
        )

    async def _report_exists(
        self, deps: _Collaborators, channel_id: str, run_id: str
    ) -> bool:
        reports = await self._call(deps.store.get_weekly_reports(channel_id))
        return any(report.run_id == run_id for report in reports)

    def _report_builder(self, deps: _Collaborators) -> WeeklyReportBuilder:
        return WeeklyReportBuilder(
            deps.store,
            deps.analyzer,
            deps.narrative,
            min_messages=self._settings.min_messages_for_reward,
            top_n=self._settings.top_users_count,
            tz_name=self._settings.tz_default,
            call_timeout=self._timeout,
        )

    async def _issue_all(
        self,
        issuer: RewardIssuerProtocol,
        candidates: list[RewardCandidate],
        channel: ActiveChannel,
        run_id: str,
        now: datetime,
    ) -> list[RewardOutcome]:
        """Issue rewards with bounded concurrency; order follows candidates."""
        semaphore = asyncio.Semaphore(self._settings.reward_issue_concurrency)
        week = now.date().isoformat()

        async def _bounded_issue(candidate: RewardCandidate) -> RewardOutcome:
            async with semaphore:
                return await self._issue_one(issuer, candidate, channel, run_id, week)

        return list(await asyncio.gather(*(_bounded_issue(c) for c in candidates)))

    async def _issue_one(
        self,
        issuer: RewardIssuerProtocol,
        candidate: RewardCandidate,
        channel: ActiveChannel,
        run_id: str,
        week: str,
    ) -> RewardOutcome:
        metadata = build_reward_metadata(
            candidate,
            channel,
            run_id=run_id,
            reward_type=self._settings.reward_type,
            week=week,
        )
        try:
            result = await self._call(
                issuer.issue_reward(candidate, channel.channel_id, metadata)
            )
        except Exception as exc:
            failure = _describe(exc)
            logger.warning(
                "reward_issuance_failed", user_id=candidate.user_id, error=failure
            )
            REWARD_ISSUANCE_TOTAL.labels(status="error").inc()
            return RewardOutcome(
                run_id=run_id,
                user_id=candidate.user_id,
                channel_id=channel.channel_id,
                succeeded=False,
                failure_reason=failure,
                reward_rank=candidate.reward_rank,
                metadata=metadata,
            )

        if not result.success:
            failure = result.error or "reward issuer declined the request"
            logger.warning(
                "reward_issuance_declined", user_id=candidate.user_id, error=failure
            )
            REWARD_ISSUANCE_TOTAL.labels(status="declined").inc()
            return RewardOutcome(
                run_id=run_id,
                user_id=candidate.user_id,
                channel_id=channel.channel_id,
                succeeded=False,
                failure_reason=failure,
                reward_rank=candidate.reward_rank,
                metadata=metadata,
            )

        logger.info(
            "reward_issued",
            user_id=candidate.user_id,
            reward_rank=candidate.reward_rank,
            token_address=result.token_address,
        )
        REWARD_ISSUANCE_TOTAL.labels(status="success").inc()
        return RewardOutcome(
            run_id=run_id,
            user_id=candidate.user_id,
            channel_id=channel.channel_id,
            succeeded=True,
            reward_token_address=result.token_address,
            transaction_reference=result.tx_ref,
            reward_rank=candidate.reward_rank,
            metadata=metadata,
        )

    async def _record_outcomes(
        self, store: ActivityStoreProtocol, outcomes: list[RewardOutcome]
    ) -> list[RewardOutcome]:
        """Append outcomes to the ledger; returns the ones that were stored."""
        recorded: list[RewardOutcome] = []
        for outcome in outcomes:
            try:
                await self._call(store.append_reward_outcome(outcome))
            except Exception as exc:
                logger.error(
                    "reward_outcome_record_failed",
                    user_id=outcome.user_id,
                    succeeded=outcome.succeeded,
                    error=_describe(exc),
                )
                continue
            recorded.append(outcome)
        return recorded

    async def _record_report(
        self, store: ActivityStoreProtocol, report: WeeklyReport
    ) -> bool:
        try:
            await self._call(store.append_weekly_report(report))
        except Exception as exc:
            logger.error("weekly_report_record_failed", error=_describe(exc))
            return False
        return True

    async def _notify(
        self,
        notifier: NotifierProtocol,
        channel: ActiveChannel,
        report: WeeklyReport,
        recorded: list[RewardOutcome],
    ) -> int:
        """Notify recorded winners, then post the channel summary.

        Returns:
            Number of notifications that could not be delivered
        """
        failed = 0
        for outcome in recorded:
            if not outcome.succeeded:
                continue
            text = format_reward_notification(
                str(outcome.metadata.get("name", "Weekly Champion")),
                channel.display_name,
                outcome.reward_token_address,
            )
            try:
                await self._call(notifier.notify_user(outcome.user_id, text))
            except Exception as exc:
                failed += 1
                NOTIFICATIONS_TOTAL.labels(kind="user", status="error").inc()
                logger.warning(
                    "reward_notification_failed",
                    user_id=outcome.user_id,
                    error=_describe(exc),
                )
                continue
            NOTIFICATIONS_TOTAL.labels(kind="user", status="success").inc()

        try:
            await self._call(
                notifier.notify_channel(
                    channel.channel_id, format_channel_summary(report)
                )
            )
        except Exception as exc:
            failed += 1
            NOTIFICATIONS_TOTAL.labels(kind="channel", status="error").inc()
            logger.warning("channel_summary_failed", error=_describe(exc))
        else:
            NOTIFICATIONS_TOTAL.labels(kind="channel", status="success").inc()

        return failed

    async def _call(self, call: Awaitable[T]) -> T:
        return await bounded(call, self._timeout)


async def run_weekly_rewards_use_case_async(
    store: ActivityStoreProtocol,
    issuer: RewardIssuerProtocol,
    notifier: NotifierProtocol,
    narrative: NarrativeGeneratorProtocol,
    settings: Settings,
    *,
    now: datetime | None = None,
    dry_run: bool = False,
) -> WeeklyRewardRunResult:
    """Wire scorer, analyzer and orchestrator, then run one weekly cycle."""
    timeout = settings.external_call_timeout_seconds
    scorer = EngagementScorer(store, call_timeout=timeout)
    analyzer = ChannelAnalyzer(
        store,
        scorer,
        ranking_limit=settings.ranking_limit,
        call_timeout=timeout,
    )
    orchestrator = WeeklyRewardOrchestrator(
        store, analyzer, issuer, notifier, narrative, settings
    )
    return await orchestrator.run(now=now, dry_run=dry_run)


def run_weekly_rewards_use_case(
    store: ActivityStoreProtocol,
    issuer: RewardIssuerProtocol,
    notifier: NotifierProtocol,
    narrative: NarrativeGeneratorProtocol,
    settings: Settings,
    *,
    now: datetime | None = None,
    dry_run: bool = False,
) -> WeeklyRewardRunResult:
    """Synchronous entry point for schedulers and scripts.

    Runs the async use case in a dedicated event loop.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(
            run_weekly_rewards_use_case_async(
                store,
                issuer,
                notifier,
                narrative,
                settings,
                now=now,
                dry_run=dry_run,
            )
        )
    finally:
        loop.close()
