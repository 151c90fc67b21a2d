"""Chat message texts for reward notifications and weekly summaries."""

from typing import Final

from channelsense.domain.models import WeeklyReport

REWARD_EXPLORER_URL: Final[str] = "https://tonscan.org/nft/{address}"
SUMMARY_CONTRIBUTORS_LIMIT: Final[int] = 3


def format_reward_notification(
    reward_name: str, channel_name: str, token_address: str | None
) -> str:
    """Direct message sent to a rewarded user."""
    lines = [
        "🎉 **Congratulations! You've received an NFT reward!**",
        "",
        f"🏆 **NFT:** {reward_name}",
        f"📍 **From:** {channel_name}",
    ]
    if token_address:
        lines.append(f"💎 *Address:* {token_address}")
    lines += [
        "",
        "Your active participation has been recognized and rewarded!",
    ]
    if token_address:
        lines += [
            "",
            "🔍 **View on Explorer:**",
            REWARD_EXPLORER_URL.format(address=token_address),
        ]
    lines += ["", "Keep being awesome! 🚀"]
    return "\n".join(lines)


def format_growth(growth: float) -> str:
    return f"+{growth}%" if growth > 0 else f"{growth}%"


def format_channel_summary(report: WeeklyReport) -> str:
    """Weekly summary posted to the channel after rewards are issued.

    Lists the rewarded contributors (successful outcomes, in reward rank
    order) rather than every selected candidate.
    """
    rewarded_ids = {outcome.user_id for outcome in report.outcomes if outcome.succeeded}
    rewarded = [
        candidate
        for candidate in report.reward_candidates
        if candidate.user_id in rewarded_ids
    ][:SUMMARY_CONTRIBUTORS_LIMIT]

    contributor_lines = [
        f"{candidate.reward_rank}. {candidate.display_name} - "
        f"{candidate.message_count} messages"
        for candidate in rewarded
    ] or ["No rewards were issued this week."]

    recommendation_lines = [
        f"• {rec.title}: {rec.description}" for rec in report.recommendations
    ] or ["• Keep doing what you're doing."]

    summary = report.summary
    lines = [
        "📊 **Weekly Analytics Report**",
        "",
        "🔢 **Activity Summary:**",
        f"• Messages: {summary.total_messages}",
        f"• Active Users: {summary.active_users}",
        f"• Growth: {format_growth(summary.growth)}",
        "",
        "🏆 **Top Contributors (Rewarded):**",
        *contributor_lines,
        "",
        f"🎭 **Community Sentiment:** {report.sentiment.overall}",
        "",
        "🤖 **AI Insights:**",
        report.narrative_text,
        "",
        "💡 **Recommendations:**",
        *recommendation_lines,
        "",
        f"🎁 **NFT Rewards:** {len(rewarded_ids)} members received weekly "
        "champion NFTs!",
        "",
        "Keep up the great community engagement! 🚀",
    ]
    return "\n".join(lines)
