from __future__ import annotations

"""Plain-text rendering of `QuestService` results for terminals and chat clients."""

from typing import Any

from quest_scan.models import BOSS, MISSING_DOCS, MISSING_TESTS, TODO_HUNTER


SCANNER_EMOJI = {
    MISSING_DOCS: "📜",
    TODO_HUNTER: "🔍",
    MISSING_TESTS: "🧪",
    BOSS: "🐉",
}
DIFFICULTY_STARS = {1: "★☆☆", 2: "★★☆", 3: "★★★", 4: "★★★★"}
RULE_WIDTH = 50


def progress_bar(percent: int, width: int = 10) -> str:
    filled = round(percent / 100 * width)
    return "█" * filled + "░" * (width - filled)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _day(timestamp: str) -> str:
    return timestamp.split("T")[0]


def _level_line(xp: int, progress: dict[str, Any]) -> str:
    current = progress["current"]
    next_level = progress["next_level"]
    if next_level is None:
        return f"{current['icon']} Level: {current['name']} | XP: {xp} (max level)"
    return (
        f"{current['icon']} Level: {current['name']} | XP: {xp} "
        f"[{progress_bar(progress['percent'])}] {progress['percent']}% to {next_level['name']}"
    )


def render_quest_board(result: dict[str, Any]) -> str:
    quests = result["quests"]
    player = result["player"]
    lines = [
        f"⚔️ QUEST BOARD: {_plural(len(quests), 'quest')} found!",
        _level_line(player["xp"], player["progress"]),
        "─" * RULE_WIDTH,
    ]
    for quest in quests:
        emoji = SCANNER_EMOJI.get(quest["scanner"], "❓")
        stars = DIFFICULTY_STARS.get(quest["difficulty"], "???")
        marker = {"completed": " ✅", "active": " 🔸"}.get(quest.get("status", ""), "")
        lines.append("")
        lines.append(f'[Quest #{quest["number"]}] {stars} {emoji} "{quest["title"]}"{marker}')
        lines.append(f"  → {quest['description']}")
        lines.append(f"  → Reward: +{quest['xp']} XP")
        lines.append(f"  → Hint: {quest['hint']}")
    lines.append("")
    lines.append("─" * RULE_WIDTH)
    if quests:
        lines.append("Run `git-quest accept <number>` to begin a quest!")
    else:
        lines.append("No quests found. This code is in great shape!")
    return "\n".join(lines)


def render_accepted(result: dict[str, Any]) -> str:
    quest = result["quest"]
    stars = DIFFICULTY_STARS.get(quest["difficulty"], "???")
    location = quest["file_path"]
    if quest.get("line"):
        location = f"{location}, line {quest['line']}"
    heading = "Quest already in progress" if result.get("already_active") else "Quest Accepted"
    return "\n".join(
        [
            f'⚔️ {heading}: "{quest["title"]}" {stars}',
            "",
            "📋 OBJECTIVE:",
            quest["description"],
            "",
            f"📍 LOCATION: {location}",
            "",
            f"💡 HINT: {quest['hint']}",
            "",
            f"🎯 REWARD: +{quest['xp']} XP on completion",
            "",
            f"When you're done, run `git-quest verify {result['quest_number']}` to check your work!",
        ]
    )


def render_verification(result: dict[str, Any]) -> str:
    quest = result["quest"]
    if not result["resolved"]:
        return "\n".join(
            [
                f'❌ QUEST NOT YET COMPLETE: "{quest["title"]}"',
                "",
                f"📍 Issue: {quest['description']}",
                f"🔎 {result['detail']}",
                "",
                f"💡 HINT: {quest['hint']}",
                "",
                "Don't give up, brave coder! Make the fix and verify again.",
            ]
        )

    progress = result["progress"]
    lines = [f'✅ QUEST COMPLETE: "{quest["title"]}"', "", f"🎉 +{result['xp_gained']} XP earned!"]
    if progress["next_level"] is None:
        lines.append(f"📊 Progress: {result['total_xp']} XP (max level)")
    else:
        lines.append(
            f"📊 Progress: {result['total_xp']}/{progress['next_level']['min_xp']} XP → {progress['next_level']['name']}"
        )
    new_level = result.get("new_level")
    if result.get("leveled_up") and new_level:
        lines.append("")
        lines.append(f"🎉 LEVEL UP! → {new_level['name']} {new_level['icon']}")
    if result["new_badges"]:
        lines.append("")
        for badge in result["new_badges"]:
            lines.append(f'🏅 Badge Unlocked: "{badge["name"]}" {badge["icon"]}: {badge["description"]}')
    lines.append("")
    remaining = result["remaining"]
    if remaining > 0:
        lines.append(f"Keep going, adventurer! You have {_plural(remaining, 'quest')} remaining.")
        lines.append("Run `git-quest scan` to see the updated quest board.")
    else:
        lines.append("🎊 All quests complete! You are a true legend!")
    return "\n".join(lines)


def render_stats(result: dict[str, Any]) -> str:
    progress = result["progress"]
    current = progress["current"]
    if progress["next_level"] is None:
        xp_line = f"📊 XP: {result['xp']} (max level)"
    else:
        xp_line = (
            f"📊 XP: {result['xp']} [{progress_bar(progress['percent'])}] "
            f"{progress['xp_to_next']} XP to {progress['next_level']['name']}"
        )
    lines = [
        "🎮 PLAYER STATS",
        "",
        f"{current['icon']} Level: {current['name']}",
        xp_line,
        f"🏆 Quests Completed: {result['quests_completed']}",
        f"📅 Active Since: {_day(result['first_played'])}",
        "",
        "🏅 BADGES:",
    ]
    for badge in result["badges"]:
        lock = "✅" if badge["earned"] else "🔒"
        lines.append(f"  {lock} {badge['icon']} {badge['name']}: {badge['description']}")
    if result["recent_completions"]:
        lines.append("")
        lines.append("📈 RECENT QUESTS:")
        for item in result["recent_completions"]:
            lines.append(f'  ✅ "{item["id"]}" (+{item["xp"]} XP) on {_day(item["completed_at"])}')
    return "\n".join(lines)


def render_quest_log(result: dict[str, Any]) -> str:
    lines = ["📖 QUEST LOG", "─" * 40]
    header_lines = len(lines)
    if result.get("active"):
        lines.append("")
        lines.append("⚔️ ACTIVE QUESTS:")
        for item in result["active"]:
            lines.append(f'  🔸 [#{item["quest_number"]}] "{item["quest"]["title"]}" accepted {_day(item["accepted_at"])}')
    if result.get("completed"):
        lines.append("")
        lines.append("✅ COMPLETED QUESTS:")
        for item in result["completed"]:
            lines.append(f'  ✅ "{item["id"]}" (+{item["xp"]} XP) on {_day(item["completed_at"])}')
    if result.get("available"):
        lines.append("")
        lines.append("📋 AVAILABLE QUESTS:")
        for item in result["available"]:
            lines.append(f'  🔹 [#{item["number"]}] "{item["title"]}": {item["description"]}')
    if len(lines) == header_lines:
        lines.append("")
        lines.append("No quests found. Run `git-quest scan` to discover new quests!")
    return "\n".join(lines)


def render_rejection(error: dict[str, Any]) -> str:
    lines = [f"❌ {error['message']}"]
    if error.get("hint"):
        lines.append(f"💡 {error['hint']}")
    return "\n".join(lines)
