from __future__ import annotations

import logging
import sqlite3
from typing import Any, Optional

import discord
from discord import app_commands
from discord.ext import commands

from .config import Settings, load_settings
from .daily import DailyHoleCache
from .duels import submit_score
from .models import DailyHole, Duel, LevelEntry, SubmissionResult
from .storage import Database


logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("golf-bot")

EMOJI = {
    "trophy": "\N{TROPHY}",
    "golf": "\N{FLAG IN HOLE}",
    "fire": "\N{FIRE}",
    "medal1": "\N{FIRST PLACE MEDAL}",
    "medal2": "\N{SECOND PLACE MEDAL}",
    "medal3": "\N{THIRD PLACE MEDAL}",
    "flag": "\N{TRIANGULAR FLAG ON POST}",
    "chart": "\N{BAR CHART}",
    "swords": "\N{CROSSED SWORDS}\N{VARIATION SELECTOR-16}",
    "star": "\N{WHITE MEDIUM STAR}",
    "link": "\N{LINK SYMBOL}",
}

LEADERBOARD_VIEW_CHOICES = [
    app_commands.Choice(name="Overall (total strokes)", value="overall"),
    app_commands.Choice(name="Specific level", value="level"),
    app_commands.Choice(name="My scores", value="mine"),
]

TODAY_PREVIEW_LIMIT = 10
GENERIC_FAILURE = "Something went wrong! Try again."


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def medal_for(index: int) -> str:
    if index == 0:
        return EMOJI["medal1"]
    if index == 1:
        return EMOJI["medal2"]
    if index == 2:
        return EMOJI["medal3"]
    return f"`{index + 1}.`"


def format_level_entry(index: int, entry: LevelEntry, *, with_attempts: bool = True) -> str:
    line = f"{medal_for(index)} **{entry.username}** - {plural(entry.best_strokes, 'stroke')}"
    if with_attempts:
        line = f"{line} *({plural(entry.attempts, 'attempt')})*"
    return line


def describe_duel(result: SubmissionResult) -> str:
    duel = result.duel
    if duel is None:
        return ""
    if result.outcome is None:
        return f"{EMOJI['swords']} Duel score submitted! Waiting for opponent..."
    lines = [
        f"{EMOJI['swords']} **Duel Complete!**",
        f"<@{duel.challenger_id}>: **{duel.challenger_strokes}** strokes",
        f"<@{duel.opponent_id}>: **{duel.opponent_strokes}** strokes",
    ]
    if result.outcome.is_tie:
        lines.append("It's a **tie**!")
    else:
        lines.append(f"{EMOJI['trophy']} <@{result.outcome.winner_id}> wins!")
    return "\n".join(lines)


def describe_submission(result: SubmissionResult) -> str:
    lines = [f"**Level {result.level}** - **{plural(result.strokes, 'stroke')}**"]
    if result.previous_best is not None:
        if result.is_new_best:
            lines.append(f"Previous best: **{result.previous_best}** -> **{result.strokes}** {EMOJI['fire']}")
        else:
            lines.append(f"Your best: **{result.previous_best}** strokes")
    if result.rank is not None:
        lines.append(f"Server rank: **#{result.rank}**")
    body = "\n".join(lines)
    duel_text = describe_duel(result)
    if duel_text:
        body = f"{body}\n\n{duel_text}"
    return body


def describe_active_duel(duel: Duel, user_id: int) -> str:
    other_id = duel.opponent_id if duel.challenger_id == user_id else duel.challenger_id
    own = duel.strokes_for(user_id)
    state = f"you: {own}" if own is not None else "awaiting your score"
    return f"Level {duel.level} vs <@{other_id}> ({state})"


class PlayLinkView(discord.ui.View):
    def __init__(self, url: str) -> None:
        super().__init__(timeout=None)
        self.add_item(
            discord.ui.Button(
                label="Play Kinda Hard Golf",
                style=discord.ButtonStyle.link,
                url=url,
                emoji=EMOJI["golf"],
            )
        )


async def _send(interaction: discord.Interaction, **kwargs: Any) -> None:
    if interaction.response.is_done():
        await interaction.followup.send(**kwargs)
    else:
        await interaction.response.send_message(**kwargs)


async def _send_private(interaction: discord.Interaction, content: str) -> None:
    if interaction.response.is_done():
        # The first followup after a public defer edits that message, so the
        # "thinking" placeholder goes first to keep the notice ephemeral.
        try:
            await interaction.delete_original_response()
        except discord.NotFound:
            pass
    await _send(interaction, content=content, ephemeral=True)


class GolfService:
    def __init__(self, bot: GolfBot) -> None:
        self.bot = bot

    @property
    def game_url(self) -> str:
        return self.bot.settings.game_url

    def play_view(self) -> PlayLinkView:
        return PlayLinkView(self.game_url)

    async def daily_hole(self, interaction: discord.Interaction) -> DailyHole:
        # Scraping can outlast the interaction acknowledgement window.
        if not self.bot.daily.is_fresh() and not interaction.response.is_done():
            await interaction.response.defer(thinking=True)
        return await self.bot.daily.get_daily()

    async def resolve_level(self, interaction: discord.Interaction, level: int | None, example: str) -> int | None:
        if level is not None:
            return level
        daily = await self.daily_hole(interaction)
        if daily.hole_number is None:
            await _send_private(
                interaction,
                f"Couldn't fetch today's hole number. Please specify a level manually: `{example}`",
            )
            return None
        return daily.hole_number

    async def handle_golf(self, interaction: discord.Interaction, level: int | None) -> None:
        daily = await self.daily_hole(interaction)
        today_info = f"Today's hole: **No. {daily.hole_number}**\n\n" if daily.hole_number is not None else ""
        if level is not None:
            call_to_action = f"**Go play Level {level}** and come back to submit your score!"
        else:
            call_to_action = "**Click below to play**, then submit your score with `/submit`!"

        embed = discord.Embed(
            title=f"{EMOJI['golf']} Kinda Hard Golf",
            description=(
                f"{today_info}Think you've got what it takes?\n\n"
                f"{call_to_action}\n\nThe game is... kinda hard. Good luck."
            ),
            url=self.game_url,
            color=discord.Color(0x2ECC71),
        )
        embed.set_footer(text="Use /submit to log your score • /leaderboard to see rankings")
        await _send(interaction, embed=embed, view=self.play_view())

    async def handle_today(self, interaction: discord.Interaction) -> None:
        daily = await self.daily_hole(interaction)
        if daily.hole_number is None:
            await _send_private(interaction, "Couldn't fetch today's hole info - try again in a minute!")
            return

        entries = self.bot.db.level_leaderboard(interaction.guild_id, daily.hole_number)
        if entries:
            lines = [
                format_level_entry(index, entry, with_attempts=False)
                for index, entry in enumerate(entries[:TODAY_PREVIEW_LIMIT])
            ]
            board = f"**{EMOJI['trophy']} Server Scores for No. {daily.hole_number}:**\n" + "\n".join(lines)
        else:
            board = "No one has submitted a score yet - be the first!\nUse `/submit strokes:<your score>`"

        embed = discord.Embed(
            title=f"{EMOJI['golf']} Today's Hole - No. {daily.hole_number}",
            description=(
                f"**{daily.display_date or 'Today'}**\n\n"
                f"Today's daily hole is **No. {daily.hole_number}**. Play it and submit your score!\n\n{board}"
            ),
            url=self.game_url,
            color=discord.Color(0xE67E22),
        )
        embed.set_footer(text="Use /submit strokes:<score> to log your score")
        await _send(interaction, embed=embed, view=self.play_view())

    async def handle_submit(self, interaction: discord.Interaction, strokes: int, level: int | None) -> None:
        level = await self.resolve_level(interaction, level, "/submit strokes:8 level:315")
        if level is None:
            return

        username = interaction.user.display_name
        result = submit_score(
            self.bot.db,
            guild_id=interaction.guild_id,
            user_id=interaction.user.id,
            username=username,
            level=level,
            strokes=strokes,
        )
        if result.outcome is not None:
            logger.info("Duel %s completed on level %s", result.duel.duel_id, level)

        if result.is_new_best:
            title = f"{EMOJI['star']} New Personal Best!"
            color = discord.Color(0xF1C40F)
        else:
            title = f"{EMOJI['flag']} Score Submitted"
            color = discord.Color(0x3498DB)

        embed = discord.Embed(
            title=title,
            description=describe_submission(result),
            color=color,
            timestamp=discord.utils.utcnow(),
        )
        embed.set_footer(text=f"{username} • Level {level}")
        await _send(interaction, embed=embed)

    async def handle_leaderboard(self, interaction: discord.Interaction, view: str, level: int | None) -> None:
        guild_id = interaction.guild_id
        if view == "level":
            await self._send_level_leaderboard(interaction, guild_id, level)
        elif view == "mine":
            await self._send_own_scores(interaction, guild_id)
        else:
            await self._send_overall_leaderboard(interaction, guild_id)

    async def _send_level_leaderboard(self, interaction: discord.Interaction, guild_id: int, level: int | None) -> None:
        if level is None:
            await _send_private(
                interaction,
                "Please specify a level number! Example: `/leaderboard view:Specific level level:5`",
            )
            return

        entries = self.bot.db.level_leaderboard(guild_id, level)
        if not entries:
            await _send_private(
                interaction,
                f"No scores submitted for Level {level} yet! Be the first with `/submit`.",
            )
            return

        embed = discord.Embed(
            title=f"{EMOJI['trophy']} Level {level} Leaderboard",
            description="\n".join(format_level_entry(index, entry) for index, entry in enumerate(entries)),
            color=discord.Color(0xF1C40F),
        )
        embed.set_footer(text="Best scores per player")
        await _send(interaction, embed=embed, view=self.play_view())

    async def _send_own_scores(self, interaction: discord.Interaction, guild_id: int) -> None:
        scores = self.bot.db.player_scores(guild_id, interaction.user.id)
        if not scores:
            await _send_private(
                interaction,
                "You haven't submitted any scores yet! Play at kindahardgolf.com and use `/submit`.",
            )
            return

        total_strokes = sum(score.best for score in scores)
        lines = [
            f"**Level {score.level}** - {EMOJI['golf']} {plural(score.best, 'stroke')} *({plural(score.attempts, 'attempt')})*"
            for score in scores
        ]
        lines.append("")
        lines.append(f"**Total:** {total_strokes} strokes across {plural(len(scores), 'level')}")

        embed = discord.Embed(
            title=f"{EMOJI['chart']} Your Scores",
            description="\n".join(lines),
            color=discord.Color(0x9B59B6),
        )
        embed.set_footer(text=interaction.user.display_name)
        await _send(interaction, embed=embed, view=self.play_view())

    async def _send_overall_leaderboard(self, interaction: discord.Interaction, guild_id: int) -> None:
        entries = self.bot.db.overall_leaderboard(guild_id)
        if not entries:
            await _send_private(
                interaction,
                "No scores yet! Get started at kindahardgolf.com and use `/submit`.",
            )
            return

        lines = [
            f"{medal_for(index)} **{entry.username}** - {plural(entry.levels_played, 'level')}, "
            f"{entry.total_strokes} total strokes"
            for index, entry in enumerate(entries)
        ]
        embed = discord.Embed(
            title=f"{EMOJI['trophy']} Kinda Hard Golf Leaderboard",
            description="\n".join(lines),
            color=discord.Color(0xF1C40F),
        )
        embed.set_footer(text="Ranked by levels completed, then fewest total strokes")
        await _send(interaction, embed=embed, view=self.play_view())

    async def handle_duel(self, interaction: discord.Interaction, opponent: discord.User, level: int | None) -> None:
        if opponent.id == interaction.user.id:
            await _send_private(interaction, "You can't duel yourself!")
            return
        if opponent.bot:
            await _send_private(interaction, "You can't duel a bot!")
            return

        level = await self.resolve_level(interaction, level, "/golfduel @player level:315")
        if level is None:
            return

        duel = self.bot.db.create_duel(
            guild_id=interaction.guild_id,
            challenger_id=interaction.user.id,
            opponent_id=opponent.id,
            level=level,
        )
        logger.info(
            "Duel %s created: %s vs %s on level %s",
            duel.duel_id,
            duel.challenger_id,
            duel.opponent_id,
            level,
        )

        embed = discord.Embed(
            title=f"{EMOJI['swords']} Golf Duel - Hole {level}!",
            description=(
                f"**{interaction.user.display_name}** has challenged **{opponent.display_name}** to a duel!\n\n"
                f"**Hole {level}** - Play it and submit your score with:\n"
                "`/submit strokes:<your score>`\n\n"
                "Both players must submit to see the result!"
            ),
            color=discord.Color(0xE74C3C),
        )
        embed.set_footer(text="May the fewest strokes win")
        await _send(interaction, embed=embed, view=self.play_view())

    async def handle_stats(self, interaction: discord.Interaction, player: discord.User | discord.Member | None) -> None:
        target = player or interaction.user
        guild_id = interaction.guild_id

        stats = self.bot.db.player_stats(guild_id, target.id)
        if stats is None:
            await _send_private(interaction, f"{target.display_name} hasn't submitted any scores yet!")
            return

        scores = self.bot.db.player_scores(guild_id, target.id)
        best_level = min(scores, key=lambda score: score.best)
        duels = self.bot.db.active_duels(guild_id, target.id)

        lines = [
            f"**Levels Played:** {stats.levels_played}",
            f"**Total Attempts:** {stats.total_attempts}",
            f"**Best Single Score:** {stats.best_single} strokes",
            f"**Avg Strokes/Attempt:** {stats.avg_strokes}",
            f"**Best Level:** Level {best_level.level} ({best_level.best} strokes)",
        ]
        if duels:
            lines.append("")
            lines.append(f"{EMOJI['swords']} **Active Duels:** {len(duels)}")
            lines.extend(describe_active_duel(duel, target.id) for duel in duels)

        embed = discord.Embed(
            title=f"{EMOJI['chart']} {target.display_name}'s Golf Stats",
            description="\n".join(lines),
            color=discord.Color(0x1ABC9C),
        )
        embed.set_thumbnail(url=target.display_avatar.url)
        embed.set_footer(text="Kinda Hard Golf")
        await _send(interaction, embed=embed)

    async def handle_help(self, interaction: discord.Interaction) -> None:
        embed = discord.Embed(
            title=f"{EMOJI['golf']} Kinda Hard Golf Bot",
            description=(
                "Wrap your Kinda Hard Golf addiction in Discord with leaderboards and duels!\n\n"
                "**How it works:**\n"
                f"1. Play at [kindahardgolf.com]({self.game_url})\n"
                "2. Submit your scores here\n"
                "3. Compete with your server!\n\n"
                "**Commands:**\n"
                f"{EMOJI['link']} `/golf` - Link to play the game\n"
                f"{EMOJI['golf']} `/today` - Today's hole and server scores\n"
                f"{EMOJI['flag']} `/submit` - Submit a score for a level\n"
                f"{EMOJI['trophy']} `/leaderboard` - View rankings (overall, by level, or yours)\n"
                f"{EMOJI['swords']} `/golfduel` - Challenge someone to compete on a level\n"
                f"{EMOJI['chart']} `/golfstats` - View detailed player stats\n\n"
                "*Scores are tracked per-server. Your best score per level counts for rankings.*"
            ),
            color=discord.Color(0x2ECC71),
        )
        embed.set_footer(text="It's kinda hard. Good luck.")
        await _send(interaction, embed=embed, view=self.play_view())


class GolfBot(commands.Bot):
    def __init__(self, settings: Settings) -> None:
        intents = discord.Intents.default()
        super().__init__(command_prefix="!", intents=intents)

        self.settings = settings
        self.db = Database(path=settings.database_path)
        self.daily = DailyHoleCache(
            settings.game_url,
            ttl_seconds=settings.daily_cache_minutes * 60,
            timeout=settings.daily_fetch_timeout,
        )
        self.golf_service = GolfService(self)

    async def setup_hook(self) -> None:
        register_commands(self)
        if self.settings.command_guild_id:
            guild = discord.Object(id=self.settings.command_guild_id)
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
            logger.info("Synced commands to guild %s", self.settings.command_guild_id)
        else:
            await self.tree.sync()
            logger.info("Synced global commands")

    async def on_ready(self) -> None:
        if self.user:
            logger.info("Connected as %s (%s)", self.user.name, self.user.id)
        logger.info("Serving %s server(s)", len(self.guilds))

    async def close(self) -> None:
        self.db.close()
        await super().close()


def register_commands(bot: GolfBot) -> None:
    service = bot.golf_service

    @bot.tree.error
    async def on_app_command_error(interaction: discord.Interaction, error: app_commands.AppCommandError) -> None:
        command_name = interaction.command.name if interaction.command else "unknown"
        original = error.original if isinstance(error, app_commands.CommandInvokeError) else error
        if isinstance(original, sqlite3.Error):
            logger.error("Database failure in /%s", command_name, exc_info=original)
        else:
            logger.error("Error handling /%s", command_name, exc_info=original)
        try:
            await _send(interaction, content=GENERIC_FAILURE, ephemeral=True)
        except discord.DiscordException:
            logger.warning("Unable to report failure for /%s", command_name)

    @bot.tree.command(name="golf", description="Play Kinda Hard Golf!")
    @app_commands.describe(level="Specific level number to link to (optional)")
    async def golf(interaction: discord.Interaction, level: Optional[app_commands.Range[int, 1]] = None) -> None:
        await service.handle_golf(interaction, level)

    @bot.tree.command(name="today", description="Show today's daily hole and server scores")
    @app_commands.guild_only()
    async def today(interaction: discord.Interaction) -> None:
        await service.handle_today(interaction)

    @bot.tree.command(name="submit", description="Submit your score for a level")
    @app_commands.guild_only()
    @app_commands.describe(
        strokes="Number of strokes it took you",
        level="Level number (defaults to today's hole)",
    )
    async def submit(
        interaction: discord.Interaction,
        strokes: app_commands.Range[int, 1],
        level: Optional[app_commands.Range[int, 1]] = None,
    ) -> None:
        await service.handle_submit(interaction, strokes, level)

    @bot.tree.command(name="leaderboard", description="View the leaderboard")
    @app_commands.guild_only()
    @app_commands.describe(view="What to view", level="Level number (for level leaderboard)")
    @app_commands.choices(view=LEADERBOARD_VIEW_CHOICES)
    async def leaderboard(
        interaction: discord.Interaction,
        view: Optional[app_commands.Choice[str]] = None,
        level: Optional[app_commands.Range[int, 1]] = None,
    ) -> None:
        await service.handle_leaderboard(interaction, view.value if view else "overall", level)

    @bot.tree.command(name="golfduel", description="Challenge someone to a golf duel on a specific level!")
    @app_commands.guild_only()
    @app_commands.describe(opponent="Who are you challenging?", level="Level number to compete on (defaults to today's hole)")
    async def golfduel(
        interaction: discord.Interaction,
        opponent: discord.User,
        level: Optional[app_commands.Range[int, 1]] = None,
    ) -> None:
        await service.handle_duel(interaction, opponent, level)

    @bot.tree.command(name="golfstats", description="View detailed stats for a player")
    @app_commands.guild_only()
    @app_commands.describe(player="Player to look up (defaults to you)")
    async def golfstats(interaction: discord.Interaction, player: Optional[discord.User] = None) -> None:
        await service.handle_stats(interaction, player)

    @bot.tree.command(name="golfhelp", description="How to use the Kinda Hard Golf bot")
    async def golfhelp(interaction: discord.Interaction) -> None:
        await service.handle_help(interaction)


def main() -> None:
    settings = load_settings()
    bot = GolfBot(settings)
    bot.run(settings.discord_token)


if __name__ == "__main__":
    main()
