"""
Discord forum to GitHub issues bridge for Red-DiscordBot.
"""


async def setup(bot) -> None:
    from .github_bridge import GitHubBridge

    await bot.add_cog(GitHubBridge(bot))
