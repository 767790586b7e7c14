from __future__ import annotations

from typing import Optional

import logging

import discord
from redbot.core import commands, Config
from redbot.core.bot import Red

from .client import GitHubAppClient
from .config import DEFAULT_GLOBAL_CONFIG, BridgeSettings, parse_additional_labels, parse_repository
from .engine import SyncEngine
from .errors import ConfigurationError, NotConfigured
from .helpers import forum_tags, message_from_discord, thread_from_discord
from .models import Thread
from .permissions import PermissionGate, Readiness, initialize
from .reconcile import ReconciliationScanner
from .store import ThreadStore


class GitHubBridge(commands.Cog):
    """
    Mirror a Discord forum channel into GitHub issues.

    - The first message of a forum post opens a GitHub issue
    - Follow-up messages become issue comments, deleting them deletes the comment
    - Archiving/unarchiving a post closes/reopens the issue
    - Locking/unlocking a post locks/unlocks the issue
    - Deleting a post deletes the issue (requires Issues: Read & Write)
    - On load, mirrored posts are rebuilt from the Discord links in GitHub bodies
    """

    __version__ = "1.0.0"

    def __init__(self, bot: Red) -> None:
        self.bot = bot
        self.config = Config.get_conf(self, identifier=908039527271104515, force_registration=True)
        self.log = logging.getLogger(f"red.{__name__}")
        self.config.register_global(**DEFAULT_GLOBAL_CONFIG)

        self.store = ThreadStore()
        self.settings: Optional[BridgeSettings] = None
        self.engine: Optional[SyncEngine] = None
        self.readiness: Optional[Readiness] = None

    async def cog_load(self) -> None:
        await self.start_bridge()

    async def start_bridge(self) -> Optional[Readiness]:
        """
        Resolve settings, run the GitHub self-check and reload mirrored threads.

        Returns None when the bridge is not configured. A malformed repository
        raises ConfigurationError.
        """
        self.engine = None
        try:
            settings = BridgeSettings.from_config(await self.config.all())
        except NotConfigured as e:
            self.log.warning("GitHub bridge disabled: %s", e)
            self.settings = None
            self.readiness = None
            return None

        client = GitHubAppClient(settings)
        gate = PermissionGate(client)
        self.readiness = await initialize(client, gate)
        threads = await ReconciliationScanner(client).load_all()
        self.store.replace_all(threads)

        self.settings = settings
        self.engine = SyncEngine(client, self.store, settings, gate=gate)
        self.log.info(
            "GitHub bridge started for %s (%d mirrored threads, ready=%s)",
            settings.repository, len(threads), self.readiness.ready,
        )
        return self.readiness

    # ----------------------
    # Utilities
    # ----------------------
    def _is_bridged(self, channel) -> bool:
        return (
            self.engine is not None
            and self.settings is not None
            and isinstance(channel, discord.Thread)
            and channel.parent_id == self.settings.forum_channel
        )

    def _ensure_thread(self, thread: discord.Thread) -> Thread:
        """Return the stored record for ``thread``, registering it on first sight."""
        if isinstance(thread.parent, discord.ForumChannel):
            self.store.set_available_tags(forum_tags(thread.parent))
        return self.store.add(thread_from_discord(thread))

    # ----------------------
    # Configuration Commands
    # ----------------------
    @commands.group(name="ghbridgeset")
    @commands.is_owner()
    async def ghbridgeset(self, ctx: commands.Context) -> None:
        """Configure the Discord forum to GitHub issues bridge."""

    @ghbridgeset.command(name="app")
    async def ghbridgeset_app(self, ctx: commands.Context, app_id: int) -> None:
        """Set the GitHub App id."""
        await self.config.app_id.set(app_id)
        await ctx.send(f"✅ GitHub App id set to `{app_id}`.")

    @ghbridgeset.command(name="installation")
    async def ghbridgeset_installation(self, ctx: commands.Context, installation_id: int) -> None:
        """Set the GitHub App installation id."""
        await self.config.installation_id.set(installation_id)
        await ctx.send(f"✅ Installation id set to `{installation_id}`.")

    @ghbridgeset.command(name="privatekey")
    async def ghbridgeset_privatekey(self, ctx: commands.Context) -> None:
        """Set the GitHub App private key. Attach the `.pem` file to the command message."""
        if not ctx.message.attachments:
            await ctx.send("❌ Attach the private key `.pem` file to the command message.")
            return
        key = (await ctx.message.attachments[0].read()).decode("utf-8", errors="replace").strip()
        if "PRIVATE KEY" not in key:
            await ctx.send("❌ That does not look like a PEM private key.")
            return
        await self.config.private_key.set(key)
        await ctx.send("✅ Private key set.")
        try:
            await ctx.message.delete()
        except discord.HTTPException:
            self.log.debug("Could not delete the private key message")

    @ghbridgeset.command(name="client")
    async def ghbridgeset_client(self, ctx: commands.Context, client_id: str, client_secret: str) -> None:
        """Set the GitHub App client id and secret."""
        await self.config.client_id.set(client_id)
        await self.config.client_secret.set(client_secret)
        await ctx.send("✅ Client credentials set.")
        try:
            await ctx.message.delete()
        except discord.HTTPException:
            self.log.debug("Could not delete the client secret message")

    @ghbridgeset.command(name="repo")
    async def ghbridgeset_repo(self, ctx: commands.Context, repository: str) -> None:
        """Set the GitHub repository as OWNER/REPO."""
        try:
            owner, repo = parse_repository(repository)
        except ConfigurationError as e:
            await ctx.send(f"❌ {e}")
            return
        await self.config.repository.set(f"{owner}/{repo}")
        self.log.debug("Repository configured to %s/%s", owner, repo)
        await ctx.send(f"✅ Repository set to `{owner}/{repo}`.")

    @ghbridgeset.command(name="labels")
    async def ghbridgeset_labels(self, ctx: commands.Context, *, labels: str = "") -> None:
        """Set the comma separated labels added to every created issue. Leave empty to clear."""
        parsed = parse_additional_labels(labels)
        await self.config.additional_labels.set(", ".join(parsed))
        if parsed:
            await ctx.send(f"✅ Additional labels: {', '.join(f'`{label}`' for label in parsed)}.")
        else:
            await ctx.send("✅ Additional labels cleared.")

    @ghbridgeset.command(name="forum")
    async def ghbridgeset_forum(self, ctx: commands.Context, channel: discord.ForumChannel) -> None:
        """Set the forum channel mirrored to GitHub."""
        await self.config.forum_channel.set(channel.id)
        self.store.set_available_tags(forum_tags(channel))
        await ctx.send(f"✅ Forum set to {channel.mention}. Run `{ctx.clean_prefix}ghbridgeset reload` to apply.")

    @ghbridgeset.command(name="show")
    async def ghbridgeset_show(self, ctx: commands.Context) -> None:
        """Show the current bridge configuration and status."""
        data = await self.config.all()
        forum = data.get("forum_channel")
        embed = discord.Embed(title="GitHub Bridge Configuration", color=await ctx.embed_color())
        embed.add_field(name="Repository", value=data.get("repository") or "Not set", inline=False)
        embed.add_field(name="App id", value=str(data.get("app_id") or "Not set"), inline=True)
        embed.add_field(name="Installation id", value=str(data.get("installation_id") or "Not set"), inline=True)
        embed.add_field(name="Private key", value="Set" if data.get("private_key") else "Not set", inline=True)
        embed.add_field(
            name="Client credentials",
            value="Set" if data.get("client_id") and data.get("client_secret") else "Not set",
            inline=True,
        )
        embed.add_field(name="Forum", value=f"<#{forum}>" if forum else "Not set", inline=True)
        embed.add_field(name="Additional labels", value=data.get("additional_labels") or "None", inline=False)

        if self.readiness is None:
            status = "🔴 Disabled"
        elif not self.readiness.authenticated:
            status = "🔴 Authentication failed"
        elif not self.readiness.permissions_granted:
            status = "🟠 Missing Issues: Read & Write permission"
        else:
            status = f"🟢 Ready as {self.readiness.app_name}"
        embed.add_field(name="Status", value=status, inline=False)
        embed.add_field(name="Mirrored threads", value=str(len(self.store)), inline=True)
        await ctx.send(embed=embed)

    @ghbridgeset.command(name="reload")
    async def ghbridgeset_reload(self, ctx: commands.Context) -> None:
        """Re-read the settings, re-check the GitHub App and reload mirrored threads."""
        async with ctx.typing():
            try:
                readiness = await self.start_bridge()
            except ConfigurationError as e:
                await ctx.send(f"❌ {e}")
                return
        if readiness is None:
            await ctx.send("❌ The bridge is not configured yet, see `ghbridgeset show`.")
        elif not readiness.authenticated:
            await ctx.send("❌ Could not authenticate as the GitHub App. Check the app id, key and installation.")
        elif not readiness.permissions_granted:
            await ctx.send("⚠️ Bridge started, but the app lacks Issues: Read & Write. Deleting issues will fail.")
        else:
            await ctx.send(f"✅ Bridge started, {len(self.store)} mirrored threads loaded.")

    # ----------------------
    # Discord -> GitHub: listeners
    # ----------------------
    @commands.Cog.listener()
    async def on_thread_create(self, thread: discord.Thread) -> None:
        if not self._is_bridged(thread):
            return
        self._ensure_thread(thread)
        self.log.debug("Tracking forum post %s", thread.id)

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        """Mirror forum post messages to GitHub."""
        if message.author.bot or not message.guild:
            return
        # Pins, joins, renames and other system messages are not mirrored
        if message.type not in (discord.MessageType.default, discord.MessageType.reply):
            return
        if not self._is_bridged(message.channel):
            return

        try:
            thread = self._ensure_thread(message.channel)
            chat_message = message_from_discord(message)
            # The starter message of a forum post shares the post's id
            if message.id == message.channel.id:
                if thread.number is None:
                    await self.engine.create_issue(thread, chat_message)
                return
            await self.engine.create_comment(thread, chat_message)
        except Exception:
            self.log.exception("Failed to mirror message %s", message.id)

    @commands.Cog.listener()
    async def on_thread_update(self, before: discord.Thread, after: discord.Thread) -> None:
        if not self._is_bridged(after):
            return

        try:
            thread = self._ensure_thread(after)
            thread.title = after.name
            thread.applied_tags = [tag.id for tag in after.applied_tags]

            if before.archived != after.archived:
                if after.archived:
                    await self.engine.close_issue(thread)
                else:
                    await self.engine.open_issue(thread)

            if before.locked != after.locked:
                if after.locked:
                    await self.engine.lock_issue(thread)
                else:
                    await self.engine.unlock_issue(thread)
        except Exception:
            self.log.exception("Failed to handle update of thread %s", after.id)

    @commands.Cog.listener()
    async def on_raw_message_delete(self, payload: discord.RawMessageDeleteEvent) -> None:
        if self.engine is None:
            return
        thread = self.store.get(payload.channel_id)
        if thread is None or thread.find_comment(payload.message_id) is None:
            return
        try:
            await self.engine.delete_comment(thread, payload.message_id)
        except Exception:
            self.log.exception("Failed to handle deletion of message %s", payload.message_id)

    @commands.Cog.listener()
    async def on_raw_thread_delete(self, payload: discord.RawThreadDeleteEvent) -> None:
        if self.engine is None:
            return
        thread = self.store.get(payload.thread_id)
        if thread is None:
            return
        try:
            await self.engine.delete_issue(thread)
        except Exception:
            self.log.exception("Failed to handle deletion of thread %s", payload.thread_id)
        finally:
            self.store.remove(payload.thread_id)
