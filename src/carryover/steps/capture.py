"""Capture walk: snapshot tool state from ``ctx.home`` into ``ctx.backup_dir``."""

from __future__ import annotations

import datetime as dt
import getpass
import platform
import socket

from .. import __version__, log, paths, templates, transfer, worktrees
from .. import exec as exec_util
from ..errors import StepFailure
from ..models import BackupManifest, VoltaPackages
from ..preflight import BROWSER_PROCESS_NAME, process_running, resolve_cursor_cli
from ..runner import Pipeline, RunContext, StepDefinition
from . import locations as loc

PRIVATE_MODE = 0o600

SECTION_DIRS = (
    paths.CLAUDE_CODE_DIR,
    paths.PROJECT_CONFIGS_DIR,
    paths.CODEX_CLI_DIR,
    paths.SHARED_AGENTS_DIR,
    paths.CONDUCTOR_DIR,
    paths.SHELL_ENV_DIR,
    paths.HOMEBREW_DIR,
    paths.VOLTA_DIR,
    paths.EDGE_DIR,
    paths.CURSOR_DIR,
    paths.DB_TOOLS_DIR,
    paths.DESKTOP_APPS_DIR,
    paths.GITHUB_REPOS_DIR,
)
SUBDIRS = (
    f"{paths.CLAUDE_CODE_DIR}/skills",
    f"{paths.CODEX_CLI_DIR}/rules",
    f"{paths.CODEX_CLI_DIR}/skills",
    f"{paths.CODEX_CLI_DIR}/sqlite",
    f"{paths.CONDUCTOR_DIR}/workspaces",
    f"{paths.SHELL_ENV_DIR}/ssh",
    f"{paths.SHELL_ENV_DIR}/gh",
    f"{paths.SHELL_ENV_DIR}/inshellisense",
    f"{paths.SHELL_ENV_DIR}/aws",
    f"{paths.DB_TOOLS_DIR}/datagrip",
    f"{paths.DB_TOOLS_DIR}/psql",
)
# Backup-relative files tightened to 0600 by the permissions step.
SENSITIVE_FILES = (
    f"{paths.CODEX_CLI_DIR}/auth.json",
    f"{paths.SHELL_ENV_DIR}/ssh/id_ed25519",
    f"{paths.SHELL_ENV_DIR}/gh/hosts.yml",
    f"{paths.SHELL_ENV_DIR}/aws/credentials",
    f"{paths.SHELL_ENV_DIR}/npmrc",
    f"{paths.DB_TOOLS_DIR}/datagrip/datagrip.key",
    f"{paths.DB_TOOLS_DIR}/psql/pgpass",
)
SENSITIVE_PATTERNS = (
    (f"{paths.CONDUCTOR_DIR}/workspaces", "*.env"),
    (paths.EDGE_DIR, "History"),
    (paths.EDGE_DIR, "Web Data"),
)


def parse_volta_list(text: str) -> VoltaPackages | None:
    """Build the Volta toolchain record from ``volta list all --format=plain``.

    Example:
        >>> parse_volta_list(
        ...     "runtime node@20.11.0 (default)\\n"
        ...     "package-manager npm@10.2.4 (default)\\n"
        ...     "package pnpm@8.15.1 / pnpm / node@20.11.0 (default)\\n"
        ... ).global_packages
        ['pnpm@8.15.1']
    """
    node: str | None = None
    npm: str | None = None
    packages: list[str] = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        kind, tool = parts[0], parts[1]
        is_default = "(default)" in line
        if kind == "runtime" and tool.startswith("node@") and (node is None or is_default):
            node = tool.split("@", 1)[1]
        elif kind == "package-manager" and tool.startswith("npm@") and (npm is None or is_default):
            npm = tool.split("@", 1)[1]
        elif kind == "package" and tool not in packages:
            packages.append(tool)
    if node is None:
        return None
    return VoltaPackages(node_default=node, npm_default=npm or "bundled", global_packages=packages)


def directory_size(root) -> tuple[int, int]:
    """Return ``(total_bytes, file_count)`` for everything below ``root``."""
    total = 0
    count = 0
    if not root.is_dir():
        return total, count
    for entry in root.rglob("*"):
        if entry.is_file() and not entry.is_symlink():
            total += entry.stat().st_size
            count += 1
    return total, count


def create_dirs(ctx: RunContext) -> None:
    backup = ctx.backup_dir
    targets = [backup, *(backup / name for name in SECTION_DIRS), *(backup / name for name in SUBDIRS)]
    if not ctx.files.make_dirs(*targets):
        raise StepFailure(
            "MKDIR_FAILED",
            f"Failed to create backup directories: {ctx.files.last_error}",
            suggestion=f"Check that {backup.parent} is writable",
        )
    log.info(f"  Created {len(targets)} backup directories.")


def claude_code(ctx: RunContext) -> None:
    source = loc.claude_home(ctx.home)
    dest = ctx.backup_dir / paths.CLAUDE_CODE_DIR
    transfer.copy_files(ctx, source, loc.CLAUDE_FILES, dest)
    for name in loc.CLAUDE_ARCHIVES:
        transfer.archive_dir(ctx, source, name, dest / f"{name}.tar.gz")
    skills = source / "skills"
    if skills.is_dir():
        for skill in sorted(skills.iterdir()):
            if skill.is_dir():
                transfer.copy_tree(ctx, skill, dest / "skills" / skill.name, follow_symlinks=True)
    log.info("  Claude Code done.")


def project_configs(ctx: RunContext) -> None:
    dest = ctx.backup_dir / paths.PROJECT_CONFIGS_DIR
    mapping: dict[str, str] = {}
    for root_name in loc.PROJECT_CONFIG_ROOTS:
        root = ctx.home / root_name
        if not root.is_dir():
            continue
        candidates = [root / ".claude", *sorted(root.glob("*/.claude"))]
        for claude_dir in candidates:
            if not claude_dir.is_dir():
                continue
            encoded = loc.encode_project_path(ctx.home, claude_dir.parent)
            mapping[encoded] = "~/" + claude_dir.relative_to(ctx.home).as_posix()
            if transfer.copy_tree(ctx, claude_dir, dest / encoded, contents=True):
                log.info(f"  Backed up: {encoded}")
    if not mapping:
        log.info("  No project .claude directories found in ~/GitHub or ~/Downloads")
    if not ctx.files.write_json(dest / loc.PROJECT_PATHS_FILENAME, dict(sorted(mapping.items()))):
        ctx.warn("PROJECT_PATHS", f"Failed to write {loc.PROJECT_PATHS_FILENAME}: {ctx.files.last_error}")


def codex_cli(ctx: RunContext) -> None:
    source = loc.codex_home(ctx.home)
    dest = ctx.backup_dir / paths.CODEX_CLI_DIR
    transfer.copy_files(ctx, source, loc.CODEX_FILES, dest)
    transfer.copy_file(ctx, source / loc.CODEX_RULES, dest / loc.CODEX_RULES)
    skills = source / "skills"
    if skills.is_dir():
        for skill in sorted(skills.iterdir()):
            if skill.is_dir():
                transfer.copy_tree(ctx, skill, dest / "skills" / skill.name, follow_symlinks=True)
    transfer.copy_file(ctx, source / loc.CODEX_DB, dest / loc.CODEX_DB)
    for name in loc.CODEX_ARCHIVES:
        transfer.archive_dir(ctx, source, name, dest / f"{name}.tar.gz")
    log.info("  Codex CLI done.")


def shared_agents(ctx: RunContext) -> None:
    source = loc.agents_home(ctx.home)
    if source.is_dir() and not any(source.iterdir()):
        log.info("  ~/.agents is empty")
        return
    if transfer.copy_tree(
        ctx, source, ctx.backup_dir / paths.SHARED_AGENTS_DIR, contents=True, follow_symlinks=True
    ):
        log.info("  Shared agents done.")


def conductor_worktrees(ctx: RunContext) -> None:
    workspaces_root = loc.conductor_home(ctx.home) / "workspaces"
    backup_root = paths.conductor_workspaces(ctx.backup_dir)
    projects = worktrees.discover_projects(ctx, workspaces_root)
    if not projects:
        log.info("  No Conductor workspaces found")
        return
    for project in projects:
        log.info(f"  Processing {project.name}...")
        worktrees.capture_project(ctx, project, backup_root / project.name)


def conductor_db(ctx: RunContext) -> None:
    app_support = loc.conductor_app_support(ctx.home)
    conductor = loc.conductor_home(ctx.home)
    dest = ctx.backup_dir / paths.CONDUCTOR_DIR
    database = app_support / "conductor.db"
    if database.is_file():
        copied = False
        if exec_util.command_available("sqlite3"):
            result = ctx.files.run(["sqlite3", str(database), f".backup '{dest / database.name}'"])
            copied = result is not None and result.ok
            if not copied:
                ctx.warn("SQLITE_BACKUP", "sqlite3 backup failed, falling back to a plain copy")
        if not copied:
            transfer.copy_file(ctx, database, dest / database.name)
        log.info("  conductor.db backed up")
    else:
        log.debug(f"  not found, skipping: {database}")
    transfer.copy_file(ctx, app_support / "conductor.db-wal", dest / "conductor.db-wal")
    transfer.export_plist(
        ctx, loc.preferences(ctx.home) / loc.CONDUCTOR_PLIST, dest / "conductor-plist.xml", code="PLIST_EXPORT"
    )
    transfer.archive_dir(ctx, conductor, "archived-contexts", dest / "archived-contexts.tar.gz")
    transfer.archive_dir(ctx, conductor, ".context-trash", dest / "context-trash.tar.gz")
    transfer.copy_tree(ctx, conductor / "dbtools", dest / "dbtools")
    log.info("  Conductor database done.")


def shell_env(ctx: RunContext) -> None:
    home = ctx.home
    dest = ctx.backup_dir / paths.SHELL_ENV_DIR
    for source_name, backup_name in loc.SHELL_DOTFILES:
        transfer.copy_file(ctx, home / source_name, dest / backup_name)
    transfer.copy_files(ctx, home / ".ssh", loc.SSH_FILES, dest / "ssh")
    transfer.copy_files(ctx, home / ".config" / "gh", loc.GH_FILES, dest / "gh")
    transfer.copy_file(
        ctx, home / ".inshellisense" / "key-bindings.zsh", dest / "inshellisense" / "key-bindings.zsh"
    )
    transfer.archive_dir(ctx, home / ".config", "github-copilot", dest / "github-copilot.tar.gz")
    transfer.copy_files(ctx, home / ".aws", loc.AWS_FILES, dest / "aws")
    transfer.copy_file(ctx, home / ".npmrc", dest / "npmrc")
    log.info("  Shell config done.")


def homebrew(ctx: RunContext) -> None:
    if not exec_util.command_available("brew"):
        log.info("  Homebrew not found, skipping")
        return
    dest = ctx.backup_dir / paths.HOMEBREW_DIR
    transfer.run_tool(
        ctx,
        ["brew", "bundle", "dump", f"--file={dest / 'Brewfile'}", "--force"],
        code="BREWFILE_DUMP",
        message="Failed to dump Brewfile",
    )
    transfer.capture_output(ctx, ["brew", "list", "--versions"], dest / "brew-list.txt", code="BREW_LIST")
    transfer.capture_output(
        ctx, ["brew", "list", "--cask", "--versions"], dest / "brew-cask-list.txt", code="BREW_CASK"
    )
    log.info("  Brewfile and package lists saved.")


def volta(ctx: RunContext) -> None:
    if not exec_util.command_available("volta"):
        log.info("  Volta not found, skipping")
        return
    dest = ctx.backup_dir / paths.VOLTA_DIR
    listing = dest / "volta-list-all.txt"
    if not transfer.capture_output(
        ctx, ["volta", "list", "all", "--format=plain"], listing, code="VOLTA_LIST"
    ):
        return
    if ctx.dry_run:
        ctx.files.write_text(dest / "global-packages.json", "")
        return
    toolchain = parse_volta_list(listing.read_text(encoding="utf-8"))
    if toolchain is None:
        ctx.warn("VOLTA_PARSE", "volta reported no default node; global-packages.json not written")
        return
    if not ctx.files.write_json(dest / "global-packages.json", toolchain):
        ctx.warn("VOLTA_WRITE", f"Failed to write global-packages.json: {ctx.files.last_error}")
        return
    log.info(f"  node@{toolchain.node_default}, {len(toolchain.global_packages)} global package(s)")


def edge(ctx: RunContext) -> None:
    source = loc.edge_home(ctx.home)
    if not source.is_dir():
        log.info("  Microsoft Edge not installed, skipping")
        return
    if process_running(BROWSER_PROCESS_NAME):
        ctx.warn(
            "EDGE_RUNNING",
            f"{BROWSER_PROCESS_NAME} is running; backup may miss in-flight data",
            category="user_action",
            suggestion=f"Quit {BROWSER_PROCESS_NAME} and retry with --only=edge",
        )
    dest = ctx.backup_dir / paths.EDGE_DIR
    transfer.copy_file(ctx, source / loc.EDGE_LOCAL_STATE, dest / loc.EDGE_LOCAL_STATE)
    profiles = [source / "Default", *sorted(source.glob("Profile *"))]
    profiles = [profile for profile in profiles if profile.is_dir()]
    if not profiles:
        ctx.warn("EDGE_NO_PROFILES", "No Edge profiles found", category="permanent")
        return
    entries = []
    for profile in profiles:
        encoded = loc.encode_profile_name(profile.name)
        log.info(f"  Processing profile: {profile.name}")
        profile_dest = dest / encoded
        ctx.files.make_dirs(profile_dest)
        transfer.copy_files(ctx, profile, loc.EDGE_PROFILE_FILES, profile_dest)
        for name in loc.EDGE_PROFILE_DIRS:
            transfer.archive_dir(ctx, profile, name, profile_dest / f"{name}.tar.gz")
        entries.append({"name": profile.name, "encoded": encoded})
    if not ctx.files.write_json(dest / loc.EDGE_PROFILES_FILENAME, entries):
        ctx.warn("EDGE_PROFILES", f"Failed to write {loc.EDGE_PROFILES_FILENAME}: {ctx.files.last_error}")
    log.info(f"  Backed up {len(entries)} Edge profile(s).")


def cursor_ide(ctx: RunContext) -> None:
    user_dir = loc.cursor_user_dir(ctx.home)
    if not user_dir.is_dir():
        log.info("  Cursor IDE not installed or no User dir, skipping")
        return
    dest = ctx.backup_dir / paths.CURSOR_DIR
    transfer.copy_files(ctx, user_dir, loc.CURSOR_FILES, dest)
    transfer.copy_tree(ctx, user_dir / "snippets", dest / "snippets")
    extensions = dest / "extensions.txt"
    cli = resolve_cursor_cli()
    extensions_dir = ctx.home / ".cursor" / "extensions"
    if cli:
        transfer.capture_output(ctx, [cli, "--list-extensions"], extensions, code="CURSOR_EXTENSIONS")
    elif extensions_dir.is_dir():
        names = sorted(entry.name for entry in extensions_dir.iterdir() if entry.is_dir())
        ctx.files.write_text(extensions, "".join(f"{name}\n" for name in names))
    else:
        ctx.warn(
            "CURSOR_EXTENSIONS",
            "Cannot list Cursor extensions: CLI not in PATH and ~/.cursor/extensions not found",
            category="permanent",
        )
    log.info("  Cursor IDE done.")


def db_tools(ctx: RunContext) -> None:
    dest = ctx.backup_dir / paths.DB_TOOLS_DIR
    datagrip = loc.latest_datagrip(ctx.home)
    if datagrip is None:
        log.info("  DataGrip not installed, skipping DataGrip section")
    else:
        log.info(f"  Found {datagrip.name}")
        ctx.files.write_text(dest / loc.DATAGRIP_VERSION_FILENAME, f"{datagrip.name}\n")
        for name in loc.DATAGRIP_DIRS:
            transfer.copy_tree(ctx, datagrip / name, dest / "datagrip" / name)
        transfer.copy_files(ctx, datagrip, loc.DATAGRIP_FILES, dest / "datagrip")
    for source_name, backup_name in loc.PSQL_FILES:
        transfer.copy_file(ctx, ctx.home / source_name, dest / "psql" / backup_name)
    transfer.copy_tree(ctx, ctx.home / ".postgresql", dest / "psql" / "postgresql")
    log.info("  Database tools done.")


def desktop_apps(ctx: RunContext) -> None:
    prefs = loc.preferences(ctx.home)
    dest = ctx.backup_dir / paths.DESKTOP_APPS_DIR
    if transfer.export_plist(ctx, prefs / loc.ITERM_PLIST, dest / "iterm2-plist.xml", code="ITERM_PLIST"):
        transfer.copy_tree(ctx, loc.iterm_profiles_dir(ctx.home), dest / "DynamicProfiles")
        log.info("  iTerm2 preferences backed up.")
    warp = next((prefs / name for name in loc.WARP_PLISTS if (prefs / name).is_file()), None)
    if warp is not None and transfer.export_plist(ctx, warp, dest / "warp-plist.xml", code="WARP_PLIST"):
        log.info("  Warp preferences backed up.")
    if transfer.export_plist(
        ctx, prefs / loc.RECTANGLE_PLIST, dest / "rectangle-plist.xml", code="RECTANGLE_PLIST"
    ):
        log.info("  Rectangle preferences backed up.")
    fonts = ctx.home / "Library" / "Fonts"
    if fonts.is_dir() and any(fonts.iterdir()):
        if transfer.archive_dir(ctx, fonts.parent, "Fonts", dest / "user-fonts.tar.gz"):
            log.info("  User fonts backed up.")
    log.info("  Desktop apps done.")


def github_repos(ctx: RunContext) -> None:
    github = ctx.home / "GitHub"
    if not github.is_dir():
        log.info("  ~/GitHub directory not found, skipping")
        return
    archive = ctx.backup_dir / paths.GITHUB_REPOS_DIR / loc.GITHUB_ARCHIVE
    # A backup (or its backups folder) living inside ~/GitHub must not archive itself.
    resolved = github.resolve()
    skip = [
        path
        for path in (ctx.backup_dir, ctx.backup_dir.parent)
        if path.resolve() != resolved and path.resolve().is_relative_to(resolved)
    ]
    log.info("  Archiving ~/GitHub (excluding node_modules, build artifacts, backups)...")
    if transfer.archive_dir(
        ctx,
        ctx.home,
        "GitHub",
        archive,
        exclude=loc.GITHUB_EXCLUDES,
        skip=skip,
        required=True,
    ) and archive.is_file():
        log.info(f"  ~/GitHub archived ({archive.stat().st_size // (1024 * 1024)}MB)")


def manifest(ctx: RunContext) -> None:
    backup = ctx.backup_dir
    now = dt.datetime.now()
    total, count = directory_size(backup)
    sections = {name: directory_size(backup / name)[0] for name in SECTION_DIRS}
    warnings = ctx.ledger.record.summary.warnings
    record = BackupManifest(
        backup_date=now.strftime("%Y-%m-%d-%H%M%S"),
        backup_time=now.strftime("%H:%M:%S"),
        hostname=socket.gethostname(),
        platform=platform.platform(),
        user=getpass.getuser(),
        carryover_version=__version__,
        total_size_bytes=total,
        file_count=count,
        warnings=warnings,
        sections=sections,
    )
    if not ctx.files.write_json(backup / paths.MANIFEST_FILENAME, record):
        ctx.error(
            "MANIFEST_WRITE",
            f"Failed to write {paths.MANIFEST_FILENAME}: {ctx.files.last_error}",
            category="transient",
            suggestion=ctx.resume_hint(),
        )


def restore_guide(ctx: RunContext) -> None:
    text = templates.render_template(
        templates.read_template(templates.RESTORE_GUIDE_TEMPLATE),
        {
            "user": getpass.getuser(),
            "host": socket.gethostname(),
            "platform": platform.system(),
            "captured_at": dt.datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "version": __version__,
        },
    )
    if not ctx.files.write_text(ctx.backup_dir / paths.RESTORE_GUIDE_FILENAME, text):
        ctx.error(
            "GUIDE_WRITE",
            f"Failed to write {paths.RESTORE_GUIDE_FILENAME}: {ctx.files.last_error}",
            category="transient",
            suggestion=ctx.resume_hint(),
        )


def permissions(ctx: RunContext) -> None:
    backup = ctx.backup_dir
    targets = [backup / relative for relative in SENSITIVE_FILES]
    for directory, pattern in SENSITIVE_PATTERNS:
        root = backup / directory
        if root.is_dir():
            targets.extend(sorted(root.rglob(pattern)))
    for target in targets:
        if not target.is_file():
            log.debug(f"  not found, skipping chmod: {target}")
            continue
        if not ctx.files.chmod(target, PRIVATE_MODE):
            ctx.warn("CHMOD", f"Failed to restrict {target}: {ctx.files.last_error}")


CAPTURE_PIPELINE = Pipeline(
    "capture",
    [
        StepDefinition(1, "create_dirs", "Creating backup directory structure", create_dirs),
        StepDefinition(2, "claude_code", "Backing up Claude Code", claude_code),
        StepDefinition(3, "project_configs", "Backing up project-specific Claude configs", project_configs),
        StepDefinition(4, "codex_cli", "Backing up Codex CLI", codex_cli),
        StepDefinition(5, "shared_agents", "Backing up shared agents", shared_agents),
        StepDefinition(6, "conductor_worktrees", "Backing up Conductor workspaces", conductor_worktrees),
        StepDefinition(7, "conductor_db", "Backing up Conductor database", conductor_db),
        StepDefinition(8, "shell_env", "Backing up shell and environment config", shell_env),
        StepDefinition(9, "homebrew", "Backing up Homebrew package list", homebrew),
        StepDefinition(10, "volta", "Backing up Volta package manifest", volta),
        StepDefinition(11, "edge", "Backing up Microsoft Edge profiles", edge),
        StepDefinition(12, "cursor_ide", "Backing up Cursor IDE settings", cursor_ide),
        StepDefinition(13, "db_tools", "Backing up database tools config", db_tools),
        StepDefinition(14, "desktop_apps", "Backing up desktop app preferences", desktop_apps),
        StepDefinition(15, "github_repos", "Backing up ~/GitHub repositories", github_repos),
        StepDefinition(16, "manifest", "Generating manifest", manifest),
        StepDefinition(17, "restore_guide", "Generating RESTORE-GUIDE.md", restore_guide),
        StepDefinition(18, "permissions", "Setting permissions on sensitive files", permissions),
    ],
)
