"""Reconstruction walk: rebuild ``ctx.home`` from the backup in ``ctx.backup_dir``."""

from __future__ import annotations

import json
from pathlib import Path

from .. import exec as exec_util
from .. import git, io, log, paths, transfer
from ..models import VoltaPackages
from ..preflight import BROWSER_PROCESS_NAME, process_running, resolve_cursor_cli
from ..reconciler import WorktreeReconciler
from ..runner import Pipeline, RunContext, StepDefinition
from . import locations as loc

PRIVATE_MODE = 0o600
SSH_DIR_MODE = 0o700
ZSH_PLUGINS = (
    ("zsh-autosuggestions", "https://github.com/zsh-users/zsh-autosuggestions"),
    ("zsh-syntax-highlighting", "https://github.com/zsh-users/zsh-syntax-highlighting"),
)
BOOTSTRAP_TOOLS = (
    ("brew", "https://brew.sh"),
    ("volta", "https://volta.sh"),
)


def _section(ctx: RunContext, name: str) -> Path | None:
    section = ctx.backup_dir / name
    if not section.is_dir():
        log.info(f"  No {name} directory in backup, skipping.")
        return None
    return section


def _restore_skills(ctx: RunContext, backup_skills: Path, target: Path) -> None:
    """Relink skills shared through ``~/.agents``; copy the rest."""
    ctx.files.make_dirs(target)
    if not backup_skills.is_dir():
        return
    shared = loc.agents_home(ctx.home) / "skills"
    for skill in sorted(backup_skills.iterdir()):
        if not skill.is_dir():
            continue
        if (shared / skill.name).is_dir():
            if not ctx.files.symlink(shared / skill.name, target / skill.name):
                ctx.warn("SKILL_LINK", f"Failed to link skill {skill.name}: {ctx.files.last_error}")
        else:
            transfer.copy_tree(ctx, skill, target / skill.name)


def prerequisites(ctx: RunContext) -> None:
    for tool, url in BOOTSTRAP_TOOLS:
        if not exec_util.command_available(tool):
            ctx.warn(
                "PREREQ_MISSING",
                f"{tool} is not installed",
                category="user_action",
                suggestion=f"Install {tool} from {url}, then retry with --resume-from=prerequisites",
            )
    brewfile = ctx.backup_dir / paths.HOMEBREW_DIR / "Brewfile"
    if exec_util.command_available("brew"):
        if brewfile.is_file():
            log.info("  Restoring all Homebrew packages from Brewfile (this may take a while)...")
            transfer.run_tool(
                ctx,
                ["brew", "bundle", "install", f"--file={brewfile}"],
                code="BREW_BUNDLE",
                message="Some Brewfile packages failed to install",
            )
        else:
            ctx.warn("NO_BREWFILE", "No Brewfile found in backup", category="permanent")

    oh_my_zsh = ctx.home / ".oh-my-zsh"
    if not oh_my_zsh.is_dir():
        ctx.warn(
            "PREREQ_MISSING",
            "Oh-My-Zsh is not installed",
            category="user_action",
            suggestion="Install Oh-My-Zsh from https://ohmyz.sh, then retry with --resume-from=prerequisites",
        )
        log.info("  Prerequisites done.")
        return
    plugins = oh_my_zsh / "custom" / "plugins"
    for name, url in ZSH_PLUGINS:
        target = plugins / name
        if target.is_dir():
            continue
        result = ctx.files.run(git.clone_command(url, target, git_path=ctx.git_path))
        if result is None or not result.ok:
            ctx.warn("PLUGIN_CLONE", f"Failed to clone {name}: {ctx.files.last_error}")
    log.info("  Prerequisites done.")


def shell_env(ctx: RunContext) -> None:
    home = ctx.home
    source = ctx.backup_dir / paths.SHELL_ENV_DIR
    for home_name, backup_name in loc.SHELL_DOTFILES:
        transfer.copy_file(ctx, source / backup_name, home / home_name, backup=True)

    ssh = home / ".ssh"
    ctx.files.make_dirs(ssh)
    transfer.copy_file(ctx, source / "ssh" / "id_ed25519", ssh / "id_ed25519", backup=True, mode=PRIVATE_MODE)
    for name in loc.SSH_FILES[1:]:
        transfer.copy_file(ctx, source / "ssh" / name, ssh / name, backup=True)
    if not ctx.files.chmod(ssh, SSH_DIR_MODE):
        ctx.warn("CHMOD", f"Failed to restrict {ssh}: {ctx.files.last_error}")

    gh = home / ".config" / "gh"
    transfer.copy_file(ctx, source / "gh" / "config.yml", gh / "config.yml", backup=True)
    transfer.copy_file(ctx, source / "gh" / "hosts.yml", gh / "hosts.yml", backup=True, mode=PRIVATE_MODE)
    transfer.copy_file(
        ctx,
        source / "inshellisense" / "key-bindings.zsh",
        home / ".inshellisense" / "key-bindings.zsh",
    )
    transfer.extract(ctx, source / "github-copilot.tar.gz", home / ".config")

    aws = home / ".aws"
    transfer.copy_file(ctx, source / "aws" / "config", aws / "config", backup=True)
    transfer.copy_file(ctx, source / "aws" / "credentials", aws / "credentials", backup=True, mode=PRIVATE_MODE)
    transfer.copy_file(ctx, source / "npmrc", home / ".npmrc", backup=True, mode=PRIVATE_MODE)
    log.info("  Shell config restored.")


def volta(ctx: RunContext) -> None:
    record = ctx.backup_dir / paths.VOLTA_DIR / "global-packages.json"
    if not record.is_file():
        ctx.warn("VOLTA_UNAVAILABLE", "global-packages.json not found in backup", category="permanent")
        return
    if not exec_util.command_available("volta") and not ctx.dry_run:
        ctx.warn(
            "VOLTA_UNAVAILABLE",
            "volta is not installed",
            category="user_action",
            suggestion="Install Volta from https://volta.sh, then retry with --resume-from=volta",
        )
        return
    try:
        toolchain = VoltaPackages.model_validate_json(record.read_text(encoding="utf-8"))
    except ValueError as exc:
        ctx.warn("VOLTA_PARSE", f"Unreadable global-packages.json: {exc}", category="permanent")
        return
    tools = [f"node@{toolchain.node_default}"]
    if toolchain.npm_default != "bundled":
        tools.append(f"npm@{toolchain.npm_default}")
    tools.extend(toolchain.global_packages)
    for tool in tools:
        log.info(f"  Installing {tool}...")
        result = ctx.files.run(["volta", "install", tool])
        if result is None or not result.ok:
            ctx.warn("VOLTA_INSTALL", f"Failed to install {tool}: {ctx.files.last_error}")
    log.info("  Volta packages restored.")


def claude_code(ctx: RunContext) -> None:
    source = ctx.backup_dir / paths.CLAUDE_CODE_DIR
    target = loc.claude_home(ctx.home)
    ctx.files.make_dirs(target)
    transfer.copy_files(ctx, source, loc.CLAUDE_FILES, target)
    for name in loc.CLAUDE_ARCHIVES:
        transfer.extract(ctx, source / f"{name}.tar.gz", target)

    agents = ctx.backup_dir / paths.SHARED_AGENTS_DIR
    if agents.is_dir() and any(agents.iterdir()):
        transfer.copy_tree(ctx, agents, loc.agents_home(ctx.home), contents=True)
    _restore_skills(ctx, source / "skills", target / "skills")
    ctx.files.make_dirs(*(target / name for name in loc.CLAUDE_EMPTY_DIRS))
    log.info("  Claude Code restored.")


def project_configs(ctx: RunContext) -> None:
    source = ctx.backup_dir / paths.PROJECT_CONFIGS_DIR
    mapping_file = source / loc.PROJECT_PATHS_FILENAME
    if not mapping_file.is_file():
        ctx.warn("PROJECT_PATHS", f"No {loc.PROJECT_PATHS_FILENAME} found", category="permanent")
        return
    try:
        mapping = json.loads(mapping_file.read_text(encoding="utf-8"))
    except ValueError as exc:
        ctx.warn("PROJECT_PATHS", f"Unreadable {loc.PROJECT_PATHS_FILENAME}: {exc}", category="permanent")
        return
    if not isinstance(mapping, dict):
        ctx.warn(
            "PROJECT_PATHS",
            f"{loc.PROJECT_PATHS_FILENAME} must map folder names to paths, got {type(mapping).__name__}",
            category="permanent",
        )
        return
    for encoded, original in sorted(mapping.items()):
        if not isinstance(original, str) or not original:
            ctx.warn("PROJECT_PATHS", f"Ignoring {encoded}: path is not a string", category="permanent")
            continue
        expanded = ctx.home / original[2:] if original.startswith("~/") else Path(original)
        if not expanded.parent.is_dir():
            log.info(f"  SKIP (parent missing): {original}")
            continue
        if transfer.copy_tree(ctx, source / encoded, expanded, contents=True):
            log.info(f"  Restored: {original}")


def codex_cli(ctx: RunContext) -> None:
    source = ctx.backup_dir / paths.CODEX_CLI_DIR
    target = loc.codex_home(ctx.home)
    ctx.files.make_dirs(*(target / name for name in loc.CODEX_DIRS))
    for name in loc.CODEX_FILES:
        mode = PRIVATE_MODE if name == "auth.json" else None
        transfer.copy_file(ctx, source / name, target / name, mode=mode)
    transfer.copy_file(ctx, source / loc.CODEX_RULES, target / loc.CODEX_RULES)
    _restore_skills(ctx, source / "skills", target / "skills")
    transfer.copy_file(ctx, source / loc.CODEX_DB, target / loc.CODEX_DB)
    for name in loc.CODEX_ARCHIVES:
        transfer.extract(ctx, source / f"{name}.tar.gz", target)
    log.info("  Codex CLI restored.")


def conductor_worktrees(ctx: RunContext) -> None:
    report = WorktreeReconciler(ctx).reconcile_all(paths.conductor_workspaces(ctx.backup_dir))
    log.info(
        f"  {report.projects} project(s): {len(report.created)} created, "
        f"{len(report.detached)} detached, {len(report.skipped)} already present, "
        f"{len(report.failed)} failed"
    )


def conductor_db(ctx: RunContext) -> None:
    source = ctx.backup_dir / paths.CONDUCTOR_DIR
    app_support = loc.conductor_app_support(ctx.home)
    conductor = loc.conductor_home(ctx.home)
    ctx.files.make_dirs(app_support)
    if transfer.copy_file(ctx, source / "conductor.db", app_support / "conductor.db"):
        log.info("  conductor.db restored")
    transfer.copy_file(ctx, source / "conductor.db-wal", app_support / "conductor.db-wal")
    transfer.import_plist(
        ctx, source / "conductor-plist.xml", loc.preferences(ctx.home) / loc.CONDUCTOR_PLIST, code="PLIST_IMPORT"
    )
    transfer.extract(ctx, source / "archived-contexts.tar.gz", conductor)
    transfer.extract(ctx, source / "context-trash.tar.gz", conductor)
    transfer.copy_tree(ctx, source / "dbtools", conductor / "dbtools")
    log.info("  Conductor database restored.")


def _report_open_tabs(ctx: RunContext) -> None:
    for candidate in (ctx.backup_dir / paths.EDGE_DIR / loc.EDGE_OPEN_TABS, ctx.backup_dir / loc.EDGE_OPEN_TABS):
        if not candidate.is_file():
            continue
        try:
            windows = json.loads(candidate.read_text(encoding="utf-8"))
        except ValueError as exc:
            ctx.warn("EDGE_TABS", f"Unreadable {candidate.name}: {exc}", category="permanent")
            return
        if not isinstance(windows, list):
            ctx.warn("EDGE_TABS", f"{candidate.name} is not a list of windows", category="permanent")
            return
        tabs = sum(len(window.get("tabs", [])) for window in windows if isinstance(window, dict))
        if tabs:
            log.info(f"  Found {tabs} open tab(s) across {len(windows)} window(s); URLs are saved in {candidate}")
        return


def edge(ctx: RunContext) -> None:
    source = ctx.backup_dir / paths.EDGE_DIR
    if not source.is_dir():
        log.info(f"  No {paths.EDGE_DIR} directory in backup, skipping.")
        _report_open_tabs(ctx)
        return
    if process_running(BROWSER_PROCESS_NAME):
        if ctx.options.yes or ctx.dry_run:
            ctx.warn(
                "EDGE_RUNNING",
                f"{BROWSER_PROCESS_NAME} is running; profile data may be overwritten on exit",
                category="user_action",
                suggestion=f"Quit {BROWSER_PROCESS_NAME} and retry with --only=edge",
            )
        else:
            log.warning(f"  {BROWSER_PROCESS_NAME} is running. Restoring while it is open can corrupt profile data.")
            answer = io.choose("Quit the browser, then continue or skip this step", ("continue", "skip"), "continue")
            if answer == "skip":
                log.info("  Skipping Edge restore.")
                return

    target = loc.edge_home(ctx.home)
    ctx.files.make_dirs(target)
    transfer.copy_file(ctx, source / loc.EDGE_LOCAL_STATE, target / loc.EDGE_LOCAL_STATE, backup=True)
    restored = 0
    for encoded in sorted(entry for entry in source.iterdir() if entry.is_dir()):
        name = loc.decode_profile_name(encoded.name)
        log.info(f"  Restoring profile: {name}")
        profile = target / name
        ctx.files.make_dirs(profile)
        transfer.copy_files(ctx, encoded, loc.EDGE_PROFILE_FILES, profile, backup=True)
        for archive in loc.EDGE_PROFILE_DIRS:
            transfer.extract(ctx, encoded / f"{archive}.tar.gz", profile)
        restored += 1
    log.info(f"  Restored {restored} Edge profile(s).")
    _report_open_tabs(ctx)


def cursor_ide(ctx: RunContext) -> None:
    source = _section(ctx, paths.CURSOR_DIR)
    if source is None:
        return
    target = loc.cursor_user_dir(ctx.home)
    ctx.files.make_dirs(target)
    transfer.copy_files(ctx, source, loc.CURSOR_FILES, target, backup=True)
    transfer.copy_tree(ctx, source / "snippets", target / "snippets", contents=True)

    listing = source / "extensions.txt"
    if listing.is_file():
        try:
            lines = listing.read_text(encoding="utf-8").splitlines()
        except UnicodeDecodeError as exc:
            ctx.warn("CURSOR_EXTENSIONS", f"Unreadable {listing.name}: {exc}", category="permanent")
            lines = []
        extensions = [line.strip() for line in lines if line.strip()]
        cli = resolve_cursor_cli()
        if cli is None and extensions:
            ctx.warn(
                "CURSOR_CLI",
                f"Cursor CLI not found; {len(extensions)} extension(s) not installed",
                category="user_action",
                suggestion=f"Run: cat {listing} | xargs -L1 cursor --install-extension",
            )
        elif cli is not None:
            log.info(f"  Installing {len(extensions)} Cursor extension(s)...")
            for extension in extensions:
                result = ctx.files.run([cli, "--install-extension", extension])
                if result is None or not result.ok:
                    ctx.warn("CURSOR_EXTENSION", f"Failed to install {extension}: {ctx.files.last_error}")
    log.info("  Cursor IDE restored.")


def _datagrip_target(ctx: RunContext, source: Path) -> Path:
    existing = loc.latest_datagrip(ctx.home)
    if existing is not None:
        log.info(f"  Found existing {existing.name}")
        return existing
    version_file = source / loc.DATAGRIP_VERSION_FILENAME
    version = ""
    if version_file.is_file():
        try:
            version = version_file.read_text(encoding="utf-8").strip()
        except UnicodeDecodeError:
            log.warning(f"  Ignoring unreadable {version_file.name}")
    if not version:
        log.info(f"  No version info, defaulting to {loc.DATAGRIP_DEFAULT_VERSION}")
    return loc.jetbrains_dir(ctx.home) / (version or loc.DATAGRIP_DEFAULT_VERSION)


def db_tools(ctx: RunContext) -> None:
    source = _section(ctx, paths.DB_TOOLS_DIR)
    if source is None:
        return
    datagrip_backup = source / "datagrip"
    if datagrip_backup.is_dir():
        datagrip = _datagrip_target(ctx, source)
        ctx.files.make_dirs(datagrip)
        for name in loc.DATAGRIP_DIRS:
            transfer.copy_tree(ctx, datagrip_backup / name, datagrip / name, contents=True)
        transfer.copy_file(ctx, datagrip_backup / "datagrip.vmoptions", datagrip / "datagrip.vmoptions", backup=True)
        transfer.copy_file(
            ctx, datagrip_backup / "datagrip.key", datagrip / "datagrip.key", backup=True, mode=PRIVATE_MODE
        )
        log.info("  DataGrip settings restored.")
    psql = source / "psql"
    if psql.is_dir():
        for home_name, backup_name in loc.PSQL_FILES:
            mode = PRIVATE_MODE if backup_name == "pgpass" else None
            transfer.copy_file(ctx, psql / backup_name, ctx.home / home_name, backup=True, mode=mode)
        transfer.copy_tree(ctx, psql / "postgresql", ctx.home / ".postgresql", contents=True)
        log.info("  psql settings restored.")


def github_repos(ctx: RunContext) -> None:
    archive = ctx.backup_dir / paths.GITHUB_REPOS_DIR / loc.GITHUB_ARCHIVE
    if not archive.is_file():
        log.info(f"  No {paths.GITHUB_REPOS_DIR}/{loc.GITHUB_ARCHIVE} in backup, skipping.")
        return
    github = ctx.home / "GitHub"
    if github.is_dir():
        log.info("  ~/GitHub already exists; the archive merges into it")
    if transfer.extract(ctx, archive, ctx.home, required=True) and not ctx.dry_run and github.is_dir():
        count = sum(1 for entry in github.iterdir() if entry.is_dir())
        log.info(f"  ~/GitHub restored ({count} top-level directories)")


def desktop_apps(ctx: RunContext) -> None:
    source = _section(ctx, paths.DESKTOP_APPS_DIR)
    if source is None:
        return
    prefs = loc.preferences(ctx.home)
    transfer.import_plist(ctx, source / "iterm2-plist.xml", prefs / loc.ITERM_PLIST, code="ITERM_PLIST")
    transfer.copy_tree(ctx, source / "DynamicProfiles", loc.iterm_profiles_dir(ctx.home), contents=True)
    warp = next((prefs / name for name in loc.WARP_PLISTS if (prefs / name).is_file()), prefs / loc.WARP_PLISTS[0])
    transfer.import_plist(ctx, source / "warp-plist.xml", warp, code="WARP_PLIST")
    transfer.import_plist(ctx, source / "rectangle-plist.xml", prefs / loc.RECTANGLE_PLIST, code="RECTANGLE_PLIST")
    transfer.extract(ctx, source / "user-fonts.tar.gz", ctx.home / "Library")
    log.info("  Desktop app preferences restored.")


RESTORE_PIPELINE = Pipeline(
    "restore",
    [
        StepDefinition(1, "prerequisites", "Checking and installing prerequisites", prerequisites),
        StepDefinition(2, "shell_env", "Restoring shell and environment config", shell_env),
        StepDefinition(3, "volta", "Restoring Volta packages", volta),
        StepDefinition(4, "claude_code", "Restoring Claude Code", claude_code),
        StepDefinition(5, "project_configs", "Restoring project-specific Claude configs", project_configs),
        StepDefinition(6, "codex_cli", "Restoring Codex CLI", codex_cli),
        StepDefinition(7, "conductor_worktrees", "Restoring Conductor repos and worktrees", conductor_worktrees),
        StepDefinition(8, "conductor_db", "Restoring Conductor database and app data", conductor_db),
        StepDefinition(9, "edge", "Restoring Microsoft Edge profiles", edge),
        StepDefinition(10, "cursor_ide", "Restoring Cursor IDE settings", cursor_ide),
        StepDefinition(11, "db_tools", "Restoring database tools config", db_tools),
        StepDefinition(12, "github_repos", "Restoring ~/GitHub repositories", github_repos),
        StepDefinition(13, "desktop_apps", "Restoring desktop app preferences", desktop_apps),
    ],
)
